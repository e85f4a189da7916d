"""
Ingest: source discovery and image codecs.
"""

from .images import ImageStore, DiskImageStore, MemoryImageStore

__all__ = [
    'ImageStore',
    'DiskImageStore',
    'MemoryImageStore',
]
