"""
pano2pinholes: Spherical panorama to pinhole image conversion

Splits full equirectangular panoramas into a ring of rectilinear views that
share the panorama's optical center, ready for feature-based reconstruction
or detection.

Example:
    >>> from pano2pinholes import ConverterConfig, PanoConverter
    >>> config = ConverterConfig(input_dir="panos", output_dir="views", nb_split=8)
    >>> result = PanoConverter(config).process()
    >>> print(result.metrics['focal'])
"""

from .prepare import ConverterConfig, PanoConverter

__version__ = "1.0.0"

__all__ = [
    'ConverterConfig',
    'PanoConverter',
]
