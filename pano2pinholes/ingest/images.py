"""
Image Stores
============

Storage collaborators used by the converter: list source panoramas, decode
and encode images, create directories, write small text sidecars. The
converter only talks to the `ImageStore` interface, so the resampling path
can run against `MemoryImageStore` in tests without touching the disk.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import cv2

from pano2pinholes.core import DecodeError, get_image_files, ensure_directory


class ImageStore(ABC):
    """Where panoramas come from and where pinhole images go."""

    @abstractmethod
    def list_images(self, directory: Path, extensions: Tuple[str, ...]) -> List[Path]:
        """Non-recursive, extension-filtered, sorted listing."""

    @abstractmethod
    def read(self, path: Path) -> np.ndarray:
        """Decode an image. Raises DecodeError."""

    @abstractmethod
    def write(self, path: Path, image: np.ndarray, params: Optional[Sequence[int]] = None) -> None:
        """Encode an image. Raises DecodeError."""

    @abstractmethod
    def ensure_directory(self, path: Path) -> Path:
        """Create a directory (and parents) if needed. Raises OSError."""

    @abstractmethod
    def write_text(self, path: Path, text: str) -> None:
        """Write a small text file."""


class DiskImageStore(ImageStore):
    """Filesystem store backed by OpenCV codecs.

    Uses cv2.imdecode/cv2.imencode with numpy file I/O so non-ASCII paths
    work on every platform.
    """

    def list_images(self, directory: Path, extensions: Tuple[str, ...]) -> List[Path]:
        return get_image_files(directory, extensions=extensions, recursive=False)

    def read(self, path: Path) -> np.ndarray:
        path = Path(path)
        try:
            data = np.fromfile(str(path), dtype=np.uint8)
        except OSError as e:
            raise DecodeError(f"Cannot read the image: {path} ({e})") from e

        image = cv2.imdecode(data, cv2.IMREAD_COLOR) if data.size else None
        if image is None:
            raise DecodeError(f"Cannot decode the image: {path}")
        return image

    def write(self, path: Path, image: np.ndarray, params: Optional[Sequence[int]] = None) -> None:
        path = Path(path)
        ext = path.suffix.lower()
        if not ext:
            raise DecodeError(f"Cannot encode image without extension: {path}")

        try:
            ok, encoded = cv2.imencode(ext, image, list(params or []))
        except cv2.error as e:
            raise DecodeError(f"Cannot encode the image: {path} ({e})") from e
        if not ok:
            raise DecodeError(f"Cannot encode the image: {path}")

        try:
            encoded.tofile(str(path))
        except OSError as e:
            raise DecodeError(f"Cannot write the image: {path} ({e})") from e

    def ensure_directory(self, path: Path) -> Path:
        return ensure_directory(path)

    def write_text(self, path: Path, text: str) -> None:
        Path(path).write_text(text, encoding='utf-8')


class MemoryImageStore(ImageStore):
    """In-memory store. Entries set to None simulate undecodable files."""

    def __init__(self, images: Optional[Dict[Path, Optional[np.ndarray]]] = None):
        self.images: Dict[Path, Optional[np.ndarray]] = {
            Path(k): v for k, v in (images or {}).items()
        }
        self.written: Dict[Path, np.ndarray] = {}
        self.texts: Dict[Path, str] = {}
        self.directories = set()

    def list_images(self, directory: Path, extensions: Tuple[str, ...]) -> List[Path]:
        directory = Path(directory)
        wanted = {ext.lower() for ext in extensions}
        return sorted(
            p for p in self.images
            if p.parent == directory and p.suffix.lower() in wanted
        )

    def read(self, path: Path) -> np.ndarray:
        image = self.images.get(Path(path))
        if image is None:
            raise DecodeError(f"Cannot decode the image: {path}")
        return image.copy()

    def write(self, path: Path, image: np.ndarray, params: Optional[Sequence[int]] = None) -> None:
        self.written[Path(path)] = image.copy()

    def ensure_directory(self, path: Path) -> Path:
        path = Path(path)
        self.directories.add(path)
        return path

    def write_text(self, path: Path, text: str) -> None:
        self.texts[Path(path)] = text


__all__ = [
    'ImageStore',
    'DiskImageStore',
    'MemoryImageStore',
]
