"""
Spherical to Pinhole Resampling
===============================

Forward mapping from an equirectangular panorama to the pinhole cameras of
a ring rig. For every destination pixel:

    bearing = pinhole.unproject(x, y)      # camera frame
    bearing = R_i @ bearing                # panorama frame
    (u, v)  = sphere.project(bearing)      # panorama pixel
    out     = bilinear(panorama, u, v)

Pixel centers sit on integer coordinates. u wraps modulo the panorama
width (the seam column blends with column 0), v is clamped to the first and
last rows. Non-finite (u, v) leave the background colour in place.

The per-pixel work is vectorized: bearings are computed once per rig, the
(u, v) lookup maps once per (panorama size, camera) and cached, and each
image then only pays for the four-sample fetch.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import os
import threading

import numpy as np
import cv2

try:
    import torch
    import torch.nn.functional as F
    HAS_TORCH = True
except ImportError:
    HAS_TORCH = False

from pano2pinholes.core import (
    ProjectionBackend,
    DegenerateImageError,
    GeometryError,
)
from pano2pinholes.geometry import RigConfig, SphericalCamera

logger = logging.getLogger(__name__)

# cv2.remap requires source and destination sides below SHRT_MAX
REMAP_MAX_SIZE = 32767


def check_source_image(image) -> Tuple[int, int]:
    """Return (height, width) of a usable panorama or raise DegenerateImageError."""
    if not isinstance(image, np.ndarray):
        raise DegenerateImageError(f"Expected an image array, got {type(image).__name__}")
    if image.ndim not in (2, 3):
        raise DegenerateImageError(f"Expected a 2D or 3D image array, got {image.ndim}D")
    if image.size == 0:
        raise DegenerateImageError(f"Image has zero area: shape {image.shape}")
    return image.shape[0], image.shape[1]


def blank_image(
    height: int,
    width: int,
    channels: Optional[int],
    dtype: np.dtype,
    background: Sequence[float] = (0, 0, 0),
) -> np.ndarray:
    """Allocate an output image filled with the background colour."""
    if channels is None:
        return np.full((height, width), background[0], dtype=dtype)
    fill = np.resize(np.asarray(background, dtype=np.float64), channels)
    out = np.empty((height, width, channels), dtype=dtype)
    out[...] = fill.astype(dtype)
    return out


def _cast_like(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    """Round and saturate float samples into the source dtype."""
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(values), info.min, info.max).astype(dtype)
    return values.astype(dtype)


def sample_bilinear(
    image: np.ndarray,
    map_x: np.ndarray,
    map_y: np.ndarray,
    background: Sequence[float] = (0, 0, 0),
) -> np.ndarray:
    """Bilinear lookup of `image` at (map_x, map_y) with horizontal wrap.

    Args:
        image: Panorama (H, W) or (H, W, C)
        map_x: Column coordinates, any shape
        map_y: Row coordinates, same shape as map_x
        background: Colour for non-finite coordinates

    Returns:
        Array of shape map_x.shape (+ (C,)) with the image dtype
    """
    H, W = check_source_image(image)
    channels = image.shape[2] if image.ndim == 3 else None

    valid = np.isfinite(map_x) & np.isfinite(map_y)
    u = np.mod(np.where(valid, map_x, 0.0).astype(np.float64), W)
    v = np.clip(np.where(valid, map_y, 0.0).astype(np.float64), 0, H - 1)

    x0 = np.floor(u).astype(np.intp)
    y0 = np.floor(v).astype(np.intp)
    dx = u - x0
    dy = v - y0
    x0 %= W
    x1 = (x0 + 1) % W
    y1 = np.minimum(y0 + 1, H - 1)

    if channels is not None:
        dx = dx[..., np.newaxis]
        dy = dy[..., np.newaxis]

    src = image.astype(np.float64, copy=False)
    values = (
        src[y0, x0] * (1 - dx) * (1 - dy) +
        src[y0, x1] * dx * (1 - dy) +
        src[y1, x0] * (1 - dx) * dy +
        src[y1, x1] * dx * dy
    )

    out = blank_image(map_x.shape[0], map_x.shape[1], channels, image.dtype, background)
    out[valid] = _cast_like(values[valid], image.dtype)
    return out


class SphericalToPinholes:
    """Resample an equirectangular panorama into every camera of a ring rig."""

    def __init__(
        self,
        rig: RigConfig,
        backend: Optional[ProjectionBackend] = None,
        num_workers: int = -1,
        background: Sequence[float] = (0, 0, 0),
        cache_maps: bool = True,
    ):
        """
        Args:
            rig: Shared ring rig (rotations + pinhole intrinsics)
            backend: Sampling backend (AUTO/None selects OpenCV)
            num_workers: Threads used across cameras (-1 for CPU count)
            background: Colour for pixels with no valid source sample
            cache_maps: Keep lookup maps between images of the same size
        """
        if len(rig) == 0:
            raise GeometryError("Rig has no cameras")

        self.rig = rig
        self.backend = self._select_backend(backend or ProjectionBackend.AUTO)
        self.num_workers = num_workers if num_workers > 0 else (os.cpu_count() or 1)
        self.background = tuple(background)
        self.cache_maps = cache_maps

        self._maps: Dict[Tuple[int, int, int], Tuple[np.ndarray, np.ndarray]] = {}
        self._maps_lock = threading.Lock()
        self._bearings = self._pinhole_bearings()

        logger.debug(
            f"Resampler ready: backend={self.backend.value}, "
            f"cameras={len(rig)}, workers={self.num_workers}"
        )

    def _select_backend(self, backend: ProjectionBackend) -> ProjectionBackend:
        """Resolve AUTO and fall back when torch is unavailable."""
        if backend == ProjectionBackend.AUTO:
            return ProjectionBackend.OPENCV
        if backend == ProjectionBackend.TORCH and not HAS_TORCH:
            logger.warning("PyTorch not found, falling back to OpenCV remap")
            return ProjectionBackend.OPENCV
        return backend

    def _pinhole_bearings(self) -> np.ndarray:
        """Camera-frame bearings of every destination pixel, shape (h, w, 3)."""
        pinhole = self.rig.pinhole
        xv, yv = np.meshgrid(
            np.arange(pinhole.width, dtype=np.float64),
            np.arange(pinhole.height, dtype=np.float64),
        )
        bearings = pinhole.unproject(xv, yv)
        bearings.setflags(write=False)
        return bearings

    # -------------------------------------------------------------------------
    # Lookup maps
    # -------------------------------------------------------------------------

    def compute_maps(
        self,
        pano_width: int,
        pano_height: int,
        index: int,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Panorama (u, v) for every pixel of camera `index`, as float32 maps."""
        sphere = SphericalCamera(pano_width, pano_height)
        rotated = self._bearings @ self.rig.rotations[index].T
        uv = sphere.project(rotated)
        return uv[..., 0].astype(np.float32), uv[..., 1].astype(np.float32)

    def get_maps(
        self,
        pano_width: int,
        pano_height: int,
        index: int,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Cached `compute_maps`."""
        key = (pano_width, pano_height, index)
        if self.cache_maps:
            with self._maps_lock:
                cached = self._maps.get(key)
            if cached is not None:
                return cached

        maps = self.compute_maps(pano_width, pano_height, index)

        if self.cache_maps:
            with self._maps_lock:
                self._maps[key] = maps
        return maps

    def clear_cache(self) -> None:
        with self._maps_lock:
            self._maps.clear()

    # -------------------------------------------------------------------------
    # Resampling
    # -------------------------------------------------------------------------

    def resample(self, image: np.ndarray) -> List[np.ndarray]:
        """Produce one pinhole image per rig camera, ordered by camera index.

        Raises:
            DegenerateImageError: image is empty or not an image array
            GeometryError: image is not a 2:1 equirectangular panorama
        """
        H, W = check_source_image(image)
        SphericalCamera(W, H)

        indices = range(len(self.rig))
        if self.num_workers > 1 and len(self.rig) > 1:
            workers = min(self.num_workers, len(self.rig))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [
                    executor.submit(self.resample_camera, image, i)
                    for i in indices
                ]
                return [future.result() for future in futures]

        return [self.resample_camera(image, i) for i in indices]

    def resample_camera(self, image: np.ndarray, index: int) -> np.ndarray:
        """Produce the pinhole image of a single camera."""
        H, W = check_source_image(image)
        map_x, map_y = self.get_maps(W, H, index)

        if self.backend == ProjectionBackend.TORCH:
            return self._sample_torch(image, map_x, map_y)
        elif self.backend == ProjectionBackend.OPENCV and self._fits_remap(H, W):
            return self._sample_opencv(image, map_x, map_y)
        else:
            return sample_bilinear(image, map_x, map_y, self.background)

    def _fits_remap(self, pano_height: int, pano_width: int) -> bool:
        """Whether cv2.remap accepts the padded panorama and the output size."""
        pinhole = self.rig.pinhole
        sides = (pano_height, pano_width + 1, pinhole.width, pinhole.height)
        if max(sides) < REMAP_MAX_SIZE:
            return True
        logger.debug(
            f"Panorama {pano_width}x{pano_height} too large for cv2.remap, "
            f"using the NumPy sampler"
        )
        return False

    def _sample_opencv(
        self,
        image: np.ndarray,
        map_x: np.ndarray,
        map_y: np.ndarray,
    ) -> np.ndarray:
        """cv2.remap on a panorama padded with its first column."""
        H, W = image.shape[:2]
        padded = np.concatenate([image, image[:, :1]], axis=1)

        valid = np.isfinite(map_x) & np.isfinite(map_y)
        mx = np.where(valid, np.mod(map_x, W), -1).astype(np.float32)
        my = np.where(valid, np.clip(map_y, 0, H - 1), -1).astype(np.float32)

        out = cv2.remap(
            padded, mx, my, cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_REPLICATE,
        )
        if image.ndim == 3 and out.ndim == 2:
            out = out[..., np.newaxis]

        channels = image.shape[2] if image.ndim == 3 else None
        result = blank_image(map_x.shape[0], map_x.shape[1], channels, image.dtype, self.background)
        result[valid] = out[valid]
        return result

    def _sample_torch(
        self,
        image: np.ndarray,
        map_x: np.ndarray,
        map_y: np.ndarray,
    ) -> np.ndarray:
        """torch grid_sample on a panorama padded with its first column."""
        H, W = image.shape[:2]
        device = self._torch_device()

        padded = np.concatenate([image, image[:, :1]], axis=1)
        if padded.ndim == 2:
            padded = padded[..., np.newaxis]
        src = torch.from_numpy(padded.astype(np.float32)).permute(2, 0, 1).unsqueeze(0).to(device)

        valid = np.isfinite(map_x) & np.isfinite(map_y)
        u = np.mod(np.where(valid, map_x, 0), W)
        v = np.clip(np.where(valid, map_y, 0), 0, H - 1)

        # align_corners=True: -1 and 1 are the centers of the first and last pixels
        grid_x = 2 * u / W - 1
        grid_y = 2 * v / max(H - 1, 1) - 1
        grid = torch.from_numpy(
            np.stack([grid_x, grid_y], axis=-1).astype(np.float32)
        ).unsqueeze(0).to(device)

        sampled = F.grid_sample(
            src, grid,
            mode='bilinear',
            padding_mode='border',
            align_corners=True,
        )
        values = sampled.squeeze(0).permute(1, 2, 0).cpu().numpy().astype(np.float64)
        if image.ndim == 2:
            values = values[..., 0]

        channels = image.shape[2] if image.ndim == 3 else None
        result = blank_image(map_x.shape[0], map_x.shape[1], channels, image.dtype, self.background)
        result[valid] = _cast_like(values[valid], image.dtype)
        return result

    @staticmethod
    def _torch_device() -> str:
        if torch.cuda.is_available():
            return 'cuda'
        if hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
            return 'mps'
        return 'cpu'


__all__ = [
    'HAS_TORCH',
    'SphericalToPinholes',
    'sample_bilinear',
    'check_source_image',
    'blank_image',
]
