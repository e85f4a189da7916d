"""
Camera Models
=============

Pinhole and equirectangular (spherical) camera models shared by the
resampler and the frustum visualizer.

Frame convention for both models: x to the right, y down, z forward.
Latitude is positive above the horizon, so the top row of a panorama looks
along -y. Longitude is measured from +z towards +x, so the panorama's center
column looks along +z.

All mapping methods are vectorized: they accept scalars or arrays and
broadcast over leading dimensions.
"""

from dataclasses import dataclass
from typing import Union

import numpy as np

from pano2pinholes.core import GeometryError


ArrayLike = Union[float, np.ndarray]


def focal_from_pinhole_height(height: int, fov_radians: float) -> float:
    """Focal length (pixels) giving a vertical field of view over `height` rows."""
    return (height / 2.0) / np.tan(fov_radians / 2.0)


@dataclass(frozen=True)
class PinholeCamera:
    """Distortion-free rectilinear camera.

    The model accepts any width/height. Ring rigs only use square cameras,
    which `RigConfig` checks.
    """
    width: int
    height: int
    focal: float
    cx: float
    cy: float

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise GeometryError(
                f"Pinhole size must be positive, got {self.width}x{self.height}"
            )
        if not np.isfinite(self.focal) or self.focal <= 0:
            raise GeometryError(f"Pinhole focal must be positive, got {self.focal}")

    @property
    def K(self) -> np.ndarray:
        """3x3 intrinsic matrix."""
        return np.array([
            [self.focal, 0.0, self.cx],
            [0.0, self.focal, self.cy],
            [0.0, 0.0, 1.0],
        ])

    def unproject(self, x: ArrayLike, y: ArrayLike) -> np.ndarray:
        """Pixel coordinates -> unit bearing vectors in the camera frame.

        Returns an array of shape broadcast(x, y).shape + (3,).
        """
        x, y = np.broadcast_arrays(
            np.asarray(x, dtype=np.float64),
            np.asarray(y, dtype=np.float64),
        )
        rays = np.stack([
            (x - self.cx) / self.focal,
            (y - self.cy) / self.focal,
            np.ones_like(x),
        ], axis=-1)
        return rays / np.linalg.norm(rays, axis=-1, keepdims=True)

    def __call__(self, xy: np.ndarray) -> np.ndarray:
        """Bearing for pixel(s) given as (..., 2) array."""
        xy = np.asarray(xy, dtype=np.float64)
        return self.unproject(xy[..., 0], xy[..., 1])

    def project(self, bearings: np.ndarray) -> np.ndarray:
        """Camera-frame directions (..., 3) -> pixel coordinates (..., 2).

        Directions behind the camera (z <= 0) give non-finite or mirrored
        coordinates; callers must filter them.
        """
        b = np.asarray(bearings, dtype=np.float64)
        with np.errstate(divide='ignore', invalid='ignore'):
            x = self.focal * b[..., 0] / b[..., 2] + self.cx
            y = self.focal * b[..., 1] / b[..., 2] + self.cy
        return np.stack([x, y], axis=-1)


def compute_pinhole_intrinsics(resolution: int, fov: float) -> PinholeCamera:
    """Square pinhole camera with a vertical field of view of `fov` degrees.

    The principal point sits at the image center (resolution / 2).
    """
    focal = focal_from_pinhole_height(resolution, np.radians(fov))
    return PinholeCamera(
        width=resolution,
        height=resolution,
        focal=float(focal),
        cx=resolution / 2.0,
        cy=resolution / 2.0,
    )


@dataclass(frozen=True)
class SphericalCamera:
    """Equirectangular camera covering 360° x 180°."""
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height != self.width // 2:
            raise GeometryError(
                f"Equirectangular size must be W x W/2, got {self.width}x{self.height}"
            )

    @classmethod
    def from_width(cls, width: int) -> 'SphericalCamera':
        return cls(width, width // 2)

    def project(self, directions: np.ndarray) -> np.ndarray:
        """Directions (..., 3) -> equirectangular pixels (..., 2).

        u lies in [0, W] (both ends are the seam, the sampler wraps it),
        v lies in [0, H]. Directions along the vertical axis get longitude 0.
        Zero vectors produce NaN.
        """
        d = np.asarray(directions, dtype=np.float64)
        with np.errstate(divide='ignore', invalid='ignore'):
            norm = np.linalg.norm(d, axis=-1)
            lon = np.arctan2(d[..., 0], d[..., 2])
            lat = np.arcsin(np.clip(-d[..., 1] / norm, -1.0, 1.0))

        u = (lon / (2 * np.pi) + 0.5) * self.width
        v = (0.5 - lat / np.pi) * self.height
        return np.stack([u, v], axis=-1)

    def unproject(self, u: ArrayLike, v: ArrayLike) -> np.ndarray:
        """Equirectangular pixels -> unit directions (..., 3)."""
        u, v = np.broadcast_arrays(
            np.asarray(u, dtype=np.float64),
            np.asarray(v, dtype=np.float64),
        )
        lon = (u / self.width - 0.5) * 2 * np.pi
        lat = (0.5 - v / self.height) * np.pi

        cos_lat = np.cos(lat)
        return np.stack([
            cos_lat * np.sin(lon),
            -np.sin(lat),
            cos_lat * np.cos(lon),
        ], axis=-1)


__all__ = [
    'PinholeCamera',
    'SphericalCamera',
    'focal_from_pinhole_height',
    'compute_pinhole_intrinsics',
]
