"""Camera models and rig geometry."""

from .cameras import (
    PinholeCamera,
    SphericalCamera,
    focal_from_pinhole_height,
    compute_pinhole_intrinsics,
)
from .rig import RigConfig, RigGenerator, rotation_around_y

__all__ = [
    'PinholeCamera',
    'SphericalCamera',
    'focal_from_pinhole_height',
    'compute_pinhole_intrinsics',
    'RigConfig',
    'RigGenerator',
    'rotation_around_y',
]
