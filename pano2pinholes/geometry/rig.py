"""
Ring Rig Generation
===================

Builds the ring of virtual pinhole cameras that cover a panorama: N
rotations evenly spaced around the vertical axis, all sharing one set of
pinhole intrinsics. Camera 0 looks along the panorama's forward direction
(its center column); camera i is rotated by 2*pi*i/N.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple, Union
import json
import logging

import numpy as np
import yaml

from pano2pinholes.core import GeometryError
from pano2pinholes.geometry.cameras import PinholeCamera, compute_pinhole_intrinsics

logger = logging.getLogger(__name__)


def rotation_around_y(angle: float) -> np.ndarray:
    """Rotation of `angle` radians about the Y (vertical) axis.

    Rotating the forward axis +z by `angle` gives (sin, 0, cos), i.e. a
    panorama longitude of `angle`.
    """
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [c, 0.0, s],
        [0.0, 1.0, 0.0],
        [-s, 0.0, c],
    ])


@dataclass(frozen=True)
class RigConfig:
    """Ring of pinhole cameras sharing one intrinsic model.

    `rotations[i]` maps camera-i directions into the panorama frame. The
    arrays are read-only so the rig can be shared across worker threads.
    """
    pinhole: PinholeCamera
    angles: Tuple[float, ...]
    fov: float
    pattern: str = "ring"
    rotations: Tuple[np.ndarray, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.angles:
            raise GeometryError("Rig must contain at least one camera")
        if self.pinhole.width != self.pinhole.height:
            raise GeometryError(
                f"Ring cameras must be square, got "
                f"{self.pinhole.width}x{self.pinhole.height}"
            )

        rotations = []
        for angle in self.angles:
            R = rotation_around_y(angle)
            R.setflags(write=False)
            rotations.append(R)
        object.__setattr__(self, 'rotations', tuple(rotations))

    def __len__(self) -> int:
        return len(self.angles)

    @property
    def nb_split(self) -> int:
        return len(self.angles)

    @property
    def resolution(self) -> int:
        return self.pinhole.width

    def camera_name(self, index: int) -> str:
        return f"cam_{index:02d}"

    @property
    def camera_names(self) -> List[str]:
        return [self.camera_name(i) for i in range(len(self))]

    def to_dict(self) -> Dict:
        return {
            'pattern': self.pattern,
            'nb_split': self.nb_split,
            'fov': self.fov,
            'resolution': self.resolution,
            'focal': self.pinhole.focal,
            'principal_point': [self.pinhole.cx, self.pinhole.cy],
            'cameras': [
                {
                    'id': i,
                    'name': self.camera_name(i),
                    'yaw': float(np.degrees(angle)),
                    'rotation': self.rotations[i].tolist(),
                }
                for i, angle in enumerate(self.angles)
            ],
        }

    def save(self, path: Union[str, Path]):
        """Save rig configuration to JSON/YAML."""
        path = Path(path)
        data = self.to_dict()

        if path.suffix in ('.yaml', '.yml'):
            with open(path, 'w') as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        else:
            with open(path, 'w') as f:
                json.dump(data, f, indent=2)

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'RigConfig':
        """Load a rig saved by `save` (the ring is regenerated, not trusted)."""
        path = Path(path)

        with open(path) as f:
            if path.suffix in ('.yaml', '.yml'):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        if data.get('pattern', 'ring') != 'ring':
            raise GeometryError(f"Unsupported rig pattern: {data.get('pattern')}")

        return RigGenerator.create_ring_rig(
            nb_split=int(data['nb_split']),
            resolution=int(data['resolution']),
            fov=float(data['fov']),
        )


class RigGenerator:
    """Generate rig configurations."""

    @staticmethod
    def ring_angles(nb_split: int) -> Tuple[float, ...]:
        """Evenly spaced yaw angles (radians), starting at 0."""
        alpha = (2 * np.pi) / nb_split
        return tuple(alpha * i for i in range(nb_split))

    @staticmethod
    def create_ring_rig(
        nb_split: int = 5,
        resolution: int = 1024,
        fov: float = 60.0,
    ) -> RigConfig:
        """Create a horizontal ring of `nb_split` square pinhole cameras."""
        pinhole = compute_pinhole_intrinsics(resolution, fov)
        rig = RigConfig(
            pinhole=pinhole,
            angles=RigGenerator.ring_angles(nb_split),
            fov=fov,
        )
        logger.debug(
            f"Ring rig: {nb_split} cameras, {resolution}px, "
            f"fov={fov:.1f}°, focal={pinhole.focal:.3f}"
        )
        return rig


__all__ = [
    'rotation_around_y',
    'RigConfig',
    'RigGenerator',
]
