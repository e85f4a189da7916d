"""
COLMAP Rig JSON Generator
=========================

Generates COLMAP-compatible rig configuration JSON for the ring of virtual
pinhole cameras, so bundle adjustment can treat the views extracted from one
panorama as a single rigid rig (all cameras share the optical center).

References:
- Rig bundle adjustment: https://colmap.github.io/cameras.html#camera-rigs
"""

from pathlib import Path
from typing import Any, Dict, Optional
import json

import numpy as np

from pano2pinholes.geometry import RigConfig


class RigJSONGenerator:
    """Generate COLMAP rig JSON from a ring rig."""

    @staticmethod
    def from_rig(
        rig: RigConfig,
        output_extension: str = "jpg",
        output_path: Optional[Path] = None
    ) -> Dict[str, Any]:
        """
        Convert a ring rig to COLMAP rig JSON.

        Args:
            rig: Ring rig used for the conversion
            output_extension: Extension of the written pinhole images
            output_path: Optional path to save JSON

        Returns:
            COLMAP rig JSON dictionary
        """
        pinhole = rig.pinhole
        colmap_cameras = []
        rig_cameras = []

        for index, R in enumerate(rig.rotations):
            camera_id = index + 1  # COLMAP uses 1-based indexing

            colmap_cameras.append({
                'camera_id': camera_id,
                'model': 'PINHOLE',
                'width': pinhole.width,
                'height': pinhole.height,
                'params': [pinhole.focal, pinhole.focal, pinhole.cx, pinhole.cy],
            })

            # R maps camera -> rig, COLMAP wants cam_from_rig
            qvec = RigJSONGenerator._matrix_to_quaternion(R.T)

            rig_cameras.append({
                'camera_id': camera_id,
                'image_prefix': '',
                'image_suffix': f"_{index}.{output_extension}",
                'rel_tvec': [0.0, 0.0, 0.0],
                'rel_qvec': qvec.tolist(),
            })

        colmap_rig = {
            'cameras': colmap_cameras,
            'rigs': [{
                'ref_camera_id': 1,
                'cameras': rig_cameras,
            }],
        }

        if output_path:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w') as f:
                json.dump(colmap_rig, f, indent=2)

        return colmap_rig

    @staticmethod
    def _matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
        """
        Convert a rotation matrix to a unit quaternion.

        Returns quaternion as [w, x, y, z] (COLMAP format) with w >= 0.
        """
        trace = R[0, 0] + R[1, 1] + R[2, 2]

        if trace > 0:
            s = 2.0 * np.sqrt(trace + 1.0)
            w = 0.25 * s
            x = (R[2, 1] - R[1, 2]) / s
            y = (R[0, 2] - R[2, 0]) / s
            z = (R[1, 0] - R[0, 1]) / s
        elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
            w = (R[2, 1] - R[1, 2]) / s
            x = 0.25 * s
            y = (R[0, 1] + R[1, 0]) / s
            z = (R[0, 2] + R[2, 0]) / s
        elif R[1, 1] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
            w = (R[0, 2] - R[2, 0]) / s
            x = (R[0, 1] + R[1, 0]) / s
            y = 0.25 * s
            z = (R[1, 2] + R[2, 1]) / s
        else:
            s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
            w = (R[1, 0] - R[0, 1]) / s
            x = (R[0, 2] + R[2, 0]) / s
            y = (R[1, 2] + R[2, 1]) / s
            z = 0.25 * s

        q = np.array([w, x, y, z])
        q /= np.linalg.norm(q)
        return -q if q[0] < 0 else q


__all__ = [
    'RigJSONGenerator',
]
