"""
Frustum Visualization
=====================

Diagnostic rendering of a ring rig: the border of every virtual pinhole
image is sampled, projected onto an equirectangular canvas and written as
SVG circles. Gaps between neighbouring frustums or excessive overlap are
visible at a glance, without resampling any image.
"""

from pathlib import Path
from typing import Dict, Optional, Union
import logging
import xml.etree.ElementTree as ET

import numpy as np

from pano2pinholes.geometry import RigConfig, SphericalCamera

logger = logging.getLogger(__name__)

SVG_NAMESPACE = "http://www.w3.org/2000/svg"

VERTICAL_BORDER_COLOR = "green"
HORIZONTAL_BORDER_COLOR = "yellow"
MARKER_RADIUS = 4


def _fmt(value: float) -> str:
    return f"{float(value):.3f}"


class SvgDrawer:
    """Minimal line/circle SVG document builder."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.root = ET.Element('svg', {
            'xmlns': SVG_NAMESPACE,
            'width': str(width),
            'height': str(height),
            'viewBox': f"0 0 {width} {height}",
        })

    def _parent(self, parent: Optional[ET.Element]) -> ET.Element:
        return self.root if parent is None else parent

    def group(self, parent: Optional[ET.Element] = None, **attrs) -> ET.Element:
        """Add a <g> element. `class_` maps to the `class` attribute."""
        if 'class_' in attrs:
            attrs['class'] = attrs.pop('class_')
        return ET.SubElement(self._parent(parent), 'g', {k: str(v) for k, v in attrs.items()})

    def draw_line(
        self,
        x1: float, y1: float, x2: float, y2: float,
        stroke: str = "black",
        stroke_width: float = 1.0,
        parent: Optional[ET.Element] = None,
    ) -> ET.Element:
        return ET.SubElement(self._parent(parent), 'line', {
            'x1': _fmt(x1), 'y1': _fmt(y1),
            'x2': _fmt(x2), 'y2': _fmt(y2),
            'stroke': stroke,
            'stroke-width': _fmt(stroke_width),
        })

    def draw_circle(
        self,
        cx: float, cy: float, r: float,
        fill: str = "none",
        stroke: str = "none",
        parent: Optional[ET.Element] = None,
    ) -> ET.Element:
        return ET.SubElement(self._parent(parent), 'circle', {
            'cx': _fmt(cx), 'cy': _fmt(cy), 'r': _fmt(r),
            'fill': fill,
            'stroke': stroke,
        })

    def to_string(self) -> str:
        body = ET.tostring(self.root, encoding='unicode')
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + '\n'

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.write_text(self.to_string(), encoding='utf-8')
        return path


class FrustumVisualizer:
    """Project the image borders of every rig camera onto a panorama canvas.

    Each border run (vertical, horizontal) is sampled at `step + 1` evenly
    spaced positions. One sample becomes one marker: an SVG group holding
    the two points on opposite edges of the pinhole image (left/right for
    the vertical run, top/bottom for the horizontal run).
    """

    def __init__(self, rig: RigConfig, pano_width: int = 4096, step: int = 10):
        if step < 1:
            raise ValueError(f"step must be >= 1, got {step}")
        self.rig = rig
        self.sphere = SphericalCamera.from_width(pano_width)
        self.step = step

    def border_samples(self) -> np.ndarray:
        return np.linspace(0.0, float(self.rig.resolution), self.step + 1)

    def project_border(self, index: int) -> Dict[str, np.ndarray]:
        """Panorama pixels of camera `index`'s border samples.

        Returns:
            {'vertical': (step+1, 2, 2), 'horizontal': (step+1, 2, 2)}
            holding (u, v) for the two opposite edge points of each sample.
        """
        size = float(self.rig.resolution)
        j = self.border_samples()
        lo = np.zeros_like(j)
        hi = np.full_like(j, size)

        pixels = {
            'vertical': np.stack([
                np.stack([lo, j], axis=-1),
                np.stack([hi, j], axis=-1),
            ], axis=1),
            'horizontal': np.stack([
                np.stack([j, lo], axis=-1),
                np.stack([j, hi], axis=-1),
            ], axis=1),
        }

        R = self.rig.rotations[index]
        projected = {}
        for kind, xy in pixels.items():
            bearings = self.rig.pinhole(xy) @ R.T
            projected[kind] = self.sphere.project(bearings)
        return projected

    def render(self) -> SvgDrawer:
        """Build the SVG document: two reference diagonals plus every marker."""
        W, H = self.sphere.width, self.sphere.height
        svg = SvgDrawer(W, H)
        svg.draw_line(0, 0, W, H)
        svg.draw_line(W, 0, 0, H)

        runs = (
            ('vertical', VERTICAL_BORDER_COLOR),
            ('horizontal', HORIZONTAL_BORDER_COLOR),
        )
        for index in range(len(self.rig)):
            camera_group = svg.group(id=self.rig.camera_name(index))
            borders = self.project_border(index)

            for kind, color in runs:
                for pair in borders[kind]:
                    marker = svg.group(parent=camera_group, class_='marker', border=kind)
                    for u, v in pair:
                        svg.draw_circle(u, v, MARKER_RADIUS, fill=color, parent=marker)

        return svg

    def save(self, path: Union[str, Path]) -> Path:
        path = self.render().save(path)
        logger.info(f"Saved frustum visualization: {path}")
        return path


__all__ = [
    'SvgDrawer',
    'FrustumVisualizer',
]
