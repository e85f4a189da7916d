"""
Prepare: resampling, frustum visualization and rig export.
"""

from .resample import SphericalToPinholes, sample_bilinear
from .frustum import FrustumVisualizer, SvgDrawer
from .rig_json import RigJSONGenerator
from .convert import ConverterConfig, PanoConverter

__all__ = [
    'SphericalToPinholes',
    'sample_bilinear',
    'FrustumVisualizer',
    'SvgDrawer',
    'RigJSONGenerator',
    'ConverterConfig',
    'PanoConverter',
]
