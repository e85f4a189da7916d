"""
pano2pinholes Core: Shared foundation for the conversion stages.

This package provides base classes, configurations, errors and utilities
used throughout the converter.
"""

from .base import (
    # Enums
    ProjectionBackend,

    # Errors
    Pano2PinholesError,
    ConfigurationError,
    DiscoveryError,
    DecodeError,
    GeometryError,
    DegenerateImageError,

    # Result types
    StageResult,
    ItemResult,

    # Configuration
    BaseConfig,

    # Base class
    BaseModule,

    # Utilities
    get_image_files,
    ensure_directory,
    format_time,
)

__all__ = [
    # Enums
    'ProjectionBackend',

    # Errors
    'Pano2PinholesError',
    'ConfigurationError',
    'DiscoveryError',
    'DecodeError',
    'GeometryError',
    'DegenerateImageError',

    # Result types
    'StageResult',
    'ItemResult',

    # Configuration
    'BaseConfig',

    # Base class
    'BaseModule',

    # Utilities
    'get_image_files',
    'ensure_directory',
    'format_time',
]
