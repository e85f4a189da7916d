"""
pano2pinholes Core: Shared foundation for the conversion stages.

This module provides:
- BaseModule: Abstract base class every stage inherits from
- BaseConfig: Configuration dataclass with YAML/JSON serialization
- StageResult / ItemResult: Standardized result types
- ProjectionBackend: Resampling backend selection
- The error taxonomy shared by geometry, I/O and orchestration code
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Any, Union
import json
import logging

import yaml


# =============================================================================
# ENUMS
# =============================================================================

class ProjectionBackend(Enum):
    """Resampling backend used by the forward resampler.

    AUTO resolves to OPENCV, which is always installed. TORCH is only
    usable when PyTorch is importable.
    """
    AUTO = "auto"        # Pick the best available backend
    OPENCV = "opencv"    # cv2.remap on a wrap-padded panorama
    NUMPY = "numpy"      # Reference bilinear sampler, fully vectorized
    TORCH = "torch"      # torch grid_sample (CUDA/MPS when available)


# =============================================================================
# ERRORS
# =============================================================================

class Pano2PinholesError(Exception):
    """Root of every error raised by this package."""


class ConfigurationError(Pano2PinholesError, ValueError):
    """Invalid run configuration. Fatal: raised before any processing."""


class DiscoveryError(Pano2PinholesError):
    """No source panoramas found in the input directory. Fatal."""


class DecodeError(Pano2PinholesError):
    """An image could not be decoded or encoded. Scoped to one item."""


class GeometryError(Pano2PinholesError, ValueError):
    """A camera model or rig is not usable."""


class DegenerateImageError(GeometryError):
    """Source image has zero area (or is not an image at all)."""


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class ItemResult:
    """Result for a single source panorama."""
    item_id: str                    # Source filename
    success: bool
    processing_time: float = 0.0
    outputs: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class StageResult:
    """Standardized result from a conversion stage.

    Every module returns this type, enabling:
    - Consistent success/failure checking
    - Per-item failure reporting
    - Provenance tracking through manifests
    """
    success: bool
    stage_name: str
    output_path: Path

    # Processing statistics
    items_processed: int = 0
    items_failed: int = 0
    items_skipped: int = 0
    processing_time_seconds: float = 0.0

    # Detailed metrics (stage-specific)
    metrics: Dict[str, Any] = field(default_factory=dict)
    items: List[ItemResult] = field(default_factory=list)

    # Issues encountered
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    # Provenance
    config_used: Dict[str, Any] = field(default_factory=dict)
    backend_used: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_manifest(self) -> Dict[str, Any]:
        """Generate manifest entry for this stage."""
        return {
            'stage': self.stage_name,
            'timestamp': self.timestamp,
            'success': self.success,
            'output_path': str(self.output_path),
            'config': self.config_used,
            'backend': self.backend_used,
            'statistics': {
                'processed': self.items_processed,
                'failed': self.items_failed,
                'skipped': self.items_skipped,
                'time_seconds': self.processing_time_seconds,
            },
            'items': [asdict(item) for item in self.items],
            'metrics': self.metrics,
            'warnings': self.warnings,
            'errors': self.errors,
        }


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class BaseConfig:
    """Base configuration that all module configs extend.

    Provides:
    - Backend selection
    - Processing parallelism settings
    - Output and logging options
    - YAML/JSON serialization
    """
    backend: ProjectionBackend = ProjectionBackend.AUTO

    # Processing settings
    num_workers: int = -1       # Threads per image (-1 for CPU count)

    # Output settings
    save_manifests: bool = True

    # Logging
    verbose: bool = True
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate and normalize configuration."""
        if isinstance(self.backend, str):
            self.backend = ProjectionBackend(self.backend)

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'BaseConfig':
        """Load configuration from YAML or JSON file."""
        path = Path(path)

        with open(path) as f:
            if path.suffix in ['.yaml', '.yml']:
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        return cls(**data)

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to YAML or JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.to_dict()

        with open(path, 'w') as f:
            if path.suffix in ['.yaml', '.yml']:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(data, f, indent=2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary (enums as values, tuples as lists)."""
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, Enum):
                d[key] = value.value
            elif isinstance(value, tuple):
                d[key] = list(value)
        return d


# =============================================================================
# BASE MODULE
# =============================================================================

class BaseModule(ABC):
    """Abstract base class for the conversion stages.

    Provides:
    - Logging setup
    - Result construction

    Subclasses must implement:
    - _default_config(): Return default configuration
    - _initialize(): Build geometry, select backends
    - process(): Main processing entry point
    """

    def __init__(self, config: Optional[BaseConfig] = None):
        """Initialize module with optional configuration.

        Args:
            config: Configuration object. If None, uses default.
        """
        self.config = config if config is not None else self._default_config()
        self._logger: Optional[logging.Logger] = None

        self._setup_logging()

        self._initialize()

    @abstractmethod
    def _default_config(self) -> BaseConfig:
        """Return default configuration for this module."""
        pass

    @abstractmethod
    def _initialize(self) -> None:
        """Initialize module resources.

        Called after config is set. Should validate the configuration and
        build anything that is shared by every processed item.
        """
        pass

    @abstractmethod
    def process(self, input_path: Path, output_path: Path, **kwargs) -> StageResult:
        """Process input and produce output.

        Args:
            input_path: Path to input directory
            output_path: Path for output directory
            **kwargs: Stage-specific options

        Returns:
            StageResult with processing outcome
        """
        pass

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    def _setup_logging(self) -> None:
        """Setup logging for this module."""
        self._logger = logging.getLogger(self.__class__.__name__)
        self._logger.setLevel(getattr(logging, self.config.log_level.upper()))

        if not self._logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s | %(name)s | %(levelname)s | %(message)s',
                datefmt='%H:%M:%S'
            )
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)
            self._logger.propagate = False

    def log(self, message: str, level: str = "info") -> None:
        """Log a message. Warnings and errors are always emitted."""
        if self.config.verbose or level.lower() in ("warning", "error"):
            getattr(self._logger, level.lower())(message)

    # -------------------------------------------------------------------------
    # Processing Utilities
    # -------------------------------------------------------------------------

    def _create_result(
        self,
        success: bool,
        output_path: Path,
        items_processed: int = 0,
        items_failed: int = 0,
        processing_time: float = 0.0,
        **kwargs
    ) -> StageResult:
        """Create a StageResult with common fields populated."""
        return StageResult(
            success=success,
            stage_name=self.__class__.__name__,
            output_path=output_path,
            items_processed=items_processed,
            items_failed=items_failed,
            processing_time_seconds=processing_time,
            config_used=self.config.to_dict(),
            **kwargs
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def get_image_files(
    directory: Path,
    extensions: tuple = ('.jpg',),
    recursive: bool = False
) -> List[Path]:
    """Get all image files in a directory, matching extensions in either case."""
    directory = Path(directory)
    pattern = '**/*' if recursive else '*'
    wanted = {ext.lower() for ext in extensions}

    files = [
        p for p in directory.glob(pattern)
        if p.is_file() and p.suffix.lower() in wanted
    ]

    return sorted(files)


def ensure_directory(path: Path) -> Path:
    """Ensure directory exists, create if needed."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def format_time(seconds: float) -> str:
    """Format seconds as human-readable time."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.0f}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


# =============================================================================
# EXPORTS
# =============================================================================

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
