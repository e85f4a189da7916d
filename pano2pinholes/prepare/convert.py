"""
Panorama Conversion Module
==========================

Stage that turns a directory of equirectangular panoramas into pinhole
images, one per ring camera, using the BaseModule interface.

Two mutually exclusive pipelines share the rig built in `_initialize`:
- conversion: resample every discovered panorama, write
  `{basename}_{camera}.{ext}`, the focal sidecar and the rig files
- diagnostic (demo_mode): write an SVG of the projected camera frustums
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union
import json
import threading
import time

import cv2
from tqdm import tqdm

from pano2pinholes.core import (
    BaseModule,
    BaseConfig,
    StageResult,
    ItemResult,
    ConfigurationError,
    DiscoveryError,
    DecodeError,
    GeometryError,
    format_time,
)
from pano2pinholes.geometry import RigGenerator
from pano2pinholes.ingest import ImageStore, DiskImageStore
from pano2pinholes.prepare.frustum import FrustumVisualizer
from pano2pinholes.prepare.resample import SphericalToPinholes
from pano2pinholes.prepare.rig_json import RigJSONGenerator


@dataclass
class ConverterConfig(BaseConfig):
    """Configuration for the panorama converter."""

    # Locations
    input_dir: str = ""
    output_dir: str = ""

    # Rig
    image_resolution: int = 1024    # Output width/height in pixels
    nb_split: int = 5               # Cameras in the ring
    fov: float = 60.0               # Vertical field of view in degrees

    # Mode
    demo_mode: bool = False

    # Input / output formats
    input_extensions: Tuple[str, ...] = ('.jpg',)
    output_extension: str = "jpg"
    jpeg_quality: int = 95
    background: Tuple[int, ...] = (0, 0, 0)

    # Diagnostic rendering
    demo_pano_width: int = 4096
    demo_step: int = 10
    demo_filename: str = "test.svg"

    # Sidecars
    focal_filename: str = "focal.txt"
    save_rig_config: bool = True
    generate_colmap_rig: bool = False

    def __post_init__(self):
        super().__post_init__()
        if isinstance(self.input_extensions, str):
            self.input_extensions = (self.input_extensions,)
        self.input_extensions = tuple(
            ext if ext.startswith('.') else f'.{ext}'
            for ext in self.input_extensions
        )
        self.output_extension = self.output_extension.lstrip('.')
        self.background = tuple(self.background)
        self.input_dir = str(self.input_dir) if self.input_dir else ""
        self.output_dir = str(self.output_dir) if self.output_dir else ""

    def validate(self) -> None:
        """Reject unusable settings before any processing begins."""
        if not self.input_dir or not self.output_dir:
            raise ConfigurationError("input_dir and output_dir option must not be empty")
        if self.image_resolution <= 0:
            raise ConfigurationError("image_resolution must be larger than 0")
        if self.nb_split <= 0:
            raise ConfigurationError("nb_split must be larger than 0")
        if not 0.0 < self.fov < 180.0:
            raise ConfigurationError(f"fov must be in (0, 180) degrees, got {self.fov}")
        if not self.input_extensions:
            raise ConfigurationError("input_extensions must not be empty")
        if not self.output_extension:
            raise ConfigurationError("output_extension must not be empty")
        if not cv2.haveImageWriter(f"x.{self.output_extension}"):
            raise ConfigurationError(
                f"No image encoder for output_extension '{self.output_extension}'"
            )
        if self.demo_pano_width < 2:
            raise ConfigurationError("demo_pano_width must be at least 2")
        if self.demo_step < 1:
            raise ConfigurationError("demo_step must be at least 1")


class PanoConverter(BaseModule):
    """Convert equirectangular panoramas into a ring of pinhole images."""

    def __init__(
        self,
        config: Optional[ConverterConfig] = None,
        store: Optional[ImageStore] = None,
    ):
        self.store = store if store is not None else DiskImageStore()
        super().__init__(config)

    def _default_config(self) -> ConverterConfig:
        """Return default configuration."""
        return ConverterConfig()

    def _initialize(self) -> None:
        """Validate the configuration and build the shared rig."""
        self.config: ConverterConfig
        self.config.validate()

        self.rig = RigGenerator.create_ring_rig(
            nb_split=self.config.nb_split,
            resolution=self.config.image_resolution,
            fov=self.config.fov,
        )
        self.focal = self.rig.pinhole.focal

        self.log("Panorama converter initialized")
        self.log(
            f"Rig: {self.config.nb_split} cameras, "
            f"{self.config.image_resolution}px, fov={self.config.fov:.1f}°, "
            f"focal={self.focal:.3f}"
        )

    def process(
        self,
        input_path: Optional[Union[str, Path]] = None,
        output_path: Optional[Union[str, Path]] = None,
        cancel_event: Optional[threading.Event] = None,
        **kwargs
    ) -> StageResult:
        """
        Run the selected pipeline.

        Args:
            input_path: Directory of panoramas (defaults to config.input_dir)
            output_path: Destination directory (defaults to config.output_dir)
            cancel_event: Checked between panoramas; stops the run when set

        Returns:
            StageResult with conversion outcome

        Raises:
            ConfigurationError: output directory cannot be created
            DiscoveryError: no panorama found (conversion mode only)
        """
        input_path = Path(input_path or self.config.input_dir)
        output_path = Path(output_path or self.config.output_dir)

        try:
            self.store.ensure_directory(output_path)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create the output_dir directory: {output_path} ({e})"
            ) from e

        if self.config.demo_mode:
            return self._run_diagnostic(output_path)
        return self._run_conversion(input_path, output_path, cancel_event)

    # -------------------------------------------------------------------------
    # Diagnostic pipeline
    # -------------------------------------------------------------------------

    def _run_diagnostic(self, output_path: Path) -> StageResult:
        """Write the projected frustum borders of every camera as SVG."""
        start_time = time.perf_counter()

        visualizer = FrustumVisualizer(
            self.rig,
            pano_width=self.config.demo_pano_width,
            step=self.config.demo_step,
        )
        svg_path = output_path / self.config.demo_filename
        self.store.write_text(svg_path, visualizer.render().to_string())

        elapsed = time.perf_counter() - start_time
        self.log(f"Saved frustum visualization: {svg_path}")

        return self._create_result(
            success=True,
            output_path=output_path,
            items_processed=len(self.rig),
            processing_time=elapsed,
            backend_used="none",
            metrics={
                'mode': 'diagnostic',
                'svg': str(svg_path),
                'markers': len(self.rig) * 2 * (self.config.demo_step + 1),
            },
        )

    # -------------------------------------------------------------------------
    # Conversion pipeline
    # -------------------------------------------------------------------------

    def _run_conversion(
        self,
        input_path: Path,
        output_path: Path,
        cancel_event: Optional[threading.Event],
    ) -> StageResult:
        """Resample every discovered panorama into the rig cameras."""
        self.log(f"Processing panoramas: {input_path}")

        image_files = self.store.list_images(input_path, self.config.input_extensions)
        if not image_files:
            raise DiscoveryError(
                f"Did not find any {'/'.join(self.config.input_extensions)} "
                f"image in {input_path}"
            )

        self.log(f"Found {len(image_files)} panoramas to convert")

        resampler = SphericalToPinholes(
            self.rig,
            backend=self.config.backend,
            num_workers=self.config.num_workers,
            background=self.config.background,
        )

        start_time = time.perf_counter()
        items: List[ItemResult] = []
        warnings: List[str] = []
        skipped = 0

        for idx, image_path in enumerate(tqdm(
            image_files,
            desc="Converting panoramas",
            disable=not self.config.verbose,
        )):
            if cancel_event is not None and cancel_event.is_set():
                skipped = len(image_files) - idx
                warnings.append(f"Cancelled, {skipped} panoramas left unprocessed")
                self.log(warnings[-1], "warning")
                break

            items.append(self._convert_one(resampler, image_path, output_path))

        elapsed = time.perf_counter() - start_time

        self.store.write_text(output_path / self.config.focal_filename, f"{self.focal:.6g}")

        if self.config.save_rig_config:
            self.store.write_text(
                output_path / "rig_config.json",
                json.dumps(self.rig.to_dict(), indent=2),
            )

        colmap_rig_path = None
        if self.config.generate_colmap_rig:
            colmap_rig_path = output_path / "colmap_rig.json"
            colmap_rig = RigJSONGenerator.from_rig(
                self.rig,
                output_extension=self.config.output_extension,
            )
            self.store.write_text(colmap_rig_path, json.dumps(colmap_rig, indent=2))
            self.log(f"Generated COLMAP rig JSON: {colmap_rig_path}")

        processed = sum(1 for item in items if item.success)
        failed = len(items) - processed
        if failed:
            warnings.append(f"{failed} panoramas could not be converted")

        result = self._create_result(
            success=True,
            output_path=output_path,
            items_processed=processed,
            items_failed=failed,
            processing_time=elapsed,
            backend_used=resampler.backend.value,
            items=items,
            warnings=warnings,
            errors=[f"{item.item_id}: {item.error}" for item in items if not item.success],
            metrics={
                'mode': 'conversion',
                'nb_split': len(self.rig),
                'focal': self.focal,
                'resolution': self.config.image_resolution,
                'fov': self.config.fov,
                'total_views_generated': processed * len(self.rig),
                'colmap_rig': str(colmap_rig_path) if colmap_rig_path else None,
            },
        )
        result.items_skipped = skipped

        if self.config.save_manifests:
            self.store.write_text(
                output_path / "stage_result.json",
                json.dumps(result.to_manifest(), indent=2),
            )

        self.log(
            f"Conversion complete: {processed} panoramas → "
            f"{processed * len(self.rig)} views in {format_time(elapsed)}"
        )
        if failed:
            self.log(warnings[-1], "warning")

        return result

    def _convert_one(
        self,
        resampler: SphericalToPinholes,
        image_path: Path,
        output_path: Path,
    ) -> ItemResult:
        """Resample and write one panorama. Failures stay scoped to this item."""
        start = time.perf_counter()
        basename = image_path.stem

        try:
            spherical_image = self.store.read(image_path)
            views = resampler.resample(spherical_image)

            outputs = []
            for i_rot, view in enumerate(views):
                out_file = output_path / f"{basename}_{i_rot}.{self.config.output_extension}"
                self.store.write(out_file, view, self._write_params())
                self.log(f"{basename} cam index: {i_rot}", "debug")
                outputs.append(str(out_file))

        except (DecodeError, GeometryError, cv2.error) as e:
            self.log(f"Skipping {image_path}: {e}", "error")
            return ItemResult(
                item_id=image_path.name,
                success=False,
                processing_time=time.perf_counter() - start,
                error=str(e),
            )

        return ItemResult(
            item_id=image_path.name,
            success=True,
            processing_time=time.perf_counter() - start,
            outputs=outputs,
        )

    def _write_params(self) -> List[int]:
        if self.config.output_extension.lower() in ('jpg', 'jpeg'):
            return [cv2.IMWRITE_JPEG_QUALITY, int(self.config.jpeg_quality)]
        return []


__all__ = [
    'ConverterConfig',
    'PanoConverter',
]
