import numpy as np
import pytest

from pano2pinholes.core import DegenerateImageError, GeometryError, ProjectionBackend
from pano2pinholes.geometry import RigGenerator
from pano2pinholes.prepare import SphericalToPinholes, sample_bilinear
from pano2pinholes.prepare import resample as resample_module
from pano2pinholes.prepare.resample import HAS_TORCH


def _resampler(backend, nb_split=4, resolution=32, fov=90.0, **kwargs):
    rig = RigGenerator.create_ring_rig(nb_split=nb_split, resolution=resolution, fov=fov)
    return SphericalToPinholes(rig, backend=backend, **kwargs)


def test_bilinear_interpolates_between_pixels():
    image = np.array([
        [0, 100, 0, 100],
        [50, 150, 50, 150],
    ], dtype=np.float32)

    out = sample_bilinear(image, np.array([[0.5]]), np.array([[0.5]]))

    assert out[0, 0] == pytest.approx(75.0)


def test_bilinear_wraps_across_the_seam():
    image = np.full((4, 8, 3), 7, dtype=np.uint8)
    image[:, -1] = 100
    image[:, 0] = 200

    out = sample_bilinear(image, np.array([[7.5, -0.5]]), np.array([[1.0, 1.0]]))

    np.testing.assert_array_equal(out[0, 0], [150, 150, 150])
    np.testing.assert_array_equal(out[0, 1], [150, 150, 150])


def test_bilinear_clamps_rows():
    image = np.zeros((4, 8), dtype=np.uint8)
    image[0] = 10
    image[-1] = 90

    out = sample_bilinear(image, np.array([[2.0, 2.0]]), np.array([[-3.0, 10.0]]))

    np.testing.assert_array_equal(out, [[10, 90]])


def test_bilinear_leaves_background_for_non_finite_coordinates():
    image = np.full((4, 8, 3), 50, dtype=np.uint8)
    map_x = np.array([[np.nan, 1.0, np.inf]])
    map_y = np.array([[1.0, 1.0, 1.0]])

    out = sample_bilinear(image, map_x, map_y, background=(1, 2, 3))

    np.testing.assert_array_equal(out[0, 0], [1, 2, 3])
    np.testing.assert_array_equal(out[0, 1], [50, 50, 50])
    np.testing.assert_array_equal(out[0, 2], [1, 2, 3])


@pytest.mark.parametrize("backend", [ProjectionBackend.NUMPY, ProjectionBackend.OPENCV])
def test_center_pixel_of_camera_zero_samples_pano_center(backend, random_pano):
    resampler = _resampler(backend, nb_split=5)

    views = resampler.resample(random_pano)

    assert len(views) == 5
    assert all(view.shape == (32, 32, 3) and view.dtype == np.uint8 for view in views)
    np.testing.assert_array_equal(views[0][16, 16], random_pano[64, 128])


def test_quarter_turn_camera_looks_at_three_quarter_width(random_pano):
    resampler = _resampler(ProjectionBackend.NUMPY, nb_split=4)

    views = resampler.resample(random_pano)

    np.testing.assert_array_equal(views[1][16, 16], random_pano[64, 192])
    np.testing.assert_array_equal(views[3][16, 16], random_pano[64, 64])


def test_resampling_is_idempotent(gradient_pano):
    resampler = _resampler(ProjectionBackend.NUMPY, num_workers=3)

    first = resampler.resample(gradient_pano)
    second = resampler.resample(gradient_pano)

    for a, b in zip(first, second):
        np.testing.assert_array_equal(a, b)


def test_threaded_and_sequential_results_match(gradient_pano):
    sequential = _resampler(ProjectionBackend.NUMPY, num_workers=1).resample(gradient_pano)
    threaded = _resampler(ProjectionBackend.NUMPY, num_workers=4).resample(gradient_pano)

    for a, b in zip(sequential, threaded):
        np.testing.assert_array_equal(a, b)


def test_opencv_and_numpy_backends_agree(gradient_pano):
    reference = _resampler(ProjectionBackend.NUMPY).resample(gradient_pano)
    remapped = _resampler(ProjectionBackend.OPENCV).resample(gradient_pano)

    for a, b in zip(reference, remapped):
        diff = np.abs(a.astype(np.int16) - b.astype(np.int16))
        assert diff.max() <= 3


def test_grayscale_panorama_keeps_its_shape(gradient_pano):
    gray = gradient_pano[..., 1].copy()

    for backend in (ProjectionBackend.NUMPY, ProjectionBackend.OPENCV):
        views = _resampler(backend, nb_split=2).resample(gray)
        assert [view.shape for view in views] == [(32, 32), (32, 32)]


def test_auto_backend_resolves_to_opencv():
    assert _resampler(ProjectionBackend.AUTO).backend == ProjectionBackend.OPENCV
    assert _resampler(None).backend == ProjectionBackend.OPENCV


def test_maps_are_cached_per_panorama_size(gradient_pano):
    resampler = _resampler(ProjectionBackend.NUMPY, nb_split=2)

    map_x, map_y = resampler.get_maps(256, 128, 1)

    assert map_x.dtype == np.float32 and map_x.shape == (32, 32)
    assert resampler.get_maps(256, 128, 1)[0] is map_x

    resampler.clear_cache()
    assert resampler.get_maps(256, 128, 1)[0] is not map_x


def test_zero_area_image_is_rejected():
    resampler = _resampler(ProjectionBackend.NUMPY)

    with pytest.raises(DegenerateImageError):
        resampler.resample(np.zeros((0, 0, 3), dtype=np.uint8))
    with pytest.raises(DegenerateImageError):
        resampler.resample(None)


def test_non_equirectangular_image_is_rejected():
    resampler = _resampler(ProjectionBackend.NUMPY)

    with pytest.raises(GeometryError):
        resampler.resample(np.zeros((100, 256, 3), dtype=np.uint8))


@pytest.mark.skipif(not HAS_TORCH, reason="PyTorch not installed")
def test_torch_backend_agrees_with_numpy(gradient_pano):
    reference = _resampler(ProjectionBackend.NUMPY).resample(gradient_pano)
    sampled = _resampler(ProjectionBackend.TORCH).resample(gradient_pano)

    for a, b in zip(reference, sampled):
        diff = np.abs(a.astype(np.int16) - b.astype(np.int16))
        assert diff.max() <= 2


def test_oversized_panorama_skips_opencv_remap():
    resampler = _resampler(ProjectionBackend.OPENCV)

    assert resampler._fits_remap(128, 256)
    assert not resampler._fits_remap(16384, 32768)
    assert not resampler._fits_remap(16383, 32766)


def test_oversized_panorama_falls_back_to_numpy_sampler(monkeypatch, gradient_pano):
    reference = _resampler(ProjectionBackend.NUMPY).resample(gradient_pano)
    monkeypatch.setattr(resample_module, "REMAP_MAX_SIZE", 200)

    views = _resampler(ProjectionBackend.OPENCV).resample(gradient_pano)

    for a, b in zip(reference, views):
        np.testing.assert_array_equal(a, b)
