import pytest

from pano2pinholes.core import (
    ConfigurationError,
    ProjectionBackend,
    format_time,
    get_image_files,
)
from pano2pinholes.prepare import ConverterConfig


def _valid(**overrides):
    values = dict(input_dir="in", output_dir="out")
    values.update(overrides)
    return ConverterConfig(**values)


def test_defaults():
    config = ConverterConfig()
    assert config.image_resolution == 1024
    assert config.nb_split == 5
    assert config.fov == 60.0
    assert config.demo_mode is False
    assert config.backend == ProjectionBackend.AUTO


@pytest.mark.parametrize("overrides, message", [
    (dict(input_dir=""), "must not be empty"),
    (dict(output_dir=""), "must not be empty"),
    (dict(image_resolution=0), "image_resolution"),
    (dict(image_resolution=-5), "image_resolution"),
    (dict(nb_split=0), "nb_split"),
    (dict(fov=0.0), "fov"),
    (dict(fov=180.0), "fov"),
    (dict(demo_step=0), "demo_step"),
    (dict(output_extension="foo"), "encoder"),
])
def test_invalid_settings_are_rejected(overrides, message):
    with pytest.raises(ConfigurationError, match=message):
        _valid(**overrides).validate()


def test_valid_settings_pass():
    _valid(nb_split=1, fov=179.0, image_resolution=1).validate()


def test_normalization():
    config = _valid(input_extensions="png", output_extension=".png", backend="numpy")
    assert config.input_extensions == ('.png',)
    assert config.output_extension == "png"
    assert config.backend == ProjectionBackend.NUMPY


@pytest.mark.parametrize("suffix", [".yaml", ".json"])
def test_config_round_trip(tmp_path, suffix):
    config = _valid(nb_split=8, fov=72.5, backend=ProjectionBackend.OPENCV, background=(10, 20, 30))
    path = tmp_path / f"config{suffix}"

    config.save(path)
    loaded = ConverterConfig.load(path)

    assert loaded == config


def test_get_image_files_is_sorted_and_case_insensitive(tmp_path):
    for name in ("b.jpg", "a.JPG", "c.png", "d.jpeg"):
        (tmp_path / name).write_bytes(b"")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "e.jpg").write_bytes(b"")

    files = get_image_files(tmp_path, extensions=('.jpg',))

    assert [f.name for f in files] == ["a.JPG", "b.jpg"]


def test_format_time():
    assert format_time(12.34) == "12.3s"
    assert format_time(125) == "2m 5s"
    assert format_time(7260) == "2h 1m"
