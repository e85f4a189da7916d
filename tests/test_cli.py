import cv2
import numpy as np
import pytest
import yaml

from pano2pinholes.cli import main


@pytest.fixture
def pano_dir(tmp_path, gradient_pano):
    input_dir = tmp_path / "panos"
    input_dir.mkdir()
    assert cv2.imwrite(str(input_dir / "street.jpg"), gradient_pano)
    (input_dir / "broken.jpg").write_bytes(b"this is not a jpeg")
    return input_dir


def test_end_to_end_conversion(tmp_path, pano_dir, caplog):
    output_dir = tmp_path / "views"

    code = main(["-i", str(pano_dir), "-o", str(output_dir), "-r", "32", "-n", "4"])

    assert code == 0
    assert sorted(p.name for p in output_dir.glob("*.jpg")) == [
        "street_0.jpg", "street_1.jpg", "street_2.jpg", "street_3.jpg",
    ]
    view = cv2.imread(str(output_dir / "street_0.jpg"))
    assert view.shape == (32, 32, 3)

    focal = float((output_dir / "focal.txt").read_text())
    assert focal == pytest.approx(16 / np.tan(np.radians(30)), rel=1e-5)

    skipped = [r.getMessage() for r in caplog.records if r.levelname == "WARNING"]
    assert any(m.startswith("Skipped broken.jpg") for m in skipped)
    assert "1 panoramas were skipped" in skipped


def test_extension_and_backend_flags(tmp_path, pano_dir):
    output_dir = tmp_path / "views"

    code = main([
        "-i", str(pano_dir), "-o", str(output_dir),
        "-r", "16", "-n", "2", "-f", "90",
        "--ext", "png", "--backend", "numpy", "-w", "2", "--colmap-rig",
    ])

    assert code == 0
    assert sorted(p.name for p in output_dir.glob("street_*")) == ["street_0.png", "street_1.png"]
    assert (output_dir / "focal.txt").read_text() == "8"
    assert (output_dir / "colmap_rig.json").exists()


def test_demo_mode_writes_svg(tmp_path):
    output_dir = tmp_path / "demo"

    code = main(["-i", str(tmp_path / "nowhere"), "-o", str(output_dir), "-D", "-n", "5"])

    assert code == 0
    svg = (output_dir / "test.svg").read_text(encoding='utf-8')
    assert svg.count('class="marker"') == 5 * 2 * 11
    assert not list(output_dir.glob("*.jpg"))


def test_config_file_with_cli_override(tmp_path, pano_dir):
    output_dir = tmp_path / "views"
    config_path = tmp_path / "run.yaml"
    config_path.write_text(yaml.safe_dump({
        'input_dir': str(pano_dir),
        'output_dir': str(output_dir),
        'image_resolution': 16,
        'nb_split': 6,
        'backend': 'opencv',
    }))

    code = main(["-c", str(config_path), "-n", "2"])

    assert code == 0
    assert sorted(p.name for p in output_dir.glob("*.jpg")) == ["street_0.jpg", "street_1.jpg"]


@pytest.mark.parametrize("extra", [
    ["-r", "0"],
    ["-n", "0"],
    ["-n", "-3"],
    ["-f", "180"],
])
def test_invalid_parameters_exit_with_failure(tmp_path, pano_dir, extra):
    output_dir = tmp_path / "views"

    assert main(["-i", str(pano_dir), "-o", str(output_dir)] + extra) == 1
    assert not output_dir.exists()


def test_missing_paths_exit_with_failure(tmp_path):
    assert main([]) == 1
    assert main(["-o", str(tmp_path / "views")]) == 1
    assert main(["-i", "", "-o", str(tmp_path / "views")]) == 1


def test_empty_input_directory_exits_with_failure(tmp_path):
    input_dir = tmp_path / "empty"
    input_dir.mkdir()

    assert main(["-i", str(input_dir), "-o", str(tmp_path / "views")]) == 1


def test_unreadable_config_file_exits_with_failure(tmp_path):
    assert main(["-c", str(tmp_path / "missing.yaml")]) == 1


def test_unknown_flag_is_a_usage_error():
    with pytest.raises(SystemExit) as excinfo:
        main(["--bogus"])
    assert excinfo.value.code == 2


def test_unsupported_output_extension_exits_with_failure(tmp_path, pano_dir):
    output_dir = tmp_path / "views"

    code = main(["-i", str(pano_dir), "-o", str(output_dir), "-r", "16", "-n", "2", "--ext", "foo"])

    assert code == 1
    assert not output_dir.exists()
