import numpy as np
import pytest


@pytest.fixture
def gradient_pano():
    """Smooth 256x128 BGR panorama, continuous across the seam."""
    H, W = 128, 256
    u = np.arange(W, dtype=np.float64)
    v = np.arange(H, dtype=np.float64)[:, np.newaxis]
    blue = 127.5 + 100 * np.cos(2 * np.pi * u / W) + 0 * v
    green = 20 + 200 * v / (H - 1) + 0 * u
    red = 127.5 + 100 * np.sin(2 * np.pi * u / W) * np.cos(np.pi * (v / H - 0.5))
    return np.clip(np.stack([blue, green, red], axis=-1), 0, 255).astype(np.uint8)


@pytest.fixture
def random_pano():
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(128, 256, 3), dtype=np.uint8)
