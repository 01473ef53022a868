# CryptiPic Test Configuration
# This file contains test settings and fixtures

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from cryptipic_core.codec import MemoryAuditCollector, SteganographyOptions


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return os.path.dirname(os.path.dirname(__file__))


@pytest.fixture
def temp_directory(tmp_path):
    """Provide a temporary directory for test operations."""
    return tmp_path


def make_pixels(width: int, height: int, seed: int = 7) -> np.ndarray:
    """Deterministic noisy RGBA carrier with opaque alpha."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    return pixels


def make_smooth_pixels(width: int, height: int) -> np.ndarray:
    """Gradient carrier; mid-range values leave headroom for coefficient changes."""
    y, x = np.mgrid[0:height, 0:width]
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = (64 + (x * 128) // max(1, width - 1)).astype(np.uint8)
    pixels[..., 1] = (64 + (y * 128) // max(1, height - 1)).astype(np.uint8)
    pixels[..., 2] = 128
    pixels[..., 3] = 255
    return pixels


@pytest.fixture
def small_image():
    """100x100 RGBA buffer (40 000 bytes)."""
    return make_pixels(100, 100)


@pytest.fixture
def medium_image():
    return make_pixels(256, 256, seed=11)


@pytest.fixture
def large_smooth_image():
    """768x768 carrier for block-based algorithms with encrypted payloads."""
    return make_smooth_pixels(768, 768)


@pytest.fixture
def audit():
    return MemoryAuditCollector()


@pytest.fixture
def lsb_options():
    return SteganographyOptions(algorithm="lsb")


@pytest.fixture
def sample_image_file(temp_directory):
    """Carrier PNG on disk."""
    from cryptipic_core.stego import save_png
    return save_png(make_pixels(120, 120, seed=3), temp_directory / "carrier.png")


@pytest.fixture
def pixel_factory():
    """Build noisy carriers of any size."""
    return make_pixels


@pytest.fixture
def smooth_factory():
    return make_smooth_pixels
