"""
Unit Tests for Carrier and Message Analysis

Tests the image statistics, message statistics and the adaptive
decision table.
"""

import numpy as np
import pytest

from cryptipic_core.stego.algorithms import Algorithm
from cryptipic_core.stego.analysis import (
    AdaptiveStrategySelector,
    ImageAnalysis,
    MessageAnalysis,
    analyze_image,
    analyze_message,
    select_strategy,
)


def image(entropy, edge_density=0.0):
    return ImageAnalysis(entropy=entropy, edge_density=edge_density, capacity_estimate=0.0)


def message(length):
    return MessageAnalysis(length=length, entropy=4.0, compressibility=0.5, redundancy=0.5)


class TestAnalyzeImage:

    def test_flat_image(self):
        pixels = np.full((32, 32, 4), 90, dtype=np.uint8)
        analysis = analyze_image(pixels)
        assert analysis.entropy == 0.0
        assert analysis.edge_density == 0.0
        assert analysis.capacity_estimate == 0.0

    def test_noise_image(self, medium_image):
        analysis = analyze_image(medium_image)
        assert analysis.entropy > 6.0
        assert analysis.edge_density > 0.3
        assert analysis.capacity_estimate > 0

    def test_checkerboard_edges(self):
        pixels = np.zeros((16, 16, 4), dtype=np.uint8)
        pixels[::2, ::2, :3] = 255
        pixels[1::2, 1::2, :3] = 255
        analysis = analyze_image(pixels)
        assert analysis.entropy == pytest.approx(1.0)
        assert analysis.edge_density == pytest.approx(14 * 14 / 256)

    def test_alpha_is_ignored(self):
        pixels = np.full((8, 8, 4), 50, dtype=np.uint8)
        pixels[..., 3] = np.arange(64, dtype=np.uint8).reshape(8, 8)
        assert analyze_image(pixels).entropy == 0.0


class TestAnalyzeMessage:

    def test_uniform_text(self):
        analysis = analyze_message("aaaa")
        assert analysis.length == 4
        assert analysis.entropy == 0.0
        assert analysis.compressibility == 1.0
        assert analysis.redundancy == 0.0

    def test_two_symbols(self):
        analysis = analyze_message("abab")
        assert analysis.entropy == pytest.approx(1.0)
        assert analysis.compressibility == pytest.approx(7 / 8)

    def test_empty(self):
        assert analyze_message("").length == 0


class TestSelectStrategy:
    """Test cases for the adaptive decision table."""

    def test_default(self):
        selection = select_strategy(image(5.0), message(10))
        assert selection.variant == Algorithm.HYBRID_DCT_DWT
        assert (selection.capacity, selection.redundancy) == (1, 1)
        assert not selection.error_correction

    def test_high_entropy(self):
        selection = select_strategy(image(7.5), message(10))
        assert selection.variant == Algorithm.HYBRID_DCT_DWT
        assert selection.capacity == 2

    def test_low_entropy(self):
        selection = select_strategy(image(2.0), message(10))
        assert selection.variant == Algorithm.CHAOTIC_LSB
        assert selection.capacity == 1

    def test_edges_raise_capacity_and_redundancy(self):
        selection = select_strategy(image(7.5, edge_density=0.5), message(10))
        assert (selection.capacity, selection.redundancy) == (3, 2)
        assert selection.error_correction

    def test_long_message_doubles_redundancy(self):
        assert select_strategy(image(5.0), message(1001)).redundancy == 2
        assert select_strategy(image(5.0, edge_density=0.5), message(1001)).redundancy == 4

    def test_boundaries_are_exclusive(self):
        assert select_strategy(image(6.0), message(1000)).capacity == 1
        assert select_strategy(image(4.0), message(1000)).variant == Algorithm.HYBRID_DCT_DWT
        assert select_strategy(image(5.0, edge_density=0.3), message(1000)).redundancy == 1

    def test_selector_wrapper(self, medium_image):
        selection = AdaptiveStrategySelector().select(medium_image, "hello")
        assert selection.variant == Algorithm.HYBRID_DCT_DWT
        assert selection.capacity == 3
        assert selection.redundancy == 2
