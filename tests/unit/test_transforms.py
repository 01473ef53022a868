"""
Unit Tests for Block Transforms

Tests the DCT and Haar wavelet helpers and the parity quantisation used
by the frequency-domain strategies.
"""

import numpy as np
import pytest

from cryptipic_core.stego.transforms import (
    BLOCK_SIZE,
    DCT_STEP,
    WaveletBands,
    dct,
    dwt,
    dwt2d,
    embed_dct_bit,
    embed_dwt_bit,
    embed_parity,
    extract_dct_bit,
    extract_dwt_bit,
    idct,
    idwt,
    idwt2d,
    read_parity,
)


@pytest.fixture
def block():
    rng = np.random.default_rng(5)
    return rng.integers(0, 256, size=(BLOCK_SIZE, BLOCK_SIZE), dtype=np.uint8)


class TestDct:
    """Test cases for the orthonormal 8x8 DCT."""

    def test_matches_cosine_basis(self, block):
        n = BLOCK_SIZE
        basis = np.array([
            [(np.sqrt(1 / n) if u == 0 else np.sqrt(2 / n)) * np.cos((2 * x + 1) * u * np.pi / (2 * n)) for x in range(n)]
            for u in range(n)
        ])
        np.testing.assert_allclose(dct(block), basis @ block @ basis.T, atol=1e-9)

    def test_inverse(self, block):
        np.testing.assert_allclose(idct(dct(block)), block, atol=1e-9)

    def test_dc_coefficient_of_flat_block(self):
        flat = np.full((BLOCK_SIZE, BLOCK_SIZE), 100.0)
        coefficients = dct(flat)
        assert coefficients[0, 0] == pytest.approx(800.0)
        assert np.abs(coefficients).sum() == pytest.approx(800.0)


class TestHaar:
    """Test cases for the Haar wavelet helpers."""

    def test_1d_inverse(self):
        signal = np.array([4.0, 6.0, 10.0, 12.0, 8.0, 8.0, 0.0, 2.0])
        approx, detail = dwt(signal)
        assert len(approx) == len(detail) == 4
        np.testing.assert_allclose(idwt(approx, detail), signal, atol=1e-12)

    def test_2d_inverse(self, block):
        bands = dwt2d(block)
        assert bands.ll.shape == (4, 4)
        np.testing.assert_allclose(idwt2d(bands), block, atol=1e-9)

    def test_band_lookup(self, block):
        bands = dwt2d(block)
        for name in WaveletBands.DETAIL_BANDS:
            assert bands.band(name).shape == (4, 4)


class TestParity:
    """Test cases for parity quantisation."""

    @pytest.mark.parametrize("value", [-37.2, -4.0, 0.0, 3.9, 12.5, 99.99])
    @pytest.mark.parametrize("bit", [0, 1])
    def test_embed_then_read(self, value, bit):
        quantised = embed_parity(value, bit, DCT_STEP)
        assert read_parity(quantised, DCT_STEP) == bit
        assert abs(quantised - value) <= 1.5 * DCT_STEP

    def test_result_is_multiple_of_step(self):
        assert embed_parity(13.0, 1, 4.0) % 4.0 == 0


class TestBitEmbedding:
    """Test cases for single-bit block embedding after pixel rounding."""

    @pytest.mark.parametrize("bit", [0, 1])
    def test_dct_bit_survives_rounding(self, block, bit):
        stego = embed_dct_bit(block, bit)
        assert stego.dtype == np.uint8
        assert extract_dct_bit(stego) == bit

    @pytest.mark.parametrize("band", WaveletBands.DETAIL_BANDS)
    @pytest.mark.parametrize("bit", [0, 1])
    def test_dwt_bit_survives_rounding(self, block, band, bit):
        stego = embed_dwt_bit(block, bit, band)
        assert extract_dwt_bit(stego, band) == bit

    def test_saturated_block(self):
        white = np.full((BLOCK_SIZE, BLOCK_SIZE), 255, dtype=np.uint8)
        assert extract_dct_bit(embed_dct_bit(white, 1)) == 1
        assert extract_dwt_bit(embed_dwt_bit(white, 1, "hh"), "hh") == 1
