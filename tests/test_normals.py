import numpy as np
import pytest

from bspextractor.controller.normals import decode, decode_array
from bspextractor.model.schema import NormalEncoding


@pytest.mark.parametrize("encoding, packed, expected", [
    (NormalEncoding.SCALED_BYTES, 0x007F7FFF, (1.0, 0.0, 0.0)),
    (NormalEncoding.SCALED_BYTES, 0xFF7F007F, (0.0, -1.0, 0.0)),
    (NormalEncoding.BIASED_10_10_10, 1023 | (512 << 10) | (512 << 20), (1.0, 0.0, 0.0)),
    (NormalEncoding.BIASED_10_10_10, 512 | (512 << 10) | (1023 << 20), (0.0, 0.0, 1.0)),
    (NormalEncoding.SNORM_8, 0x0000007F, (1.0, 0.0, 0.0)),
    (NormalEncoding.SNORM_8, 0x00008100, (0.0, -1.0, 0.0)),
])
def test_axis_aligned_normals(encoding, packed, expected):
    np.testing.assert_allclose(decode(encoding, packed), expected, atol=1e-12)


def test_unorm_extremes():
    inv_sqrt3 = 1.0 / np.sqrt(3.0)
    np.testing.assert_allclose(decode(NormalEncoding.UNORM_10_10_10, 0), (-inv_sqrt3,) * 3)
    np.testing.assert_allclose(decode(NormalEncoding.UNORM_10_10_10, 0x3FFFFFFF), (inv_sqrt3,) * 3)


@pytest.mark.parametrize("encoding, packed", [
    (NormalEncoding.SCALED_BYTES, 0x007F7F7F),
    (NormalEncoding.BIASED_10_10_10, 512 | (512 << 10) | (512 << 20)),
    (NormalEncoding.SNORM_8, 0),
])
def test_zero_vector_stays_zero(encoding, packed):
    assert decode(encoding, packed) == (0.0, 0.0, 0.0)


@pytest.mark.parametrize("encoding", list(NormalEncoding))
def test_total_and_deterministic(encoding):
    rng = np.random.default_rng(1234)
    packed = np.concatenate([
        rng.integers(0, 2 ** 32, size=2000, dtype=np.uint64),
        np.array([0, 1, 0x7FFFFFFF, 0x80000000, 0xFFFFFFFF], dtype=np.uint64),
    ])
    first = decode_array(encoding, packed)
    second = decode_array(encoding, packed)

    assert first.shape == (len(packed), 3)
    assert np.all(np.isfinite(first))
    np.testing.assert_array_equal(first, second)
    lengths = np.linalg.norm(first, axis=1)
    assert np.all(np.isclose(lengths, 1.0) | (lengths == 0.0))


@pytest.mark.parametrize("encoding", list(NormalEncoding))
def test_scalar_matches_vectorised(encoding):
    packed = [0x12345678, 0xCAFEBABE, 0x00FF00FF]
    rows = decode_array(encoding, packed)
    for value, row in zip(packed, rows):
        assert decode(encoding, value) == tuple(row)


def test_only_low_32_bits_are_used():
    assert decode(NormalEncoding.SNORM_8, (1 << 40) | 0x7F) == decode(NormalEncoding.SNORM_8, 0x7F)


def test_empty_input():
    assert decode_array(NormalEncoding.SCALED_BYTES, []).shape == (0, 3)
