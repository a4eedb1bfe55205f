"""
Packed vertex normal decoding.

Every encoding is a total function over 32-bit inputs: unpack the bit
fields, then normalise. Malformed input may give a zero vector but never
raises.
"""
from __future__ import annotations

from typing import Callable, Dict, Tuple, TYPE_CHECKING

import numpy as np

from bspextractor.model.schema import NormalEncoding

if TYPE_CHECKING:
    import numpy.typing as npt

_MASK_10 = (1 << 10) - 1


def _bytes(packed: npt.NDArray[np.uint32]) -> npt.NDArray[np.float64]:
    """Split into the four little-endian bytes, shape (N, 4)."""
    shifts = np.array([0, 8, 16, 24], dtype=np.uint32)
    return ((packed[:, None] >> shifts) & 0xFF).astype(np.float64)


def _unpack_scaled_bytes(packed: npt.NDArray[np.uint32]) -> npt.NDArray[np.float64]:
    # Three biased bytes, the fourth byte carries the decode scale
    b = _bytes(packed)
    scale = (b[:, 3] - -192.0) / 32385.0
    return (b[:, :3] - 127.0) * scale[:, None]


def _unpack_snorm_8(packed: npt.NDArray[np.uint32]) -> npt.NDArray[np.float64]:
    b = _bytes(packed)[:, :3]
    signed = np.where(b > 127.0, b - 256.0, b)
    return np.maximum(signed / 127.0, -1.0)


def _fields_10(packed: npt.NDArray[np.uint32]) -> npt.NDArray[np.float64]:
    shifts = np.array([0, 10, 20], dtype=np.uint32)
    return ((packed[:, None] >> shifts) & _MASK_10).astype(np.float64)


def _unpack_unorm_10(packed: npt.NDArray[np.uint32]) -> npt.NDArray[np.float64]:
    return _fields_10(packed) / 1023.0 * 2.0 - 1.0


def _unpack_biased_10(packed: npt.NDArray[np.uint32]) -> npt.NDArray[np.float64]:
    return (_fields_10(packed) - 512.0) / 511.0


_UNPACKERS: Dict[NormalEncoding, Callable[[npt.NDArray[np.uint32]], npt.NDArray[np.float64]]] = {
    NormalEncoding.SCALED_BYTES: _unpack_scaled_bytes,
    NormalEncoding.UNORM_10_10_10: _unpack_unorm_10,
    NormalEncoding.BIASED_10_10_10: _unpack_biased_10,
    NormalEncoding.SNORM_8: _unpack_snorm_8,
}


def normalize_rows(vectors: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Scale each row to unit length; zero rows stay zero."""
    magnitude = np.sqrt(np.einsum("ij,ij->i", vectors, vectors))[:, None]
    return np.divide(vectors, magnitude, out=np.zeros_like(vectors), where=magnitude > 0.0)


def decode_array(encoding: NormalEncoding, packed: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Decode an array of packed normals into an (N, 3) array of unit vectors."""
    values = np.asarray(packed, dtype=np.uint64).reshape(-1) & 0xFFFFFFFF
    return normalize_rows(_UNPACKERS[encoding](values.astype(np.uint32)))


def decode(encoding: NormalEncoding, packed: int) -> Tuple[float, float, float]:
    """Decode a single packed normal. Only the low 32 bits are used."""
    x, y, z = decode_array(encoding, [int(packed) & 0xFFFFFFFF])[0]
    return float(x), float(y), float(z)
