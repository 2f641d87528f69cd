"""
Vector encoding and cosine similarity.

Embeddings are stored as raw float64 components in native byte order
(8 bytes per component), so a stored vector decodes to exactly the floats
that were written.
"""

from collections.abc import Sequence

import numpy as np

from cmdsearch.errors import DimensionMismatch, ValidationError

_DTYPE = np.dtype(np.float64)


def encode_vector(vector: Sequence[float]) -> bytes:
    """Pack a vector into a BLOB of float64 components."""
    arr = np.asarray(vector, dtype=_DTYPE)
    if arr.ndim != 1:
        raise ValidationError(f"Embedding must be one-dimensional, got shape {arr.shape}")
    return arr.tobytes()


def decode_vector(blob: bytes) -> list[float]:
    """Unpack a BLOB written by ``encode_vector``."""
    if len(blob) % _DTYPE.itemsize:
        raise ValidationError(
            f"Embedding blob length {len(blob)} is not a multiple of {_DTYPE.itemsize}"
        )
    return np.frombuffer(blob, dtype=_DTYPE).tolist()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors, in [-1, 1].

    A zero-norm vector has no direction; its similarity to anything is 0.0.

    Raises:
        DimensionMismatch: If the vectors differ in length.
    """
    vec_a = np.asarray(a, dtype=_DTYPE)
    vec_b = np.asarray(b, dtype=_DTYPE)
    if vec_a.shape != vec_b.shape:
        raise DimensionMismatch(expected=vec_a.size, actual=vec_b.size)

    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    # Rounding can push |score| a hair past 1
    return max(-1.0, min(1.0, score))
