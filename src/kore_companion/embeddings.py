"""Embeddings support. Cosine similarity for semantic retrieval.

Providers are plain callables ``embed(text) -> bytes`` returning a float32
vector (numpy ``.tobytes()``). Remote providers live outside this package;
``numpy_embed`` is the built-in deterministic one.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Callable

from kore_companion.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

# Type alias: takes text, returns embedding bytes
EmbedFn = Callable[[str], bytes]


def numpy_embed(dims: int = 256) -> EmbedFn:
    """Hashing vectorizer: tokenize -> hash each token to an index -> normalized TF vector.

    Deterministic, fast, captures word overlap.
    """
    import numpy as np

    def _embed(text: str) -> bytes:
        vec = np.zeros(dims, dtype=np.float32)
        tokens = text.lower().split()
        if not tokens:
            return vec.tobytes()
        for token in tokens:
            h = int(hashlib.md5(token.encode()).hexdigest(), 16)
            vec[h % dims] += 1.0
        norm = np.linalg.norm(vec)
        if norm > 0:
            vec = vec / norm
        return vec.tobytes()

    return _embed


def to_bytes(vector) -> bytes:
    """Encode any float sequence as float32 bytes."""
    import numpy as np
    return np.asarray(vector, dtype=np.float32).tobytes()


def cosine_similarity(a: bytes, b: bytes) -> float:
    """Cosine similarity between two float32 byte vectors.

    Returns 0.0 when either vector is all zeros.
    Raises ValueError on dimension mismatch.
    """
    import numpy as np

    va = np.frombuffer(a, dtype=np.float32)
    vb = np.frombuffer(b, dtype=np.float32)
    if va.shape != vb.shape:
        raise ValueError(
            f"Embedding dimension mismatch: {va.shape[0]}d vs {vb.shape[0]}d. "
            f"Do not mix providers."
        )

    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def embed_text(embed_fn: EmbedFn, text: str) -> bytes:
    """Call an external provider, normalizing every failure to EmbeddingUnavailable."""
    try:
        result = embed_fn(text)
    except EmbeddingUnavailable:
        raise
    except Exception as exc:
        logger.warning("embedding provider failed: %s", exc)
        raise EmbeddingUnavailable(str(exc)) from exc
    if not isinstance(result, (bytes, bytearray)) or not result:
        raise EmbeddingUnavailable("embedding provider returned no vector")
    return bytes(result)
