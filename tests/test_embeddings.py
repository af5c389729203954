"""Tests for the built-in embedder and cosine similarity."""

import numpy as np
import pytest

from kore_companion.embeddings import cosine_similarity, embed_text, numpy_embed, to_bytes
from kore_companion.errors import EmbeddingUnavailable


# ── numpy_embed ──────────────────────────────────────────────────────────


def test_numpy_embed_produces_bytes():
    embed = numpy_embed(dims=256)
    result = embed("hello world")
    assert isinstance(result, bytes)
    assert len(result) == 256 * 4  # float32 = 4 bytes each


def test_numpy_embed_similar_texts():
    embed = numpy_embed()
    a = embed("i like coffee in the morning")
    b = embed("i love hot coffee")
    c = embed("the pythagorean theorem relates triangle sides")
    assert cosine_similarity(a, b) > cosine_similarity(a, c)


def test_numpy_embed_deterministic():
    embed = numpy_embed()
    assert embed("deterministic test") == embed("deterministic test")


def test_numpy_embed_empty_text():
    embed = numpy_embed()
    vec = np.frombuffer(embed(""), dtype=np.float32)
    assert vec.shape == (256,)
    assert np.allclose(vec, 0.0), "Empty text should produce zero vector"


# ── cosine_similarity ────────────────────────────────────────────────────


def test_cosine_identical_and_orthogonal():
    assert cosine_similarity(to_bytes([1, 2, 3]), to_bytes([1, 2, 3])) == pytest.approx(1.0)
    assert cosine_similarity(to_bytes([1, 0]), to_bytes([0, 1])) == pytest.approx(0.0)


def test_cosine_zero_vector():
    assert cosine_similarity(to_bytes([0, 0, 0]), to_bytes([1, 2, 3])) == 0.0


def test_cosine_dimension_mismatch():
    with pytest.raises(ValueError):
        cosine_similarity(to_bytes([1, 0, 0]), to_bytes([1, 0]))


# ── embed_text ───────────────────────────────────────────────────────────


def test_embed_text_passes_through():
    embed = numpy_embed()
    assert embed_text(embed, "hi there") == embed("hi there")


def test_embed_text_wraps_provider_errors():
    def broken(text):
        raise OSError("connection refused")

    with pytest.raises(EmbeddingUnavailable) as info:
        embed_text(broken, "hi")
    assert isinstance(info.value.__cause__, OSError)


def test_embed_text_rejects_empty_vector():
    with pytest.raises(EmbeddingUnavailable):
        embed_text(lambda text: b"", "hi")
