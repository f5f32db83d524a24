from __future__ import annotations

import numpy as np
import pytest

from lftm_jax.utils.process import corpus_from_token_lists

DOCS = [
    ["a", "b", "c", "a"],
    ["d", "e", "b"],
    ["c", "c", "e", "a", "d"],
]


@pytest.fixture
def small_corpus():
    """3 documents over the vocabulary a, b, c, d, e (ids 0..4)."""
    return corpus_from_token_lists(DOCS)


@pytest.fixture
def small_embeddings():
    rng = np.random.default_rng(7)
    return rng.normal(size=(5, 4))
