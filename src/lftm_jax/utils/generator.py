from __future__ import annotations

"""lftm_jax.utils.generator
=================================

Synthetic corpora drawn from the latent-feature generative story, for unit
tests and quick benchmarks.

Topic-word distributions are ``λ·softmax(E v_t) + (1−λ)·Dir_V(β)`` draws, so
the latent-feature component really is expressible by the embeddings.
"""
from typing import NamedTuple, Sequence, Union

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .process import Corpus

__all__ = ["LFTMSynthetic", "generate_lftm_corpus"]


class LFTMSynthetic(NamedTuple):
    """Return object for :func:`generate_lftm_corpus`."""

    corpus:        Corpus
    embeddings:    np.ndarray  # (V, d) word vectors
    topic_vectors: np.ndarray  # (K, d)
    z:             np.ndarray  # (N,) topic per token
    theta:         np.ndarray  # (D, K) document-topic dists
    phi:           np.ndarray  # (K, V) topic-word dists


def generate_lftm_corpus(
    key: Array,
    *,
    num_docs: int,
    num_topics: int,
    vocab_size: int,
    doc_length: Union[int, Sequence[int]],
    embedding_dim: int = 8,
    alpha: float = 0.1,
    beta: float = 0.1,
    lam: float = 0.6,
    single_topic: bool = False,
) -> LFTMSynthetic:
    """Draw a corpus from the latent-feature generative model.

    With ``single_topic=True`` every token of a document shares the
    document's topic (LF-DMM); otherwise topics are drawn per token (LF-LDA).
    Vocabulary entries are named ``w0 … w{V-1}``.
    """
    k_emb, k_vec, k_dm, k_theta, k_z, k_w = jax.random.split(key, 6)

    embeddings    = jax.random.normal(k_emb, (vocab_size, embedding_dim))
    topic_vectors = 2.0 * jax.random.normal(k_vec, (num_topics, embedding_dim))

    dm_phi = jax.random.dirichlet(k_dm, jnp.full((vocab_size,), beta), shape=(num_topics,))
    lf_phi = jax.nn.softmax(topic_vectors @ embeddings.T, axis=-1)
    phi    = lam * lf_phi + (1.0 - lam) * dm_phi
    theta  = jax.random.dirichlet(k_theta, jnp.full((num_topics,), alpha), shape=(num_docs,))

    lengths = np.broadcast_to(np.asarray(doc_length, dtype=np.int64), (num_docs,))
    doc_ptrs = np.concatenate([[0], np.cumsum(lengths)]).astype(np.int64)
    doc_ids  = np.repeat(np.arange(num_docs, dtype=np.int64), lengths)

    # one topic per document, or one per token
    if single_topic:
        doc_topic = jax.random.categorical(k_z, jnp.log(theta), axis=-1)
        z = jnp.asarray(np.asarray(doc_topic)[doc_ids])
    else:
        z = jax.random.categorical(k_z, jnp.log(theta[doc_ids]), axis=-1)
    word_ids = jax.random.categorical(k_w, jnp.log(phi[z]), axis=-1)

    vocab = [f"w{i}" for i in range(vocab_size)]
    corpus = Corpus(np.asarray(word_ids, dtype=np.int64), doc_ids, vocab, doc_ptrs)
    return LFTMSynthetic(
        corpus,
        np.asarray(embeddings, dtype=np.float64),
        np.asarray(topic_vectors, dtype=np.float64),
        np.asarray(z, dtype=np.int64),
        np.asarray(theta),
        np.asarray(phi),
    )
