from __future__ import annotations

"""lftm_jax.models.counts
==========================

Count tables and discrete assignments for the two latent-feature models.

Both models store one integer per token.  A value ``t < K`` says the token
was generated by topic ``t`` through the **latent-feature** component, a
value ``t + K`` says topic ``t`` through the **Dirichlet-multinomial**
component.  ``value % K`` is always the topic.

============== ==================== =========================================
table           shape               notes
============== ==================== =========================================
``lf``          ``(K,V)``            topic-word counts, latent-feature part
``lf_sum``      ``(K,)``             row sums of ``lf``
``dm``          ``(K,V)``            topic-word counts, Dirichlet-multinomial
``dm_sum``      ``(K,)``             row sums of ``dm``
``n_dk``        ``(D,K)``            :class:`TokenTopicState` only
``n_d``         ``(D,)``             :class:`TokenTopicState` only
``n_k``         ``(K,)``             documents per topic, :class:`DocTopicState`
``doc_topic``   ``(D,)``             :class:`DocTopicState` only
============== ==================== =========================================

All updates are in place.  ``decrement`` must precede ``increment`` around
every resample; nothing here is safe for concurrent mutation.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from lftm_jax.errors import AssignmentConsistencyError
from lftm_jax.utils.process import Corpus

__all__ = [
    "encode",
    "topic_of",
    "is_latent_feature",
    "TopicWordCounts",
    "TokenTopicState",
    "DocTopicState",
]

COUNT_DTYPE = np.int64

################################################################################
# Assignment encoding ##########################################################
################################################################################

def encode(topic, latent_feature, num_topics: int):
    """Pack ``(topic, component)`` into one assignment value."""
    return np.where(latent_feature, topic, topic + num_topics)


def topic_of(value, num_topics: int):
    return value % num_topics


def is_latent_feature(value, num_topics: int):
    return value < num_topics

################################################################################
# Component tables #############################################################
################################################################################

@dataclass
class TopicWordCounts:
    """Per-component topic-word tables shared by both models."""

    lf: np.ndarray
    lf_sum: np.ndarray
    dm: np.ndarray
    dm_sum: np.ndarray

    @classmethod
    def zeros(cls, num_topics: int, vocab_size: int) -> "TopicWordCounts":
        return cls(
            lf=np.zeros((num_topics, vocab_size), dtype=COUNT_DTYPE),
            lf_sum=np.zeros(num_topics, dtype=COUNT_DTYPE),
            dm=np.zeros((num_topics, vocab_size), dtype=COUNT_DTYPE),
            dm_sum=np.zeros(num_topics, dtype=COUNT_DTYPE),
        )

    @classmethod
    def from_assignments(cls, corpus: Corpus, z: np.ndarray, num_topics: int) -> "TopicWordCounts":
        """Vectorised build of both tables from per-token values ``z``."""
        counts = cls.zeros(num_topics, corpus.vocab_size)
        counts.add_tokens(corpus.word_ids, z, num_topics)
        return counts

    @property
    def num_topics(self) -> int:
        return int(self.lf.shape[0])

    @property
    def vocab_size(self) -> int:
        return int(self.lf.shape[1])

    def copy(self) -> "TopicWordCounts":
        return TopicWordCounts(self.lf.copy(), self.lf_sum.copy(), self.dm.copy(), self.dm_sum.copy())

    def add_tokens(self, word_ids: np.ndarray, z: np.ndarray, num_topics: int, delta: int = 1) -> None:
        topics = topic_of(z, num_topics)
        lf_mask = is_latent_feature(z, num_topics)
        np.add.at(self.lf, (topics[lf_mask], word_ids[lf_mask]), delta)
        np.add.at(self.lf_sum, topics[lf_mask], delta)
        np.add.at(self.dm, (topics[~lf_mask], word_ids[~lf_mask]), delta)
        np.add.at(self.dm_sum, topics[~lf_mask], delta)

    def add(self, topic: int, word: int, latent_feature: bool, delta: int) -> None:
        if latent_feature:
            self.lf[topic, word] += delta
            self.lf_sum[topic] += delta
        else:
            self.dm[topic, word] += delta
            self.dm_sum[topic] += delta

    def check_invariants(self) -> None:
        assert (self.lf >= 0).all() and (self.dm >= 0).all(), "negative topic-word count"
        assert np.array_equal(self.lf.sum(axis=1), self.lf_sum), "latent-feature row sums out of sync"
        assert np.array_equal(self.dm.sum(axis=1), self.dm_sum), "Dirichlet-multinomial row sums out of sync"


def _check_assignment_values(z: np.ndarray, num_topics: int) -> None:
    if z.size and (z.min() < 0 or z.max() >= 2 * num_topics):
        raise AssignmentConsistencyError(
            f"assignment values must lie in [0, {2 * num_topics}), got [{z.min()}, {z.max()}]"
        )


def _flatten_assignments(corpus: Corpus, assignments: Sequence[Sequence[int]]) -> np.ndarray:
    """Concatenate per-document values after checking them against the corpus."""
    if len(assignments) != corpus.num_docs:
        raise AssignmentConsistencyError(
            f"corpus has {corpus.num_docs} documents but {len(assignments)} assignment rows were given"
        )
    total = sum(len(row) for row in assignments)
    if total != corpus.num_tokens:
        raise AssignmentConsistencyError(
            f"corpus has {corpus.num_tokens} words but {total} assignments were given"
        )
    lengths = corpus.doc_lengths()
    for d, row in enumerate(assignments):
        if len(row) != lengths[d]:
            raise AssignmentConsistencyError(
                f"document {d} has {lengths[d]} words but {len(row)} assignments"
            )
    if total == 0:
        return np.zeros(0, dtype=COUNT_DTYPE)
    return np.concatenate([np.asarray(row, dtype=COUNT_DTYPE) for row in assignments])

################################################################################
# Multi-topic-per-document state (LF-LDA) ######################################
################################################################################

@dataclass
class TokenTopicState:
    """Per-token assignments and counts for the LF-LDA model."""

    corpus: Corpus = field(repr=False)
    num_topics: int
    z: np.ndarray        # (N,)
    n_dk: np.ndarray     # (D,K)
    n_d: np.ndarray      # (D,)
    words: TopicWordCounts

    @classmethod
    def _build(cls, corpus: Corpus, num_topics: int, z: np.ndarray,
               base: Optional[TopicWordCounts]) -> "TokenTopicState":
        words = base.copy() if base is not None else TopicWordCounts.zeros(num_topics, corpus.vocab_size)
        words.add_tokens(corpus.word_ids, z, num_topics)

        n_dk = np.zeros((corpus.num_docs, num_topics), dtype=COUNT_DTYPE)
        np.add.at(n_dk, (corpus.doc_ids, topic_of(z, num_topics)), 1)
        n_d = corpus.doc_lengths().astype(COUNT_DTYPE)
        return cls(corpus, num_topics, z, n_dk, n_d, words)

    @classmethod
    def init_random(cls, corpus: Corpus, num_topics: int, rng: np.random.Generator, *,
                    base: Optional[TopicWordCounts] = None) -> "TokenTopicState":
        """Uniform draw over the ``2K`` (topic, component) cells for every token."""
        z = rng.integers(0, 2 * num_topics, size=corpus.num_tokens).astype(COUNT_DTYPE)
        return cls._build(corpus, num_topics, z, base)

    @classmethod
    def from_assignments(cls, corpus: Corpus, num_topics: int, assignments: Sequence[Sequence[int]], *,
                         base: Optional[TopicWordCounts] = None) -> "TokenTopicState":
        z = _flatten_assignments(corpus, assignments)
        _check_assignment_values(z, num_topics)
        return cls._build(corpus, num_topics, z, base)

    # ------------------------------------------------------------------
    # Leave-one-out updates
    # ------------------------------------------------------------------

    def decrement(self, idx: int) -> None:
        """Remove token ``idx`` from every table it contributes to."""
        value = int(self.z[idx])
        topic = value % self.num_topics
        self.n_dk[self.corpus.doc_ids[idx], topic] -= 1
        self.words.add(topic, self.corpus.word_ids[idx], value < self.num_topics, -1)

    def increment(self, idx: int, value: int) -> None:
        """Assign ``value`` to token ``idx`` and add it back to the tables."""
        topic = value % self.num_topics
        self.z[idx] = value
        self.n_dk[self.corpus.doc_ids[idx], topic] += 1
        self.words.add(topic, self.corpus.word_ids[idx], value < self.num_topics, 1)

    # ------------------------------------------------------------------

    def assignments(self) -> list[list[int]]:
        ptrs = self.corpus.doc_ptrs
        return [self.z[ptrs[d]:ptrs[d + 1]].tolist() for d in range(self.corpus.num_docs)]

    def check_invariants(self, base: Optional[TopicWordCounts] = None) -> None:
        K = self.num_topics
        assert ((self.z >= 0) & (self.z < 2 * K)).all(), "assignment value out of range"
        assert (self.n_dk >= 0).all(), "negative document-topic count"
        assert np.array_equal(self.n_dk.sum(axis=1), self.n_d), "document-topic counts do not sum to lengths"
        assert np.array_equal(self.n_d, self.corpus.doc_lengths()), "document lengths changed"
        self.words.check_invariants()
        expected = base.copy() if base is not None else TopicWordCounts.zeros(K, self.corpus.vocab_size)
        expected.add_tokens(self.corpus.word_ids, self.z, K)
        assert np.array_equal(expected.lf, self.words.lf), "latent-feature table disagrees with assignments"
        assert np.array_equal(expected.dm, self.words.dm), "Dirichlet-multinomial table disagrees with assignments"

################################################################################
# Single-topic-per-document state (LF-DMM) #####################################
################################################################################

@dataclass
class DocTopicState:
    """One topic per document plus a per-token component for the LF-DMM model."""

    corpus: Corpus = field(repr=False)
    num_topics: int
    z: np.ndarray          # (N,)  encoded value per token
    doc_topic: np.ndarray  # (D,)
    n_k: np.ndarray        # (K,)  documents per topic
    words: TopicWordCounts

    @classmethod
    def _build(cls, corpus: Corpus, num_topics: int, doc_topic: np.ndarray, z: np.ndarray,
               base: Optional[TopicWordCounts]) -> "DocTopicState":
        words = base.copy() if base is not None else TopicWordCounts.zeros(num_topics, corpus.vocab_size)
        words.add_tokens(corpus.word_ids, z, num_topics)
        n_k = np.bincount(doc_topic, minlength=num_topics).astype(COUNT_DTYPE)
        return cls(corpus, num_topics, z, doc_topic, n_k, words)

    @classmethod
    def init_random(cls, corpus: Corpus, num_topics: int, rng: np.random.Generator, *,
                    base: Optional[TopicWordCounts] = None) -> "DocTopicState":
        """Uniform topic per document, fair coin per token for the component."""
        doc_topic = rng.integers(0, num_topics, size=corpus.num_docs).astype(COUNT_DTYPE)
        dm_coin = rng.integers(0, 2, size=corpus.num_tokens).astype(bool)
        z = encode(doc_topic[corpus.doc_ids], ~dm_coin, num_topics).astype(COUNT_DTYPE)
        return cls._build(corpus, num_topics, doc_topic, z, base)

    @classmethod
    def from_assignments(cls, corpus: Corpus, num_topics: int, assignments: Sequence[Sequence[int]], *,
                         base: Optional[TopicWordCounts] = None) -> "DocTopicState":
        """Replay persisted values; an empty document is put in topic 0."""
        z = _flatten_assignments(corpus, assignments)
        _check_assignment_values(z, num_topics)

        doc_topic = np.zeros(corpus.num_docs, dtype=COUNT_DTYPE)
        for d, row in enumerate(assignments):
            if not len(row):
                continue
            topics = {int(v) % num_topics for v in row}
            if len(topics) != 1:
                raise AssignmentConsistencyError(
                    f"document {d} mixes topics {sorted(topics)} in a single-topic model"
                )
            doc_topic[d] = topics.pop()
        return cls._build(corpus, num_topics, doc_topic, z, base)

    # ------------------------------------------------------------------
    # Leave-one-out updates (unit = whole document)
    # ------------------------------------------------------------------

    def decrement(self, d: int) -> None:
        """Retract document ``d`` and all its tokens from the tables."""
        topic = int(self.doc_topic[d])
        self.n_k[topic] -= 1
        start, stop = self.corpus.doc_ptrs[d], self.corpus.doc_ptrs[d + 1]
        words = self.corpus.word_ids[start:stop]
        lf_mask = self.z[start:stop] < self.num_topics
        np.subtract.at(self.words.lf[topic], words[lf_mask], 1)
        np.subtract.at(self.words.dm[topic], words[~lf_mask], 1)
        n_lf = int(lf_mask.sum())
        self.words.lf_sum[topic] -= n_lf
        self.words.dm_sum[topic] -= words.size - n_lf

    def increment(self, d: int, topic: int, latent_feature: np.ndarray) -> None:
        """Put document ``d`` in ``topic`` with the given per-token components."""
        self.doc_topic[d] = topic
        self.n_k[topic] += 1
        start, stop = self.corpus.doc_ptrs[d], self.corpus.doc_ptrs[d + 1]
        words = self.corpus.word_ids[start:stop]
        lf_mask = np.asarray(latent_feature, dtype=bool)
        self.z[start:stop] = np.where(lf_mask, topic, topic + self.num_topics)
        np.add.at(self.words.lf[topic], words[lf_mask], 1)
        np.add.at(self.words.dm[topic], words[~lf_mask], 1)
        n_lf = int(lf_mask.sum())
        self.words.lf_sum[topic] += n_lf
        self.words.dm_sum[topic] += words.size - n_lf

    def components(self, d: int) -> np.ndarray:
        """Latent-feature mask of document ``d``'s tokens."""
        ptrs = self.corpus.doc_ptrs
        return self.z[ptrs[d]:ptrs[d + 1]] < self.num_topics

    # ------------------------------------------------------------------

    def assignments(self) -> list[list[int]]:
        ptrs = self.corpus.doc_ptrs
        return [self.z[ptrs[d]:ptrs[d + 1]].tolist() for d in range(self.corpus.num_docs)]

    def check_invariants(self, base: Optional[TopicWordCounts] = None) -> None:
        K = self.num_topics
        assert ((self.z >= 0) & (self.z < 2 * K)).all(), "assignment value out of range"
        assert np.array_equal(self.z % K, self.doc_topic[self.corpus.doc_ids]), "token topic differs from document topic"
        assert np.array_equal(np.bincount(self.doc_topic, minlength=K), self.n_k), "document-per-topic counts out of sync"
        self.words.check_invariants()
        expected = base.copy() if base is not None else TopicWordCounts.zeros(K, self.corpus.vocab_size)
        expected.add_tokens(self.corpus.word_ids, self.z, K)
        assert np.array_equal(expected.lf, self.words.lf), "latent-feature table disagrees with assignments"
        assert np.array_equal(expected.dm, self.words.dm), "Dirichlet-multinomial table disagrees with assignments"
