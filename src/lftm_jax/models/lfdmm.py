from __future__ import annotations

"""lftm_jax.models.lfdmm
=========================

LF-DMM: the Dirichlet Multinomial Mixture (one topic per document) with the
same two-component topic-word mixture as :pymod:`lftm_jax.models.lflda`.

A document is resampled as a block:

1. retract the document and all its tokens from the counts;
2. draw a topic with weight
   ``(n_k[t] + α) · Π_tokens (λ·P_LF(w|t) + (1−λ)·P_DM(w|t))``;
3. re-decide each token's component under the phase's
   :class:`~lftm_jax.models.base.ComponentPolicy`, every token scored
   against the retracted counts.

The product in (2) is accumulated in log space and shifted by its maximum
before exponentiation.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Sequence

import numpy as np

from lftm_jax.models.base import (
    ComponentPolicy,
    LatentFeatureModel,
    Phase,
    categorical_from_uniform,
    choose_components,
)
from lftm_jax.models.counts import DocTopicState, TopicWordCounts
from lftm_jax.models.optimizer import PartitionCache
from lftm_jax.utils.process import Corpus

__all__ = ["LFDMMModel"]


@dataclass(frozen=True)
class LFDMMModel(LatentFeatureModel):
    """Single-topic-per-document latent-feature model (document-level kernel)."""

    name: ClassVar[str] = "LFDMM"

    init_policy: ComponentPolicy = ComponentPolicy.STOCHASTIC
    em_policy: ComponentPolicy = ComponentPolicy.ARGMAX

    def policy(self, phase: Phase) -> ComponentPolicy:
        return self.init_policy if phase is Phase.INIT else self.em_policy

    def init_state(self, corpus: Corpus, rng: np.random.Generator, *,
                   base: Optional[TopicWordCounts] = None) -> DocTopicState:
        """Uniform topic per document and a fair coin per token."""
        return DocTopicState.init_random(corpus, self.num_topics, rng, base=base)

    def state_from_assignments(self, corpus: Corpus, assignments: Sequence[Sequence[int]], *,
                               base: Optional[TopicWordCounts] = None) -> DocTopicState:
        return DocTopicState.from_assignments(corpus, self.num_topics, assignments, base=base)

    # ------------------------------------------------------------------
    # Kernel
    # ------------------------------------------------------------------

    def log_doc_weights(self, state: DocTopicState, doc: np.ndarray,
                        cache: Optional[PartitionCache]) -> np.ndarray:
        """Log of the unnormalised topic weights of a document, shape ``(K,)``."""
        mix = (self.lam * self.lf_doc_probs(state.words, doc, cache)
               + (1.0 - self.lam) * self.dm_doc_probs(state.words, doc))
        with np.errstate(divide="ignore"):
            return np.log(state.n_k + self.alpha) + np.log(mix).sum(axis=1)

    @staticmethod
    def _normalise_log(log_w: np.ndarray) -> np.ndarray:
        top = log_w.max()
        if not np.isfinite(top):
            return np.ones_like(log_w)
        return np.exp(log_w - top)

    def sweep(self, state: DocTopicState, cache: Optional[PartitionCache],
              rng: np.random.Generator, phase: Phase) -> None:
        """One pass over all documents in corpus order, in place."""
        cache = self._phase_cache(cache, phase)
        policy = self.policy(phase)
        corpus = state.corpus
        for d in range(corpus.num_docs):
            doc = corpus.document(d)
            state.decrement(d)

            weights = self._normalise_log(self.log_doc_weights(state, doc, cache))
            topic = categorical_from_uniform(weights, rng.random())

            lf = self.lam * self.lf_topic_probs(state.words, topic, doc, cache)
            dm = (1.0 - self.lam) * self.dm_topic_probs(state.words, topic, doc)
            state.increment(d, topic, choose_components(lf, dm, policy, rng))

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    def doc_topic_probs(self, state: DocTopicState, cache: Optional[PartitionCache] = None) -> np.ndarray:
        """θ: normalised document weights under the current counts, shape ``(D, K)``."""
        corpus = state.corpus
        theta = np.empty((corpus.num_docs, self.num_topics))
        for d in range(corpus.num_docs):
            w = self._normalise_log(self.log_doc_weights(state, corpus.document(d), cache))
            theta[d] = w / w.sum()
        return theta
