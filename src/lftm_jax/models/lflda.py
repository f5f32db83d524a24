from __future__ import annotations

"""lftm_jax.models.lflda
=========================

LF-LDA: Latent Dirichlet Allocation whose topic-word distribution is a
mixture of a Dirichlet-multinomial component and a latent-feature component
(softmax of topic vector · word embedding), after Nguyen et al. (2015),
*Improving Topic Models with Latent Feature Word Representations*.

----------------------------------------------------------------------
Collapsed Gibbs conditional
----------------------------------------------------------------------

Every token carries one of ``2K`` cells.  With the token itself removed
from the counts,

    p(t, LF)  ∝ (n_dk[d,t] + α) · λ     · P_LF(w | t)
    p(t, DM)  ∝ (n_dk[d,t] + α) · (1−λ) · (dm[t,w] + β) / (dm_sum[t] + βV)

``P_LF`` is the cached softmax during ``EM`` sweeps and the smoothed
latent-feature count ratio during ``INIT`` sweeps.  Topic and component are
drawn jointly, so the component choice is always stochastic.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Sequence

import numpy as np

from lftm_jax.models.base import LatentFeatureModel, Phase, categorical_from_uniform
from lftm_jax.models.counts import TokenTopicState, TopicWordCounts
from lftm_jax.models.optimizer import PartitionCache
from lftm_jax.utils.process import Corpus

__all__ = ["LFLDAModel"]


@dataclass(frozen=True)
class LFLDAModel(LatentFeatureModel):
    """Multi-topic-per-document latent-feature model (token-level kernel)."""

    name: ClassVar[str] = "LFLDA"

    def init_state(self, corpus: Corpus, rng: np.random.Generator, *,
                   base: Optional[TopicWordCounts] = None) -> TokenTopicState:
        """Uniform random (topic, component) cell for every token."""
        return TokenTopicState.init_random(corpus, self.num_topics, rng, base=base)

    def state_from_assignments(self, corpus: Corpus, assignments: Sequence[Sequence[int]], *,
                               base: Optional[TopicWordCounts] = None) -> TokenTopicState:
        return TokenTopicState.from_assignments(corpus, self.num_topics, assignments, base=base)

    # ------------------------------------------------------------------
    # Kernel
    # ------------------------------------------------------------------

    def token_weights(
        self, state: TokenTopicState, idx: int, cache: Optional[PartitionCache]
    ) -> np.ndarray:
        """Unnormalised ``(2K,)`` conditional of token ``idx`` (already decremented)."""
        word = state.corpus.word_ids[idx]
        doc = state.n_dk[state.corpus.doc_ids[idx]] + self.alpha
        return np.concatenate([
            doc * self.lam * self.lf_word_probs(state.words, word, cache),
            doc * (1.0 - self.lam) * self.dm_word_probs(state.words, word),
        ])

    def sweep(self, state: TokenTopicState, cache: Optional[PartitionCache],
              rng: np.random.Generator, phase: Phase) -> None:
        """One pass over all tokens in corpus order, in place."""
        cache = self._phase_cache(cache, phase)
        uniforms = rng.random(state.corpus.num_tokens)
        for idx in range(state.corpus.num_tokens):
            state.decrement(idx)
            weights = self.token_weights(state, idx, cache)
            state.increment(idx, categorical_from_uniform(weights, uniforms[idx]))

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    def doc_topic_probs(self, state: TokenTopicState, cache: Optional[PartitionCache] = None) -> np.ndarray:
        """θ: ``(n_dk + α) / (n_d + Kα)``, shape ``(D, K)``."""
        return (state.n_dk + self.alpha) / (state.n_d + self.num_topics * self.alpha)[:, None]
