from __future__ import annotations

"""lftm_jax.models.base
========================

Pieces shared by the LF-LDA and LF-DMM models:

* :class:`Phase` – the two stages of a run.  ``INIT`` sweeps happen before
  any topic vector exists and score the latent-feature component with the
  smoothed count ratio ``(lf[t,w] + β) / (lf_sum[t] + βV)``; ``EM`` sweeps
  use the softmax cached in :class:`~lftm_jax.models.optimizer.PartitionCache`.
* :class:`ComponentPolicy` – how a model picks the generating component of a
  token once its topic is fixed.
* :func:`categorical_from_uniform` – cumulative-sum inversion.
* :class:`LatentFeatureModel` – frozen hyper-parameters plus the per-word
  probability helpers both resampling rules are built from.
"""

import enum
from dataclasses import dataclass
from typing import ClassVar, List, Optional, Protocol, Sequence, Union

import numpy as np

from lftm_jax.models.counts import DocTopicState, TokenTopicState, TopicWordCounts
from lftm_jax.models.optimizer import PartitionCache
from lftm_jax.utils.process import Corpus

__all__ = [
    "Phase",
    "ComponentPolicy",
    "categorical_from_uniform",
    "draw_categorical",
    "choose_components",
    "ResamplingRule",
    "LatentFeatureModel",
]

ModelState = Union[TokenTopicState, DocTopicState]

################################################################################
# Phases / policies ############################################################
################################################################################

class Phase(enum.Enum):
    INIT = "init"
    EM = "em"


class ComponentPolicy(enum.Enum):
    """Latent-feature vs Dirichlet-multinomial choice for a token.

    ``STOCHASTIC`` picks latent-feature with probability ``lf / (lf + dm)``,
    ``ARGMAX`` picks it only when ``lf > dm`` (ties go to Dirichlet-multinomial).
    """

    STOCHASTIC = "stochastic"
    ARGMAX = "argmax"

################################################################################
# Sampling primitives ##########################################################
################################################################################

def categorical_from_uniform(weights: np.ndarray, u: float) -> int:
    """Index selected by ``u ∈ [0, 1)`` on the unnormalised ``weights``.

    Returns the first index whose running sum exceeds ``u * sum(weights)``;
    rounding past the end lands on the last index with non-zero weight.
    """
    cum = np.cumsum(weights)
    idx = int(np.searchsorted(cum, u * cum[-1], side="right"))
    if idx >= len(weights):
        nonzero = np.flatnonzero(weights)
        idx = int(nonzero[-1]) if nonzero.size else len(weights) - 1
    return idx


def draw_categorical(weights: np.ndarray, rng: np.random.Generator) -> int:
    return categorical_from_uniform(weights, rng.random())


def choose_components(
    lf: np.ndarray, dm: np.ndarray, policy: ComponentPolicy, rng: np.random.Generator
) -> np.ndarray:
    """Latent-feature mask for tokens whose weighted component terms are ``lf`` / ``dm``."""
    if policy is ComponentPolicy.ARGMAX:
        return lf > dm
    u = rng.random(np.shape(lf))
    return u * (lf + dm) < lf

################################################################################
# Protocol for resampling rules ################################################
################################################################################

class ResamplingRule(Protocol):
    """What :class:`~lftm_jax.inference.sampler.GibbsSampler` needs from a model."""

    name: ClassVar[str]
    num_topics: int
    vocab_size: int

    def init_state(
        self, corpus: Corpus, rng: np.random.Generator, *, base: Optional[TopicWordCounts] = None
    ) -> ModelState: ...

    def state_from_assignments(
        self, corpus: Corpus, assignments: Sequence[Sequence[int]], *, base: Optional[TopicWordCounts] = None
    ) -> ModelState: ...

    def sweep(
        self, state: ModelState, cache: Optional[PartitionCache], rng: np.random.Generator, phase: Phase
    ) -> None: ...

    def doc_topic_probs(self, state: ModelState, cache: Optional[PartitionCache]) -> np.ndarray: ...

    def topic_word_probs(self, state: ModelState, cache: Optional[PartitionCache]) -> np.ndarray: ...

################################################################################
# Shared hyper-parameters and helpers ##########################################
################################################################################

@dataclass(frozen=True)
class LatentFeatureModel:
    """Fixed hyper-parameters of a latent-feature topic model."""

    name: ClassVar[str] = "LF"

    num_topics: int        # K
    vocab_size: int        # V
    alpha: float = 0.1     # symmetric Dir_K(alpha)
    beta: float = 0.01     # symmetric Dir_V(beta), Dirichlet-multinomial part
    lam: float = 0.6       # weight of the latent-feature component

    def __post_init__(self):
        assert self.num_topics > 0 and self.vocab_size > 0, "`num_topics` and `vocab_size` must be positive."
        assert self.alpha > 0 and self.beta > 0, "`alpha` and `beta` must be positive."
        assert 0.0 <= self.lam <= 1.0, "`lam` must lie in [0, 1]."

    @property
    def beta_sum(self) -> float:
        return self.beta * self.vocab_size

    # Per-word component probabilities, shape (K,) ---------------------------

    def dm_word_probs(self, words: TopicWordCounts, word: int) -> np.ndarray:
        return (words.dm[:, word] + self.beta) / (words.dm_sum + self.beta_sum)

    def lf_word_probs(self, words: TopicWordCounts, word: int, cache: Optional[PartitionCache]) -> np.ndarray:
        if cache is None:
            return (words.lf[:, word] + self.beta) / (words.lf_sum + self.beta_sum)
        return cache.word_probs(word)

    # Same for a token sequence, shape (K, L) ---------------------------------

    def dm_doc_probs(self, words: TopicWordCounts, doc: np.ndarray) -> np.ndarray:
        return (words.dm[:, doc] + self.beta) / (words.dm_sum + self.beta_sum)[:, None]

    def lf_doc_probs(self, words: TopicWordCounts, doc: np.ndarray, cache: Optional[PartitionCache]) -> np.ndarray:
        if cache is None:
            return (words.lf[:, doc] + self.beta) / (words.lf_sum + self.beta_sum)[:, None]
        return cache.doc_probs(doc)

    # One topic, shape (L,) ---------------------------------------------------

    def dm_topic_probs(self, words: TopicWordCounts, topic: int, doc: np.ndarray) -> np.ndarray:
        return (words.dm[topic, doc] + self.beta) / (words.dm_sum[topic] + self.beta_sum)

    def lf_topic_probs(
        self, words: TopicWordCounts, topic: int, doc: np.ndarray, cache: Optional[PartitionCache]
    ) -> np.ndarray:
        if cache is None:
            return (words.lf[topic, doc] + self.beta) / (words.lf_sum[topic] + self.beta_sum)
        return cache.topic_doc_probs(topic, doc)

    # Reporting ----------------------------------------------------------------

    def topic_word_probs(self, state: ModelState, cache: Optional[PartitionCache]) -> np.ndarray:
        """φ: ``λ·P_LF(w|t) + (1−λ)·P_DM(w|t)``, shape ``(K, V)``."""
        words = state.words
        dm = (words.dm + self.beta) / (words.dm_sum + self.beta_sum)[:, None]
        if cache is None:
            lf = (words.lf + self.beta) / (words.lf_sum + self.beta_sum)[:, None]
        else:
            lf = cache.topic_word_probs()
        return self.lam * lf + (1.0 - self.lam) * dm

    def top_words(
        self, state: ModelState, cache: Optional[PartitionCache], vocab: Sequence[str], n: int
    ) -> List[List[str]]:
        phi = self.topic_word_probs(state, cache)
        order = np.argsort(-phi, axis=1, kind="stable")[:, :n]
        return [[vocab[i] for i in row] for row in order]

    @staticmethod
    def _phase_cache(cache: Optional[PartitionCache], phase: Phase) -> Optional[PartitionCache]:
        if phase is Phase.INIT:
            return None
        assert cache is not None, "EM sweeps need a partition cache; optimise topic vectors first."
        return cache
