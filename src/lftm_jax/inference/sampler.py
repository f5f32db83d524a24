from __future__ import annotations

"""lftm_jax.inference.sampler
================================

High-level driver that **orchestrates MCMC** for the latent-feature topic
models in :pymod:`lftm_jax.models`.  The idea is:

* Keep model-specific kernels (token-level for LF-LDA, document-level for
  LF-DMM) inside the model modules, behind
  :class:`~lftm_jax.models.base.ResamplingRule`.
* Provide a *uniform* two-phase loop around them:

  1. ``num_init_iters`` **INIT** sweeps on counts alone;
  2. ``num_iters`` **EM** iterations, each one re-estimating every topic
     vector in parallel, waiting for all of them, then sweeping.

Randomness comes from one :class:`numpy.random.Generator` owned by the
sampler and passed explicitly to initialisation and every sweep.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import jax.numpy as jnp
import numpy as np
from tqdm import tqdm

from lftm_jax.inference.parallel import TopicParallel
from lftm_jax.models.base import ModelState, Phase, ResamplingRule
from lftm_jax.models.counts import TopicWordCounts
from lftm_jax.models.optimizer import OptimizerConfig, PartitionCache, TopicVectorFit, estimate_topic_vector
from lftm_jax.utils.process import Corpus

__all__ = [
    "SamplerConfig",
    "GibbsSampler",
]

logger = logging.getLogger(__name__)

################################################################################
# Config dataclass #############################################################
################################################################################

@dataclass(slots=True)
class SamplerConfig:
    """Hyper-parameters controlling an MCMC run."""

    num_init_iters: int = 2000       # sweeps before topic vectors exist
    num_iters: int = 200             # EM-style iterations
    seed: int = 0                    # seed of the sampler's Generator
    save_step: int = 0               # snapshot every `save_step` EM iterations (0 = never)
    num_workers: Optional[int] = None  # topic-vector pool size, None = cpu count
    show_progress: bool = True       # tqdm progress bar
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)

    def __post_init__(self):
        assert self.num_init_iters >= 0 and self.num_iters >= 0, (
            "`num_init_iters` and `num_iters` must be non-negative."
        )
        assert self.save_step >= 0, "`save_step` must be non-negative."
        assert self.num_workers is None or self.num_workers > 0, "`num_workers` must be positive."

################################################################################
# Sampler driver ###############################################################
################################################################################

SnapshotFn = Callable[[int, "GibbsSampler"], None]


@dataclass
class GibbsSampler:
    """Runs the two-phase schedule of a latent-feature topic model.

    Parameters
    ----------
    corpus
        Tokenised corpus.
    model
        ``LFLDAModel`` or ``LFDMMModel`` holding the hyper-parameters.
    embeddings
        ``(V, d)`` word vectors aligned with ``corpus.vocab``.
    config
        Run-time configuration (iterations, seed, optimizer, workers).
    assignments
        *If provided*, per-document assignment rows replayed instead of a
        random initialisation.
    base
        Topic-word counts of a trained model; the corpus' own counts are
        added on top (inference on unseen data).
    snapshot
        Called as ``snapshot(iteration, sampler)`` every ``save_step`` EM
        iterations, except after the last one.
    """

    corpus: Corpus
    model: ResamplingRule
    embeddings: np.ndarray
    config: SamplerConfig
    assignments: Optional[Sequence[Sequence[int]]] = None
    base: Optional[TopicWordCounts] = None
    snapshot: Optional[SnapshotFn] = None

    # State managed internally
    rng: np.random.Generator = field(init=False, repr=False)
    state: ModelState = field(init=False, repr=False)
    topic_vectors: np.ndarray = field(init=False, repr=False)
    cache: Optional[PartitionCache] = field(init=False, repr=False, default=None)
    fits: List[TopicVectorFit] = field(init=False, repr=False, default_factory=list)

    def __post_init__(self):
        V = self.corpus.vocab_size
        assert self.embeddings.shape[0] == V, (
            f"embedding table has {self.embeddings.shape[0]} rows for a vocabulary of {V}"
        )
        assert self.model.vocab_size == V, "model and corpus disagree on the vocabulary size"

        self.rng = np.random.default_rng(self.config.seed)
        if self.assignments is not None:
            logger.info("initialising %s from persisted topic assignments", self.model.name)
            self.state = self.model.state_from_assignments(self.corpus, self.assignments, base=self.base)
        else:
            logger.info("randomly initialising %s topic assignments", self.model.name)
            self.state = self.model.init_state(self.corpus, self.rng, base=self.base)
        self.topic_vectors = np.zeros((self.model.num_topics, self.embeddings.shape[1]))
        self._emb = jnp.asarray(self.embeddings, dtype=jnp.float64)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> ModelState:
        """Execute the INIT sweeps and the EM iterations of ``SamplerConfig``."""
        cfg = self.config
        logger.info(
            "running Gibbs sampling: %i initial sweeps, %i EM iterations", cfg.num_init_iters, cfg.num_iters
        )

        iterator = range(1, cfg.num_init_iters + 1)
        if cfg.show_progress:
            iterator = tqdm(iterator, desc=f"{self.model.name} init")
        for it in iterator:
            logger.debug("initial sampling iteration %i", it)
            self.model.sweep(self.state, None, self.rng, Phase.INIT)

        with TopicParallel(cfg.num_workers) as pool:
            iterator = range(1, cfg.num_iters + 1)
            if cfg.show_progress:
                iterator = tqdm(iterator, desc=f"{self.model.name} EM")
            for it in iterator:
                logger.debug("%s sampling iteration %i", self.model.name, it)
                self.optimize_topic_vectors(pool)
                self.model.sweep(self.state, self.cache, self.rng, Phase.EM)

                if self.snapshot is not None and cfg.save_step > 0 and it % cfg.save_step == 0 and it < cfg.num_iters:
                    logger.info("saving the output from sample %i", it)
                    self.snapshot(it, self)

        logger.info("sampling completed")
        return self.state

    def optimize_topic_vectors(self, pool: Optional[TopicParallel] = None) -> PartitionCache:
        """Re-estimate every topic vector and replace the partition cache.

        Blocks until all topics are done.
        """
        lf = self.state.words.lf
        previous = self.topic_vectors

        def _one(topic: int) -> TopicVectorFit:
            return estimate_topic_vector(topic, previous[topic], lf[topic], self._emb, self.config.optimizer)

        if pool is None:
            with TopicParallel(self.config.num_workers) as own:
                fits = own.map_topics(_one, self.model.num_topics)
        else:
            fits = pool.map_topics(_one, self.model.num_topics)

        self.fits = fits
        self.topic_vectors = np.stack([f.vector for f in fits])
        self.cache = PartitionCache.from_fits(fits)
        return self.cache

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------

    def posterior_phi(self) -> np.ndarray:
        """Topic-word distribution φ, shape ``(K, V)``."""
        return self.model.topic_word_probs(self.state, self.cache)

    def posterior_theta(self) -> np.ndarray:
        """Document-topic distribution θ, shape ``(D, K)``; rows sum to one."""
        return self.model.doc_topic_probs(self.state, self.cache)

    def top_words(self, n: int) -> List[List[str]]:
        return self.model.top_words(self.state, self.cache, self.corpus.vocab, n)

    def topic_assignments(self) -> List[List[int]]:
        return self.state.assignments()
