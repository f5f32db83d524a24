from __future__ import annotations

"""lftm_jax.models.optimizer
=============================

MAP estimation of one topic vector ``v`` (length ``d``) from the topic's
latent-feature word counts ``c`` (length ``V``) and the fixed embedding
matrix ``E`` (``V × d``).  The maximised objective is

    c·(E v) − C · log Σ_w exp(E_w · v) − λ₂ ‖v‖²,      C = Σ_w c_w

with gradient ``cᵀE − C · softmax(E v)ᵀE − 2 λ₂ v``.

* The value/gradient kernel is a jitted JAX function.
* The quasi-Newton solve is SciPy's L-BFGS-B on the negated objective.
* :func:`estimate_topic_vector` wraps both in the regularisation-escalation
  retry loop and builds the cached softmax normaliser consumed by the
  samplers.

The kernel runs in 64-bit precision, so importing this module switches on
``jax_enable_x64``.
"""

import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
import numpy as np
import scipy.optimize
from jax import Array

from lftm_jax.errors import InvalidOptimizableError, TopicVectorOptimizationError

jax.config.update("jax_enable_x64", True)

__all__ = [
    "OptimizerConfig",
    "TopicVectorFit",
    "PartitionCache",
    "TopicVectorOptimizer",
    "partition_function",
    "estimate_topic_vector",
]

logger = logging.getLogger(__name__)

################################################################################
# Config / containers ##########################################################
################################################################################

@dataclass(slots=True)
class OptimizerConfig:
    """Settings of the per-topic L-BFGS solve and its retry policy."""

    l2_regularizer: float = 0.01   # starting lambda_2
    tolerance: float = 0.05        # relative function tolerance
    max_iters: int = 600           # L-BFGS iteration cap
    max_retries: int = 10          # lambda_2 escalations before giving up
    escalation: float = 10.0       # lambda_2 multiplier per retry

    def __post_init__(self):
        assert self.l2_regularizer > 0 and self.tolerance > 0, (
            "`l2_regularizer` and `tolerance` must be positive."
        )
        assert self.max_iters > 0 and self.max_retries >= 0 and self.escalation > 1, (
            "`max_iters` must be positive, `max_retries` non-negative and `escalation` > 1."
        )


class TopicVectorFit(NamedTuple):
    """Result of :func:`estimate_topic_vector` for a single topic."""

    vector: np.ndarray     # (d,)
    dot: np.ndarray        # (V,)  E v
    exp: np.ndarray        # (V,)  exp(E v), possibly max-shifted
    partition: float       # exp.sum()
    l2: float              # regulariser that produced the solution
    attempts: int


@dataclass
class PartitionCache:
    """Softmax tables of every topic, rebuilt after each optimisation pass.

    The samplers only read from it.  ``exp`` may be max-shifted per topic;
    ``exp[t] / sums[t]`` is the softmax either way.
    """

    dot: np.ndarray    # (K,V)
    exp: np.ndarray    # (K,V)
    sums: np.ndarray   # (K,)

    @classmethod
    def from_fits(cls, fits: Sequence[TopicVectorFit]) -> "PartitionCache":
        return cls(
            dot=np.stack([f.dot for f in fits]),
            exp=np.stack([f.exp for f in fits]),
            sums=np.asarray([f.partition for f in fits], dtype=np.float64),
        )

    def word_probs(self, word: int) -> np.ndarray:
        """Latent-feature P(word | t) for every topic, shape ``(K,)``."""
        return self.exp[:, word] / self.sums

    def doc_probs(self, words: np.ndarray) -> np.ndarray:
        """Latent-feature probabilities of a token sequence, shape ``(K, L)``."""
        return self.exp[:, words] / self.sums[:, None]

    def topic_doc_probs(self, topic: int, words: np.ndarray) -> np.ndarray:
        """Latent-feature probabilities of a token sequence under one topic, shape ``(L,)``."""
        return self.exp[topic, words] / self.sums[topic]

    def topic_word_probs(self) -> np.ndarray:
        return self.exp / self.sums[:, None]

################################################################################
# JAX kernels ##################################################################
################################################################################

@jax.jit
def _negative_value_and_grad(
    vec: Array, emb: Array, counts: Array, expected: Array, total: float, l2: float
) -> Tuple[Array, Array]:
    dots = emb @ vec                                       # (V,)
    log_z = jax.scipy.special.logsumexp(dots)
    softmax = jnp.exp(dots - log_z)
    value = counts @ dots - total * log_z - l2 * (vec @ vec)
    grad = expected - total * (softmax @ emb) - 2.0 * l2 * vec
    return -value, -grad


@jax.jit
def _dot_products(vec: Array, emb: Array) -> Array:
    return emb @ vec


def partition_function(vector: np.ndarray, embeddings) -> Tuple[np.ndarray, np.ndarray, float]:
    """Dot-products, their exponentials and the partition sum.

    Falls back to ``exp(dot - max(dot))`` when the plain sum is zero or
    overflows.
    """
    dot = np.asarray(_dot_products(jnp.asarray(vector), embeddings), dtype=np.float64)
    with np.errstate(over="ignore", under="ignore"):
        exp = np.exp(dot)
    total = exp.sum()
    if total == 0.0 or not np.isfinite(total):
        exp = np.exp(dot - dot.max())
        total = exp.sum()
    return dot, exp, float(total)

################################################################################
# Optimizer ####################################################################
################################################################################

class TopicVectorOptimizer:
    """Objective/gradient for one topic plus the L-BFGS driver.

    ``expected = cᵀE`` is computed once in the constructor.
    """

    def __init__(self, topic_vector: np.ndarray, word_counts: np.ndarray, embeddings, l2: float):
        self.embeddings = jnp.asarray(embeddings, dtype=jnp.float64)
        self.word_counts = jnp.asarray(word_counts, dtype=jnp.float64)
        self.total = float(np.sum(word_counts))
        self.expected = self.word_counts @ self.embeddings
        self.l2 = float(l2)
        self.initial = np.array(topic_vector, dtype=np.float64)
        self.converged: Optional[bool] = None
        self.message = ""

    def value_and_grad(self, vec: np.ndarray) -> Tuple[float, np.ndarray]:
        """Negated objective and gradient, in the form SciPy expects."""
        value, grad = _negative_value_and_grad(
            jnp.asarray(vec), self.embeddings, self.word_counts, self.expected, self.total, self.l2
        )
        value = float(value)
        grad = np.asarray(grad, dtype=np.float64)
        if not np.isfinite(value) or not np.isfinite(grad).all():
            raise InvalidOptimizableError(f"non-finite objective (value={value})")
        return value, grad

    def objective(self, vec: np.ndarray) -> float:
        """The (maximised) MAP objective at ``vec``."""
        return -self.value_and_grad(vec)[0]

    def optimize(self, tolerance: float, max_iters: int) -> np.ndarray:
        result = scipy.optimize.minimize(
            self.value_and_grad,
            self.initial,
            jac=True,
            method="L-BFGS-B",
            options={"maxiter": max_iters, "ftol": tolerance},
        )
        self.converged = bool(result.success)
        self.message = str(result.message)
        if not np.isfinite(result.x).all():
            raise InvalidOptimizableError("L-BFGS returned a non-finite topic vector")
        return np.asarray(result.x, dtype=np.float64)


def estimate_topic_vector(
    topic: int,
    topic_vector: np.ndarray,
    word_counts: np.ndarray,
    embeddings,
    config: OptimizerConfig,
) -> TopicVectorFit:
    """Optimise one topic, escalating λ₂ by ``config.escalation`` on failure.

    Every attempt restarts from ``topic_vector``.  After ``max_retries``
    escalations a :class:`TopicVectorOptimizationError` is raised.
    """
    l2 = config.l2_regularizer
    for attempt in range(1, config.max_retries + 2):
        try:
            optimizer = TopicVectorOptimizer(topic_vector, word_counts, embeddings, l2)
            vector = optimizer.optimize(config.tolerance, config.max_iters)
            dot, exp, total = partition_function(vector, optimizer.embeddings)
            if total == 0.0 or not np.isfinite(total):
                raise InvalidOptimizableError(f"partition function is {total}")
        except InvalidOptimizableError as err:
            if attempt > config.max_retries:
                raise TopicVectorOptimizationError(topic, attempt, l2) from err
            logger.warning(
                "topic %i: %s; retrying with L2 regularizer %g", topic, err, l2 * config.escalation
            )
            l2 *= config.escalation
            continue

        logger.debug(
            "topic %i: partition %.6g after %i attempt(s); L-BFGS-B %s: %s",
            topic, total, attempt, "converged" if optimizer.converged else "stopped early", optimizer.message,
        )
        return TopicVectorFit(vector, dot, exp, total, l2, attempt)

    raise AssertionError("unreachable")
