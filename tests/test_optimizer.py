from __future__ import annotations

"""Topic-vector MAP estimation and its numerical fallbacks."""

import logging

import numpy as np
import pytest

from lftm_jax.errors import InvalidOptimizableError, TopicVectorOptimizationError
from lftm_jax.models import optimizer as opt_mod
from lftm_jax.models.optimizer import (
    OptimizerConfig,
    PartitionCache,
    TopicVectorOptimizer,
    estimate_topic_vector,
    partition_function,
)


@pytest.fixture
def problem():
    rng = np.random.default_rng(0)
    embeddings = rng.normal(size=(12, 3))
    counts = rng.integers(0, 5, size=12)
    return embeddings, counts


def test_gradient_matches_finite_differences(problem):
    embeddings, counts = problem
    optimizer = TopicVectorOptimizer(np.zeros(3), counts, embeddings, 0.01)
    vec = np.array([0.3, -0.2, 0.5])
    _, grad = optimizer.value_and_grad(vec)

    eps = 1e-6
    numeric = np.empty(3)
    for i in range(3):
        step = np.zeros(3)
        step[i] = eps
        numeric[i] = (optimizer.value_and_grad(vec + step)[0] - optimizer.value_and_grad(vec - step)[0]) / (2 * eps)
    np.testing.assert_allclose(grad, numeric, rtol=1e-4, atol=1e-6)


def test_objective_matches_closed_form(problem):
    embeddings, counts = problem
    optimizer = TopicVectorOptimizer(np.zeros(3), counts, embeddings, 0.5)
    vec = np.array([0.1, 0.2, -0.3])
    dots = embeddings @ vec
    expected = counts @ dots - counts.sum() * np.log(np.exp(dots).sum()) - 0.5 * vec @ vec
    assert optimizer.objective(vec) == pytest.approx(expected, rel=1e-10)


def test_optimisation_improves_objective(problem):
    embeddings, counts = problem
    optimizer = TopicVectorOptimizer(np.zeros(3), counts, embeddings, 0.01)
    vec = optimizer.optimize(tolerance=1e-8, max_iters=600)
    assert optimizer.objective(vec) > optimizer.objective(np.zeros(3))


def test_fitted_softmax_favours_counted_word(problem):
    embeddings, _ = problem
    embeddings = embeddings.copy()
    embeddings[4] = [10.0, 10.0, 10.0]   # outside the hull of the other words
    counts = np.zeros(12, dtype=np.int64)
    counts[4] = 50
    fit = estimate_topic_vector(0, np.zeros(3), counts, embeddings, OptimizerConfig(tolerance=1e-6))
    probs = fit.exp / fit.partition
    assert int(np.argmax(probs)) == 4
    assert fit.attempts == 1 and fit.l2 == pytest.approx(0.01)


def test_empty_topic_stays_at_origin(problem):
    embeddings, _ = problem
    fit = estimate_topic_vector(0, np.zeros(3), np.zeros(12), embeddings, OptimizerConfig())
    np.testing.assert_allclose(fit.vector, 0.0, atol=1e-8)
    assert fit.partition == pytest.approx(12.0)


def test_partition_function_plain():
    embeddings = np.array([[1.0, 0.0], [0.0, 2.0]])
    dot, exp, total = partition_function(np.array([1.0, 1.0]), embeddings)
    np.testing.assert_allclose(dot, [1.0, 2.0])
    assert total == pytest.approx(np.e + np.e ** 2)


def test_partition_function_overflow_falls_back_to_max_shift():
    embeddings = np.array([[800.0], [799.0]])
    dot, exp, total = partition_function(np.array([1.0]), embeddings)
    assert np.isfinite(total) and total > 0
    np.testing.assert_allclose(exp, [1.0, np.exp(-1.0)])
    np.testing.assert_allclose(exp / total, [1 / (1 + np.exp(-1.0)), np.exp(-1.0) / (1 + np.exp(-1.0))])


def test_partition_function_underflow_falls_back_to_max_shift():
    embeddings = np.array([[-900.0], [-901.0]])
    _, exp, total = partition_function(np.array([1.0]), embeddings)
    assert total == pytest.approx(1.0 + np.exp(-1.0))
    assert exp[0] == pytest.approx(1.0)


def test_invalid_optimisation_escalates_regularizer(problem, monkeypatch):
    embeddings, counts = problem
    calls = []
    original = TopicVectorOptimizer.optimize

    def flaky(self, tolerance, max_iters):
        calls.append(self.l2)
        if len(calls) < 3:
            raise InvalidOptimizableError("boom")
        return original(self, tolerance, max_iters)

    monkeypatch.setattr(opt_mod.TopicVectorOptimizer, "optimize", flaky)
    fit = estimate_topic_vector(3, np.zeros(3), counts, embeddings, OptimizerConfig())
    assert calls == pytest.approx([0.01, 0.1, 1.0])
    assert fit.attempts == 3
    assert fit.l2 == pytest.approx(1.0)


def test_retries_are_bounded(problem, monkeypatch):
    embeddings, counts = problem

    def always_invalid(self, tolerance, max_iters):
        raise InvalidOptimizableError("still broken")

    monkeypatch.setattr(opt_mod.TopicVectorOptimizer, "optimize", always_invalid)
    with pytest.raises(TopicVectorOptimizationError) as info:
        estimate_topic_vector(5, np.zeros(3), counts, embeddings, OptimizerConfig(max_retries=2))
    assert info.value.topic == 5
    assert info.value.attempts == 3


def test_non_finite_value_is_reported_as_invalid(problem):
    embeddings, counts = problem
    optimizer = TopicVectorOptimizer(np.zeros(3), counts, embeddings, 0.01)
    with pytest.raises(InvalidOptimizableError):
        optimizer.value_and_grad(np.array([np.nan, 0.0, 0.0]))


def test_partition_cache_word_and_doc_probs():
    dot = np.log(np.array([[1.0, 3.0], [2.0, 2.0]]))
    exp = np.exp(dot)
    cache = PartitionCache(dot, exp, exp.sum(axis=1))
    np.testing.assert_allclose(cache.word_probs(1), [0.75, 0.5])
    np.testing.assert_allclose(cache.doc_probs(np.array([0, 1, 1])), [[0.25, 0.75, 0.75], [0.5, 0.5, 0.5]])
    np.testing.assert_allclose(cache.topic_word_probs().sum(axis=1), 1.0)


def test_solver_status_is_logged(problem, caplog):
    embeddings, counts = problem
    caplog.set_level(logging.DEBUG, logger="lftm_jax.models.optimizer")

    estimate_topic_vector(0, np.zeros(3), np.zeros(12), embeddings, OptimizerConfig())
    estimate_topic_vector(1, np.zeros(3), counts, embeddings, OptimizerConfig(tolerance=1e-12, max_iters=1))

    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG]
    assert any(m.startswith("topic 0:") and "L-BFGS-B converged" in m for m in messages)
    assert any(m.startswith("topic 1:") and "L-BFGS-B stopped early" in m for m in messages)
