from __future__ import annotations

"""Count-store bookkeeping: initialisation, replay and leave-one-out updates."""

import numpy as np
import pytest

from lftm_jax.errors import AssignmentConsistencyError
from lftm_jax.models.counts import DocTopicState, TokenTopicState, TopicWordCounts, encode


def _snapshot(state):
    arrays = [state.z, state.words.lf, state.words.lf_sum, state.words.dm, state.words.dm_sum]
    if isinstance(state, TokenTopicState):
        arrays += [state.n_dk, state.n_d]
    else:
        arrays += [state.n_k, state.doc_topic]
    return [a.copy() for a in arrays]


def test_encode_roundtrip_of_topic_and_component():
    assert encode(1, True, 3) == 1
    assert encode(1, False, 3) == 4
    assert encode(np.array([0, 2]), np.array([False, True]), 3).tolist() == [3, 2]


@pytest.mark.parametrize("cls", [TokenTopicState, DocTopicState])
def test_random_init_is_consistent(cls, small_corpus):
    state = cls.init_random(small_corpus, 2, np.random.default_rng(0))
    state.check_invariants()
    assert ((state.z >= 0) & (state.z < 4)).all()
    assert state.words.lf_sum.sum() + state.words.dm_sum.sum() == small_corpus.num_tokens


def test_token_state_doc_counts_sum_to_lengths(small_corpus):
    state = TokenTopicState.init_random(small_corpus, 3, np.random.default_rng(1))
    assert state.n_dk.sum(axis=1).tolist() == [4, 3, 5]


def test_doc_state_shares_topic_within_document(small_corpus):
    state = DocTopicState.init_random(small_corpus, 3, np.random.default_rng(2))
    for d in range(small_corpus.num_docs):
        topics = set((np.asarray(state.assignments()[d]) % 3).tolist())
        assert topics == {int(state.doc_topic[d])}
    assert state.n_k.sum() == small_corpus.num_docs


def test_token_decrement_increment_is_identity(small_corpus):
    state = TokenTopicState.init_random(small_corpus, 2, np.random.default_rng(3))
    for idx in range(small_corpus.num_tokens):
        before = _snapshot(state)
        value = int(state.z[idx])
        state.decrement(idx)
        state.increment(idx, value)
        for a, b in zip(before, _snapshot(state)):
            assert np.array_equal(a, b)


def test_doc_decrement_increment_is_identity(small_corpus):
    state = DocTopicState.init_random(small_corpus, 2, np.random.default_rng(4))
    for d in range(small_corpus.num_docs):
        before = _snapshot(state)
        topic, mask = int(state.doc_topic[d]), state.components(d).copy()
        state.decrement(d)
        state.increment(d, topic, mask)
        for a, b in zip(before, _snapshot(state)):
            assert np.array_equal(a, b)


def test_token_decrement_retracts_exactly_one_cell(small_corpus):
    state = TokenTopicState.init_random(small_corpus, 2, np.random.default_rng(5))
    value = int(state.z[0])
    topic, word = value % 2, small_corpus.word_ids[0]
    table = state.words.lf if value < 2 else state.words.dm
    before_cell, before_doc = table[topic, word], state.n_dk[0, topic]
    state.decrement(0)
    assert table[topic, word] == before_cell - 1
    assert state.n_dk[0, topic] == before_doc - 1


def test_doc_decrement_retracts_whole_document(small_corpus):
    state = DocTopicState.init_random(small_corpus, 2, np.random.default_rng(6))
    topic = int(state.doc_topic[2])
    total_before = state.words.lf_sum[topic] + state.words.dm_sum[topic]
    state.decrement(2)
    assert state.words.lf_sum[topic] + state.words.dm_sum[topic] == total_before - 5
    assert state.n_k.sum() == small_corpus.num_docs - 1


@pytest.mark.parametrize("cls", [TokenTopicState, DocTopicState])
def test_replay_reproduces_counts(cls, small_corpus):
    state = cls.init_random(small_corpus, 3, np.random.default_rng(8))
    replayed = cls.from_assignments(small_corpus, 3, state.assignments())
    replayed.check_invariants()
    assert np.array_equal(replayed.z, state.z)
    assert np.array_equal(replayed.words.lf, state.words.lf)
    assert np.array_equal(replayed.words.dm, state.words.dm)


def test_token_replay_from_hand_written_rows(small_corpus):
    rows = [[0, 2, 1, 3], [1, 1, 2], [0, 0, 3, 3, 2]]
    state = TokenTopicState.from_assignments(small_corpus, 2, rows)
    # word a (id 0): doc0 pos0 -> (t0, LF), doc0 pos3 -> (t1, DM), doc2 pos3 -> (t1, DM)
    assert state.words.lf[0, 0] == 1
    assert state.words.dm[1, 0] == 2
    assert state.n_dk.tolist() == [[2, 2], [1, 2], [3, 2]]


@pytest.mark.parametrize("cls", [TokenTopicState, DocTopicState])
def test_replay_rejects_wrong_document_count(cls, small_corpus):
    with pytest.raises(AssignmentConsistencyError):
        cls.from_assignments(small_corpus, 2, [[0, 0, 0, 0], [0, 0, 0]])


@pytest.mark.parametrize("cls", [TokenTopicState, DocTopicState])
def test_replay_rejects_wrong_token_count(cls, small_corpus):
    with pytest.raises(AssignmentConsistencyError):
        cls.from_assignments(small_corpus, 2, [[0, 0, 0, 0], [0, 0, 0], [0, 0, 0, 0]])


def test_replay_rejects_out_of_range_values(small_corpus):
    with pytest.raises(AssignmentConsistencyError):
        TokenTopicState.from_assignments(small_corpus, 2, [[0, 0, 0, 4], [0, 0, 0], [0, 0, 0, 0, 0]])


def test_doc_replay_rejects_mixed_topics(small_corpus):
    with pytest.raises(AssignmentConsistencyError):
        DocTopicState.from_assignments(small_corpus, 2, [[0, 1, 0, 0], [0, 0, 0], [1, 1, 1, 1, 1]])


def test_base_counts_are_kept_under_the_corpus(small_corpus):
    base = TopicWordCounts.zeros(2, small_corpus.vocab_size)
    base.add(0, 4, True, 7)
    base.add(1, 2, False, 3)
    state = TokenTopicState.init_random(small_corpus, 2, np.random.default_rng(9), base=base)
    state.check_invariants(base=base)
    assert state.words.lf_sum.sum() + state.words.dm_sum.sum() == small_corpus.num_tokens + 10
    # the base table itself is not mutated
    assert base.lf_sum.tolist() == [7, 0]
