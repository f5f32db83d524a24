from __future__ import annotations

"""File-to-file training, inference and the command line."""

import numpy as np
import pytest

from lftm_jax.cli import main
from lftm_jax.errors import ManifestError
from lftm_jax.inference.experiment import infer, train
from lftm_jax.inference.sampler import SamplerConfig
from lftm_jax.utils.output import read_parameters, read_topic_assignments

CORPUS = "a b c a\nd e b\n\nc c e a d\n"
OUTPUTS = ("topWords", "theta", "phi", "topicAssignments", "topicVectors", "paras")


def _config(**kw):
    base = dict(num_init_iters=2, num_iters=2, seed=0, show_progress=False, num_workers=1)
    base.update(kw)
    return SamplerConfig(**base)


@pytest.fixture
def files(tmp_path):
    corpus = tmp_path / "corpus.txt"
    corpus.write_text(CORPUS, encoding="utf-8")
    rng = np.random.default_rng(3)
    vectors = tmp_path / "vectors.txt"
    with open(vectors, "w", encoding="utf-8") as fh:
        for word in ["e", "d", "c", "b", "a", "unused"]:
            fh.write(word + " " + " ".join(f"{x:.6f}" for x in rng.normal(size=4)) + "\n")
    return corpus, vectors


def test_train_writes_outputs_and_snapshots(files, tmp_path):
    corpus, vectors = files
    sampler = train(
        "LFLDA", corpus, vectors, num_topics=2, top_words=3, name="run", config=_config(save_step=1),
    )

    for ext in OUTPUTS:
        assert (tmp_path / f"run.{ext}").is_file()
    assert (tmp_path / "run-1.theta").is_file()
    assert not (tmp_path / "run-2.theta").exists()

    theta = np.loadtxt(tmp_path / "run.theta")
    assert theta.shape == (3, 2)
    np.testing.assert_allclose(theta.sum(axis=1), 1.0, rtol=1e-9)
    assert np.loadtxt(tmp_path / "run.phi").shape == (2, 5)
    assert np.loadtxt(tmp_path / "run.topicVectors").shape == (2, 4)

    lines = (tmp_path / "run.topWords").read_text(encoding="utf-8").splitlines()
    assert [line.split(":")[0] for line in lines] == ["Topic0", "Topic1"]
    assert all(len(line.split()) == 4 for line in lines)

    assert read_topic_assignments(tmp_path / "run.topicAssignments") == sampler.topic_assignments()
    manifest = read_parameters(tmp_path / "run.paras")
    assert manifest.model == "LFLDA" and manifest.ntopics == 2 and manifest.sstep == 1


def test_infer_on_unseen_corpus_uses_training_vocabulary(files, tmp_path):
    corpus, vectors = files
    train("LFLDA", corpus, vectors, num_topics=2, name="run", config=_config())

    unseen = tmp_path / "unseen.txt"
    unseen.write_text("a zebra b\ne e\n", encoding="utf-8")
    sampler = infer(tmp_path / "run.paras", unseen, name="runinf", config=_config())

    assert sampler.corpus.vocab == ["a", "b", "c", "d", "e"]
    assert sampler.corpus.num_tokens == 4
    rows = read_topic_assignments(tmp_path / "runinf.topicAssignments")
    assert [len(r) for r in rows] == [2, 2]
    # training counts stay under the unseen corpus' own counts
    words = sampler.state.words
    assert words.lf_sum.sum() + words.dm_sum.sum() == 12 + 4
    assert read_parameters(tmp_path / "runinf.paras").corpus == str(unseen)


def test_infer_rejects_manifest_of_other_model(files, tmp_path):
    corpus, vectors = files
    train("LFLDA", corpus, vectors, num_topics=2, name="run", config=_config())
    with pytest.raises(ManifestError):
        infer(tmp_path / "run.paras", corpus, name="x", model_name="LFDMM", config=_config())


def test_lfdmm_restarts_from_its_own_assignments(files, tmp_path):
    corpus, vectors = files
    first = train("LFDMM", corpus, vectors, num_topics=3, name="first", config=_config())
    second = train(
        "LFDMM", corpus, vectors, num_topics=3, name="second",
        init_file=tmp_path / "first.topicAssignments", config=_config(num_init_iters=0, num_iters=0),
    )
    assert second.topic_assignments() == first.topic_assignments()
    assert read_parameters(tmp_path / "second.paras").initFile == str(tmp_path / "first.topicAssignments")


def test_cli_trains_and_evaluates(files, tmp_path):
    corpus, vectors = files
    code = main([
        "-model", "LFDMM", "-corpus", str(corpus), "-vectors", str(vectors), "-ntopics", "2",
        "-initers", "2", "-niters", "1", "-name", "cli", "--no-progress", "--workers", "1",
    ])
    assert code == 0
    assert (tmp_path / "cli.theta").is_file()

    (tmp_path / "corpus.LABEL").write_text("x\ny\nx\n", encoding="utf-8")
    code = main(["-model", "Eval", "-label", str(tmp_path / "corpus.LABEL"), "-dir", str(tmp_path), "-prob", "theta"])
    assert code == 0
    report = (tmp_path / "theta.PurityNMI").read_text(encoding="utf-8")
    assert "Mean purity" in report and "Mean NMI" in report


def test_cli_reports_missing_files(tmp_path):
    code = main([
        "--model", "LFLDA", "--corpus", str(tmp_path / "nope.txt"), "--vectors", str(tmp_path / "nope.vec"),
        "--no-progress",
    ])
    assert code == 1


def test_cli_requires_vectors_for_training(files):
    corpus, _ = files
    with pytest.raises(SystemExit):
        main(["-model", "LFLDA", "-corpus", str(corpus)])
