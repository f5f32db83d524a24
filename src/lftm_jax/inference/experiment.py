from __future__ import annotations

"""lftm_jax.inference.experiment
=================================

File-to-file runs: load the corpus and the word vectors, build the model,
sample, and write the artefacts of :pymod:`lftm_jax.utils.output` next to
the corpus.

* :func:`train` fits LF-LDA or LF-DMM from scratch (or from a persisted
  assignment file).
* :func:`infer` samples an unseen corpus on top of the counts of a trained
  model described by its ``.paras`` manifest.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Type, Union

from lftm_jax.errors import ManifestError
from lftm_jax.inference.sampler import GibbsSampler, SamplerConfig
from lftm_jax.models.base import LatentFeatureModel
from lftm_jax.models.lfdmm import LFDMMModel
from lftm_jax.models.lflda import LFLDAModel
from lftm_jax.utils.output import (
    RunManifest,
    read_parameters,
    read_topic_assignments,
    write_outputs,
    write_parameters,
)
from lftm_jax.utils.process import read_corpus, read_word_vectors

__all__ = ["MODELS", "train", "infer"]

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

MODELS: Dict[str, Type[LatentFeatureModel]] = {
    LFLDAModel.name: LFLDAModel,
    LFDMMModel.name: LFDMMModel,
}


def _model_class(name: str) -> Type[LatentFeatureModel]:
    try:
        return MODELS[name]
    except KeyError:
        raise ManifestError(f"unknown model {name!r}; expected one of {sorted(MODELS)}") from None


def _snapshot_writer(folder: Path, name: str, top_words: int):
    def _write(iteration: int, sampler: GibbsSampler) -> None:
        write_outputs(sampler, folder, f"{name}-{iteration}", top_words)
    return _write


def train(
    model_name: str,
    corpus_path: PathLike,
    vectors_path: PathLike,
    *,
    num_topics: int = 20,
    alpha: float = 0.1,
    beta: float = 0.01,
    lam: float = 0.6,
    top_words: int = 20,
    name: str = "model",
    init_file: Optional[PathLike] = None,
    config: Optional[SamplerConfig] = None,
) -> GibbsSampler:
    """Fit a model and write ``<name>.*`` into the corpus folder."""
    model_cls = _model_class(model_name)
    config = config or SamplerConfig()

    corpus = read_corpus(corpus_path)
    embeddings = read_word_vectors(vectors_path, corpus.vocab)
    model = model_cls(num_topics, corpus.vocab_size, alpha, beta, lam)
    assignments = read_topic_assignments(init_file) if init_file else None
    logger.info(
        "%s: %i topics, alpha=%g, beta=%g, lambda=%g, %i initial + %i EM iterations, %i top words",
        model.name, num_topics, alpha, beta, lam, config.num_init_iters, config.num_iters, top_words,
    )

    folder = Path(corpus_path).parent
    sampler = GibbsSampler(
        corpus, model, embeddings, config,
        assignments=assignments,
        snapshot=_snapshot_writer(folder, name, top_words),
    )
    sampler.run()

    manifest = RunManifest(
        model=model.name, corpus=str(corpus_path), vectors=str(vectors_path), ntopics=num_topics,
        alpha=alpha, beta=beta, lambda_=lam, initers=config.num_init_iters, niters=config.num_iters,
        twords=top_words, name=name, initFile=str(init_file or ""), sstep=config.save_step,
    )
    write_parameters(folder / f"{name}.paras", manifest)
    write_outputs(sampler, folder, name, top_words)
    return sampler


def infer(
    paras_path: PathLike,
    corpus_path: PathLike,
    *,
    top_words: int = 20,
    name: str = "model",
    model_name: Optional[str] = None,
    config: Optional[SamplerConfig] = None,
) -> GibbsSampler:
    """Sample an unseen corpus against a trained model.

    The training corpus and its ``<name>.topicAssignments`` are located from
    the manifest; their topic-word counts stay in the tables while the new
    corpus is sampled.  Words of the unseen corpus outside the training
    vocabulary are dropped.  With ``model_name`` set, a manifest of another
    model type is rejected.
    """
    config = config or SamplerConfig()
    trained = read_parameters(paras_path, expected_model=model_name)
    model_cls = _model_class(trained.model)

    logger.info("loading pre-trained %s model from %s", trained.model, paras_path)
    train_corpus = read_corpus(trained.corpus)
    model = model_cls(trained.ntopics, train_corpus.vocab_size, trained.alpha, trained.beta, trained.lambda_)
    train_state = model.state_from_assignments(train_corpus, read_topic_assignments(trained.assignments_path()))

    corpus = read_corpus(corpus_path, vocab=train_corpus.vocab)
    embeddings = read_word_vectors(trained.vectors, corpus.vocab)

    folder = Path(corpus_path).parent
    sampler = GibbsSampler(
        corpus, model, embeddings, config,
        base=train_state.words,
        snapshot=_snapshot_writer(folder, name, top_words),
    )
    sampler.run()

    manifest = RunManifest(
        model=model.name, corpus=str(corpus_path), vectors=trained.vectors, ntopics=trained.ntopics,
        alpha=trained.alpha, beta=trained.beta, lambda_=trained.lambda_, initers=config.num_init_iters,
        niters=config.num_iters, twords=top_words, name=name, sstep=config.save_step,
    )
    write_parameters(folder / f"{name}.paras", manifest)
    write_outputs(sampler, folder, name, top_words)
    return sampler
