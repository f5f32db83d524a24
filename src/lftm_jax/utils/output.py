from __future__ import annotations

"""lftm_jax.utils.output
=========================

Plain-text artefacts of a run, all written next to the corpus:

============================ ==================================================
file                          content
============================ ==================================================
``<name>.paras``              tab-separated ``-key value`` run manifest
``<name>.topicAssignments``   one line per document, encoded assignment values
``<name>.theta``              document-topic distribution, one row per document
``<name>.phi``                topic-word distribution, one row per topic
``<name>.topWords``           ``Topic<t>: w1 w2 …``, most probable words first
``<name>.topicVectors``       one topic vector per line
============================ ==================================================
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Union

import numpy as np

from lftm_jax.errors import AssignmentConsistencyError, ManifestError

if TYPE_CHECKING:
    from lftm_jax.inference.sampler import GibbsSampler

__all__ = [
    "RunManifest",
    "write_parameters",
    "read_parameters",
    "write_topic_assignments",
    "read_topic_assignments",
    "write_matrix",
    "write_top_words",
    "write_outputs",
]

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

################################################################################
# Manifest #####################################################################
################################################################################

@dataclass
class RunManifest:
    """Everything needed to rebuild a trained model's counts."""

    model: str
    corpus: str
    vectors: str
    ntopics: int
    alpha: float
    beta: float
    lambda_: float
    initers: int
    niters: int
    twords: int
    name: str
    initFile: str = ""
    sstep: int = 0

    _KEYS = {"lambda_": "lambda"}

    @classmethod
    def _key(cls, attr: str) -> str:
        return "-" + cls._KEYS.get(attr, attr)

    def to_lines(self) -> List[str]:
        lines = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "initFile" and not value:
                continue
            if f.name == "sstep" and not value:
                continue
            lines.append(f"{self._key(f.name)}\t{value}")
        return lines

    @classmethod
    def from_mapping(cls, paras: Dict[str, str]) -> "RunManifest":
        kwargs = {}
        for f in fields(cls):
            raw = paras.get(cls._key(f.name))
            if raw is None:
                if f.name in ("initFile", "sstep"):
                    continue
                raise ManifestError(f"manifest is missing {cls._key(f.name)}")
            try:
                kwargs[f.name] = _CASTS[f.name](raw)
            except ValueError as err:
                raise ManifestError(f"bad value for {cls._key(f.name)}: {raw!r}") from err
        return cls(**kwargs)

    @property
    def folder(self) -> Path:
        return Path(self.corpus).parent

    def assignments_path(self) -> Path:
        return self.folder / f"{self.name}.topicAssignments"


_CASTS = {
    "model": str, "corpus": str, "vectors": str, "name": str, "initFile": str,
    "ntopics": int, "initers": int, "niters": int, "twords": int, "sstep": int,
    "alpha": float, "beta": float, "lambda_": float,
}


def write_parameters(path: PathLike, manifest: RunManifest) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        fh.write("\n".join(manifest.to_lines()))


def read_parameters(path: PathLike, *, expected_model: Optional[str] = None) -> RunManifest:
    paras: Dict[str, str] = {}
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            parts = line.split()
            if not parts:
                continue
            if len(parts) < 2:
                raise ManifestError(f"{path}: no value for {parts[0]}")
            paras[parts[0]] = parts[1]
    manifest = RunManifest.from_mapping(paras)
    if expected_model is not None and manifest.model != expected_model:
        raise ManifestError(f"{path}: trained model is {manifest.model}, not {expected_model}")
    return manifest

################################################################################
# Assignments ##################################################################
################################################################################

def write_topic_assignments(path: PathLike, assignments: Sequence[Sequence[int]]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for row in assignments:
            fh.write(" ".join(str(v) for v in row))
            fh.write("\n")


def read_topic_assignments(path: PathLike) -> List[List[int]]:
    """One row of integers per line."""
    logger.info("reading topic-assignment file %s", path)
    with open(path, encoding="utf-8") as fh:
        lines = fh.read().splitlines()
    rows = []
    for lineno, line in enumerate(lines, start=1):
        try:
            rows.append([int(v) for v in line.split()])
        except ValueError as err:
            raise AssignmentConsistencyError(f"{path}:{lineno}: {err}") from err
    return rows

################################################################################
# Distributions ################################################################
################################################################################

def write_matrix(path: PathLike, matrix: np.ndarray) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for row in np.atleast_2d(matrix):
            fh.write(" ".join(repr(float(x)) for x in row))
            fh.write("\n")


def write_top_words(path: PathLike, top_words: Sequence[Sequence[str]]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for t, words in enumerate(top_words):
            fh.write(f"Topic{t}: " + " ".join(words) + "\n")


def write_outputs(sampler: "GibbsSampler", folder: PathLike, name: str, top_words: int) -> None:
    """Write topWords, theta, topicAssignments, phi and topicVectors for ``name``."""
    folder = Path(folder)
    logger.info("writing outputs for %s to %s", name, folder)
    write_top_words(folder / f"{name}.topWords", sampler.top_words(top_words))
    write_matrix(folder / f"{name}.theta", sampler.posterior_theta())
    write_topic_assignments(folder / f"{name}.topicAssignments", sampler.topic_assignments())
    write_matrix(folder / f"{name}.phi", sampler.posterior_phi())
    write_matrix(folder / f"{name}.topicVectors", sampler.topic_vectors)
