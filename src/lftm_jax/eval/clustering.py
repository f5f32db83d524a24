from __future__ import annotations

"""lftm_jax.eval.clustering
============================

Purity and normalised mutual information of a document clustering, as in
Manning, Raghavan & Schütze (2008), *Introduction to Information Retrieval*,
section 16.3.  Each document is put in the cluster of its most probable
topic (first one on ties) and compared with a gold label file holding one
label per line.
"""

import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, NamedTuple, Sequence, Set, Union

import numpy as np

from lftm_jax.errors import EvaluationError

__all__ = [
    "ClusterScores",
    "read_gold_labels",
    "read_doc_topic_clusters",
    "purity",
    "nmi",
    "score_files",
    "evaluate",
]

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
Clusters = Dict[str, Set[int]]


class ClusterScores(NamedTuple):
    purity: float
    nmi: float


def _group(labels: Sequence[str]) -> Clusters:
    clusters: Clusters = defaultdict(set)
    for doc, label in enumerate(labels):
        clusters[label].add(doc)
    return dict(clusters)


def read_gold_labels(path: PathLike) -> List[str]:
    logger.info("reading golden labels file %s", path)
    with open(path, encoding="utf-8") as fh:
        return [line.strip() for line in fh.read().splitlines()]


def read_doc_topic_clusters(path: PathLike) -> List[str]:
    """``Topic_<argmax>`` for every row of a theta file."""
    logger.info("reading document-to-topic distribution file %s", path)
    labels = []
    with open(path, encoding="utf-8") as fh:
        for line in fh.read().splitlines():
            probs = np.asarray([float(x) for x in line.split()])
            labels.append(f"Topic_{int(np.argmax(probs)) if probs.size else -1}")
    return labels


def purity(gold: Clusters, output: Clusters, num_docs: int) -> float:
    correct = sum(
        max(len(docs & gold_docs) for gold_docs in gold.values())
        for docs in output.values()
    )
    return correct / num_docs


def nmi(gold: Clusters, output: Clusters, num_docs: int) -> float:
    mutual_info = 0.0
    for docs in output.values():
        for gold_docs in gold.values():
            overlap = len(docs & gold_docs)
            if overlap == 0:
                continue
            mutual_info += overlap / num_docs * np.log(overlap * num_docs / (len(docs) * len(gold_docs)))

    entropy = 0.0
    for clusters in (output, gold):
        for docs in clusters.values():
            p = len(docs) / num_docs
            entropy -= p * np.log(p)
    return 2.0 * mutual_info / entropy if entropy > 0 else 0.0


def score_files(label_path: PathLike, theta_path: PathLike) -> ClusterScores:
    gold_labels = read_gold_labels(label_path)
    output_labels = read_doc_topic_clusters(theta_path)
    if len(gold_labels) != len(output_labels):
        raise EvaluationError(
            f"{theta_path} has {len(output_labels)} documents but {label_path} has {len(gold_labels)} labels"
        )
    num_docs = len(gold_labels)
    if num_docs == 0:
        raise EvaluationError(f"{label_path} holds no labels")
    gold, output = _group(gold_labels), _group(output_labels)
    scores = ClusterScores(purity(gold, output, num_docs), nmi(gold, output, num_docs))
    logger.info("purity %.4f, NMI %.4f", scores.purity, scores.nmi)
    return scores


def evaluate(label_path: PathLike, directory: PathLike, suffix: str) -> Dict[str, ClusterScores]:
    """Score every file in ``directory`` ending with ``suffix``.

    Writes ``<directory>/<suffix>.PurityNMI`` with per-file scores and the
    mean and standard deviation over files.
    """
    directory = Path(directory)
    report = directory / f"{suffix}.PurityNMI"
    files = sorted(p for p in directory.iterdir() if p.is_file() and p.name.endswith(suffix) and p != report)
    if not files:
        raise EvaluationError(f"there is no file ending with {suffix} in {directory}")

    results: Dict[str, ClusterScores] = {}
    lines = [f"Golden-labels in: {label_path}", ""]
    for path in files:
        scores = score_files(label_path, path)
        results[str(path.resolve())] = scores
        lines += [
            f"Results for: {path.resolve()}",
            f"\tPurity: {scores.purity}",
            f"\tNMI: {scores.nmi}",
        ]

    purities = np.asarray([s.purity for s in results.values()])
    nmis = np.asarray([s.nmi for s in results.values()])
    summary = [
        f"Mean purity: {purities.mean()}, standard deviation: {purities.std()}",
        f"Mean NMI: {nmis.mean()}, standard deviation: {nmis.std()}",
    ]
    for line in summary:
        logger.info(line)
    lines += ["", "---"] + summary

    with open(report, "w", encoding="utf-8") as fh:
        fh.write("\n".join(lines) + "\n")
    return results
