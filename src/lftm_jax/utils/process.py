from __future__ import annotations

"""lftm_jax.utils.process
=================================

Loading helpers with two responsibilities:

1. **Corpus Pre‑processing** – turn whitespace-tokenised documents into the
   flat ``(word_ids, doc_ids, doc_ptrs)`` representation used by the count
   store and the Gibbs kernels.
2. **Word vectors** – read the plain-text embedding file into a dense
   ``(V, d)`` matrix aligned with the corpus vocabulary.
"""
import logging
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Union

import numpy as np

from lftm_jax.errors import CorpusFormatError, MissingWordVectorError, WordVectorFormatError

__all__ = [
    "Corpus",
    "build_vocab",
    "corpus_from_token_lists",
    "read_corpus",
    "read_word_vectors",
]

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

################################################################################
# 1. Corpus container ###########################################################
################################################################################

class Corpus(NamedTuple):
    """Minimal container for a tokenised corpus."""

    word_ids: np.ndarray               # shape (N,)
    doc_ids:  np.ndarray               # shape (N,)
    vocab:    List[str]
    doc_ptrs: np.ndarray               # shape (D + 1,)

    # Convenience helpers ----------------------------------------------------
    @property
    def num_tokens(self) -> int:  # noqa: D401 – short docstring is fine here
        """Total tokens N."""
        return int(self.word_ids.size)

    @property
    def num_docs(self) -> int:  # noqa: D401
        """Number of documents D."""
        return int(self.doc_ptrs.size - 1)

    @property
    def vocab_size(self) -> int:  # noqa: D401
        """Vocabulary size V."""
        return len(self.vocab)

    def doc_lengths(self) -> np.ndarray:
        return np.diff(self.doc_ptrs)

    def document(self, d: int) -> np.ndarray:
        """Word ids of document ``d`` (a view, do not mutate)."""
        return self.word_ids[self.doc_ptrs[d]:self.doc_ptrs[d + 1]]

    def word2id(self) -> Dict[str, int]:
        return {w: i for i, w in enumerate(self.vocab)}

################################################################################
# 2. Pre‑processing utilities ###################################################
################################################################################

def build_vocab(token_lists: Iterable[Sequence[str]]) -> List[str]:
    """Vocabulary in order of first appearance."""
    seen: Dict[str, int] = {}
    for toks in token_lists:
        for w in toks:
            if w not in seen:
                seen[w] = len(seen)
    return list(seen)


def corpus_from_token_lists(
    token_lists: Sequence[Sequence[str]],
    *,
    vocab: Optional[Sequence[str]] = None,
) -> Corpus:
    """Convert tokenised documents into a :class:`Corpus`.

    With ``vocab=None`` the vocabulary is built from ``token_lists``.  With a
    fixed vocabulary (inference on unseen data) tokens outside it are dropped,
    which may leave a document empty.
    """
    if vocab is None:
        vocab = build_vocab(token_lists)
    word2id = {w: i for i, w in enumerate(vocab)}

    # Map tokens to ids -------------------------------------------------------
    word_ids, doc_ids = [], []
    dropped = 0
    for d, toks in enumerate(token_lists):
        for w in toks:
            if w in word2id:
                word_ids.append(word2id[w])
                doc_ids.append(d)
            else:
                dropped += 1
    if dropped:
        logger.info("dropped %i tokens outside the vocabulary", dropped)

    word_ids = np.asarray(word_ids, dtype=np.int64)
    doc_ids  = np.asarray(doc_ids,  dtype=np.int64)

    # Document pointers for fast slicing -------------------------------------
    doc_lengths = np.bincount(doc_ids, minlength=len(token_lists))
    doc_ptrs    = np.concatenate([[0], np.cumsum(doc_lengths)]).astype(np.int64)

    return Corpus(word_ids, doc_ids, list(vocab), doc_ptrs)


def read_corpus(path: PathLike, *, vocab: Optional[Sequence[str]] = None) -> Corpus:
    """Read a one-document-per-line corpus file; blank lines are skipped."""
    logger.info("reading topic modeling corpus: %s", path)
    with open(path, encoding="utf-8") as fh:
        token_lists = [line.split() for line in fh if line.strip()]
    if not token_lists:
        raise CorpusFormatError(f"{path}: corpus contains no documents")

    corpus = corpus_from_token_lists(token_lists, vocab=vocab)
    if corpus.vocab_size == 0:
        raise CorpusFormatError(f"{path}: empty vocabulary")
    logger.info(
        "corpus size: %i docs, %i words; vocabulary size: %i",
        corpus.num_docs, corpus.num_tokens, corpus.vocab_size,
    )
    return corpus

################################################################################
# 3. Word vectors ##############################################################
################################################################################

def read_word_vectors(path: PathLike, vocab: Sequence[str]) -> np.ndarray:
    """Load ``token f_1 … f_d`` lines into a ``(V, d)`` matrix ordered by ``vocab``.

    The first non-blank line fixes ``d``.  Rows for words outside the
    vocabulary are skipped; every vocabulary word must end up with a non-zero
    vector.
    """
    logger.info("reading word vectors from %s", path)
    word2id = {w: i for i, w in enumerate(vocab)}
    vectors: Optional[np.ndarray] = None

    with open(path, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            elements = line.split()
            if not elements:
                continue
            if vectors is None:
                if len(elements) < 2:
                    raise WordVectorFormatError(f"{path}:{lineno}: no vector components")
                vectors = np.zeros((len(vocab), len(elements) - 1), dtype=np.float64)
            if len(elements) - 1 != vectors.shape[1]:
                raise WordVectorFormatError(
                    f"{path}:{lineno}: expected {vectors.shape[1]} components, got {len(elements) - 1}"
                )
            idx = word2id.get(elements[0])
            if idx is None:
                continue
            try:
                vectors[idx] = [float(x) for x in elements[1:]]
            except ValueError as err:
                raise WordVectorFormatError(f"{path}:{lineno}: {err}") from err
            if not np.isfinite(vectors[idx]).all():
                raise WordVectorFormatError(f"{path}:{lineno}: non-finite component")

    if vectors is None:
        raise WordVectorFormatError(f"{path}: no word vectors found")

    missing = np.flatnonzero(np.abs(vectors).sum(axis=1) == 0.0)
    if missing.size:
        raise MissingWordVectorError(vocab[int(missing[0])])

    logger.info("loaded %i word vectors of dimension %i", vectors.shape[0], vectors.shape[1])
    return vectors
