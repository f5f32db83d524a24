"""Exception types raised by :pymod:`lftm_jax`."""

__all__ = [
    "LFTMError",
    "CorpusFormatError",
    "WordVectorFormatError",
    "MissingWordVectorError",
    "AssignmentConsistencyError",
    "ManifestError",
    "InvalidOptimizableError",
    "TopicVectorOptimizationError",
    "EvaluationError",
]


class LFTMError(Exception):
    """Base class for every error raised by this package."""


class CorpusFormatError(LFTMError, ValueError):
    """The corpus file could not be turned into a usable corpus."""


class WordVectorFormatError(LFTMError, ValueError):
    """A line of the word-vector file is malformed."""


class MissingWordVectorError(LFTMError, ValueError):
    """A vocabulary word has no (or an all-zero) embedding."""

    def __init__(self, word: str):
        super().__init__(f'The word "{word}" does not have a corresponding vector')
        self.word = word


class AssignmentConsistencyError(LFTMError, ValueError):
    """Persisted topic assignments do not match the corpus they are replayed on."""


class ManifestError(LFTMError, ValueError):
    """A ``.paras`` manifest is missing keys or describes another model."""


class InvalidOptimizableError(LFTMError, ArithmeticError):
    """The topic-vector objective or its gradient became non-finite."""


class TopicVectorOptimizationError(LFTMError, RuntimeError):
    """Regularisation escalation gave up on a topic."""

    def __init__(self, topic: int, attempts: int, l2: float):
        super().__init__(
            f"topic {topic}: optimisation still invalid after {attempts} attempts (last L2 = {l2:g})"
        )
        self.topic = topic
        self.attempts = attempts
        self.l2 = l2


class EvaluationError(LFTMError, ValueError):
    """Gold labels and document-topic rows cannot be paired."""
