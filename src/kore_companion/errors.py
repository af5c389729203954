"""Error taxonomy. Unknown ids are not errors: lookups return None."""

from __future__ import annotations


class CompanionError(Exception):
    """Base class for every error raised by kore-companion."""


class InputInvalid(CompanionError, ValueError):
    """Malformed id or out-of-range parameter. Raised before any state changes."""


class EvaluatorUnavailable(CompanionError):
    """The external language-model evaluator failed or timed out."""


class EmbeddingUnavailable(EvaluatorUnavailable):
    """The embedding provider failed. Callers skip the semantic contribution."""


class StorageError(CompanionError):
    """Persistence failure. Propagated to the caller, never retried here."""
