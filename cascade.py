"""
cascade.py - Model Cascade Module
Tries an ordered list of AI models until one succeeds, skipping models that
are rate-limited or missing and aborting on any other error.
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, List, NamedTuple, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXHAUSTED_HEADER = "All AI models are unavailable (quota exceeded or model not found). Please wait a minute and try again."
EXHAUSTED_HINT = (
    "Free tier rate limits reset every 60 seconds. "
    "If you sent many requests in a row, wait a minute before retrying."
)


class FailureKind(str, Enum):
    TRANSIENT_QUOTA = "transient-quota"
    NOT_FOUND = "not-found"
    FATAL = "fatal"


class MessagePatternClassifier:
    """
    Classifies an error by looking for marker substrings in its message.

    The upstream client's exception types are not relied on; only the text
    of the error is inspected, case-insensitively.
    """

    def __init__(
        self,
        quota_markers: Sequence[str] = ("429", "quota", "too many", "resource_exhausted", "resource exhausted"),
        not_found_markers: Sequence[str] = ("404", "not found"),
    ):
        self.quota_markers = tuple(m.lower() for m in quota_markers)
        self.not_found_markers = tuple(m.lower() for m in not_found_markers)

    def __call__(self, error: BaseException) -> FailureKind:
        message = str(error).lower()
        if any(marker in message for marker in self.quota_markers):
            return FailureKind.TRANSIENT_QUOTA
        if any(marker in message for marker in self.not_found_markers):
            return FailureKind.NOT_FOUND
        return FailureKind.FATAL


classify_error = MessagePatternClassifier()


class CascadeResult(NamedTuple):
    result: object
    candidate: str


class CascadeExhaustedError(Exception):
    """Raised when every candidate was skipped without a success."""

    def __init__(self, attempts: List[Tuple[str, FailureKind]]):
        self.attempts = list(attempts)
        details = " | ".join(f"{candidate}: {kind.value}" for candidate, kind in self.attempts)
        super().__init__(f"{EXHAUSTED_HEADER}\nDetails: {details}\n{EXHAUSTED_HINT}")


async def invoke_cascade(
    candidates: Sequence[str],
    operation: Callable[[str], Awaitable[T]],
    classify: Callable[[BaseException], FailureKind] = classify_error,
) -> CascadeResult:
    """
    Run `operation` against each candidate in order until one succeeds.

    Args:
        candidates: Model identifiers, most preferred first
        operation: Coroutine function performing one attempt for a candidate
        classify: Maps an attempt's error to a FailureKind

    Returns:
        CascadeResult(result, candidate) for the first successful attempt

    Raises:
        CascadeExhaustedError: If every candidate was skipped
        Exception: The first fatal error, unmodified
    """
    attempts: List[Tuple[str, FailureKind]] = []

    for candidate in candidates:
        try:
            result = await operation(candidate)
        except Exception as e:
            kind = classify(e)
            if kind is FailureKind.FATAL:
                raise
            logger.warning("Model %s unavailable (%s), trying next model", candidate, kind.value)
            attempts.append((candidate, kind))
            continue

        logger.info("Used model: %s", candidate)
        return CascadeResult(result, candidate)

    raise CascadeExhaustedError(attempts)


class ModelCascade:
    """An ordered candidate list bound to a classifier."""

    def __init__(self, candidates: Sequence[str], classify: Callable[[BaseException], FailureKind] = classify_error):
        if not candidates:
            raise ValueError("A model cascade needs at least one candidate model")
        self.candidates = tuple(candidates)
        self.classify = classify

    async def invoke(self, operation: Callable[[str], Awaitable[T]]) -> CascadeResult:
        return await invoke_cascade(self.candidates, operation, self.classify)
