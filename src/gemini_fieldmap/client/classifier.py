"""Remote classification with bounded retries.

``ClassifierClient`` wraps one ``ClassificationAdapter`` with a per-attempt
timeout, exponential backoff with jitter and a closed failure taxonomy. The
caller owns the rate-limiter token: the client checks it is live but never
releases it, so however many retries happen the call occupies exactly one
permit.

Each call walks a small state machine::

    PENDING -> RESOLVED
    PENDING -> RETRYING(n) -> ... -> RESOLVED | FAILED
    PENDING -> FAILED           (non-transient failure)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
import logging
import random

from gemini_fieldmap.core.exceptions import (
    NonTransientRemoteFailure,
    TransientRemoteFailure,
)
from gemini_fieldmap.core.models import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_TIMEOUT_SECONDS,
)
from gemini_fieldmap.core.types import (
    ClassificationRequest,
    ClassificationResult,
    FailureReason,
    ResultSource,
)
from gemini_fieldmap.telemetry import (
    C_REMOTE_CALL,
    T_REMOTE,
    TelemetryContext,
    TelemetryContextProtocol,
)

from .adapters import ClassificationAdapter
from .prompts import parse_classification_response
from .rate_limiter import RateLimiterToken

log = logging.getLogger(__name__)

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "429",
    "rate limit",
    "temporarily",
    "unavailable",
)


class AttemptState(str, Enum):
    """Lifecycle of one remote classification."""

    PENDING = "pending"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass
class ClassificationAttempt:
    """Mutable bookkeeping for a single ``classify`` call."""

    fingerprint: str
    state: AttemptState = AttemptState.PENDING
    attempts: int = 0
    last_failure: FailureReason | None = None
    last_error: str | None = None

    def retry(self, reason: FailureReason, error: str) -> None:
        """Record a transient failure and move to RETRYING."""
        self.state = AttemptState.RETRYING
        self.last_failure = reason
        self.last_error = error

    def fail(self, reason: FailureReason, error: str) -> None:
        """Terminal failure."""
        self.state = AttemptState.FAILED
        self.last_failure = reason
        self.last_error = error

    def resolve(self) -> None:
        """Terminal success."""
        self.state = AttemptState.RESOLVED


def is_transient_error(err: BaseException) -> bool:
    """Classify an exception as retryable.

    Typed failures decide by type. Anything else falls back to a text
    heuristic over the message (timeouts, 429, "unavailable", ...).
    """
    if isinstance(err, NonTransientRemoteFailure):
        return False
    if isinstance(err, TransientRemoteFailure | TimeoutError | ConnectionError):
        return True
    text = str(err).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def backoff_delay(
    retry_number: int,
    base_delay: float,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay before retry ``retry_number`` (1-based): doubles, plus 0-25% jitter."""
    return base_delay * (2 ** (retry_number - 1)) * (1 + 0.25 * rng())


class ClassifierClient:
    """Classifies single fields remotely, retrying transient failures."""

    def __init__(
        self,
        adapter: ClassificationAdapter,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        telemetry: TelemetryContextProtocol | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Create a client.

        Args:
            adapter: Provider adapter performing one outbound call.
            timeout_seconds: Bound on each individual attempt.
            max_retries: Total attempts allowed per call (first try included).
            base_delay: Backoff base in seconds.
            telemetry: Optional telemetry context.
            sleep: Awaitable sleep used between attempts.
            rng: Jitter source returning floats in ``[0, 1)``.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._adapter = adapter
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._telemetry = telemetry or TelemetryContext()
        self._sleep = sleep
        self._rng = rng

    @property
    def adapter(self) -> ClassificationAdapter:
        """The provider adapter in use."""
        return self._adapter

    async def classify(
        self,
        request: ClassificationRequest,
        token: RateLimiterToken,
    ) -> ClassificationResult:
        """Classify one field; failures come back as ``UNRESOLVED`` results.

        Raises:
            ValueError: If ``token`` has already been released.
        """
        if token.released:
            raise ValueError("classify() requires a live rate-limiter token")

        attempt = ClassificationAttempt(fingerprint=request.fingerprint)
        with self._telemetry(T_REMOTE, fingerprint=request.fingerprint) as tele:
            while True:
                if attempt.state is AttemptState.RETRYING:
                    delay = backoff_delay(attempt.attempts, self._base_delay, self._rng)
                    log.debug(
                        "Retrying %s in %.2fs after %s",
                        request.fingerprint,
                        delay,
                        attempt.last_failure,
                    )
                    await self._sleep(delay)
                attempt.attempts += 1
                tele.count(C_REMOTE_CALL)
                result = await self._attempt(request, attempt)
                if result is not None:
                    return result
                if attempt.attempts >= self._max_retries:
                    attempt.fail(
                        attempt.last_failure or FailureReason.TRANSIENT,
                        attempt.last_error or "retries exhausted",
                    )
                if attempt.state is AttemptState.FAILED:
                    log.info(
                        "Classification of %s failed after %d attempt(s): %s",
                        request.fingerprint,
                        attempt.attempts,
                        attempt.last_error,
                    )
                    return ClassificationResult.unresolved(
                        request.fingerprint,
                        attempt.last_failure or FailureReason.NON_TRANSIENT,
                        attempt.last_error,
                    )

    async def _attempt(
        self,
        request: ClassificationRequest,
        attempt: ClassificationAttempt,
    ) -> ClassificationResult | None:
        """Run one attempt; returns a result on success, None otherwise."""
        try:
            async with asyncio.timeout(self._timeout):
                raw = await self._adapter.classify(request)
            parsed = parse_classification_response(raw)
        except TimeoutError:
            attempt.retry(
                FailureReason.TIMEOUT, f"attempt timed out after {self._timeout:g}s"
            )
            return None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if is_transient_error(e):
                attempt.retry(FailureReason.TRANSIENT, str(e) or type(e).__name__)
            else:
                attempt.fail(FailureReason.NON_TRANSIENT, str(e) or type(e).__name__)
            return None

        attempt.resolve()
        return ClassificationResult(
            fingerprint=request.fingerprint,
            category=parsed.category,
            confidence=parsed.confidence,
            source=ResultSource.REMOTE,
        )
