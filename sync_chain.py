# sync_chain.py runs the ArgoCD sync trigger for one admitted request, with bounded retries.

import logging
import random
import threading
import time
from typing import Callable, Optional

import requests

from argocd_client import ArgoCDClient
from config import RetrySettings
from models.sync_request import AttemptOutcome, DispatchAttempt, DispatchResult, DispatchStatus, SyncRequest
from retry import RetryState

logger = logging.getLogger(__name__)


def classify_status(status_code: int) -> AttemptOutcome:
    if 200 <= status_code < 300:
        return AttemptOutcome.SUCCESS
    if status_code >= 500:
        return AttemptOutcome.TRANSIENT_FAILURE
    # 4xx: the application is unknown or the request is malformed. 1xx/3xx are never expected here.
    return AttemptOutcome.PERMANENT_FAILURE


class SyncExecutor:
    """
    Runs the sync trigger for one admitted request, retrying transient failures.

    Blocking; meant to run in a worker thread. `sleep`, `clock` and `rand` are injectable
    so the retry schedule can be tested without a network or real waiting.
    """

    def __init__(
            self,
            client: ArgoCDClient,
            policy: RetrySettings,
            sleep: Optional[Callable[[float], object]] = None,
            clock: Callable[[], float] = time.monotonic,
            rand: Callable[[], float] = random.random,
    ):
        self.client = client
        self.policy = policy
        self._stopping = threading.Event()
        self._sleep = sleep or self._stopping.wait
        self._clock = clock
        self._rand = rand

    def stop(self):
        """Stop scheduling further retries. Attempts already on the wire finish normally."""
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def _attempt(self, request: SyncRequest, number: int) -> DispatchAttempt:
        started = self._clock()
        try:
            response = self.client.trigger_sync(request.application, request.revision)
        except requests.RequestException as e:
            return DispatchAttempt(
                application=request.application,
                delivery_id=request.delivery_id,
                attempt=number,
                outcome=AttemptOutcome.TRANSIENT_FAILURE,
                latency=self._clock() - started,
                error=f"{type(e).__name__}: {e}",
            )

        outcome = classify_status(response.status_code)
        error = None
        if outcome is not AttemptOutcome.SUCCESS:
            error = f"HTTP {response.status_code}: {response.text[:500]}"
        return DispatchAttempt(
            application=request.application,
            delivery_id=request.delivery_id,
            attempt=number,
            outcome=outcome,
            status_code=response.status_code,
            latency=self._clock() - started,
            error=error,
        )

    @staticmethod
    def _abandoned(request: SyncRequest, attempts) -> DispatchResult:
        return DispatchResult(
            request=request,
            status=DispatchStatus.UNKNOWN,
            attempts=attempts,
            reason="shutdown before sync was confirmed",
        )

    def execute(self, request: SyncRequest) -> DispatchResult:
        state = RetryState(self.policy, rand=self._rand)
        attempts = []

        while True:
            attempt = self._attempt(request, state.attempt + 1)
            attempts.append(attempt)
            state.record(attempt.outcome)
            logger.info(
                f"Sync attempt {attempt.attempt}/{self.policy.max_attempts} for '{request.application}' "
                f"(delivery {request.delivery_id}): {attempt.outcome.value}"
                + (f" [{attempt.error}]" if attempt.error else "")
            )

            if state.last_outcome is AttemptOutcome.SUCCESS:
                return DispatchResult(request=request, status=DispatchStatus.SUCCEEDED, attempts=attempts)

            if state.last_outcome is AttemptOutcome.PERMANENT_FAILURE:
                return DispatchResult(
                    request=request,
                    status=DispatchStatus.PERMANENTLY_FAILED,
                    attempts=attempts,
                    reason="rejected by ArgoCD",
                )

            if state.exhausted:
                return DispatchResult(
                    request=request,
                    status=DispatchStatus.PERMANENTLY_FAILED,
                    attempts=attempts,
                    reason="retries exhausted",
                )

            if self.stopping:
                return self._abandoned(request, attempts)

            delay = state.next_delay()
            logger.debug(f"Retrying '{request.application}' in {delay:.2f}s.")
            self._sleep(delay)
            # stop() wakes the backoff wait; no further attempt goes out after it.
            if self.stopping:
                return self._abandoned(request, attempts)
