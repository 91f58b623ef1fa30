# pipeline.py carries each delivery from the signature check through to the ArgoCD sync call.

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Set

from argocd_client import ArgoCDClient
from classifier import classify
from config import Settings
from dedupe import DedupeWindow, GateDecision
from event_log import EventLog
from models.github_webhook import WebhookEvent
from models.sync_request import DispatchResult, DispatchStatus, EventRecord, JourneyOutcome, SyncRequest
from notifications import Notifications
from sync_chain import SyncExecutor
from utils import SignatureCheck, verify_signature

logger = logging.getLogger(__name__)

_DISPATCH_OUTCOMES = {
    DispatchStatus.SUCCEEDED: JourneyOutcome.SUCCEEDED,
    DispatchStatus.PERMANENTLY_FAILED: JourneyOutcome.PERMANENTLY_FAILED,
    DispatchStatus.UNKNOWN: JourneyOutcome.UNKNOWN,
}


class DispatchPipeline:
    """
    Verify -> classify -> gate -> dispatch for every delivery handed to `submit`.

    One pipeline per running app: it owns the debounce window, the executor and every
    background task it starts, and `shutdown` tears all of them down.
    """

    def __init__(
            self,
            settings: Settings,
            executor: Optional[SyncExecutor] = None,
            notifier: Optional[Notifications] = None,
            window: Optional[DedupeWindow] = None,
            event_log: Optional[EventLog] = None,
            clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.executor = executor or SyncExecutor(ArgoCDClient(settings.argocd), settings.retry)
        self.notifier = notifier or Notifications(settings.notifications)
        self.window = window or DedupeWindow(settings.debounce_seconds, settings.dedupe_idle_ttl_seconds, clock=clock)
        self.event_log = event_log or EventLog(settings.event_log_size)
        # Dispatch threads sleep through retry backoff, so they get a pool of their own.
        self._pool = ThreadPoolExecutor(max_workers=settings.dispatch_workers, thread_name_prefix="sync-dispatch")
        self._tasks: Set[asyncio.Task] = set()
        self._dispatches: Set[asyncio.Task] = set()
        self._sweeper: Optional[asyncio.Task] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self):
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_idle())
        logger.info("Dispatch pipeline started.")

    async def _sweep_idle(self):
        interval = min(self.settings.dedupe_idle_ttl_seconds, 60.0)
        while True:
            await asyncio.sleep(interval)
            self.window.evict_idle()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until no delivery or dispatch is in flight. Returns False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks or self._dispatches:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            _, pending = await asyncio.wait(self._tasks | self._dispatches, timeout=remaining)
            if pending and deadline is not None and loop.time() >= deadline:
                return False
        return True

    async def shutdown(self, grace: Optional[float] = None):
        """
        Let in-flight dispatches finish for up to `grace` seconds, then abandon them.
        Abandoned dispatches are recorded as unknown and are safe to trigger again.
        """
        if self._closed:
            return
        self._closed = True
        grace = self.settings.shutdown_grace_seconds if grace is None else grace

        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None

        finished = await self.drain(timeout=grace)
        self.executor.stop()
        if not finished:
            leftover = self._tasks | self._dispatches
            logger.warning(f"Shutdown grace period elapsed; abandoning {len(leftover)} in-flight task(s).")
            for task in leftover:
                task.cancel()
            await asyncio.gather(*leftover, return_exceptions=True)

        # Dispatch tasks cancelled before they first ran never claimed their request.
        for request in self.window.take_pending():
            logger.warning(f"Sync for '{request.application}' (delivery {request.delivery_id}) never dispatched.")
            self._record_request(request, JourneyOutcome.UNKNOWN, "Abandoned during shutdown.")

        self.window.clear()
        self._pool.shutdown(wait=False, cancel_futures=True)
        self.executor.client.close()
        logger.info("Dispatch pipeline stopped.")

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------
    def _track(self, task: asyncio.Task, bucket: Set[asyncio.Task]) -> asyncio.Task:
        bucket.add(task)
        task.add_done_callback(lambda t: self._forget(t, bucket))
        return task

    @staticmethod
    def _forget(task: asyncio.Task, bucket: Set[asyncio.Task]):
        bucket.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background pipeline task failed.", exc_info=task.exception())

    def submit(self, event: WebhookEvent) -> asyncio.Task:
        """Process a delivery in the background. The caller does not wait for any stage."""
        return self._track(asyncio.create_task(self.process(event)), self._tasks)

    async def process(self, event: WebhookEvent) -> List[GateDecision]:
        logger.info(
            f"Processing delivery {event.delivery_id}: event={event.event_type or 'unknown'} "
            f"repo={event.repository or '-'} ref={event.ref or '-'} pusher={event.pusher or '-'}"
        )
        if self.settings.verify_signatures:
            check = verify_signature(event.body, self.settings.github_webhook_secret, event.signature)
            if check is SignatureCheck.INVALID:
                logger.warning(f"Rejected delivery {event.delivery_id}: invalid signature.")
                self._record_event(event, JourneyOutcome.REJECTED, "Invalid signature.")
                return []
        else:
            logger.debug("Signature verification is disabled.")

        classification = classify(event, self.settings.repo_sync_map)
        if not classification.accepted:
            logger.info(f"Skipped delivery {event.delivery_id}: {classification.skip_reason}")
            self._record_event(event, JourneyOutcome.SKIPPED, classification.skip_reason)
            return []

        return [self.gate(request) for request in classification.requests]

    def gate(self, request: SyncRequest) -> GateDecision:
        """Run one request through the debounce window, scheduling a dispatch if admitted."""
        decision = self.window.offer(request)
        if decision.admitted:
            logger.info(
                f"Admitted sync for '{request.application}' at {request.revision or 'HEAD'} "
                f"(delivery {request.delivery_id})."
            )
            if self._closed:
                logger.warning(f"Pipeline is shutting down; sync for '{request.application}' not dispatched.")
                self.window.claim(request.application)
                self._record_request(request, JourneyOutcome.UNKNOWN, "Received during shutdown.")
            else:
                self._track(asyncio.create_task(self._dispatch(request.application)), self._dispatches)
            return decision

        dropped = decision.superseded
        if dropped is request:
            detail = "A sync for this application is already in flight."
        else:
            detail = f"Superseded by delivery {request.delivery_id} ({request.revision or 'HEAD'})."
        logger.info(f"Coalesced delivery {dropped.delivery_id} for '{dropped.application}': {detail}")
        self._record_request(dropped, JourneyOutcome.SUPERSEDED, detail)
        return decision

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def _dispatch(self, application: str):
        request = None
        try:
            if self.settings.settle_seconds > 0:
                await asyncio.sleep(self.settings.settle_seconds)
            request = self.window.claim(application)
            if request is None:
                return None
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(self._pool, self.executor.execute, request)
        except asyncio.CancelledError:
            request = request or self.window.claim(application)
            if request is not None:
                logger.warning(
                    f"Sync for '{application}' (delivery {request.delivery_id}) abandoned before it was confirmed. "
                    f"Safe to re-trigger."
                )
                self._record_request(request, JourneyOutcome.UNKNOWN, "Abandoned during shutdown.")
            raise

        await self._finish(result)
        return result

    async def _finish(self, result: DispatchResult):
        request = result.request
        outcome = _DISPATCH_OUTCOMES[result.status]
        if result.status is DispatchStatus.SUCCEEDED:
            logger.info(f"Sync triggered for '{request.application}' after {result.attempt_count} attempt(s).")
            detail = "Sync triggered."
        elif result.status is DispatchStatus.PERMANENTLY_FAILED:
            logger.error(
                f"Sync for '{request.application}' failed permanently ({result.reason}) after "
                f"{result.attempt_count} attempt(s). repo={request.repository} ref={request.ref} "
                f"revision={request.revision} delivery={request.delivery_id} last_error={result.last_error}"
            )
            detail = f"{result.reason}: {result.last_error}"
        else:
            logger.warning(f"Sync for '{request.application}' outcome unknown: {result.reason}. Safe to re-trigger.")
            detail = result.reason

        self._record_request(request, outcome, detail, attempts=result.attempt_count)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            self.notifier.notify_sync_event,
            request.application,
            request.repository,
            request.ref,
            outcome.value,
            detail,
        )

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------
    def _record_event(self, event: WebhookEvent, outcome: JourneyOutcome, detail: str) -> EventRecord:
        return self.event_log.record(EventRecord(
            delivery_id=event.delivery_id,
            outcome=outcome,
            repository=event.repository,
            ref=event.ref,
            revision=event.head_sha,
            detail=detail,
        ))

    def _record_request(self, request: SyncRequest, outcome: JourneyOutcome, detail: str, attempts: int = 0) -> EventRecord:
        return self.event_log.record(EventRecord(
            delivery_id=request.delivery_id,
            outcome=outcome,
            application=request.application,
            repository=request.repository,
            ref=request.ref,
            revision=request.revision,
            detail=detail,
            attempts=attempts,
        ))
