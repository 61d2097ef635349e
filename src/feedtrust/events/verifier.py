"""
Event Verifier - Batched signature verification off the event loop.

Relay-delivered events are untrusted. The verifier sends each batch to a
parallel worker and hands back only the events whose id and signature
check out, in input order.

Correlation:
- Every batch gets a fresh, monotonically increasing request id
- The pending table maps request id -> (events, future)
- Worker responses are matched by id, so batches may finish in any order
- Responses with an unknown id are dropped

Degraded mode:
- If the worker cannot be started, or dies, the verifier stops verifying
  and returns batches unchanged (fail-open: events are trusted as the relay
  delivered them). It never restarts the worker on its own.

Threading:
- Worker callbacks may arrive on any thread. They only hand work to the
  event loop, or park a failure until the owner next touches the verifier,
  so verifier state is changed on one thread only.

Shutdown:
- ``destroy()`` stops the worker and forgets pending batches. Callers still
  awaiting those batches are left unresolved.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .event import Event
from .messages import VerifyRequest, VerifyResponse
from .worker import (
    ProcessVerificationWorker,
    VerificationWorker,
    WorkerCrashedError,
    WorkerError,
)

logger = logging.getLogger(__name__)

WorkerFactory = Callable[[], VerificationWorker]


# =============================================================================
# EXCEPTIONS
# =============================================================================


class VerifierError(Exception):
    """Base exception for verifier errors."""
    pass


class VerificationTimeoutError(VerifierError):
    """Raised when a configured verify timeout elapses before the worker answers."""
    pass


# =============================================================================
# DATA MODELS
# =============================================================================


class VerifierState(str, Enum):
    """Lifecycle of an EventVerifier."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"  # Worker available
    DEGRADED = "degraded"  # No worker; batches pass through unverified


@dataclass
class PendingVerification:
    """A dispatched batch awaiting its worker response."""

    request_id: int
    events: List[Event]
    future: asyncio.Future


# =============================================================================
# EVENT VERIFIER
# =============================================================================


class EventVerifier:
    """
    Verifies event batches in a parallel worker.

    Example:
        verifier = EventVerifier()
        verifier.init()
        valid = await verifier.verify_batch(events)
        verifier.destroy()

    Args:
        worker_factory: Builds the worker started by ``init()``. ``None``
            means no worker is available and the verifier runs degraded.
        verify_timeout: Optional bound (seconds) on a worker round trip.
            ``None`` waits for the response indefinitely.
    """

    def __init__(
        self,
        worker_factory: Optional[WorkerFactory] = ProcessVerificationWorker,
        verify_timeout: Optional[float] = None,
    ) -> None:
        self.worker_factory = worker_factory
        self.verify_timeout = verify_timeout
        self._state = VerifierState.UNINITIALIZED
        self._worker: Optional[VerificationWorker] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker_failure: Optional[BaseException] = None
        self._next_id = 0
        self._pending: Dict[int, PendingVerification] = {}
        self._stats: Dict[str, int] = {
            "batches_dispatched": 0,
            "batches_passed_through": 0,
            "events_accepted": 0,
            "events_rejected": 0,
            "responses_dropped": 0,
            "timeouts": 0,
        }

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    @property
    def state(self) -> VerifierState:
        self._apply_worker_failure()
        return self._state

    @property
    def pending_count(self) -> int:
        """Number of batches awaiting a worker response."""
        return len(self._pending)

    def init(self) -> None:
        """Start the verification worker, or fall back to degraded mode.

        Calling ``init()`` again after it has run is a no-op; a degraded
        verifier does not retry.
        """
        if self._state is not VerifierState.UNINITIALIZED:
            return

        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        self._worker_failure = None

        if self.worker_factory is None:
            logger.info("Signature verification worker disabled, events will not be verified")
            self._state = VerifierState.DEGRADED
            return

        try:
            worker = self.worker_factory()
            worker.start(self._on_worker_message, self._on_worker_error)
        except Exception as e:
            logger.warning(f"Verification worker failed to start, skipping verification: {e}")
            self._state = VerifierState.DEGRADED
            return

        self._worker = worker
        self._state = VerifierState.READY

    def destroy(self) -> None:
        """Stop the worker and discard pending batches."""
        worker = self._worker
        self._worker = None
        if worker is not None:
            try:
                worker.terminate()
            except Exception as e:
                logger.warning(f"Error terminating verification worker: {e}")
        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} pending verification batches")
        self._pending.clear()
        self._worker_failure = None
        self._state = VerifierState.UNINITIALIZED

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    async def verify_batch(self, events: Iterable[Event]) -> List[Event]:
        """
        Return the events whose signatures are valid, in input order.

        Args:
            events: Events as received from relays

        Returns:
            A subsequence of ``events``. Without a worker, ``events`` unchanged.

        Raises:
            VerificationTimeoutError: If ``verify_timeout`` is set and elapses
        """
        events = list(events)
        if not events:
            return []

        self._apply_worker_failure()
        worker = self._worker
        if worker is None or self._state is not VerifierState.READY:
            self._stats["batches_passed_through"] += 1
            return events

        loop = asyncio.get_running_loop()
        self._loop = loop

        request_id = self._next_id
        self._next_id += 1
        future: asyncio.Future = loop.create_future()
        self._pending[request_id] = PendingVerification(request_id, events, future)

        try:
            worker.post(VerifyRequest.for_events(request_id, events).to_dict())
        except (WorkerError, ValueError, OSError) as e:
            self._pending.pop(request_id, None)
            self._degrade(e)
            self._stats["batches_passed_through"] += 1
            return events

        self._stats["batches_dispatched"] += 1
        logger.debug(f"Dispatched verification batch {request_id} ({len(events)} events)")

        try:
            if self.verify_timeout is None:
                return await future
            return await asyncio.wait_for(future, self.verify_timeout)
        except asyncio.TimeoutError:
            self._stats["timeouts"] += 1
            raise VerificationTimeoutError(
                f"No verification response for batch {request_id} "
                f"within {self.verify_timeout}s"
            ) from None
        finally:
            self._pending.pop(request_id, None)

    def get_stats(self) -> Dict[str, int]:
        """Get verifier statistics."""
        return dict(self._stats)

    # -------------------------------------------------------------------------
    # WORKER CALLBACKS
    # -------------------------------------------------------------------------

    def _on_worker_message(self, message: dict) -> None:
        """Receive a worker response on any thread and pass it to the loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Dropping verification response with no event loop to deliver to")
            return
        try:
            loop.call_soon_threadsafe(self._handle_response, message)
        except RuntimeError:
            logger.debug("Dropping verification response, event loop closed")

    def _on_worker_error(self, error: BaseException) -> None:
        """Receive a fatal worker error on any thread."""
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(self._degrade, error)
                return
            except RuntimeError:
                pass
        # No loop to hand off to: the owner applies it on its next call
        self._worker_failure = error

    def _apply_worker_failure(self) -> None:
        """Degrade for a worker failure reported while no loop was known."""
        error = self._worker_failure
        if error is not None:
            self._worker_failure = None
            self._degrade(error)

    def _handle_response(self, message: dict) -> None:
        """Resolve the batch a response belongs to. Runs on the event loop."""
        try:
            response = VerifyResponse.from_dict(message)
        except (KeyError, TypeError, ValueError):
            self._stats["responses_dropped"] += 1
            logger.debug(f"Dropping malformed verification response: {message!r}")
            return

        pending = self._pending.pop(response.request_id, None)
        if pending is None:
            self._stats["responses_dropped"] += 1
            logger.debug(f"Dropping response for unknown batch {response.request_id}")
            return

        valid_ids = set(response.valid_ids)
        accepted = [event for event in pending.events if event.id in valid_ids]
        self._stats["events_accepted"] += len(accepted)
        self._stats["events_rejected"] += len(pending.events) - len(accepted)

        if not pending.future.done():
            pending.future.set_result(accepted)

    def _degrade(self, error: BaseException) -> None:
        """Switch permanently to pass-through mode after a worker failure."""
        if self._state is not VerifierState.READY:
            return
        if isinstance(error, WorkerCrashedError):
            logger.warning(f"{error}, skipping verification from now on")
        else:
            logger.warning(f"Verification worker failed, skipping verification from now on: {error}")

        worker = self._worker
        self._worker = None
        self._state = VerifierState.DEGRADED
        if worker is not None:
            try:
                worker.terminate()
            except Exception as e:
                logger.debug(f"Error terminating failed worker: {e}")
