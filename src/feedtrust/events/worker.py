"""
Signature verification worker.

Signature checks are CPU-bound, so they run in a separate process that
talks to the verifier only through a request queue and a response queue.
No memory is shared between the two sides.

Architecture:
- ``worker_main`` runs in the child process: it reads VerifyRequest dicts,
  verifies each event independently and writes VerifyResponse dicts
- A listener thread in the parent drains the response queue and hands each
  message to the ``on_message`` callback
- The listener watches the child's liveness and reports a crash through
  ``on_error``; it never retries
"""

from __future__ import annotations

import logging
import multiprocessing
import queue
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ..core import defaults
from .crypto import valid_event_ids
from .messages import VerifyRequest, VerifyResponse

logger = logging.getLogger(__name__)

MessageCallback = Callable[[dict], None]
ErrorCallback = Callable[[BaseException], None]


# =============================================================================
# EXCEPTIONS
# =============================================================================


class WorkerError(Exception):
    """Base exception for verification worker errors."""
    pass


class WorkerStartError(WorkerError):
    """Raised when the worker cannot be started."""
    pass


class WorkerCrashedError(WorkerError):
    """Reported when the worker process exits unexpectedly."""
    pass


# =============================================================================
# WORKER ENTRY POINT
# =============================================================================


def worker_main(request_queue: Any, response_queue: Any) -> None:
    """Verification loop run inside the worker process.

    A ``None`` message stops the loop. Requests that cannot be parsed are
    skipped; there is no id to answer them with.
    """
    while True:
        message = request_queue.get()
        if message is None:
            break
        try:
            request = VerifyRequest.from_dict(message)
        except (KeyError, TypeError, ValueError):
            continue
        response = VerifyResponse(
            request_id=request.request_id,
            valid_ids=valid_event_ids(request.events),
        )
        response_queue.put(response.to_dict())


# =============================================================================
# WORKER INTERFACE
# =============================================================================


class VerificationWorker(ABC):
    """A parallel executor for verification requests.

    Implementations deliver responses by calling ``on_message`` and report
    fatal failures by calling ``on_error``, possibly from another thread.
    """

    @abstractmethod
    def start(self, on_message: MessageCallback, on_error: ErrorCallback) -> None:
        """Start the worker. Raises if it cannot be started."""

    @abstractmethod
    def post(self, message: dict) -> None:
        """Send one request message to the worker."""

    @abstractmethod
    def terminate(self) -> None:
        """Stop the worker. Undelivered responses are discarded."""


# =============================================================================
# PROCESS WORKER
# =============================================================================


class ProcessVerificationWorker(VerificationWorker):
    """
    Verification worker backed by a child process.

    Example:
        worker = ProcessVerificationWorker()
        worker.start(on_message=handle, on_error=handle_crash)
        worker.post(VerifyRequest.for_events(0, events).to_dict())
        ...
        worker.terminate()
    """

    def __init__(
        self,
        start_method: str = "spawn",
        poll_interval: float = defaults.WORKER_POLL_INTERVAL,
        join_timeout: float = defaults.WORKER_JOIN_TIMEOUT,
    ) -> None:
        self.start_method = start_method
        self.poll_interval = poll_interval
        self.join_timeout = join_timeout
        self._process: Optional[multiprocessing.process.BaseProcess] = None
        self._requests: Any = None
        self._responses: Any = None
        self._listener: Optional[threading.Thread] = None
        self._stopping = threading.Event()

    @property
    def is_alive(self) -> bool:
        """Whether the child process is running."""
        return self._process is not None and self._process.is_alive()

    def start(self, on_message: MessageCallback, on_error: ErrorCallback) -> None:
        if self._process is not None:
            raise WorkerStartError("Worker already started")

        ctx = multiprocessing.get_context(self.start_method)
        self._stopping.clear()
        process: Optional[multiprocessing.process.BaseProcess] = None
        try:
            self._requests = ctx.Queue()
            self._responses = ctx.Queue()
            process = ctx.Process(
                target=worker_main,
                args=(self._requests, self._responses),
                name="feedtrust-verify-worker",
                daemon=True,
            )
            process.start()
            self._process = process

            self._listener = threading.Thread(
                target=self._listen,
                args=(on_message, on_error),
                name="feedtrust-verify-listener",
                daemon=True,
            )
            self._listener.start()
        except Exception as e:
            self._abort_start(process)
            raise WorkerStartError(f"Verification worker failed to start: {e}") from e
        logger.info(f"Verification worker started (pid {process.pid})")

    def post(self, message: dict) -> None:
        if self._requests is None or self._stopping.is_set():
            raise WorkerError("Worker is not running")
        self._requests.put(message)

    def terminate(self) -> None:
        if self._process is None:
            return
        self._stopping.set()

        try:
            self._requests.put(None)
        except (ValueError, OSError):
            pass

        process = self._process
        process.join(timeout=self.join_timeout)
        if process.is_alive():
            process.terminate()
            process.join(timeout=self.join_timeout)

        listener = self._listener
        if listener is not None and listener is not threading.current_thread():
            listener.join(timeout=self.join_timeout)

        self._close_queues()
        self._process = None
        self._listener = None
        logger.info("Verification worker stopped")

    def _abort_start(self, process: Optional[multiprocessing.process.BaseProcess]) -> None:
        """Release everything a failed start() created."""
        self._stopping.set()
        if process is not None and process.is_alive():
            process.terminate()
            process.join(timeout=self.join_timeout)
        self._close_queues()
        self._process = None
        self._listener = None

    def _close_queues(self) -> None:
        for q in (self._requests, self._responses):
            if q is not None:
                q.cancel_join_thread()
                q.close()
        self._requests = None
        self._responses = None

    # -------------------------------------------------------------------------
    # RESPONSE LISTENER
    # -------------------------------------------------------------------------

    def _listen(self, on_message: MessageCallback, on_error: ErrorCallback) -> None:
        """Drain the response queue until the worker stops or dies."""
        responses = self._responses
        while not self._stopping.is_set():
            try:
                message = responses.get(timeout=self.poll_interval)
            except queue.Empty:
                process = self._process
                if process is not None and not process.is_alive() and not self._stopping.is_set():
                    on_error(WorkerCrashedError(
                        f"Verification worker exited with code {process.exitcode}"
                    ))
                    return
                continue
            except (EOFError, OSError, ValueError) as e:
                if not self._stopping.is_set():
                    on_error(e)
                return

            try:
                on_message(message)
            except Exception as e:
                logger.warning(f"Verification response handler failed: {e}")
