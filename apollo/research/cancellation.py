"""
Cancellation tokens for research jobs.

A CancelToken is a one-way flag built on threading.Event. Tokens form a tree:
cancelling a token cancels every child created from it, so stopping the job
poller also stops the job it is currently running.

CancellationRegistry maps job ids to the token of their in-flight execution
and guarantees at most one execution per job id.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class JobAlreadyRunningError(Exception):
    """Raised when a job id is already registered as running."""


class CancelToken:
    """Thread-safe cancellation flag with optional parent propagation."""

    def __init__(self, parent: CancelToken | None = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: set[CancelToken] = set()
        self._parent = parent
        if parent is not None:
            parent._attach(self)

    def _attach(self, child: CancelToken) -> None:
        with self._lock:
            self._children.add(child)
        if self.cancelled:
            child.cancel()

    def _detach(self, child: CancelToken) -> None:
        with self._lock:
            self._children.discard(child)

    def cancel(self) -> None:
        """Fire the token and every child token."""
        self._event.set()
        with self._lock:
            children = list(self._children)
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; returns ``cancelled``."""
        return self._event.wait(timeout=timeout)

    def release(self) -> None:
        """Stop receiving cancellation from the parent token."""
        if self._parent is not None:
            self._parent._detach(self)
            self._parent = None


class CancellationRegistry:
    """Lock-guarded map of running job ids to their cancel tokens."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[str, CancelToken] = {}

    @contextmanager
    def register(self, job_id: str, parent: CancelToken | None = None) -> Iterator[CancelToken]:
        """
        Register ``job_id`` for the duration of the ``with`` block.

        Raises:
            JobAlreadyRunningError: If ``job_id`` is already registered
        """
        with self._lock:
            if job_id in self._tokens:
                raise JobAlreadyRunningError(f"job {job_id} is already running")
            token = CancelToken(parent)
            self._tokens[job_id] = token

        try:
            yield token
        finally:
            with self._lock:
                self._tokens.pop(job_id, None)
            token.release()

    def cancel(self, job_id: str) -> bool:
        """Fire the token for ``job_id``; False when the job is not running."""
        with self._lock:
            token = self._tokens.get(job_id)
        if token is None:
            return False
        token.cancel()
        return True

    def running(self) -> list[str]:
        with self._lock:
            return sorted(self._tokens)
