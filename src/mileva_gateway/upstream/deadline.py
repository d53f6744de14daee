"""Whole-call deadlines for blocking upstream requests.

httpx timeouts bound each connect/read/write step on its own, so a slow but
steady upstream never trips them. Calls here run on a worker thread and the
caller stops waiting once the deadline passes; the abandoned worker winds down
on its own per-step timeout and deadline checks.
"""
from __future__ import annotations
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, TypeVar

import httpx

from mileva_gateway.common.errors import UpstreamTimeoutError

LOGGER = logging.getLogger("mileva.upstream.deadline")

T = TypeVar("T")

_executor = ThreadPoolExecutor(max_workers=32, thread_name_prefix="upstream")


class Deadline:
    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        self.expires_at = time.monotonic() + timeout_ms / 1000

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(self.expires_at - time.monotonic(), 0.0)

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def httpx_timeout(self) -> httpx.Timeout:
        # httpx treats 0 as "no timeout"
        return httpx.Timeout(max(self.remaining(), 0.001))


def run_with_deadline(fn: Callable[[], T], deadline: Deadline, message: str) -> T:
    """
    Run ``fn`` once and wait for it no longer than ``deadline`` allows.

    Args:
        fn: The upstream call. Exceptions it raises propagate unchanged.
        deadline: Budget shared with ``fn``'s own per-step checks.
        message: Text of the ``UpstreamTimeoutError`` raised on expiry.
    """
    future = _executor.submit(fn)
    try:
        return future.result(timeout=deadline.remaining())
    except FutureTimeout as e:
        future.cancel()
        LOGGER.warning("Upstream call abandoned after %sms", deadline.timeout_ms)
        raise UpstreamTimeoutError(message) from e
