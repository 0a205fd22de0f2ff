"""Ready-made tasks and callbacks used by the command line runner."""
from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import httpx

from tickle.scheduler import Task

logger = logging.getLogger(__name__)


class TaskFailedError(RuntimeError):
    """Error value returned (not raised) by the demo tasks."""


class ProbeStatusError(TaskFailedError):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"{url} answered {status_code}")
        self.url = url
        self.status_code = status_code


def make_moo_task() -> Task:
    """Counting task that fails on every 5th call and crashes on every 3rd.

    Handy to watch both the failure and the recovery paths of a scheduler.
    """

    count = 0

    def say_moo() -> Tuple[int, Optional[Exception]]:
        nonlocal count
        count += 1
        if count % 5 == 0:
            return count, TaskFailedError("multiple of 5 is bad")
        if count % 3 == 0:
            return [][3], None
        logger.info("moo %d", count)
        return count, None

    return say_moo


class HttpProbe:
    """GET ``url`` on every run; the status code is the task result.

    Transport errors and non-2xx/3xx answers are returned as errors so the
    scheduler routes them through ``on_failure``.
    """

    def __init__(
        self,
        url: str,
        request_timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=request_timeout, follow_redirects=True)

    def __call__(self) -> Tuple[int, Optional[Exception]]:
        try:
            response = self._client.get(self._url)
        except httpx.HTTPError as exc:
            return 0, exc
        if response.status_code >= 400:
            return response.status_code, ProbeStatusError(self._url, response.status_code)
        return response.status_code, None

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpProbe":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def make_http_probe(url: str, request_timeout: float = 5.0) -> HttpProbe:
    return HttpProbe(url, request_timeout=request_timeout)


def log_failure(result: Any, error: Exception) -> None:
    logger.warning("task result %r is no good: %s", result, error)


def log_recovery(error: Exception) -> None:
    logger.warning("keep calm and carry on: %s", error)
