"""Run-level mutual exclusion.

Only one pipeline run may use the shared temp directory at a time. The lease
is a file created atomically next to that directory; a lease older than the
TTL is treated as left behind by a crashed run and replaced.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Callable, Optional

from noticewatch.core.errors import RunInProgress

LOGGER = logging.getLogger(__name__)


class RunLease:
    def __init__(self, path: str, ttl_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self._path = path
        self._ttl = ttl_seconds
        self._clock = clock
        self._held = False

    @property
    def path(self) -> str:
        return self._path

    def _read_started_at(self) -> Optional[float]:
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                return float(json.load(handle).get("started_at", 0))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            return 0.0

    def _try_create(self) -> bool:
        try:
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump({"pid": os.getpid(), "started_at": self._clock()}, handle)
        return True

    def acquire(self) -> None:
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        if self._try_create():
            self._held = True
            return

        started_at = self._read_started_at()
        if started_at is not None and self._clock() - started_at < self._ttl:
            raise RunInProgress(f"Lease {self._path} is held by another run")

        LOGGER.warning("Replacing stale run lease %s", self._path)
        try:
            os.remove(self._path)
        except FileNotFoundError:
            pass
        if not self._try_create():
            raise RunInProgress(f"Lease {self._path} was taken by another run")
        self._held = True

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            os.remove(self._path)
        except FileNotFoundError:
            LOGGER.warning("Run lease %s disappeared before release", self._path)

    def __enter__(self) -> "RunLease":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()
