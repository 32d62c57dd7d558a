from __future__ import annotations

import os

import pytest

from noticewatch.core.errors import RunInProgress
from noticewatch.core.lease import RunLease


def test_second_holder_is_refused_until_release(tmp_path) -> None:
    path = str(tmp_path / "run.lock")
    first = RunLease(path, ttl_seconds=60)
    second = RunLease(path, ttl_seconds=60)

    first.acquire()
    with pytest.raises(RunInProgress):
        second.acquire()

    first.release()
    assert not os.path.exists(path)
    with second:
        assert os.path.exists(path)
    assert not os.path.exists(path)


def test_stale_lease_is_replaced(tmp_path) -> None:
    path = str(tmp_path / "run.lock")
    RunLease(path, ttl_seconds=60, clock=lambda: 1000.0).acquire()

    later = RunLease(path, ttl_seconds=60, clock=lambda: 1100.0)
    later.acquire()

    assert os.path.exists(path)
    later.release()
    assert not os.path.exists(path)
