from __future__ import annotations

import threading
import time

import pytest

from crosspost.core.concurrency import KeyedLocks, fan_out


def test_keyed_locks_drop_idle_entries():
    locks = KeyedLocks()
    for user in ("u1", "u2", "u3"):
        with locks.hold((user, "twitter")):
            assert len(locks) == 1
    assert len(locks) == 0


def test_keyed_locks_release_entry_when_body_raises():
    locks = KeyedLocks()
    with pytest.raises(RuntimeError):
        with locks.hold("k"):
            raise RuntimeError("boom")
    assert len(locks) == 0
    with locks.hold("k"):
        pass


def test_keyed_locks_serialize_waiters_on_same_key():
    locks = KeyedLocks()
    order: list[str] = []
    entered = threading.Event()

    def _first():
        with locks.hold("k"):
            entered.set()
            time.sleep(0.1)
            order.append("first")

    def _second():
        entered.wait()
        with locks.hold("k"):
            order.append("second")

    threads = [threading.Thread(target=_first), threading.Thread(target=_second)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert order == ["first", "second"]
    assert len(locks) == 0


def test_fan_out_preserves_input_order():
    def _slow_square(n: int) -> int:
        time.sleep(0.01 * (5 - n))
        return n * n

    assert fan_out(_slow_square, [1, 2, 3, 4], max_workers=4) == [1, 4, 9, 16]
