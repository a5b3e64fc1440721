"""
Keyed lock tests
"""
import threading

import pytest

from hotel_core.services.locks import KeyedLock


class TestKeyedLock:

    def test_entry_removed_after_release(self):
        """Keys that are no longer held do not accumulate"""
        locks = KeyedLock("test")
        for folio_id in range(100):
            with locks.hold(folio_id):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_reentrant(self):
        locks = KeyedLock("test")
        with locks.hold(("property", 1)):
            with locks.hold(("property", 1)):
                assert len(locks) == 1
            assert len(locks) == 1
        assert len(locks) == 0

    def test_released_on_error(self):
        locks = KeyedLock("test")
        with pytest.raises(RuntimeError):
            with locks.hold(7):
                raise RuntimeError("commit failed")
        assert len(locks) == 0

    def test_mutual_exclusion(self):
        locks = KeyedLock("test")
        inside = []
        overlaps = []
        entered = threading.Event()
        release = threading.Event()

        def first():
            with locks.hold(1):
                inside.append("first")
                entered.set()
                release.wait(timeout=5)
                inside.remove("first")

        def second():
            entered.wait(timeout=5)
            with locks.hold(1):
                if inside:
                    overlaps.append(list(inside))

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for t in threads:
            t.start()
        entered.wait(timeout=5)
        release.set()
        for t in threads:
            t.join(timeout=5)

        assert overlaps == []
        assert len(locks) == 0
