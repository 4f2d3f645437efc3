"""In-process resource locks used by every ledger write."""

import gc
import threading

from smartstock.services import concurrency
from smartstock.services.concurrency import product_key, resource_locks, sale_key


def test_locks_are_reentrant():
    with resource_locks([product_key(1), sale_key(1)]):
        with resource_locks([product_key(1)]):
            assert product_key(1) in concurrency._resource_locks


def test_idle_keys_leave_the_registry():
    keys = [product_key(n) for n in range(1000, 1050)]
    with resource_locks(keys):
        assert all(key in concurrency._resource_locks for key in keys)

    gc.collect()
    assert not any(key in concurrency._resource_locks for key in keys)


def test_held_lock_blocks_other_threads():
    acquired = threading.Event()
    release = threading.Event()
    entered = []

    def holder():
        with resource_locks([product_key(7)]):
            acquired.set()
            release.wait(5)

    def contender():
        with resource_locks([product_key(7)]):
            entered.append(True)

    t1 = threading.Thread(target=holder)
    t1.start()
    assert acquired.wait(5)

    t2 = threading.Thread(target=contender)
    t2.start()
    t2.join(0.2)
    assert entered == []

    release.set()
    t1.join()
    t2.join(5)
    assert entered == [True]
