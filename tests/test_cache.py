import threading
import time

import pytest

from keskit.cache import Barrier, Cow

UNLOCKED = "cache: unlock of unlocked Barrier key"


def test_barrier_zero_value_lock_unlock():
    barrier = Barrier()
    barrier.lock(0)
    barrier.unlock(0)
    done = threading.Event()

    def relock():
        barrier.lock(0)
        barrier.unlock(0)
        done.set()

    thread = threading.Thread(target=relock)
    thread.start()
    assert done.wait(timeout=5)
    thread.join()
    # Every lock was released, so the key is no longer tracked.
    with pytest.raises(RuntimeError, match=UNLOCKED):
        barrier.unlock(0)


def test_barrier_unlock_of_unlocked_key_raises():
    barrier = Barrier()
    barrier.lock(0)
    with pytest.raises(RuntimeError, match=UNLOCKED):
        barrier.unlock(1)


def test_barrier_distinct_keys_do_not_block():
    barrier = Barrier()
    barrier.lock(0)
    acquired = threading.Event()

    def other():
        with barrier.locked(1):
            acquired.set()

    thread = threading.Thread(target=other)
    thread.start()
    assert acquired.wait(timeout=5)
    thread.join()
    with pytest.raises(RuntimeError, match=UNLOCKED):
        barrier.unlock(1)
    barrier.unlock(0)
    with pytest.raises(RuntimeError, match=UNLOCKED):
        barrier.unlock(0)


def test_barrier_same_key_blocks_until_unlocked():
    barrier = Barrier()
    barrier.lock("k")
    acquired = threading.Event()

    def other():
        with barrier.locked("k"):
            acquired.set()

    thread = threading.Thread(target=other)
    thread.start()
    assert not acquired.wait(timeout=0.1)
    barrier.unlock("k")
    assert acquired.wait(timeout=5)
    thread.join()
    with pytest.raises(RuntimeError, match=UNLOCKED):
        barrier.unlock("k")


def test_barrier_lock_excludes_concurrent_access():
    n = 3
    barrier = Barrier()
    active = [0] * n
    counter_lock = threading.Lock()
    violations = []

    def worker(i):
        key = i % n
        with barrier.locked(key):
            with counter_lock:
                if active[key] != 0:
                    violations.append(i)
                active[key] += 1
            time.sleep(0.00001)
            with counter_lock:
                active[key] -= 1

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(100)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert violations == []
    assert active == [0] * n
    for key in range(n):
        with pytest.raises(RuntimeError, match=UNLOCKED):
            barrier.unlock(key)


def test_cow_zero_value_get():
    cow = Cow()
    assert cow.get(0) is None
    assert 0 not in cow


def test_cow_zero_value_delete():
    assert Cow().delete(0) is False


def test_cow_zero_value_delete_all():
    cow = Cow()
    cow.delete_all()
    assert len(cow) == 0


def test_cow_zero_value_delete_func():
    cow = Cow()
    cow.delete_func(lambda k, v: True)
    assert cow.keys() == []


def test_cow_zero_value_set():
    cow = Cow()
    assert cow.set(0, "Hello") is True
    assert cow.get(0) == "Hello"


def test_cow_zero_value_add():
    cow = Cow()
    assert cow.add(0, "Hello") is True
    assert cow.add(0, "World") is False
    assert cow.get(0) == "Hello"


def test_cow_capacity():
    c = Cow(3)
    assert c.add(0, "Hello")
    assert c.add(1, "World")
    assert c.add(2, "!")
    assert not c.add(3, "")
    assert not c.set(3, "")
    assert c.set(2, "")
    assert c.delete(2)
    assert c.add(3, "")
    assert sorted(c.keys()) == [0, 1, 3]


def test_cow_delete_func_removes_matching():
    cow = Cow()
    for i in range(6):
        cow.set(i, str(i))
    cow.delete_func(lambda k, v: k % 2 == 0)
    assert sorted(cow.keys()) == [1, 3, 5]


def test_cow_clone_is_independent():
    cow = Cow(5)
    cow.set("a", 1)
    copy = cow.clone()
    copy.set("b", 2)
    cow.delete("a")
    assert sorted(copy.keys()) == ["a", "b"]
    assert cow.keys() == []
    assert copy.capacity == 5


def test_cow_delete_all_clears_entries():
    cow = Cow()
    cow.set(1, "x")
    cow.set(2, "y")
    cow.delete_all()
    assert len(cow) == 0
    assert cow.get(1) is None


def test_cow_keys_snapshot_unaffected_by_updates():
    cow = Cow()
    cow.set(1, "x")
    keys = cow.keys()
    cow.set(2, "y")
    assert keys == [1]
    assert len(cow) == 2