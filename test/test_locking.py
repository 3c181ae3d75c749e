"""Unit tests for the graph's read-write lock."""

import threading
import time

import pytest

from graph import GraphTraversal
from graph.locking import ReadWriteLock


class TestReadWriteLock:
    """Test lock semantics."""

    def test_readers_share(self):
        """Test two threads can hold the read lock at once."""
        lock = ReadWriteLock()
        both_inside = threading.Barrier(2, timeout=2)
        errors = []

        def reader():
            with lock.read_locked():
                try:
                    both_inside.wait()
                except threading.BrokenBarrierError as e:
                    errors.append(e)

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []

    def test_writer_excludes_readers(self):
        """Test a reader waits until the writer releases."""
        lock = ReadWriteLock()
        events = []

        lock.acquire_write()

        def reader():
            with lock.read_locked():
                events.append("read")

        thread = threading.Thread(target=reader)
        thread.start()
        time.sleep(0.05)
        events.append("write-done")
        lock.release_write()
        thread.join(timeout=2)

        assert events == ["write-done", "read"]

    def test_reentrant(self):
        """Test both sides are re-entrant and the writer may read."""
        lock = ReadWriteLock()

        with lock.write_locked():
            with lock.write_locked():
                with lock.read_locked():
                    pass
        with lock.read_locked():
            with lock.read_locked():
                pass

        # Fully released: another thread can write
        acquired = []

        def writer():
            with lock.write_locked():
                acquired.append(True)

        thread = threading.Thread(target=writer)
        thread.start()
        thread.join(timeout=2)
        assert acquired == [True]

    def test_upgrade_refused(self):
        """Test a reader cannot upgrade to a writer."""
        lock = ReadWriteLock()

        with lock.read_locked():
            with pytest.raises(RuntimeError):
                lock.acquire_write()

    def test_release_without_hold(self):
        """Test releasing an unheld lock raises."""
        lock = ReadWriteLock()

        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()


class TestGraphConcurrency:
    """Test traversals running alongside mutations."""

    def test_traversal_during_mutation(self, chain_graph):
        """Test readers never see a half-applied mutation."""
        errors = []
        stop = threading.Event()

        def mutate():
            for i in range(200):
                node_id = f"n{i}"
                chain_graph.add_node(node_id)
                chain_graph.add_edge(node_id, "A", "depends-on")
                chain_graph.remove_node(node_id)
            stop.set()

        def traverse():
            traversal = GraphTraversal(chain_graph)
            try:
                while not stop.is_set():
                    traversal.find_impacted_contexts("A")
                    traversal.detect_cycles()
                    traversal.get_statistics()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=mutate)] + [
            threading.Thread(target=traverse) for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        assert len(chain_graph) == 4
        assert chain_graph.edge_count == 3

    def test_concurrent_access_counts(self, chain_graph):
        """Test access bookkeeping stays exact under concurrent lookups."""
        start = threading.Barrier(4, timeout=2)

        def lookup():
            traversal = GraphTraversal(chain_graph)
            start.wait()
            for _ in range(250):
                traversal.find_dependencies("A")

        threads = [threading.Thread(target=lookup) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert chain_graph.get_node("A").access_count == 1000

    def test_touch_under_shared_lock(self, chain_graph):
        """Test a reader may record an access without upgrading the lock."""
        with chain_graph.lock.read_locked():
            chain_graph.touch("A")

        assert chain_graph.get_node("A").access_count == 1
