#  Licensed to the Apache Software Foundation (ASF) under one
#  or more contributor license agreements.  See the NOTICE file
#  distributed with this work for additional information
#  regarding copyright ownership.  The ASF licenses this file
#  to you under the Apache License, Version 2.0 (the
#  "License"); you may not use this file except in compliance
#  with the License.  You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing,
#  software distributed under the License is distributed on an
#  "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
#  KIND, either express or implied.  See the License for the
#  specific language governing permissions and limitations
#  under the License.

"""
Tests for the bulk data loader.

These tests verify:
1. No more than W batch inserts are ever in flight
2. Every record is inserted exactly once
3. Worker startup failures, job timeouts and insert failures surface as
   the matching errors
4. The sequential fallback path
5. Records are generated in bounded chunks, one chunk at a time
"""

import pytest

from trackbench.errors import (
    InsertError,
    JobTimeoutError,
    ResourceExhaustionError,
    WorkerStartupError,
)
from trackbench.loader import (
    InsertJob,
    LoaderSettings,
    ParallelLoader,
    PooledWorker,
    WorkerPool,
    insert_sequential,
    split_batches,
)


def fast_settings(**kwargs):
    defaults = dict(worker_count=4, batch_size=10, poll_interval=0.01, startup_timeout=2.0)
    defaults.update(kwargs)
    return LoaderSettings(**defaults)


class TestLoaderSettings:
    """Tests for LoaderSettings validation."""

    def test_chunk_size_bounded_by_memory_cap(self):
        assert LoaderSettings(worker_count=4, batch_size=100).chunk_size == 800
        assert LoaderSettings(worker_count=4, batch_size=100, memory_cap=500).chunk_size == 500

    @pytest.mark.parametrize("worker_count", [0, 17])
    def test_worker_count_range(self, worker_count):
        with pytest.raises(ValueError):
            LoaderSettings(worker_count=worker_count)

    def test_batch_size_positive(self):
        with pytest.raises(ValueError):
            LoaderSettings(batch_size=0)

    def test_memory_cap_positive(self):
        with pytest.raises(ValueError):
            LoaderSettings(memory_cap=0)


class TestSplitBatches:
    def test_last_batch_is_short(self):
        batches = list(split_batches(list(range(25)), 10))
        assert [len(b) for b in batches] == [10, 10, 5]


class TestParallelLoader:
    """Tests for ParallelLoader.load()."""

    @pytest.mark.parametrize("workers", [1, 2, 4, 8])
    def test_concurrency_bound(self, stub_backend_class, seq_source, workers):
        """At most W inserts run at once and at most W workers start."""
        backend = stub_backend_class(insert_delay=0.01)
        loader = ParallelLoader(backend.replicate, fast_settings(worker_count=workers, batch_size=5))

        report = loader.load(workers * 30, seq_source)

        assert report.rows_inserted == workers * 30
        assert backend.shared.max_active_inserts <= workers
        assert 1 <= report.workers_started <= workers

    @pytest.mark.parametrize("workers", [1, 2, 4, 8])
    @pytest.mark.parametrize("row_count", range(1, 31))
    def test_chunked_generation_backpressure(
        self, stub_backend_class, seq_source, workers, row_count
    ):
        """Chunks never exceed chunk_size and are drawn only once the previous one is stored."""
        backend = stub_backend_class()
        settings = fast_settings(worker_count=workers, batch_size=3, memory_cap=7)
        requested = []

        def recording_source(n):
            assert backend.shared.active_inserts == 0
            assert len(backend.shared.records) == sum(requested)
            requested.append(n)
            return seq_source(n)

        report = ParallelLoader(backend.replicate, settings).load(row_count, recording_source)

        assert report.rows_inserted == row_count
        assert sum(requested) == row_count
        assert max(requested) <= settings.chunk_size
        assert backend.shared.max_active_inserts <= workers
        assert sorted(r["seq"] for r in backend.shared.records) == list(range(row_count))

    def test_every_record_inserted_once(self, stub_backend, seq_source):
        """Records 0..N-1 arrive with no gaps and no duplicates."""
        loader = ParallelLoader(stub_backend.replicate, fast_settings())

        report = loader.load(1003, seq_source)

        seqs = sorted(r["seq"] for r in stub_backend.shared.records)
        assert seqs == list(range(1003))
        assert report.batches == 101

    def test_workers_disconnect_after_load(self, stub_backend, seq_source):
        loader = ParallelLoader(stub_backend.replicate, fast_settings(worker_count=2))

        loader.load(100, seq_source)

        assert stub_backend.shared.connects == stub_backend.shared.disconnects

    def test_zero_rows(self, stub_backend, seq_source):
        report = ParallelLoader(stub_backend.replicate, fast_settings()).load(0, seq_source)

        assert report.rows_inserted == 0
        assert report.batches == 0
        assert stub_backend.shared.insert_calls == 0

    def test_negative_rows_rejected(self, stub_backend, seq_source):
        with pytest.raises(ValueError):
            ParallelLoader(stub_backend.replicate).load(-1, seq_source)

    def test_short_record_source_rejected(self, stub_backend):
        """A source must return exactly the number of records requested."""
        loader = ParallelLoader(stub_backend.replicate, fast_settings())

        with pytest.raises(ValueError):
            loader.load(50, lambda n: [{"seq": 0}])

    def test_worker_connect_failure(self, stub_backend_class, seq_source):
        backend = stub_backend_class(fail_replica_connect=True)
        loader = ParallelLoader(backend.replicate, fast_settings())

        with pytest.raises(WorkerStartupError):
            loader.load(100, seq_source)

    def test_worker_startup_timeout(self, stub_backend_class, seq_source):
        """A worker that does not connect in time is a resource exhaustion."""
        backend = stub_backend_class(replica_connect_delay=1.0)
        loader = ParallelLoader(
            backend.replicate, fast_settings(worker_count=1, startup_timeout=0.1)
        )

        with pytest.raises(ResourceExhaustionError):
            loader.load(10, seq_source)

    def test_factory_failure(self, seq_source):
        def factory():
            raise RuntimeError("no more connections")

        with pytest.raises(WorkerStartupError, match="no more connections"):
            ParallelLoader(factory, fast_settings()).load(10, seq_source)

    def test_job_timeout(self, stub_backend_class, seq_source):
        backend = stub_backend_class(insert_delay=0.5)
        loader = ParallelLoader(
            backend.replicate, fast_settings(worker_count=1, job_timeout=0.1)
        )

        with pytest.raises(JobTimeoutError):
            loader.load(10, seq_source)

    def test_insert_failure_fails_fast(self, stub_backend_class, seq_source):
        """A failed batch aborts the load with InsertError."""
        backend = stub_backend_class(fail_insert_after=2)
        loader = ParallelLoader(backend.replicate, fast_settings(worker_count=2))

        with pytest.raises(InsertError, match="rejected"):
            loader.load(1000, seq_source)

        assert len(backend.shared.records) < 1000


class TestWorkerPool:
    """Tests for WorkerPool and PooledWorker."""

    def test_idle_worker_reused(self, stub_backend):
        pool = WorkerPool(stub_backend.replicate, max_workers=2, poll_interval=0.01)
        try:
            first = pool.acquire()
            pool.release(first)
            second = pool.acquire()

            assert second is first
            assert pool.size == 1
        finally:
            pool.shutdown()

    def test_worker_executes_job(self, stub_backend):
        worker = PooledWorker(1, stub_backend.replicate())
        worker.start(timeout=2.0)
        try:
            result = worker.execute(InsertJob(7, "duckdb", [{"seq": 1}]), timeout=2.0)
        finally:
            worker.stop(join_timeout=2.0)

        assert result.job_id == 7
        assert result.success
        assert stub_backend.shared.records == [{"seq": 1}]

    def test_worker_reports_insert_error(self, stub_backend_class):
        backend = stub_backend_class(fail_insert_after=0)
        worker = PooledWorker(1, backend.replicate())
        worker.start(timeout=2.0)
        try:
            result = worker.execute(InsertJob(1, "duckdb", [{"seq": 1}]), timeout=2.0)
        finally:
            worker.stop(join_timeout=2.0)

        assert not result.success
        assert "RuntimeError" in result.error


class TestInsertSequential:
    """Tests for insert_sequential()."""

    def test_inserts_in_batches(self, stub_backend, seq_source):
        report = insert_sequential(stub_backend, 25, seq_source, batch_size=10)

        assert report.rows_inserted == 25
        assert report.batches == 3
        assert [r["seq"] for r in stub_backend.shared.records] == list(range(25))

    def test_memory_cap_limits_batch(self, stub_backend, seq_source):
        report = insert_sequential(stub_backend, 25, seq_source, batch_size=10, memory_cap=5)
        assert report.batches == 5

    def test_failure_wrapped(self, stub_backend_class, seq_source):
        backend = stub_backend_class(fail_insert_after=1)

        with pytest.raises(InsertError):
            insert_sequential(backend, 30, seq_source, batch_size=10)

    def test_invalid_batch_size(self, stub_backend, seq_source):
        with pytest.raises(ValueError):
            insert_sequential(stub_backend, 10, seq_source, batch_size=0)
