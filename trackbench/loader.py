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
Bulk Data Loader

Loads N generated records into one backend with at most W batch inserts in
flight. Records are generated chunk by chunk; a chunk is split into batches,
the batches are dispatched over W lanes, and the next chunk is generated only
once every batch of the current one has completed.

Each lane borrows a pooled worker for the duration of one batch. A pooled
worker is a thread owning a private backend connection; it receives InsertJob
messages over a single-slot request queue and answers with InsertResult
messages tagged with the job id, so a late answer to a timed-out job can be
recognised and dropped.
"""

import itertools
import logging
import queue
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence

from trackbench.backend_base import Backend, Record, TimedExecution
from trackbench.errors import InsertError, JobTimeoutError, WorkerStartupError
from trackbench.generator import RecordSource

logger = logging.getLogger(__name__)

MAX_WORKERS = 16
DEFAULT_MEMORY_CAP = 500_000
DEFAULT_STARTUP_TIMEOUT = 15.0
DEFAULT_JOB_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 0.1

_STOP = object()


@dataclass(frozen=True)
class InsertJob:
    job_id: int
    backend_id: str
    records: Sequence[Record]


@dataclass(frozen=True)
class InsertResult:
    job_id: int
    success: bool
    duration_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class LoadReport:
    """Summary of one load."""

    rows_inserted: int
    batches: int
    duration_ms: float
    workers_started: int = 0


def split_batches(records: Sequence[Record], batch_size: int) -> Iterator[Sequence[Record]]:
    """Yield consecutive slices of at most ``batch_size`` records."""
    for start in range(0, len(records), batch_size):
        yield records[start:start + batch_size]


def _next_records(source: RecordSource, count: int) -> list[Record]:
    records = source(count)
    if len(records) != count:
        raise ValueError(f"Record source returned {len(records)} records, expected {count}")
    return records


class PooledWorker:
    """A thread that owns one backend connection and executes insert jobs."""

    def __init__(self, worker_id: int, backend: Backend) -> None:
        self.worker_id = worker_id
        self.backend = backend
        self._requests: queue.Queue = queue.Queue(maxsize=1)
        self._responses: queue.Queue = queue.Queue()
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self._thread = threading.Thread(
            target=self._run, name=f"insert-worker-{worker_id}", daemon=True
        )

    def start(self, timeout: float) -> None:
        """Start the thread and wait until its connection is open.

        Raises:
            WorkerStartupError: If connecting fails or takes longer than timeout
        """
        self._thread.start()
        if not self._ready.wait(timeout):
            self.stop()
            raise WorkerStartupError(
                f"Insert worker {self.worker_id} did not start within {timeout:.1f}s"
            )
        if self._startup_error is not None:
            raise WorkerStartupError(
                f"Insert worker {self.worker_id} failed to connect: {self._startup_error}"
            ) from self._startup_error

    def _run(self) -> None:
        try:
            self.backend.connect()
        except Exception as e:
            self._startup_error = e
            self._ready.set()
            return

        self._ready.set()
        logger.debug(f"Insert worker {self.worker_id} ready")
        try:
            while True:
                job = self._requests.get()
                if job is _STOP:
                    break
                with TimedExecution() as timer:
                    try:
                        self.backend.insert_batch(job.records)
                        error = None
                    except Exception as e:
                        error = f"{type(e).__name__}: {e}"
                self._responses.put(
                    InsertResult(job.job_id, error is None, timer.elapsed_ms, error)
                )
        finally:
            self.backend.disconnect()

    def execute(self, job: InsertJob, timeout: float) -> InsertResult:
        """Send a job and wait for its result.

        Raises:
            JobTimeoutError: If no matching result arrives within timeout
        """
        deadline = time.monotonic() + timeout
        try:
            self._requests.put(job, timeout=timeout)
        except queue.Full:
            raise JobTimeoutError(
                f"Insert worker {self.worker_id} did not accept job {job.job_id} "
                f"within {timeout:.1f}s"
            ) from None

        timeout_error = JobTimeoutError(
            f"Insert job {job.job_id} timed out after {timeout:.1f}s on worker {self.worker_id}"
        )
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise timeout_error
            try:
                result = self._responses.get(timeout=remaining)
            except queue.Empty:
                raise timeout_error from None
            if result.job_id == job.job_id:
                return result
            logger.debug(
                f"Worker {self.worker_id} discarding stale result for job {result.job_id}"
            )

    def stop(self, join_timeout: float = 0.0) -> None:
        try:
            self._requests.put_nowait(_STOP)
        except queue.Full:
            logger.debug(f"Insert worker {self.worker_id} busy, leaving it to exit with the process")
            return
        if join_timeout > 0 and self._thread.is_alive():
            self._thread.join(join_timeout)


class WorkerPool:
    """Lazily grown pool of at most ``max_workers`` pooled workers.

    Args:
        backend_factory: Returns a fresh, unconnected backend per worker
        max_workers: Upper bound on live workers
        startup_timeout: Seconds a new worker may take to connect
        poll_interval: Seconds between checks while every worker is busy
    """

    def __init__(
        self,
        backend_factory: Callable[[], Backend],
        max_workers: int,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._factory = backend_factory
        self.max_workers = max_workers
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval

        self._lock = threading.Lock()
        self._workers: list[PooledWorker] = []
        self._idle: list[PooledWorker] = []
        self._starting = 0
        self._ids = itertools.count(1)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._workers)

    def acquire(self) -> PooledWorker:
        """Reuse an idle worker, start a new one, or wait for one to free up."""
        while True:
            with self._lock:
                if self._idle:
                    return self._idle.pop()
                can_start = len(self._workers) + self._starting < self.max_workers
                if can_start:
                    self._starting += 1
                    worker_id = next(self._ids)

            if can_start:
                return self._start_worker(worker_id)

            time.sleep(self.poll_interval)

    def _start_worker(self, worker_id: int) -> PooledWorker:
        try:
            try:
                backend = self._factory()
            except Exception as e:
                raise WorkerStartupError(
                    f"Could not create backend for insert worker {worker_id}: {e}"
                ) from e
            worker = PooledWorker(worker_id, backend)
            worker.start(self.startup_timeout)
        finally:
            with self._lock:
                self._starting -= 1

        with self._lock:
            self._workers.append(worker)
        return worker

    def release(self, worker: PooledWorker) -> None:
        with self._lock:
            self._idle.append(worker)

    def shutdown(self) -> None:
        """Stop every worker; their connections close on their own threads."""
        with self._lock:
            workers = list(self._workers)
            self._workers.clear()
            self._idle.clear()
        for worker in workers:
            worker.stop(join_timeout=5.0)
        logger.debug(f"Worker pool shut down ({len(workers)} workers)")


@dataclass(frozen=True)
class LoaderSettings:
    """Tuning knobs of the parallel loader.

    Attributes:
        worker_count: Maximum number of batches in flight (1-16)
        batch_size: Records per insert call
        memory_cap: Maximum records generated ahead of insertion
        startup_timeout: Seconds a worker may take to connect
        job_timeout: Seconds a single batch insert may take
        poll_interval: Seconds between checks for a free worker
    """

    worker_count: int = 4
    batch_size: int = 50_000
    memory_cap: int = DEFAULT_MEMORY_CAP
    startup_timeout: float = DEFAULT_STARTUP_TIMEOUT
    job_timeout: float = DEFAULT_JOB_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL

    def __post_init__(self) -> None:
        if not 1 <= self.worker_count <= MAX_WORKERS:
            raise ValueError(
                f"worker_count must be between 1 and {MAX_WORKERS}, got {self.worker_count}"
            )
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.memory_cap < 1:
            raise ValueError(f"memory_cap must be at least 1, got {self.memory_cap}")

    @property
    def chunk_size(self) -> int:
        return min(self.memory_cap, self.batch_size * self.worker_count * 2)


class ParallelLoader:
    """Inserts generated records through a bounded pool of workers.

    Args:
        backend_factory: Returns a fresh, unconnected backend per worker
            (typically ``backend.replicate``)
        settings: Concurrency, batching and timeout settings
    """

    def __init__(
        self,
        backend_factory: Callable[[], Backend],
        settings: Optional[LoaderSettings] = None,
    ) -> None:
        self._factory = backend_factory
        self.settings = settings or LoaderSettings()

    def load(self, row_count: int, source: RecordSource, backend_id: str = "") -> LoadReport:
        """Insert ``row_count`` records drawn from ``source``.

        Raises:
            ValueError: If row_count is negative
            WorkerStartupError: If a worker cannot be started
            JobTimeoutError: If a batch exceeds the job timeout
            InsertError: If a batch insert fails
        """
        if row_count < 0:
            raise ValueError(f"row_count must not be negative, got {row_count}")

        s = self.settings
        pool = WorkerPool(self._factory, s.worker_count, s.startup_timeout, s.poll_interval)
        abort = threading.Event()
        job_ids = itertools.count(1)
        inserted = 0
        batches = 0

        logger.info(
            f"Loading {row_count:,} records with {s.worker_count} workers "
            f"(batch size {s.batch_size:,}, chunk size {s.chunk_size:,})"
        )

        with TimedExecution() as timer:
            try:
                with ThreadPoolExecutor(
                    max_workers=s.worker_count, thread_name_prefix="insert-lane"
                ) as lanes:
                    while inserted < row_count:
                        chunk_rows = min(s.chunk_size, row_count - inserted)
                        records = _next_records(source, chunk_rows)

                        futures = [
                            lanes.submit(
                                self._run_job,
                                pool,
                                InsertJob(next(job_ids), backend_id, batch),
                                abort,
                            )
                            for batch in split_batches(records, s.batch_size)
                        ]
                        del records

                        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
                        failures = [f for f in done if f.exception() is not None]
                        if failures:
                            abort.set()
                            wait(pending)
                            raise failures[0].exception()

                        batches += len(futures)
                        inserted += chunk_rows
                        logger.info(
                            f"Inserted {inserted:,}/{row_count:,} records "
                            f"({inserted / row_count * 100:.1f}%)"
                        )
                workers_started = pool.size
            finally:
                pool.shutdown()

        logger.info(f"Loaded {inserted:,} records in {timer.elapsed:.2f}s")
        return LoadReport(inserted, batches, timer.elapsed_ms, workers_started)

    def _run_job(
        self, pool: WorkerPool, job: InsertJob, abort: threading.Event
    ) -> Optional[InsertResult]:
        if abort.is_set():
            return None

        worker = pool.acquire()
        try:
            result = worker.execute(job, self.settings.job_timeout)
        finally:
            pool.release(worker)

        if not result.success:
            raise InsertError(f"Insert job {job.job_id} failed: {result.error}")
        logger.debug(
            f"Job {job.job_id}: {len(job.records):,} records in {result.duration_ms:.1f}ms "
            f"(worker {worker.worker_id})"
        )
        return result


def insert_sequential(
    backend: Backend,
    row_count: int,
    source: RecordSource,
    batch_size: int,
    memory_cap: int = DEFAULT_MEMORY_CAP,
) -> LoadReport:
    """Insert records one batch at a time over the backend's own connection.

    Raises:
        ValueError: If row_count is negative or batch_size is not positive
        InsertError: If a batch insert fails
    """
    if row_count < 0:
        raise ValueError(f"row_count must not be negative, got {row_count}")
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    step = min(batch_size, memory_cap)
    inserted = 0
    batches = 0

    logger.info(f"Loading {row_count:,} records sequentially (batch size {step:,})")
    with TimedExecution() as timer:
        while inserted < row_count:
            count = min(step, row_count - inserted)
            records = _next_records(source, count)
            try:
                backend.insert_batch(records)
            except Exception as e:
                raise InsertError(f"Sequential insert of batch {batches + 1} failed: {e}") from e
            inserted += count
            batches += 1
            logger.debug(f"Inserted {inserted:,}/{row_count:,} records")

    logger.info(f"Loaded {inserted:,} records in {timer.elapsed:.2f}s")
    return LoadReport(inserted, batches, timer.elapsed_ms)
