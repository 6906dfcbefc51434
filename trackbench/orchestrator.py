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
Resumable Benchmark Orchestration

Drives a planned list of configurations through setup and sampling, one at a
time, persisting progress after each one:

    INIT -> RESUMING | FRESH -> RUNNING -> (SETUP -> SAMPLE -> RECORD)* -> COMPLETE | INTERRUPTED

SIGINT/SIGTERM request a graceful stop: the configuration in progress runs to
the end of its current backend call sequence, its result is discarded, the
checkpoint is saved and the run returns INTERRUPTED. A second signal raises
KeyboardInterrupt. Any error inside a configuration saves the checkpoint as it
was and propagates.
"""

import logging
import signal
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

from trackbench.backend_base import Backend, TimedExecution, connect_with_retry
from trackbench.checkpoint import CheckpointStore, TestCheckpoint, create_initial_checkpoint
from trackbench.errors import ConfigurationError, ResourceExhaustionError
from trackbench.generator import DEFAULT_SEED, DataGenerator, RecordSource
from trackbench.loader import (
    DEFAULT_JOB_TIMEOUT,
    DEFAULT_MEMORY_CAP,
    LoaderSettings,
    ParallelLoader,
    insert_sequential,
)
from trackbench.models import (
    TEST_TYPE_LOAD,
    TEST_TYPE_QUERY_ONLY,
    TEST_TYPES,
    QueryOnlySettings,
    QueryResult,
    TestConfiguration,
    TestResults,
)
from trackbench.queries import get_queries
from trackbench.reporting import save_partial_results
from trackbench.sampler import DEFAULT_WARMUP_PASSES, run_warmup, sample
from trackbench.stats import compute_statistics

logger = logging.getLogger(__name__)


class OrchestratorState(Enum):
    INIT = "init"
    RESUMING = "resuming"
    FRESH = "fresh"
    RUNNING = "running"
    SETUP = "setup"
    SAMPLE = "sample"
    RECORD = "record"
    COMPLETE = "complete"
    INTERRUPTED = "interrupted"


class CancellationToken:
    """Thread-safe flag set when the operator asks the run to stop."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class RunOptions:
    """How each configuration is set up and sampled.

    Attributes:
        test_type: "load" (recreate, insert, one pass) or "query-only"
        batch_size: Records per insert call
        parallel_insert: Use the parallel loader instead of one connection
        worker_count: Parallel loader concurrency
        iterations: Maximum passes per configuration (query-only)
        time_limit_minutes: Sampling time limit per configuration (query-only)
        seed: Data generator seed
        warmup_passes: Unmeasured passes before a load test's measured pass
        startup_timeout: Seconds an insert worker may take to connect
        job_timeout: Seconds a single batch insert may take
        memory_cap: Maximum records generated ahead of insertion
    """

    test_type: str = TEST_TYPE_LOAD
    batch_size: int = 50_000
    parallel_insert: bool = False
    worker_count: int = 4
    iterations: int = 100
    time_limit_minutes: int = 60
    seed: str = DEFAULT_SEED
    warmup_passes: int = DEFAULT_WARMUP_PASSES
    startup_timeout: float = 15.0
    job_timeout: float = DEFAULT_JOB_TIMEOUT
    memory_cap: int = DEFAULT_MEMORY_CAP

    def __post_init__(self) -> None:
        if self.test_type not in TEST_TYPES:
            raise ValueError(
                f"Unknown test type '{self.test_type}'. Available: {', '.join(TEST_TYPES)}"
            )

    @property
    def query_only_settings(self) -> Optional[QueryOnlySettings]:
        if self.test_type != TEST_TYPE_QUERY_ONLY:
            return None
        return QueryOnlySettings(self.iterations, self.time_limit_minutes)


class RunStatus(Enum):
    COMPLETE = "complete"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class RunOutcome:
    """What a run produced.

    Attributes:
        status: COMPLETE or INTERRUPTED
        results: Results of every completed configuration, resumed ones included
        checkpoint: Final checkpoint state
        partial_results_path: File written on interrupt, if any
    """

    status: RunStatus
    results: tuple[TestResults, ...]
    checkpoint: TestCheckpoint
    partial_results_path: Optional[Path] = None

    @property
    def exit_code(self) -> int:
        return 0


class ResumableOrchestrator:
    """Runs configurations in order, checkpointing after each one.

    Args:
        configurations: Planned configurations, in execution order
        backends: Backend instance per target key (e.g., "postgresql-indexed")
        store: Checkpoint persistence
        options: Setup and sampling options
        output_dir: Directory for partial results on interrupt
        token: Cancellation token (default: a new one)
        connect: Prepares and connects a backend (default: connect_with_retry)
        on_result: Called with each configuration result as it completes
    """

    def __init__(
        self,
        configurations: Sequence[TestConfiguration],
        backends: Mapping[str, Backend],
        store: CheckpointStore,
        options: Optional[RunOptions] = None,
        output_dir: Path = Path("output"),
        token: Optional[CancellationToken] = None,
        connect: Callable[[Backend], None] = connect_with_retry,
        on_result: Optional[Callable[[TestResults], None]] = None,
    ) -> None:
        self.configurations = list(configurations)
        self.backends = dict(backends)
        self.store = store
        self.options = options or RunOptions()
        self.output_dir = Path(output_dir)
        self.token = token or CancellationToken()
        self._connect = connect
        self._on_result = on_result
        self._connected: list[Backend] = []
        self.backend_versions: dict[str, str] = {}
        self._data_time = datetime.now(timezone.utc)
        self.state = OrchestratorState.INIT

    def run(self, fresh: bool = False) -> RunOutcome:
        """Execute every pending configuration.

        Args:
            fresh: Ignore and delete any existing checkpoint

        Returns:
            RunOutcome with status COMPLETE or INTERRUPTED

        Raises:
            ConfigurationError: If a configuration has no backend
            TransientBackendError: If a backend cannot be connected
            FatalConfigurationError: If a configuration fails
        """
        self.state = OrchestratorState.INIT
        self._data_time = datetime.now(timezone.utc)

        if fresh:
            logger.info("Fresh start requested, discarding any checkpoint")
            self.store.clear()
        checkpoint = self._reconcile()
        self.store.save(checkpoint)

        roles = self._required_roles(checkpoint)
        previous_handlers = self._install_signal_handlers()
        try:
            self._connect_roles(roles)
            self.state = OrchestratorState.RUNNING

            for config in list(checkpoint.pending_configurations):
                if self.token.cancelled:
                    break

                done = checkpoint.completed_count + 1
                logger.info(
                    f"[{done}/{checkpoint.total_configurations}] Testing {config.describe()}"
                )
                try:
                    result = self._run_configuration(config)
                except BaseException:
                    logger.error(
                        f"Configuration {config.describe()} failed, "
                        f"checkpoint kept at {checkpoint.completed_count}/"
                        f"{checkpoint.total_configurations}"
                    )
                    self.store.save(checkpoint)
                    raise

                if self.token.cancelled:
                    logger.warning(
                        f"Interrupted during {config.describe()}, "
                        f"its result is discarded and it stays pending"
                    )
                    break

                self.state = OrchestratorState.RECORD
                checkpoint = checkpoint.mark_completed(config, result)
                self.store.save(checkpoint)
                if self._on_result is not None:
                    self._on_result(result)
                self.state = OrchestratorState.RUNNING

            if checkpoint.is_complete:
                return self._complete(checkpoint)
            return self._interrupt(checkpoint)
        finally:
            self._disconnect_roles()
            self._restore_signal_handlers(previous_handlers)

    def _reconcile(self) -> TestCheckpoint:
        existing = self.store.load()
        if existing is not None:
            mismatch = self._mismatch_reason(existing)
            if mismatch is None:
                self.state = OrchestratorState.RESUMING
                logger.info(
                    f"Resuming session {existing.session_id}: "
                    f"{existing.completed_count}/{existing.total_configurations} "
                    f"configurations completed, {existing.remaining_count} remaining"
                )
                return existing

            logger.info(f"Existing checkpoint does not match this run ({mismatch}), starting fresh")
            self.store.clear()

        self.state = OrchestratorState.FRESH
        checkpoint = create_initial_checkpoint(
            self.configurations, self.options.test_type, self.options.query_only_settings
        )
        logger.info(
            f"Starting session {checkpoint.session_id} with "
            f"{checkpoint.total_configurations} configurations"
        )
        return checkpoint

    def _mismatch_reason(self, checkpoint: TestCheckpoint) -> Optional[str]:
        if checkpoint.test_type != self.options.test_type:
            return f"test type {checkpoint.test_type} != {self.options.test_type}"
        if (
            self.options.test_type == TEST_TYPE_QUERY_ONLY
            and checkpoint.query_only_settings != self.options.query_only_settings
        ):
            return "query-only settings differ"
        if checkpoint.planned_set() != set(self.configurations):
            return "planned configurations differ"
        return None

    def _required_roles(self, checkpoint: TestCheckpoint) -> list[str]:
        roles: list[str] = []
        for config in checkpoint.pending_configurations:
            if config.target_key not in roles:
                roles.append(config.target_key)
        missing = [role for role in roles if role not in self.backends]
        if missing:
            raise ConfigurationError(f"No backend configured for: {', '.join(missing)}")
        return roles

    def _connect_roles(self, roles: Sequence[str]) -> None:
        for role in roles:
            backend = self.backends[role]
            logger.info(f"Connecting to {role}")
            self._connect(backend)
            self._connected.append(backend)
            self.backend_versions[role] = backend.get_version()
            logger.info(f"{role} version: {self.backend_versions[role]}")

    def _disconnect_roles(self) -> None:
        while self._connected:
            backend = self._connected.pop()
            try:
                backend.disconnect()
            except Exception as e:
                logger.warning(f"Error while disconnecting {backend.name}: {e}")

    def _run_configuration(self, config: TestConfiguration) -> TestResults:
        backend = self.backends[config.target_key]
        queries = get_queries(backend.dialect)

        if self.options.test_type == TEST_TYPE_LOAD:
            return self._run_load_test(config, backend, queries)
        return self._run_query_only_test(config, backend, queries)

    def _run_load_test(
        self, config: TestConfiguration, backend: Backend, queries: list[tuple[str, str]]
    ) -> TestResults:
        self.state = OrchestratorState.SETUP
        with TimedExecution() as setup_timer:
            self._setup(config, backend)

        self.state = OrchestratorState.SAMPLE
        run_warmup(backend, queries, self.options.warmup_passes)
        with TimedExecution() as sample_timer:
            sampling = sample(backend, queries, iterations=1)

        query_results = sampling.all_passes[0]
        return TestResults(
            configuration=config,
            setup_time_ms=setup_timer.elapsed_ms,
            query_results=query_results,
            total_query_time_ms=sum(r.duration_ms for r in query_results),
            total_time_ms=setup_timer.elapsed_ms + sample_timer.elapsed_ms,
        )

    def _run_query_only_test(
        self, config: TestConfiguration, backend: Backend, queries: list[tuple[str, str]]
    ) -> TestResults:
        self.state = OrchestratorState.SAMPLE
        iterations = self.options.iterations

        def log_pass(iteration: int, results: tuple[QueryResult, ...]) -> None:
            total = sum(r.duration_ms for r in results)
            logger.debug(f"Iteration {iteration}/{iterations}: {total:.2f}ms")

        with TimedExecution() as timer:
            sampling = sample(
                backend,
                queries,
                iterations=iterations,
                time_limit=self.options.time_limit_minutes * 60,
                on_pass=log_pass,
            )

        if sampling.completed_iterations == 0:
            logger.warning(f"No iteration completed for {config.describe()}")
            query_stats = None
            query_results: tuple[QueryResult, ...] = ()
        else:
            query_stats = compute_statistics(sampling.durations())
            first_pass = sampling.all_passes[0]
            query_results = tuple(
                QueryResult(name=r.name, duration_ms=query_stats.median[i], row_count=r.row_count)
                for i, r in enumerate(first_pass)
            )

        return TestResults(
            configuration=config,
            setup_time_ms=0.0,
            query_results=query_results,
            total_query_time_ms=sum(r.duration_ms for r in query_results),
            total_time_ms=timer.elapsed_ms,
            iterations=iterations,
            timed_out=sampling.timed_out,
            completed_iterations=sampling.completed_iterations,
            query_stats=query_stats,
        )

    def _setup(self, config: TestConfiguration, backend: Backend) -> None:
        create = backend.create_table_with_index if config.with_index else backend.create_table
        backend.drop_table()
        create()

        o = self.options
        if not o.parallel_insert:
            insert_sequential(
                backend, config.row_count, self._record_source(config), o.batch_size, o.memory_cap
            )
            return

        loader = ParallelLoader(
            backend.replicate,
            LoaderSettings(
                worker_count=o.worker_count,
                batch_size=o.batch_size,
                memory_cap=o.memory_cap,
                startup_timeout=o.startup_timeout,
                job_timeout=o.job_timeout,
            ),
        )
        try:
            loader.load(config.row_count, self._record_source(config), backend.name)
        except ResourceExhaustionError as e:
            logger.warning(f"Parallel insertion failed: {e}")
            logger.warning("Falling back to sequential insertion")
            backend.drop_table()
            create()
            insert_sequential(
                backend, config.row_count, self._record_source(config), o.batch_size, o.memory_cap
            )

    def _record_source(self, config: TestConfiguration) -> RecordSource:
        generator = DataGenerator(seed=self.options.seed, now=self._data_time)
        return generator.record_source(config.row_count)

    def _complete(self, checkpoint: TestCheckpoint) -> RunOutcome:
        self.state = OrchestratorState.COMPLETE
        self.store.clear()
        logger.info(f"All {checkpoint.total_configurations} configurations completed")
        return RunOutcome(RunStatus.COMPLETE, checkpoint.partial_results, checkpoint)

    def _interrupt(self, checkpoint: TestCheckpoint) -> RunOutcome:
        self.state = OrchestratorState.INTERRUPTED
        self.store.save(checkpoint)
        logger.info(
            f"Progress saved ({checkpoint.completed_count}/{checkpoint.total_configurations}). "
            f"Run the same command to resume from checkpoint."
        )

        partial_path = None
        if checkpoint.partial_results:
            partial_path = save_partial_results(checkpoint.partial_results, self.output_dir)
            logger.info(f"Partial results saved to {partial_path}")

        return RunOutcome(
            RunStatus.INTERRUPTED, checkpoint.partial_results, checkpoint, partial_path
        )

    def _handle_signal(self, signum: int, frame: Any) -> None:
        if self.token.cancelled:
            raise KeyboardInterrupt
        logger.warning(
            f"Received {signal.Signals(signum).name}, stopping after the current configuration"
        )
        self.token.cancel()

    def _install_signal_handlers(self) -> dict[int, Any]:
        # signal.signal() may only be called from the main thread
        if threading.current_thread() is not threading.main_thread():
            return {}
        previous = {}
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, self._handle_signal)
        return previous

    def _restore_signal_handlers(self, previous: dict[int, Any]) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
