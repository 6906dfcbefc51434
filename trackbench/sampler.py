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
Query Sampling

Runs the query catalogue against a connected backend pass after pass. Every
pass executes all queries in catalogue order, strictly sequentially. The time
limit is checked before each pass only, so a pass that has started always
runs to completion.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from trackbench.backend_base import Backend, TimedExecution
from trackbench.errors import QueryExecutionError
from trackbench.models import QueryResult

logger = logging.getLogger(__name__)

Query = tuple[str, str]

DEFAULT_WARMUP_PASSES = 3


@dataclass(frozen=True)
class SamplingResult:
    """Everything measured by one call to sample().

    Attributes:
        all_passes: One tuple of QueryResult per completed pass
        completed_iterations: Number of completed passes
        timed_out: Whether sampling stopped because of the time limit
    """

    all_passes: tuple[tuple[QueryResult, ...], ...]
    completed_iterations: int
    timed_out: bool

    def durations(self) -> list[list[float]]:
        """Per-pass, per-query durations in milliseconds."""
        return [[r.duration_ms for r in results] for results in self.all_passes]


def execute_query(backend: Backend, name: str, sql: str) -> QueryResult:
    """Execute one query and time it.

    Raises:
        QueryExecutionError: If the backend fails to run the query
    """
    logger.debug(f"Executing {name}")
    with TimedExecution() as timer:
        try:
            rows = backend.query(sql)
        except Exception as e:
            raise QueryExecutionError(name, e) from e

    row_count = len(rows) if rows is not None else 0
    logger.debug(f"{name} completed in {timer.elapsed_ms:.2f}ms, returned {row_count} rows")
    return QueryResult(name=name, duration_ms=timer.elapsed_ms, row_count=row_count)


def run_pass(backend: Backend, queries: Sequence[Query]) -> tuple[QueryResult, ...]:
    return tuple(execute_query(backend, name, sql) for name, sql in queries)


def sample(
    backend: Backend,
    queries: Sequence[Query],
    iterations: int,
    time_limit: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
    on_pass: Optional[Callable[[int, tuple[QueryResult, ...]], None]] = None,
) -> SamplingResult:
    """Run up to ``iterations`` passes over the queries.

    Args:
        backend: Connected backend
        queries: Ordered (name, sql) pairs
        iterations: Maximum number of passes
        time_limit: Seconds after which no new pass is started (None: no limit)
        clock: Monotonic clock in seconds (injectable for tests)
        on_pass: Called with the pass number and its results after each pass

    Returns:
        SamplingResult with every completed pass

    Raises:
        ValueError: If iterations is not positive
        QueryExecutionError: If any query fails
    """
    if iterations <= 0:
        raise ValueError(f"iterations must be positive, got {iterations}")

    started = clock()
    passes: list[tuple[QueryResult, ...]] = []
    timed_out = False

    for iteration in range(1, iterations + 1):
        if time_limit is not None and clock() - started >= time_limit:
            timed_out = True
            logger.info(
                f"Time limit of {time_limit:.0f}s reached after {len(passes)} of "
                f"{iterations} iterations"
            )
            break

        results = run_pass(backend, queries)
        passes.append(results)
        if on_pass is not None:
            on_pass(iteration, results)

    return SamplingResult(
        all_passes=tuple(passes),
        completed_iterations=len(passes),
        timed_out=timed_out,
    )


def run_warmup(
    backend: Backend, queries: Sequence[Query], passes: int = DEFAULT_WARMUP_PASSES
) -> None:
    """Run the queries a few times to warm caches; failures are only logged."""
    logger.debug(f"Running {passes} warmup passes on {backend.name}")
    for _ in range(passes):
        for name, sql in queries:
            try:
                backend.query(sql)
            except Exception as e:
                logger.warning(f"Warmup query {name} failed: {e}")
