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
Benchmark Data Model

Value types shared by the planner, the sampler, the statistics reducer and
the checkpoint store. Every type that is persisted exposes ``to_dict()`` and
``from_dict()`` using the camelCase keys of the checkpoint document.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

TEST_TYPE_LOAD = "load"
TEST_TYPE_QUERY_ONLY = "query-only"
TEST_TYPES = (TEST_TYPE_LOAD, TEST_TYPE_QUERY_ONLY)

DISPLAY_NAMES: dict[str, str] = {
    "clickhouse": "ClickHouse",
    "postgresql": "PostgreSQL",
    "duckdb": "DuckDB",
}


@dataclass(frozen=True)
class TestConfiguration:
    """One (backend, index variant, row count[, shard mode]) tuple under test.

    Attributes:
        backend: Backend identifier (e.g., "postgresql")
        with_index: Whether the table is created with secondary indexes
        row_count: Number of synthetic records loaded for this configuration
        sharded: Whether the backend distributes the table across shards
    """

    __test__ = False

    backend: str
    with_index: bool
    row_count: int
    sharded: bool = False

    @property
    def target_key(self) -> str:
        """Name of the backend role serving this configuration."""
        key = self.backend
        if self.with_index:
            key += "-indexed"
        if self.sharded:
            key += "-sharded"
        return key

    @property
    def display_name(self) -> str:
        """Human readable label, e.g. ``PG (w/ Index)``."""
        base = DISPLAY_NAMES.get(self.backend, self.backend)
        if self.backend == "postgresql" and self.with_index:
            base = "PG (w/ Index)"
        elif self.with_index:
            base = f"{base} (w/ Index)"
        if self.sharded:
            base = f"{base} (Sharded)"
        return base

    def describe(self) -> str:
        index = "(with index)" if self.with_index else "(no index)"
        return f"{self.backend.upper()} {self.row_count:,} rows {index}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "backendId": self.backend,
            "withIndex": self.with_index,
            "rowCount": self.row_count,
        }
        if self.sharded:
            data["sharded"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestConfiguration":
        return cls(
            backend=str(data["backendId"]),
            with_index=bool(data["withIndex"]),
            row_count=int(data["rowCount"]),
            sharded=bool(data.get("sharded", False)),
        )


@dataclass(frozen=True)
class QueryResult:
    """Timing of one query in one pass."""

    name: str
    duration_ms: float
    row_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "duration": self.duration_ms,
            "rows": self.row_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryResult":
        return cls(
            name=str(data["name"]),
            duration_ms=float(data["duration"]),
            row_count=int(data.get("rows", 0)),
        )


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float

    def to_dict(self) -> dict[str, float]:
        return {"lower": self.lower, "upper": self.upper}


@dataclass(frozen=True)
class QueryStatistics:
    """Per-query descriptive statistics over all completed passes.

    Every list is indexed by query position, so all lists have the same
    length as the query catalogue used for sampling.
    """

    mean: tuple[float, ...]
    median: tuple[float, ...]
    min: tuple[float, ...]
    max: tuple[float, ...]
    std_dev: tuple[float, ...]
    ci95: tuple[ConfidenceInterval, ...]

    @property
    def query_count(self) -> int:
        return len(self.mean)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mean": list(self.mean),
            "median": list(self.median),
            "min": list(self.min),
            "max": list(self.max),
            "stdDev": list(self.std_dev),
            "confidenceInterval95": [ci.to_dict() for ci in self.ci95],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryStatistics":
        return cls(
            mean=tuple(float(v) for v in data["mean"]),
            median=tuple(float(v) for v in data["median"]),
            min=tuple(float(v) for v in data["min"]),
            max=tuple(float(v) for v in data["max"]),
            std_dev=tuple(float(v) for v in data["stdDev"]),
            ci95=tuple(
                ConfidenceInterval(lower=float(ci["lower"]), upper=float(ci["upper"]))
                for ci in data["confidenceInterval95"]
            ),
        )


@dataclass(frozen=True)
class QueryOnlySettings:
    iterations: int
    time_limit_minutes: int

    def to_dict(self) -> dict[str, int]:
        return {
            "iterations": self.iterations,
            "timeLimitMinutes": self.time_limit_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryOnlySettings":
        return cls(
            iterations=int(data["iterations"]),
            time_limit_minutes=int(data["timeLimitMinutes"]),
        )


@dataclass(frozen=True)
class TestResults:
    """Outcome of one fully completed configuration.

    Attributes:
        configuration: The configuration that was measured
        setup_time_ms: Time spent dropping, creating and loading the table
        query_results: One representative result per query (median duration
            when statistics are available)
        total_query_time_ms: Sum of the representative query durations
        total_time_ms: Wall-clock time for setup plus sampling
        iterations: Requested pass count (query-only runs)
        timed_out: Whether sampling stopped at the time limit
        completed_iterations: Number of passes actually completed
        query_stats: Statistics over all passes, when any pass completed
    """

    __test__ = False

    configuration: TestConfiguration
    setup_time_ms: float
    query_results: tuple[QueryResult, ...]
    total_query_time_ms: float
    total_time_ms: float
    iterations: Optional[int] = None
    timed_out: Optional[bool] = None
    completed_iterations: Optional[int] = None
    query_stats: Optional[QueryStatistics] = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "configuration": self.configuration.to_dict(),
            "setupTime": self.setup_time_ms,
            "queryResults": [r.to_dict() for r in self.query_results],
            "totalQueryTime": self.total_query_time_ms,
            "totalTime": self.total_time_ms,
        }
        if self.iterations is not None:
            data["iterations"] = self.iterations
        if self.timed_out is not None:
            data["timedOut"] = self.timed_out
        if self.completed_iterations is not None:
            data["completedIterations"] = self.completed_iterations
        if self.query_stats is not None:
            data["queryStats"] = self.query_stats.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestResults":
        stats = data.get("queryStats")
        iterations = data.get("iterations")
        timed_out = data.get("timedOut")
        completed = data.get("completedIterations")
        return cls(
            configuration=TestConfiguration.from_dict(data["configuration"]),
            setup_time_ms=float(data["setupTime"]),
            query_results=tuple(QueryResult.from_dict(r) for r in data["queryResults"]),
            total_query_time_ms=float(data["totalQueryTime"]),
            total_time_ms=float(data["totalTime"]),
            iterations=int(iterations) if iterations is not None else None,
            timed_out=bool(timed_out) if timed_out is not None else None,
            completed_iterations=int(completed) if completed is not None else None,
            query_stats=QueryStatistics.from_dict(stats) if stats is not None else None,
        )
