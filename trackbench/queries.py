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
Query Catalogue for Aircraft Tracking Benchmarks

The benchmark runs the same ordered sequence of queries against every
backend. Each query is a QueryDescriptor carrying one SQL text per dialect;
the order of QUERY_CATALOGUE is the order used by every pass, and the
position of a query in it is the index used by the statistics reducer.

Time-relative queries (Q3, Q4) are rendered against a reference instant so
a whole run can use one consistent window.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

DIALECTS = ("clickhouse", "postgresql", "duckdb")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class QueryDescriptor:
    """A named benchmark query.

    Attributes:
        key: Stable identifier (e.g., "q1_show_tables")
        name: Human readable name used in reports
        sql_by_dialect: Builder per dialect, called with the time window
    """

    key: str
    name: str
    sql_by_dialect: dict[str, Callable[["TimeWindow"], str]]

    def render(self, dialect: str, window: "TimeWindow") -> str:
        if dialect not in self.sql_by_dialect:
            available = ", ".join(sorted(self.sql_by_dialect.keys()))
            raise ValueError(f"Unknown dialect '{dialect}'. Available: {available}")
        return self.sql_by_dialect[dialect](window)


@dataclass(frozen=True)
class TimeWindow:
    """Reference boundaries for the time-relative queries (UTC, naive)."""

    today_start: str
    day_before_yesterday_start: str
    day_before_yesterday_end: str

    @classmethod
    def from_now(cls, now: Optional[datetime] = None) -> "TimeWindow":
        if now is None:
            now = datetime.now(timezone.utc)
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc).replace(tzinfo=None)

        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        dby_start = (now - timedelta(days=2)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        dby_end = dby_start + timedelta(days=1)
        return cls(
            today_start=today.strftime(TIMESTAMP_FORMAT),
            day_before_yesterday_start=dby_start.strftime(TIMESTAMP_FORMAT),
            day_before_yesterday_end=dby_end.strftime(TIMESTAMP_FORMAT),
        )


_SAMPLE_COLUMNS = (
    "hex, flight, aircraft_type, lat, lon, alt_baro, gs, track, "
    "timestamp, alt_baro_is_ground, nav_qnh, category"
)

_EXPLORE_SCHEMA_SQL = f"""
    SELECT {_SAMPLE_COLUMNS}
    FROM performance_test
    ORDER BY timestamp DESC
    LIMIT 10
"""


def _hourly_today_clickhouse(w: TimeWindow) -> str:
    return f"""
    SELECT
        toStartOfHour(timestamp) AS hour_bucket,
        uniq(hex) AS unique_aircraft_count
    FROM performance_test
    WHERE
        timestamp >= '{w.today_start}'
        AND alt_baro_is_ground = 0
    GROUP BY hour_bucket
    ORDER BY hour_bucket ASC
"""


def _hourly_today_standard(w: TimeWindow) -> str:
    return f"""
    SELECT
        date_trunc('hour', timestamp) AS hour_bucket,
        count(DISTINCT hex) AS unique_aircraft_count
    FROM performance_test
    WHERE
        timestamp >= TIMESTAMP '{w.today_start}'
        AND alt_baro_is_ground = false
    GROUP BY hour_bucket
    ORDER BY hour_bucket ASC
"""


def _hourly_dby_clickhouse(w: TimeWindow) -> str:
    return f"""
    SELECT
        toStartOfHour(timestamp) AS hour_bucket,
        uniq(hex) AS unique_aircraft_count,
        avg(alt_baro) AS avg_altitude
    FROM performance_test
    WHERE
        timestamp >= '{w.day_before_yesterday_start}'
        AND timestamp < '{w.day_before_yesterday_end}'
        AND alt_baro_is_ground = 0
    GROUP BY hour_bucket
    ORDER BY hour_bucket ASC
"""


def _hourly_dby_standard(w: TimeWindow) -> str:
    return f"""
    SELECT
        date_trunc('hour', timestamp) AS hour_bucket,
        count(DISTINCT hex) AS unique_aircraft_count,
        avg(alt_baro) AS avg_altitude
    FROM performance_test
    WHERE
        timestamp >= TIMESTAMP '{w.day_before_yesterday_start}'
        AND timestamp < TIMESTAMP '{w.day_before_yesterday_end}'
        AND alt_baro_is_ground = false
    GROUP BY hour_bucket
    ORDER BY hour_bucket ASC
"""


QUERY_CATALOGUE: tuple[QueryDescriptor, ...] = (
    QueryDescriptor(
        key="q1_show_tables",
        name="Q1 Show tables",
        sql_by_dialect={
            "clickhouse": lambda w: "SHOW TABLES",
            "postgresql": lambda w: (
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = 'public'"
            ),
            "duckdb": lambda w: (
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = 'main'"
            ),
        },
    ),
    QueryDescriptor(
        key="q2_explore_schema",
        name="Q2 Explore schema with sample data",
        sql_by_dialect={
            "clickhouse": lambda w: _EXPLORE_SCHEMA_SQL,
            "postgresql": lambda w: _EXPLORE_SCHEMA_SQL,
            "duckdb": lambda w: _EXPLORE_SCHEMA_SQL,
        },
    ),
    QueryDescriptor(
        key="q3_hourly_aircraft_today",
        name="Q3 Hourly aircraft count - today",
        sql_by_dialect={
            "clickhouse": _hourly_today_clickhouse,
            "postgresql": _hourly_today_standard,
            "duckdb": _hourly_today_standard,
        },
    ),
    QueryDescriptor(
        key="q4_hourly_aircraft_day_before_yesterday",
        name="Q4 Hourly aircraft count - day before yesterday",
        sql_by_dialect={
            "clickhouse": _hourly_dby_clickhouse,
            "postgresql": _hourly_dby_standard,
            "duckdb": _hourly_dby_standard,
        },
    ),
)


def get_queries(dialect: str, now: Optional[datetime] = None) -> list[tuple[str, str]]:
    """Get the benchmark queries for a SQL dialect, in pass order.

    Args:
        dialect: SQL dialect name (e.g., "postgresql")
        now: Reference instant for time-relative queries (default: now, UTC)

    Returns:
        List of (query name, SQL) pairs

    Raises:
        ValueError: If dialect is not supported
    """
    if dialect not in DIALECTS:
        available = ", ".join(sorted(DIALECTS))
        raise ValueError(f"Unknown dialect '{dialect}'. Available: {available}")

    window = TimeWindow.from_now(now)
    return [(q.name, q.render(dialect, window)) for q in QUERY_CATALOGUE]


def list_queries() -> list[str]:
    """Return the query keys in pass order."""
    return [q.key for q in QUERY_CATALOGUE]


def list_dialects() -> list[str]:
    """Return list of supported SQL dialects."""
    return sorted(DIALECTS)


def get_query_count() -> int:
    """Return the number of benchmark queries."""
    return len(QUERY_CATALOGUE)
