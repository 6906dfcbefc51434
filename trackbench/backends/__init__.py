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
Benchmark Target Registry

A target is a named backend role: a backend id plus an index variant, bound
to the settings of one server (or database file). To add a new target,
implement a Backend in this package and add it to the TARGETS dictionary.

The order of TARGETS is the canonical order in which configurations are
planned and reported.
"""

from dataclasses import dataclass
from typing import Callable

from trackbench.backend_base import Backend
from trackbench.backends.clickhouse_backend import ClickHouseBackend
from trackbench.backends.duckdb_backend import DuckDBBackend
from trackbench.backends.postgresql_backend import PostgreSQLBackend
from trackbench.config import Settings


@dataclass(frozen=True)
class Target:
    """A backend role the operator can enable.

    Attributes:
        key: CLI / BENCHMARK_DATABASES name (e.g., "postgresql-indexed")
        backend: Backend id stored in configurations
        with_index: Whether this role's table carries secondary indexes
        factory: Builds an unconnected backend from run settings
    """

    key: str
    backend: str
    with_index: bool
    factory: Callable[[Settings], Backend]


# Registry of available targets
# Key: CLI argument name (lowercase)
# Value: Target description
TARGETS: dict[str, Target] = {
    "clickhouse": Target(
        "clickhouse", "clickhouse", False, lambda s: ClickHouseBackend(s.clickhouse)
    ),
    "postgresql": Target(
        "postgresql", "postgresql", False, lambda s: PostgreSQLBackend(s.postgres)
    ),
    "postgresql-indexed": Target(
        "postgresql-indexed", "postgresql", True,
        lambda s: PostgreSQLBackend(s.postgres_indexed),
    ),
    "duckdb": Target(
        "duckdb", "duckdb", False, lambda s: DuckDBBackend(s.duckdb_path)
    ),
    "duckdb-indexed": Target(
        "duckdb-indexed", "duckdb", True, lambda s: DuckDBBackend(s.duckdb_indexed_path)
    ),
}


def get_target(key: str) -> Target:
    """Look up a target by name.

    Args:
        key: Target name (case-insensitive)

    Returns:
        The registered Target

    Raises:
        ValueError: If target name is not recognized
    """
    key_lower = key.lower()
    if key_lower not in TARGETS:
        available = ", ".join(TARGETS.keys())
        raise ValueError(f"Unknown database '{key}'. Available databases: {available}")

    return TARGETS[key_lower]


def create_backend(key: str, settings: Settings) -> Backend:
    """Build an unconnected backend instance for the named target."""
    return get_target(key).factory(settings)


def list_targets() -> list[str]:
    """Return target names in canonical order."""
    return list(TARGETS.keys())


__all__ = [
    "TARGETS",
    "Target",
    "get_target",
    "create_backend",
    "list_targets",
    "ClickHouseBackend",
    "DuckDBBackend",
    "PostgreSQLBackend",
]
