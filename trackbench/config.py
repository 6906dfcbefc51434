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
Benchmark Settings

Settings are read from environment variables, optionally seeded from a
``.env`` file, and may be overridden from the command line. The runner passes
its CLI overrides in as environment-style keys so that every value goes
through the same validation.

Validation does not stop at the first problem: every invalid variable is
collected and reported in a single ConfigurationError.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from trackbench.errors import ConfigurationError
from trackbench.generator import DEFAULT_SEED

logger = logging.getLogger(__name__)

DEFAULT_DATABASES = "clickhouse,postgresql,postgresql-indexed"
DEFAULT_WORKER_TIMEOUT_MS = 15000


@dataclass(frozen=True)
class ConnectionSettings:
    """Network location and credentials of one backend role."""

    host: str
    port: int
    database: str
    username: str
    password: str = field(repr=False, default="")


@dataclass(frozen=True)
class Settings:
    """Complete, validated settings for a benchmark run."""

    clickhouse: ConnectionSettings
    postgres: ConnectionSettings
    postgres_indexed: ConnectionSettings
    duckdb_path: str
    duckdb_indexed_path: str
    dataset_sizes: tuple[int, ...]
    batch_size: int
    parallel_insert: bool
    parallel_workers: int
    query_iterations: int
    query_time_limit_minutes: int
    databases: tuple[str, ...]
    seed: str
    worker_timeout_ms: int


class ConfigValidator:
    """Reads typed values from an environment mapping, collecting errors."""

    def __init__(self, environ: Mapping[str, str]) -> None:
        self._environ = environ
        self.errors: list[str] = []

    def _raw(self, name: str) -> Optional[str]:
        value = self._environ.get(name)
        if value is None or value.strip() == "":
            return None
        return value.strip()

    def string(self, name: str, default: str, allowed: Optional[list[str]] = None) -> str:
        value = self._raw(name)
        if value is None:
            return default
        if allowed is not None and value not in allowed:
            self.errors.append(
                f'{name}="{value}" - Invalid value. Allowed values: {", ".join(allowed)}'
            )
            return default
        return value

    def integer(
        self,
        name: str,
        default: int,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
        description: str = "",
    ) -> int:
        raw = self._raw(name)
        if raw is None:
            return default

        expected = f" Expected: {description}" if description else ""
        try:
            value = int(raw)
        except ValueError:
            self.errors.append(f'{name}="{raw}" - Invalid integer value.{expected}')
            return default

        if minimum is not None and value < minimum:
            self.errors.append(
                f'{name}="{raw}" - Value {value} is below minimum {minimum}.{expected}'
            )
            return default
        if maximum is not None and value > maximum:
            self.errors.append(
                f'{name}="{raw}" - Value {value} is above maximum {maximum}.{expected}'
            )
            return default
        return value

    def port(self, name: str, default: int) -> int:
        return self.integer(name, default, 1, 65535, "Valid port number (1-65535)")

    def boolean(self, name: str, default: bool) -> bool:
        value = self.string(name, "true" if default else "false", ["true", "false"])
        return value == "true"

    def integer_list(self, name: str) -> Optional[list[int]]:
        raw = self._raw(name)
        if raw is None:
            return None
        values = []
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                value = int(part)
            except ValueError:
                self.errors.append(f'{name}="{raw}" - Invalid number in list: "{part}"')
                return None
            if value < 1:
                self.errors.append(f'{name}="{raw}" - Sizes must be positive, got {value}')
                return None
            values.append(value)
        if not values:
            self.errors.append(f'{name}="{raw}" - At least one value is required')
            return None
        return values

    def name_list(self, name: str, default: str) -> list[str]:
        raw = self._raw(name) or default
        return [part.strip().lower() for part in raw.split(",") if part.strip()]

    def check_port_conflicts(self, ports: dict[str, int]) -> None:
        entries = list(ports.items())
        for i, (name_a, port_a) in enumerate(entries):
            for name_b, port_b in entries[i + 1:]:
                if port_a == port_b:
                    self.errors.append(
                        f'{name_a} & {name_b}="{port_a}" - Port conflict detected. '
                        f"Both databases cannot use the same port {port_a}"
                    )

    def raise_if_invalid(self) -> None:
        if self.errors:
            lines = [f"{i}. {error}" for i, error in enumerate(self.errors, start=1)]
            raise ConfigurationError(
                "Environment variable validation errors:\n" + "\n".join(lines)
            )


def _connection(
    validator: ConfigValidator,
    prefix: str,
    default_port: int,
    default_username: str,
    default_password: str,
) -> ConnectionSettings:
    return ConnectionSettings(
        host=validator.string(f"{prefix}_HOST", "localhost"),
        port=validator.port(f"{prefix}_PORT", default_port),
        database=validator.string(f"{prefix}_DATABASE", "performance_test"),
        username=validator.string(f"{prefix}_USERNAME", default_username),
        password=validator.string(f"{prefix}_PASSWORD", default_password),
    )


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[str] = None,
) -> Settings:
    """Build validated settings.

    Args:
        environ: Variables to read (default: process environment, after
            loading ``.env``)
        overrides: Environment-style keys that take precedence (CLI flags)
        dotenv_path: Explicit ``.env`` location (default: search upwards)

    Returns:
        Settings for the run

    Raises:
        ConfigurationError: If any variable is invalid
    """
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    merged = dict(environ)
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})

    v = ConfigValidator(merged)

    clickhouse = _connection(v, "CLICKHOUSE", 8123, "default", "")
    postgres = _connection(v, "POSTGRES", 5432, "postgres", "postgres")
    postgres_indexed = _connection(v, "POSTGRES_INDEXED", 5433, "postgres", "postgres")

    dataset_size = v.integer(
        "DATASET_SIZE", 10_000_000, 1000, 100_000_000, "Dataset size (1000-100M records)"
    )
    bulk_sizes = v.integer_list("BULK_TEST_SIZES")

    settings = Settings(
        clickhouse=clickhouse,
        postgres=postgres,
        postgres_indexed=postgres_indexed,
        duckdb_path=v.string("DUCKDB_PATH", "output/duckdb/performance_test.duckdb"),
        duckdb_indexed_path=v.string(
            "DUCKDB_INDEXED_PATH", "output/duckdb/performance_test_indexed.duckdb"
        ),
        dataset_sizes=tuple(bulk_sizes) if bulk_sizes else (dataset_size,),
        batch_size=v.integer(
            "BATCH_SIZE", 50_000, 1000, 1_000_000, "Batch size (1K-1M records)"
        ),
        parallel_insert=v.boolean("PARALLEL_INSERT", False),
        parallel_workers=v.integer(
            "PARALLEL_WORKERS", 4, 1, 16, "Worker threads (1-16)"
        ),
        query_iterations=v.integer(
            "QUERY_TEST_ITERATIONS", 100, 1, 10000, "Query test iterations (1-10000)"
        ),
        query_time_limit_minutes=v.integer(
            "QUERY_TEST_TIME_LIMIT", 60, 1, 1440, "Query test time limit in minutes (1-1440)"
        ),
        databases=tuple(v.name_list("BENCHMARK_DATABASES", DEFAULT_DATABASES)),
        seed=v.string("BENCHMARK_SEED", DEFAULT_SEED),
        worker_timeout_ms=v.integer(
            "WORKER_TIMEOUT_MS", DEFAULT_WORKER_TIMEOUT_MS, 100, 600_000,
            "Worker startup timeout in milliseconds (100-600000)",
        ),
    )

    v.check_port_conflicts({
        "CLICKHOUSE_PORT": clickhouse.port,
        "POSTGRES_PORT": postgres.port,
        "POSTGRES_INDEXED_PORT": postgres_indexed.port,
    })
    v.raise_if_invalid()

    logger.debug(f"Loaded settings: {settings}")
    return settings
