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
Abstract Base Class for Benchmark Backends

This module defines the capability interface every database backend must
provide. The orchestration engine never touches a driver directly: it only
calls the methods declared here, plus the ``name`` used for checkpoint
equality and statistics bucketing.

To implement a new backend:

    from trackbench.backend_base import Backend

    class MyNewBackend(Backend):
        '''Backend implementation for MyNewDB.'''

        @property
        def name(self) -> str:
            return "mynewdb"

        @property
        def dialect(self) -> str:
            return "postgresql"   # which SQL text from trackbench.queries to use

        def connect(self) -> None:
            self._conn = mynewdb.connect(...)

        def query(self, sql: str) -> list:
            return self._conn.execute(sql).fetchall()

        def insert_batch(self, records) -> None:
            self._conn.insert("performance_test", records)

        ...

        def replicate(self) -> "MyNewBackend":
            return MyNewBackend(self._settings)
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

from trackbench.errors import TransientBackendError

logger = logging.getLogger(__name__)

# Name of the benchmark table in every backend
TABLE_NAME = "performance_test"

Record = dict[str, Any]


class Backend(ABC):
    """Abstract base class for database benchmark backends.

    The typical lifecycle is:
        1. backend = MyBackend(settings)
        2. backend.ensure_database_exists()
        3. backend.connect()
        4. backend.drop_table(); backend.create_table()
        5. backend.insert_batch(records) (repeatedly)
        6. rows = backend.query(sql) (repeatedly)
        7. backend.disconnect()

    Context manager support is provided for automatic cleanup:
        with MyBackend(settings) as backend:
            backend.query("SELECT 1")
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the backend identifier (e.g., 'clickhouse', 'postgresql').

        This is stored in checkpoints, so it must stay stable across runs.
        """
        pass

    @property
    @abstractmethod
    def dialect(self) -> str:
        """Return the SQL dialect key used to pick query text."""
        pass

    @abstractmethod
    def connect(self) -> None:
        """Establish the connection used by subsequent calls.

        Raises:
            TransientBackendError: If the server cannot be reached
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection. Safe to call when not connected."""
        pass

    @abstractmethod
    def query(self, sql: str) -> Sequence[Any]:
        """Execute a query and return all result rows."""
        pass

    @abstractmethod
    def insert_batch(self, records: Sequence[Record]) -> None:
        """Insert a batch of generated records into the benchmark table."""
        pass

    @abstractmethod
    def create_table(self) -> None:
        """Create the benchmark table if it does not exist."""
        pass

    @abstractmethod
    def create_table_with_index(self) -> None:
        """Create the benchmark table plus its secondary indexes."""
        pass

    @abstractmethod
    def drop_table(self) -> None:
        """Drop the benchmark table if it exists."""
        pass

    @abstractmethod
    def ensure_database_exists(self) -> None:
        """Create the target database if missing (CREATE IF NOT EXISTS semantics).

        Must be idempotent: calling it any number of times has the same
        effect as calling it once.
        """
        pass

    @abstractmethod
    def replicate(self) -> "Backend":
        """Return a new, unconnected backend with the same settings.

        Insert workers use replicas so each one owns a private connection.
        """
        pass

    def get_version(self) -> str:
        """Return the version string of the database server.

        Override this method to provide version information for the report.
        """
        return "unknown"

    def __enter__(self) -> "Backend":
        """Context manager entry: connect to database."""
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit: close connection."""
        self.disconnect()


class TimedExecution:
    """Context manager for timing code execution.

    Usage:
        with TimedExecution() as timer:
            # code to time
        print(f"Elapsed: {timer.elapsed_ms:.3f}ms")
    """

    def __init__(self) -> None:
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000.0

    def __enter__(self) -> "TimedExecution":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time


def connect_with_retry(
    backend: Backend,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Prepare and connect a backend, retrying transient failures with backoff.

    Each attempt runs ensure_database_exists() and then connect().
    The delay before attempt ``k + 1`` is ``base_delay * 2**k`` seconds.
    Only TransientBackendError is retried; anything else propagates at once.

    Args:
        backend: Backend to connect
        max_attempts: Total number of connection attempts
        base_delay: Delay multiplier in seconds
        sleep: Sleep function (injectable for tests)

    Raises:
        TransientBackendError: If every attempt failed
    """
    last_error: TransientBackendError | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            backend.ensure_database_exists()
            backend.connect()
            return
        except TransientBackendError as e:
            last_error = e
            logger.warning(
                f"{backend.name} connection attempt {attempt}/{max_attempts} failed: {e}"
            )
            if attempt < max_attempts:
                sleep(base_delay * (2 ** attempt))

    raise TransientBackendError(
        f"Failed to connect to {backend.name} after {max_attempts} attempts: {last_error}"
    ) from last_error
