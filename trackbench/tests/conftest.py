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
Shared fixtures: an in-memory stub backend that records what it is asked to
do, so the loader, sampler and orchestrator can be tested without a database.
"""

import threading
import time
from typing import Any, Callable, Optional, Sequence

import pytest

from trackbench.backend_base import Backend, Record
from trackbench.errors import TransientBackendError


class SharedState:
    """State shared by a stub backend and all of its replicas."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.active_inserts = 0
        self.max_active_inserts = 0
        self.records: list[Record] = []
        self.insert_calls = 0
        self.connects = 0
        self.disconnects = 0
        self.ensure_calls = 0
        self.queries: list[str] = []
        self.ddl: list[str] = []


class StubBackend(Backend):
    """Backend double with configurable delays and failures.

    Args:
        backend_name: Value of ``name``
        insert_delay: Seconds each insert_batch call sleeps
        replica_connect_delay: Seconds a replica's connect call sleeps
        fail_replica_connect: Replicas raise on connect
        fail_insert_after: Insert calls after this many succeed raise
        fail_query: Query names (substring of SQL) that raise
        on_query: Hook called with the SQL of each query
    """

    def __init__(
        self,
        backend_name: str = "duckdb",
        shared: Optional[SharedState] = None,
        insert_delay: float = 0.0,
        replica_connect_delay: float = 0.0,
        fail_replica_connect: bool = False,
        fail_insert_after: Optional[int] = None,
        fail_query: Optional[str] = None,
        on_query: Optional[Callable[[str], None]] = None,
        is_replica: bool = False,
    ) -> None:
        self.backend_name = backend_name
        self.shared = shared or SharedState()
        self.insert_delay = insert_delay
        self.replica_connect_delay = replica_connect_delay
        self.fail_replica_connect = fail_replica_connect
        self.fail_insert_after = fail_insert_after
        self.fail_query = fail_query
        self.on_query = on_query
        self.is_replica = is_replica
        self.connected = False

    @property
    def name(self) -> str:
        return self.backend_name

    @property
    def dialect(self) -> str:
        return "duckdb"

    def connect(self) -> None:
        if self.is_replica:
            if self.replica_connect_delay:
                time.sleep(self.replica_connect_delay)
            if self.fail_replica_connect:
                raise TransientBackendError("replica connection refused")
        with self.shared.lock:
            self.shared.connects += 1
        self.connected = True

    def disconnect(self) -> None:
        if self.connected:
            with self.shared.lock:
                self.shared.disconnects += 1
        self.connected = False

    def query(self, sql: str) -> Sequence[Any]:
        if self.on_query is not None:
            self.on_query(sql)
        if self.fail_query is not None and self.fail_query in sql:
            raise RuntimeError(f"query failed: {self.fail_query}")
        with self.shared.lock:
            self.shared.queries.append(sql)
        return [(1,), (2,)]

    def insert_batch(self, records: Sequence[Record]) -> None:
        with self.shared.lock:
            self.shared.insert_calls += 1
            call_number = self.shared.insert_calls
            self.shared.active_inserts += 1
            self.shared.max_active_inserts = max(
                self.shared.max_active_inserts, self.shared.active_inserts
            )
        try:
            if self.insert_delay:
                time.sleep(self.insert_delay)
            if self.fail_insert_after is not None and call_number > self.fail_insert_after:
                raise RuntimeError(f"insert {call_number} rejected")
            with self.shared.lock:
                self.shared.records.extend(records)
        finally:
            with self.shared.lock:
                self.shared.active_inserts -= 1

    def create_table(self) -> None:
        self.shared.ddl.append("create")

    def create_table_with_index(self) -> None:
        self.shared.ddl.append("create_with_index")

    def drop_table(self) -> None:
        self.shared.ddl.append("drop")
        with self.shared.lock:
            self.shared.records.clear()

    def ensure_database_exists(self) -> None:
        self.shared.ensure_calls += 1

    def replicate(self) -> "StubBackend":
        return StubBackend(
            backend_name=self.backend_name,
            shared=self.shared,
            insert_delay=self.insert_delay,
            replica_connect_delay=self.replica_connect_delay,
            fail_replica_connect=self.fail_replica_connect,
            fail_insert_after=self.fail_insert_after,
            is_replica=True,
        )


def sequence_source() -> Callable[[int], list[Record]]:
    """Record source producing records tagged with consecutive ids."""
    counter = iter(range(10**9))

    def next_records(n: int) -> list[Record]:
        return [{"seq": next(counter)} for _ in range(n)]

    return next_records


@pytest.fixture
def stub_backend_class():
    """The StubBackend class, for tests that build several instances."""
    return StubBackend


@pytest.fixture
def stub_backend():
    """A fresh stub backend."""
    return StubBackend()


@pytest.fixture
def seq_source():
    """A record source yielding {"seq": n} records in order."""
    return sequence_source()
