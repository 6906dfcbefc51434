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
Integration tests for the DuckDB backend.

These tests verify the DuckDB backend works end-to-end:
1. Connection and disconnection
2. Table creation with and without indexes
3. Batch inserts of generated records through Arrow
4. The benchmark queries run against loaded data
5. Replicas share the database file

Note: These tests require DuckDB and PyArrow to be installed.
"""

from datetime import datetime, timezone

import pytest

# Skip all tests if DuckDB or PyArrow is not installed
duckdb = pytest.importorskip("duckdb")
pytest.importorskip("pyarrow")

from trackbench.backends.duckdb_backend import DuckDBBackend, arrow_schema
from trackbench.checkpoint import CheckpointStore
from trackbench.generator import COLUMNS, DataGenerator
from trackbench.loader import LoaderSettings, ParallelLoader
from trackbench.models import TestConfiguration
from trackbench.orchestrator import ResumableOrchestrator, RunOptions, RunStatus
from trackbench.queries import get_queries

NOW = datetime.now(timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "duckdb" / "bench.duckdb")


@pytest.fixture
def backend(db_path):
    backend = DuckDBBackend(db_path)
    backend.ensure_database_exists()
    backend.connect()
    yield backend
    backend.disconnect()


def generated(count, seed="duckdb-test"):
    return DataGenerator(seed=seed, now=NOW).record_source(count)(count)


class TestDuckDBBackendProperties:
    """Tests for DuckDBBackend property values."""

    def test_name_and_dialect(self):
        backend = DuckDBBackend()
        assert backend.name == "duckdb"
        assert backend.dialect == "duckdb"

    def test_schema_covers_every_column(self):
        assert arrow_schema().names == list(COLUMNS)


class TestDuckDBBackendConnection:
    """Tests for DuckDB connection management."""

    def test_query_requires_connection(self):
        with pytest.raises(RuntimeError, match="Call connect"):
            DuckDBBackend().query("SELECT 1")

    def test_ensure_database_exists_creates_directory(self, tmp_path):
        path = tmp_path / "a" / "b" / "bench.duckdb"
        DuckDBBackend(str(path)).ensure_database_exists()
        assert path.parent.is_dir()

    def test_context_manager(self):
        with DuckDBBackend() as backend:
            assert backend.query("SELECT 42") == [(42,)]
        assert backend._conn is None

    def test_version(self, backend):
        assert backend.get_version().startswith("v")

    def test_in_memory_cannot_replicate(self):
        with pytest.raises(RuntimeError):
            DuckDBBackend().replicate()


class TestDuckDBBackendData:
    """Tests for table management, inserts and queries."""

    def test_insert_and_count(self, backend):
        backend.drop_table()
        backend.create_table()

        backend.insert_batch(generated(250))

        assert backend.query("SELECT count(*) FROM performance_test") == [(250,)]

    def test_drop_table_clears_data(self, backend):
        backend.create_table()
        backend.insert_batch(generated(10))
        backend.drop_table()
        backend.create_table()

        assert backend.query("SELECT count(*) FROM performance_test") == [(0,)]

    def test_indexes_created(self, backend):
        backend.drop_table()
        backend.create_table_with_index()

        rows = backend.query(
            "SELECT index_name FROM duckdb_indexes() WHERE table_name = 'performance_test'"
        )
        assert len(rows) == 3

    def test_benchmark_queries_run(self, backend):
        backend.drop_table()
        backend.create_table()
        backend.insert_batch(generated(500))

        results = {name: backend.query(sql) for name, sql in get_queries("duckdb", now=NOW)}

        assert ("performance_test",) in results["Q1 Show tables"]
        assert len(results["Q2 Explore schema with sample data"]) == 10
        assert len(results["Q4 Hourly aircraft count - day before yesterday"]) > 0

    def test_replica_sees_same_database(self, backend):
        backend.drop_table()
        backend.create_table()

        replica = backend.replicate()
        replica.connect()
        try:
            replica.insert_batch(generated(20))
        finally:
            replica.disconnect()

        assert backend.query("SELECT count(*) FROM performance_test") == [(20,)]

    def test_parallel_loader(self, backend):
        backend.drop_table()
        backend.create_table()
        source = DataGenerator(seed="parallel", now=NOW).record_source(3000)

        loader = ParallelLoader(
            backend.replicate, LoaderSettings(worker_count=3, batch_size=250)
        )
        report = loader.load(3000, source, backend.name)

        assert report.rows_inserted == 3000
        assert backend.query("SELECT count(*) FROM performance_test") == [(3000,)]


class TestDuckDBEndToEnd:
    """A full orchestrated run against two DuckDB files."""

    def test_load_run(self, tmp_path):
        configs = [
            TestConfiguration("duckdb", False, 1000),
            TestConfiguration("duckdb", True, 1000),
        ]
        backends = {
            "duckdb": DuckDBBackend(str(tmp_path / "plain.duckdb")),
            "duckdb-indexed": DuckDBBackend(str(tmp_path / "indexed.duckdb")),
        }
        store = CheckpointStore(tmp_path / "checkpoint.json")

        orchestrator = ResumableOrchestrator(
            configs,
            backends,
            store,
            RunOptions(batch_size=300, warmup_passes=1),
            output_dir=tmp_path / "output",
        )
        outcome = orchestrator.run()

        assert outcome.status is RunStatus.COMPLETE
        assert [r.configuration for r in outcome.results] == configs
        assert all(len(r.query_results) == 4 for r in outcome.results)
        assert not store.path.exists()
        assert set(orchestrator.backend_versions) == {"duckdb", "duckdb-indexed"}
        assert all(v.startswith("v") for v in orchestrator.backend_versions.values())
