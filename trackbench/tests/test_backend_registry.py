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
Tests for the target registry.

These tests verify:
1. All targets are registered in canonical order
2. Lookup is case-insensitive and unknown names raise ValueError
3. create_backend() binds each target to its own connection settings
"""

import pytest

from trackbench.backends import (
    TARGETS,
    ClickHouseBackend,
    DuckDBBackend,
    PostgreSQLBackend,
    create_backend,
    get_target,
    list_targets,
)
from trackbench.config import load_settings
from trackbench.models import TestConfiguration


@pytest.fixture
def settings():
    return load_settings(environ={"DUCKDB_PATH": "data/plain.duckdb"})


class TestRegistry:
    """Tests for the TARGETS registry."""

    def test_canonical_order(self):
        assert list_targets() == [
            "clickhouse",
            "postgresql",
            "postgresql-indexed",
            "duckdb",
            "duckdb-indexed",
        ]

    def test_keys_match_configuration_target_keys(self):
        """A target's key is what its configurations report as target_key."""
        for key, target in TARGETS.items():
            config = TestConfiguration(target.backend, target.with_index, 1)
            assert config.target_key == key

    def test_get_target_case_insensitive(self):
        assert get_target("PostgreSQL-Indexed").with_index is True

    def test_unknown_target(self):
        with pytest.raises(ValueError, match="Available databases"):
            get_target("oracle")


class TestCreateBackend:
    """Tests for create_backend()."""

    def test_backend_types(self, settings):
        assert isinstance(create_backend("clickhouse", settings), ClickHouseBackend)
        assert isinstance(create_backend("postgresql", settings), PostgreSQLBackend)
        assert isinstance(create_backend("duckdb", settings), DuckDBBackend)

    def test_backends_are_unconnected(self, settings):
        backend = create_backend("postgresql", settings)
        with pytest.raises(RuntimeError, match="Call connect"):
            backend.query("SELECT 1")

    def test_duckdb_targets_use_separate_files(self, settings):
        plain = create_backend("duckdb", settings)
        indexed = create_backend("duckdb-indexed", settings)

        assert plain.path == "data/plain.duckdb"
        assert indexed.path == "output/duckdb/performance_test_indexed.duckdb"

    def test_names_match_backend_ids(self, settings):
        for key, target in TARGETS.items():
            backend = create_backend(key, settings)
            assert backend.name == target.backend
            assert backend.dialect == target.backend
