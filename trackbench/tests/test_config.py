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
Tests for settings loading and validation.

These tests verify:
1. Defaults when no variable is set
2. Environment values and CLI overrides
3. All validation errors are collected into one ConfigurationError
4. Port conflicts between network backends are rejected
"""

import pytest

from trackbench.config import DEFAULT_WORKER_TIMEOUT_MS, load_settings
from trackbench.errors import ConfigurationError
from trackbench.generator import DEFAULT_SEED


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self):
        settings = load_settings(environ={})

        assert settings.dataset_sizes == (10_000_000,)
        assert settings.batch_size == 50_000
        assert settings.parallel_insert is False
        assert settings.parallel_workers == 4
        assert settings.query_iterations == 100
        assert settings.query_time_limit_minutes == 60
        assert settings.databases == ("clickhouse", "postgresql", "postgresql-indexed")
        assert settings.seed == DEFAULT_SEED
        assert settings.worker_timeout_ms == DEFAULT_WORKER_TIMEOUT_MS

    def test_connection_defaults(self):
        settings = load_settings(environ={})

        assert settings.clickhouse.port == 8123
        assert settings.clickhouse.username == "default"
        assert settings.postgres.port == 5432
        assert settings.postgres_indexed.port == 5433
        assert settings.postgres.database == "performance_test"

    def test_password_hidden_from_repr(self):
        settings = load_settings(environ={"POSTGRES_PASSWORD": "s3cret"})

        assert settings.postgres.password == "s3cret"
        assert "s3cret" not in repr(settings.postgres)


class TestEnvironment:
    """Tests for reading values."""

    def test_values_read(self):
        settings = load_settings(environ={
            "DATASET_SIZE": "5000",
            "BATCH_SIZE": "2000",
            "PARALLEL_INSERT": "true",
            "PARALLEL_WORKERS": "8",
            "BENCHMARK_DATABASES": "DuckDB, postgresql",
            "POSTGRES_HOST": "db.internal",
        })

        assert settings.dataset_sizes == (5000,)
        assert settings.batch_size == 2000
        assert settings.parallel_insert is True
        assert settings.parallel_workers == 8
        assert settings.databases == ("duckdb", "postgresql")
        assert settings.postgres.host == "db.internal"

    def test_bulk_sizes_take_precedence(self):
        settings = load_settings(environ={"DATASET_SIZE": "5000", "BULK_TEST_SIZES": "100,50"})
        assert settings.dataset_sizes == (100, 50)

    def test_blank_values_are_unset(self):
        settings = load_settings(environ={"BATCH_SIZE": "  ", "POSTGRES_HOST": ""})

        assert settings.batch_size == 50_000
        assert settings.postgres.host == "localhost"

    def test_overrides_win(self):
        settings = load_settings(
            environ={"PARALLEL_WORKERS": "2", "QUERY_TEST_ITERATIONS": "10"},
            overrides={"PARALLEL_WORKERS": "6"},
        )

        assert settings.parallel_workers == 6
        assert settings.query_iterations == 10

    def test_dotenv_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("QUERY_TEST_TIME_LIMIT=15\n")
        # setenv then delenv so the value loaded from the file is removed on teardown
        monkeypatch.setenv("QUERY_TEST_TIME_LIMIT", "1")
        monkeypatch.delenv("QUERY_TEST_TIME_LIMIT")

        settings = load_settings(dotenv_path=str(env_file))

        assert settings.query_time_limit_minutes == 15


class TestValidation:
    """Tests for validation errors."""

    def test_errors_collected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(environ={
                "BATCH_SIZE": "10",
                "PARALLEL_WORKERS": "many",
                "PARALLEL_INSERT": "yes",
            })

        message = str(exc_info.value)
        assert message.startswith("Environment variable validation errors:")
        assert '1. BATCH_SIZE="10"' in message
        assert '2. PARALLEL_INSERT="yes"' in message
        assert '3. PARALLEL_WORKERS="many"' in message

    @pytest.mark.parametrize(
        "name, value",
        [
            ("DATASET_SIZE", "999"),
            ("PARALLEL_WORKERS", "17"),
            ("QUERY_TEST_TIME_LIMIT", "0"),
            ("CLICKHOUSE_PORT", "70000"),
            ("BULK_TEST_SIZES", "100,abc"),
            ("BULK_TEST_SIZES", "100,-5"),
            ("WORKER_TIMEOUT_MS", "50"),
        ],
    )
    def test_out_of_range(self, name, value):
        with pytest.raises(ConfigurationError, match=name):
            load_settings(environ={name: value})

    def test_port_conflict(self):
        with pytest.raises(ConfigurationError, match="Port conflict"):
            load_settings(environ={"POSTGRES_INDEXED_PORT": "5432"})
