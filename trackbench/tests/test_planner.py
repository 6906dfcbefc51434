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
Tests for the configuration planner.

These tests verify:
1. Row counts are de-duplicated and sorted, targets follow registry order
2. Planning is deterministic
3. Invalid input raises ConfigurationError
"""

import pytest

from trackbench.errors import ConfigurationError
from trackbench.models import TestConfiguration
from trackbench.planner import plan_configurations


class TestPlanConfigurations:
    """Tests for plan_configurations()."""

    def test_cartesian_product_in_order(self):
        """Sizes ascend; within a size, targets follow the registry."""
        plan = plan_configurations([100000, 10000], ["postgresql-indexed", "clickhouse"])

        assert plan == [
            TestConfiguration("clickhouse", False, 10000),
            TestConfiguration("postgresql", True, 10000),
            TestConfiguration("clickhouse", False, 100000),
            TestConfiguration("postgresql", True, 100000),
        ]

    def test_duplicate_sizes_collapse(self):
        """Repeated sizes produce one set of configurations."""
        plan = plan_configurations([1000, 1000, 500], ["duckdb"])
        assert [c.row_count for c in plan] == [500, 1000]

    def test_deterministic(self):
        """The same input always gives the same plan."""
        args = ([5000, 1000], ["duckdb-indexed", "postgresql", "duckdb"])
        assert plan_configurations(*args) == plan_configurations(*args)

    def test_target_names_normalized(self):
        """Target names are trimmed and case-insensitive."""
        plan = plan_configurations([10], [" DuckDB ", ""])
        assert plan == [TestConfiguration("duckdb", False, 10)]

    def test_all_targets(self):
        """Every registered target contributes one configuration per size."""
        targets = ["clickhouse", "postgresql", "postgresql-indexed", "duckdb", "duckdb-indexed"]
        plan = plan_configurations([1], targets)

        assert [c.target_key for c in plan] == targets

    def test_unknown_target_raises(self):
        """Unknown databases are reported together with the available ones."""
        with pytest.raises(ConfigurationError, match="nosuch"):
            plan_configurations([1000], ["duckdb", "nosuch"])

    def test_non_positive_size_raises(self):
        with pytest.raises(ConfigurationError):
            plan_configurations([0, 1000], ["duckdb"])

    def test_empty_plan_raises(self):
        """No targets or no sizes means nothing to run."""
        with pytest.raises(ConfigurationError):
            plan_configurations([1000], [])
        with pytest.raises(ConfigurationError):
            plan_configurations([], ["duckdb"])
