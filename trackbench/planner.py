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
Configuration Planner

Expands dataset sizes and enabled targets into the ordered list of
configurations a run will measure. Planning is pure: the same input always
produces the same list, which is what lets a checkpoint written by one run be
reconciled against the plan of the next.
"""

from typing import Iterable

from trackbench.backends import TARGETS
from trackbench.errors import ConfigurationError
from trackbench.models import TestConfiguration


def plan_configurations(
    row_counts: Iterable[int], targets: Iterable[str]
) -> list[TestConfiguration]:
    """Plan the configurations for a run.

    Row counts are de-duplicated and sorted ascending. Within a row count,
    targets follow the registry order, whatever order they were given in.

    Args:
        row_counts: Dataset sizes to measure
        targets: Enabled target names (e.g., ["postgresql", "clickhouse"])

    Returns:
        Ordered list of configurations

    Raises:
        ConfigurationError: On unknown targets, non-positive sizes, or an
            empty plan
    """
    sizes = sorted(set(row_counts))
    invalid_sizes = [size for size in sizes if size < 1]
    if invalid_sizes:
        raise ConfigurationError(f"Row counts must be positive, got: {invalid_sizes}")

    requested = {target.strip().lower() for target in targets if target.strip()}
    unknown = sorted(requested - TARGETS.keys())
    if unknown:
        available = ", ".join(TARGETS.keys())
        raise ConfigurationError(
            f"Unknown database(s): {', '.join(unknown)}. Available databases: {available}"
        )

    enabled = [target for key, target in TARGETS.items() if key in requested]

    configurations = [
        TestConfiguration(
            backend=target.backend,
            with_index=target.with_index,
            row_count=size,
        )
        for size in sizes
        for target in enabled
    ]

    if not configurations:
        raise ConfigurationError("No matching database configurations found")

    return configurations
