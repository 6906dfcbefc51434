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
TrackBench Benchmark Orchestration

A resumable benchmark framework that loads synthetic aircraft tracking data
into several databases and measures a fixed set of analytical queries.

To add support for a new database:
1. Create a new file in trackbench/backends/ (e.g., mysql_backend.py)
2. Subclass Backend from trackbench.backend_base
3. Implement all abstract methods: connect(), query(), insert_batch(), ...
4. Register a target for it in trackbench/backends/__init__.py
"""

from trackbench.backend_base import Backend
from trackbench.backends import TARGETS, create_backend
from trackbench.models import TestConfiguration, TestResults
from trackbench.orchestrator import ResumableOrchestrator, RunOptions

__all__ = [
    "Backend",
    "TARGETS",
    "create_backend",
    "TestConfiguration",
    "TestResults",
    "ResumableOrchestrator",
    "RunOptions",
]
