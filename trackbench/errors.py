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
Exception Taxonomy

Every failure the orchestrator has to make a decision about maps to one of
these classes:

- TransientBackendError: a connection could not be established or dropped
  while connecting. Retried with backoff, only at connect time.
- FatalConfigurationError: a query or insert failed in the middle of a
  configuration. Never retried; the configuration stays pending.
- ResourceExhaustionError: the insert worker pool could not be brought up.
  The orchestrator may fall back to sequential insertion.
- CorruptCheckpointError: a persisted checkpoint could not be decoded.
  Always treated as "no checkpoint".
- ConfigurationError: invalid user settings.
"""


class TrackBenchError(Exception):
    """Base class for all TrackBench errors."""


class ConfigurationError(TrackBenchError):
    """Invalid settings supplied through the environment or the CLI."""


class TransientBackendError(TrackBenchError):
    """A backend connection failed in a way that may succeed on retry."""


class FatalConfigurationError(TrackBenchError):
    """A configuration cannot be completed and must be reprocessed later."""


class QueryExecutionError(FatalConfigurationError):
    """A benchmark query failed while sampling."""

    def __init__(self, query_name: str, cause: BaseException) -> None:
        super().__init__(f"Query '{query_name}' failed: {cause}")
        self.query_name = query_name


class InsertError(FatalConfigurationError):
    """A batch insert failed during the setup phase."""


class JobTimeoutError(InsertError):
    """A batch insert job exceeded its execution timeout."""


class ResourceExhaustionError(TrackBenchError):
    """The loader could not obtain the workers it needs."""


class WorkerStartupError(ResourceExhaustionError):
    """An insert worker failed to start or did not start in time."""


class CorruptCheckpointError(TrackBenchError):
    """A checkpoint document is unreadable or structurally invalid."""
