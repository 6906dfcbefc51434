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
Checkpoint Persistence

A checkpoint records which configurations of a run have completed, which are
still pending, and the results gathered so far. It is rewritten as a whole
after every completed configuration, so after a crash or Ctrl-C the next run
can pick up exactly where the previous one stopped.

At every point the completed and pending lists partition the planned set:
they are disjoint, free of duplicates, and together hold
``total_configurations`` entries.
"""

import json
import logging
import os
import random
import string
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from trackbench.errors import CorruptCheckpointError
from trackbench.models import (
    TEST_TYPES,
    QueryOnlySettings,
    TestConfiguration,
    TestResults,
)

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_PATH = Path("output") / "checkpoints" / "test-session.checkpoint.json"
MAX_CHECKPOINT_AGE = timedelta(hours=24)

_BASE36 = string.digits + string.ascii_lowercase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    """Return an id of the form ``session_<epoch ms>_<9 base36 chars>``."""
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class TestCheckpoint:
    """Durable snapshot of a run's progress."""

    __test__ = False

    session_id: str
    timestamp: datetime
    total_configurations: int
    completed_configurations: tuple[TestConfiguration, ...]
    pending_configurations: tuple[TestConfiguration, ...]
    partial_results: tuple[TestResults, ...]
    test_type: str
    query_only_settings: Optional[QueryOnlySettings] = None

    @property
    def completed_count(self) -> int:
        return len(self.completed_configurations)

    @property
    def remaining_count(self) -> int:
        return len(self.pending_configurations)

    @property
    def is_complete(self) -> bool:
        return not self.pending_configurations

    def planned_set(self) -> set[TestConfiguration]:
        return set(self.completed_configurations) | set(self.pending_configurations)

    def mark_completed(
        self,
        configuration: TestConfiguration,
        result: TestResults,
        now: Optional[datetime] = None,
    ) -> "TestCheckpoint":
        """Return a new checkpoint with ``configuration`` moved to completed.

        Raises:
            ValueError: If the configuration is not pending
        """
        if configuration not in self.pending_configurations:
            raise ValueError(f"Configuration is not pending: {configuration.describe()}")

        return replace(
            self,
            timestamp=now or _utcnow(),
            completed_configurations=self.completed_configurations + (configuration,),
            pending_configurations=tuple(
                c for c in self.pending_configurations if c != configuration
            ),
            partial_results=self.partial_results + (result,),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat(),
            "totalConfigurations": self.total_configurations,
            "completedConfigurations": [c.to_dict() for c in self.completed_configurations],
            "pendingConfigurations": [c.to_dict() for c in self.pending_configurations],
            "partialResults": [r.to_dict() for r in self.partial_results],
            "testType": self.test_type,
        }
        if self.query_only_settings is not None:
            data["queryOnlySettings"] = self.query_only_settings.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "TestCheckpoint":
        """Decode a checkpoint document.

        Raises:
            CorruptCheckpointError: If the document is malformed or violates
                the completed/pending partition
        """
        try:
            settings = data.get("queryOnlySettings")
            checkpoint = cls(
                session_id=str(data["sessionId"]),
                timestamp=parse_timestamp(str(data["timestamp"])),
                total_configurations=int(data["totalConfigurations"]),
                completed_configurations=tuple(
                    TestConfiguration.from_dict(c) for c in data["completedConfigurations"]
                ),
                pending_configurations=tuple(
                    TestConfiguration.from_dict(c) for c in data["pendingConfigurations"]
                ),
                partial_results=tuple(
                    TestResults.from_dict(r) for r in data["partialResults"]
                ),
                test_type=str(data["testType"]),
                query_only_settings=(
                    QueryOnlySettings.from_dict(settings) if settings is not None else None
                ),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CorruptCheckpointError(f"Malformed checkpoint document: {e}") from e

        checkpoint.validate()
        return checkpoint

    def validate(self) -> None:
        if self.test_type not in TEST_TYPES:
            raise CorruptCheckpointError(f"Unknown test type '{self.test_type}'")

        completed = set(self.completed_configurations)
        pending = set(self.pending_configurations)
        if len(completed) != len(self.completed_configurations):
            raise CorruptCheckpointError("Duplicate completed configurations")
        if len(pending) != len(self.pending_configurations):
            raise CorruptCheckpointError("Duplicate pending configurations")
        if completed & pending:
            raise CorruptCheckpointError("Configurations both completed and pending")
        if len(completed) + len(pending) != self.total_configurations:
            raise CorruptCheckpointError(
                f"Checkpoint holds {len(completed) + len(pending)} configurations, "
                f"expected {self.total_configurations}"
            )


def create_initial_checkpoint(
    configurations: Sequence[TestConfiguration],
    test_type: str,
    query_only_settings: Optional[QueryOnlySettings] = None,
    now: Optional[datetime] = None,
) -> TestCheckpoint:
    """Create a checkpoint with every configuration pending."""
    return TestCheckpoint(
        session_id=new_session_id(),
        timestamp=now or _utcnow(),
        total_configurations=len(configurations),
        completed_configurations=(),
        pending_configurations=tuple(configurations),
        partial_results=(),
        test_type=test_type,
        query_only_settings=query_only_settings,
    )


class CheckpointStore:
    """Loads, saves and clears the checkpoint file.

    Args:
        path: Location of the checkpoint document
        max_age: Checkpoints older than this are never resumed
        clock: Returns the current (aware) time; injectable for tests
    """

    def __init__(
        self,
        path: Path = DEFAULT_CHECKPOINT_PATH,
        max_age: timedelta = MAX_CHECKPOINT_AGE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.path = Path(path)
        self.max_age = max_age
        self._clock = clock

    def save(self, checkpoint: TestCheckpoint) -> None:
        """Write the whole document, replacing the previous one atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(checkpoint.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug(
            f"Checkpoint saved: {checkpoint.completed_count}/"
            f"{checkpoint.total_configurations} configurations completed"
        )

    def load(self) -> Optional[TestCheckpoint]:
        """Return the stored checkpoint, or None if absent, corrupt or stale.

        Corrupt and stale files are deleted. Never raises.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            checkpoint = TestCheckpoint.from_dict(data)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, CorruptCheckpointError) as e:
            logger.warning(f"Corrupted checkpoint file, ignoring: {e}")
            self.clear()
            return None

        age = self._clock() - checkpoint.timestamp
        if age > self.max_age:
            logger.warning(
                f"Found old checkpoint ({age.total_seconds() / 3600:.1f}h), ignoring"
            )
            self.clear()
            return None

        return checkpoint

    def clear(self) -> None:
        """Delete the checkpoint file if it exists."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove checkpoint {self.path}: {e}")
