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
ClickHouse Benchmark Backend Implementation

Uses clickhouse-connect over the HTTP interface. ClickHouse has no secondary
index variant: the MergeTree sort key already serves the benchmark queries,
so create_table_with_index() creates the same table.
"""

import logging
from typing import Any, Optional, Sequence

from trackbench.backend_base import TABLE_NAME, Backend, Record
from trackbench.config import ConnectionSettings
from trackbench.errors import TransientBackendError
from trackbench.generator import COLUMNS

logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    zorder_coordinate UInt64,
    approach Bool,
    autopilot Bool,
    althold Bool,
    lnav Bool,
    tcas Bool,
    hex FixedString(6),
    transponder_type LowCardinality(String),
    flight String,
    r String,
    aircraft_type LowCardinality(String) DEFAULT '',
    db_flags UInt32,
    lat Float64,
    lon Float64,
    alt_baro Int32,
    alt_baro_is_ground Bool,
    alt_geom Int32,
    gs UInt16,
    track UInt16,
    baro_rate Int16,
    geom_rate Int16 DEFAULT 0,
    squawk FixedString(4),
    emergency LowCardinality(String),
    category LowCardinality(String),
    nav_qnh UInt16 DEFAULT 0,
    nav_altitude_mcp UInt16 DEFAULT 0,
    nav_heading UInt16 DEFAULT 0,
    nav_modes Array(LowCardinality(String)),
    nic UInt8,
    rc UInt16,
    seen_pos Float32,
    version UInt8,
    nic_baro UInt8,
    nac_p UInt8,
    nac_v UInt8,
    sil UInt8,
    sil_type LowCardinality(String),
    gva UInt8,
    sda UInt8,
    alert UInt8,
    spi UInt8,
    mlat Array(LowCardinality(String)),
    tisb Array(LowCardinality(String)),
    messages UInt32,
    seen Float32,
    rssi Float32,
    timestamp DateTime
) ENGINE = MergeTree()
ORDER BY (alt_baro_is_ground, hex, timestamp)
"""

# Values used in place of NULL for the non-Nullable columns above
COLUMN_DEFAULTS: dict[str, Any] = {
    "aircraft_type": "",
    "geom_rate": 0,
    "nav_qnh": 0,
    "nav_altitude_mcp": 0,
    "nav_heading": 0,
}


def _import_clickhouse_connect() -> Any:
    try:
        import clickhouse_connect
    except ImportError as e:
        raise ImportError(
            "clickhouse-connect is required for this backend. "
            "Install it with: pip install clickhouse-connect"
        ) from e
    return clickhouse_connect


def to_row(record: Record) -> list[Any]:
    """Convert a generated record into a ClickHouse row in column order."""
    row = []
    for column in COLUMNS:
        value = record[column]
        if value is None:
            value = COLUMN_DEFAULTS.get(column)
        row.append(value)
    return row


class ClickHouseBackend(Backend):
    """ClickHouse implementation of the benchmark backend."""

    def __init__(self, settings: ConnectionSettings) -> None:
        self._settings = settings
        self._client: Optional[Any] = None

    @property
    def name(self) -> str:
        return "clickhouse"

    @property
    def dialect(self) -> str:
        return "clickhouse"

    def _get_client(self, database: Optional[str]) -> Any:
        clickhouse_connect = _import_clickhouse_connect()
        from clickhouse_connect.driver.exceptions import OperationalError

        s = self._settings
        kwargs: dict[str, Any] = {
            "host": s.host,
            "port": s.port,
            "username": s.username,
            "password": s.password,
        }
        if database is not None:
            kwargs["database"] = database
        try:
            return clickhouse_connect.get_client(**kwargs)
        except OperationalError as e:
            raise TransientBackendError(
                f"Cannot reach ClickHouse at {s.host}:{s.port}: {e}"
            ) from e

    def _require_client(self) -> Any:
        if self._client is None:
            raise RuntimeError("Connection not established. Call connect() first.")
        return self._client

    def connect(self) -> None:
        s = self._settings
        logger.debug(f"Connecting to ClickHouse at {s.host}:{s.port}/{s.database}")
        self._client = self._get_client(s.database)

    def disconnect(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def query(self, sql: str) -> Sequence[Any]:
        return self._require_client().query(sql).result_rows

    def insert_batch(self, records: Sequence[Record]) -> None:
        rows = [to_row(record) for record in records]
        self._require_client().insert(TABLE_NAME, rows, column_names=list(COLUMNS))

    def create_table(self) -> None:
        self._require_client().command(CREATE_TABLE_SQL)

    def create_table_with_index(self) -> None:
        self.create_table()

    def drop_table(self) -> None:
        self._require_client().command(f"DROP TABLE IF EXISTS {TABLE_NAME}")

    def ensure_database_exists(self) -> None:
        """Create the target database using a client bound to no database."""
        database = self._settings.database
        client = self._get_client(None)
        try:
            client.command(f"CREATE DATABASE IF NOT EXISTS {database}")
            logger.debug(f"Ensured ClickHouse database exists: {database}")
        finally:
            client.close()

    def replicate(self) -> "ClickHouseBackend":
        return ClickHouseBackend(self._settings)

    def get_version(self) -> str:
        if self._client is None:
            return "unknown"
        try:
            return f"ClickHouse {self._client.server_version}"
        except Exception:
            return "unknown"
