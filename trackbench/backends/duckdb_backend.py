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
DuckDB Benchmark Backend Implementation

DuckDB is used as the reference backend because it runs in-process and needs
no external server. The database lives in a file so that insert workers can
open their own connections to the same database; within one process DuckDB
shares the underlying database instance between those connections.

Batches are handed to DuckDB as Arrow tables, which avoids row-by-row
parameter binding.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from trackbench.backend_base import TABLE_NAME, Backend, Record
from trackbench.errors import TransientBackendError
from trackbench.generator import COLUMNS

logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    zorder_coordinate BIGINT,
    approach BOOLEAN,
    autopilot BOOLEAN,
    althold BOOLEAN,
    lnav BOOLEAN,
    tcas BOOLEAN,
    hex VARCHAR,
    transponder_type VARCHAR,
    flight VARCHAR,
    r VARCHAR,
    aircraft_type VARCHAR,
    db_flags INTEGER,
    lat DOUBLE,
    lon DOUBLE,
    alt_baro INTEGER,
    alt_baro_is_ground BOOLEAN,
    alt_geom INTEGER,
    gs INTEGER,
    track INTEGER,
    baro_rate INTEGER,
    geom_rate INTEGER,
    squawk VARCHAR,
    emergency VARCHAR,
    category VARCHAR,
    nav_qnh INTEGER,
    nav_altitude_mcp INTEGER,
    nav_heading INTEGER,
    nav_modes VARCHAR[],
    nic INTEGER,
    rc INTEGER,
    seen_pos DOUBLE,
    version INTEGER,
    nic_baro INTEGER,
    nac_p INTEGER,
    nac_v INTEGER,
    sil INTEGER,
    sil_type VARCHAR,
    gva INTEGER,
    sda INTEGER,
    alert INTEGER,
    spi INTEGER,
    mlat VARCHAR[],
    tisb VARCHAR[],
    messages BIGINT,
    seen DOUBLE,
    rssi DOUBLE,
    timestamp TIMESTAMP
)
"""

INDEX_SQL = [
    f"CREATE INDEX IF NOT EXISTS idx_performance_test_timestamp ON {TABLE_NAME} (timestamp)",
    f"CREATE INDEX IF NOT EXISTS idx_performance_test_hex_timestamp ON {TABLE_NAME} (hex, timestamp)",
    f"CREATE INDEX IF NOT EXISTS idx_performance_test_lat_lon ON {TABLE_NAME} (lat, lon)",
]

_BOOL_COLUMNS = {"approach", "autopilot", "althold", "lnav", "tcas", "alt_baro_is_ground"}
_STRING_COLUMNS = {
    "hex", "transponder_type", "flight", "r", "aircraft_type", "squawk",
    "emergency", "category", "sil_type",
}
_DOUBLE_COLUMNS = {"lat", "lon", "seen_pos", "seen", "rssi"}
_BIGINT_COLUMNS = {"zorder_coordinate", "messages"}
_LIST_COLUMNS = {"nav_modes", "mlat", "tisb"}


def arrow_schema() -> Any:
    """Build the Arrow schema matching CREATE_TABLE_SQL column by column."""
    import pyarrow as pa

    fields = []
    for column in COLUMNS:
        if column in _BOOL_COLUMNS:
            dtype = pa.bool_()
        elif column in _STRING_COLUMNS:
            dtype = pa.string()
        elif column in _DOUBLE_COLUMNS:
            dtype = pa.float64()
        elif column in _BIGINT_COLUMNS:
            dtype = pa.int64()
        elif column in _LIST_COLUMNS:
            dtype = pa.list_(pa.string())
        elif column == "timestamp":
            dtype = pa.timestamp("us")
        else:
            dtype = pa.int32()
        fields.append(pa.field(column, dtype))
    return pa.schema(fields)


class DuckDBBackend(Backend):
    """DuckDB implementation of the benchmark backend.

    Attributes:
        _path: Database file path (":memory:" disables replication)
        _conn: DuckDB connection object
    """

    def __init__(self, path: str = ":memory:") -> None:
        """Initialize DuckDB backend."""
        self._path = path
        self._conn: Optional[Any] = None
        self._schema: Optional[Any] = None

    @property
    def name(self) -> str:
        """Return backend identifier."""
        return "duckdb"

    @property
    def dialect(self) -> str:
        """Return SQL dialect for query generation."""
        return "duckdb"

    @property
    def path(self) -> str:
        return self._path

    def _require_connection(self) -> Any:
        if self._conn is None:
            raise RuntimeError("Connection not established. Call connect() first.")
        return self._conn

    def connect(self) -> None:
        """Open a DuckDB connection to the database file.

        Raises:
            ImportError: If duckdb or pyarrow is not installed
            TransientBackendError: If the database cannot be opened
        """
        try:
            import duckdb
        except ImportError as e:
            raise ImportError(
                "DuckDB is required for this backend. "
                "Install it with: pip install duckdb"
            ) from e

        try:
            self._schema = arrow_schema()
        except ImportError as e:
            raise ImportError(
                "PyArrow is required for DuckDB batch inserts. "
                "Install it with: pip install pyarrow"
            ) from e

        logger.debug(f"Opening DuckDB database at {self._path}")
        try:
            self._conn = duckdb.connect(self._path)
        except duckdb.Error as e:
            raise TransientBackendError(f"Failed to open DuckDB database {self._path}: {e}") from e

    def disconnect(self) -> None:
        """Close DuckDB connection and release resources."""
        if self._conn is not None:
            logger.debug(f"Closing DuckDB connection to {self._path}")
            self._conn.close()
            self._conn = None

    def query(self, sql: str) -> Sequence[Any]:
        return self._require_connection().execute(sql).fetchall()

    def insert_batch(self, records: Sequence[Record]) -> None:
        import pyarrow as pa

        conn = self._require_connection()
        batch = pa.Table.from_pylist(list(records), schema=self._schema)

        conn.register("incoming_batch", batch)
        try:
            conn.execute(f"INSERT INTO {TABLE_NAME} SELECT * FROM incoming_batch")
        finally:
            conn.unregister("incoming_batch")

    def create_table(self) -> None:
        self._require_connection().execute(CREATE_TABLE_SQL)

    def create_table_with_index(self) -> None:
        conn = self._require_connection()
        conn.execute(CREATE_TABLE_SQL)
        for statement in INDEX_SQL:
            conn.execute(statement)

    def drop_table(self) -> None:
        self._require_connection().execute(f"DROP TABLE IF EXISTS {TABLE_NAME}")

    def ensure_database_exists(self) -> None:
        """Create the directory holding the database file.

        DuckDB creates the file itself on first connect.
        """
        if self._path == ":memory:":
            return
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)

    def replicate(self) -> "DuckDBBackend":
        if self._path == ":memory:":
            raise RuntimeError(
                "An in-memory DuckDB database cannot be shared with insert workers"
            )
        return DuckDBBackend(self._path)

    def get_version(self) -> str:
        """Return DuckDB version string."""
        if self._conn is None:
            return "unknown"

        try:
            result = self._conn.execute("SELECT version()").fetchone()
            return result[0] if result else "unknown"
        except Exception:
            return "unknown"
