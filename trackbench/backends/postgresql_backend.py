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
PostgreSQL Benchmark Backend Implementation

Uses psycopg 3 in autocommit mode. Batches are loaded with COPY, which is the
fastest bulk path PostgreSQL offers to a client.

The same class serves both the plain and the indexed role; the indexed role
simply points at a different server and creates its table with indexes.
"""

import logging
from typing import Any, Optional, Sequence

from trackbench.backend_base import TABLE_NAME, Backend, Record
from trackbench.config import ConnectionSettings
from trackbench.errors import TransientBackendError
from trackbench.generator import COLUMNS

logger = logging.getLogger(__name__)

# Column name -> PostgreSQL type, in table order
COLUMN_TYPES: dict[str, str] = {
    "zorder_coordinate": "bigint",
    "approach": "boolean",
    "autopilot": "boolean",
    "althold": "boolean",
    "lnav": "boolean",
    "tcas": "boolean",
    "hex": "varchar(6)",
    "transponder_type": "varchar(50)",
    "flight": "varchar(20)",
    "r": "varchar(20)",
    "aircraft_type": "varchar(10)",
    "db_flags": "integer",
    "lat": "double precision",
    "lon": "double precision",
    "alt_baro": "integer",
    "alt_baro_is_ground": "boolean",
    "alt_geom": "integer",
    "gs": "integer",
    "track": "integer",
    "baro_rate": "integer",
    "geom_rate": "integer",
    "squawk": "varchar(4)",
    "emergency": "varchar(20)",
    "category": "varchar(5)",
    "nav_qnh": "integer",
    "nav_altitude_mcp": "integer",
    "nav_heading": "integer",
    "nav_modes": "text[]",
    "nic": "integer",
    "rc": "integer",
    "seen_pos": "double precision",
    "version": "integer",
    "nic_baro": "integer",
    "nac_p": "integer",
    "nac_v": "integer",
    "sil": "integer",
    "sil_type": "varchar(20)",
    "gva": "integer",
    "sda": "integer",
    "alert": "integer",
    "spi": "integer",
    "mlat": "text[]",
    "tisb": "text[]",
    "messages": "bigint",
    "seen": "double precision",
    "rssi": "double precision",
    "timestamp": "timestamp",
}

CREATE_TABLE_SQL = (
    f"CREATE TABLE IF NOT EXISTS {TABLE_NAME} (\n"
    + ",\n".join(f"    {column} {COLUMN_TYPES[column]}" for column in COLUMNS)
    + "\n)"
)

INDEX_SQL = [
    f"CREATE INDEX IF NOT EXISTS idx_performance_test_timestamp ON {TABLE_NAME} (timestamp)",
    f"CREATE INDEX IF NOT EXISTS idx_performance_test_hex_timestamp ON {TABLE_NAME} (hex, timestamp)",
    f"CREATE INDEX IF NOT EXISTS idx_performance_test_lat_lon ON {TABLE_NAME} (lat, lon)",
]

COPY_SQL = f"COPY {TABLE_NAME} ({', '.join(COLUMNS)}) FROM STDIN"

# COPY type names; psycopg resolves names without length modifiers
COPY_TYPES = [COLUMN_TYPES[column].split("(")[0] for column in COLUMNS]


def _import_psycopg() -> Any:
    try:
        import psycopg
    except ImportError as e:
        raise ImportError(
            "psycopg is required for this backend. "
            "Install it with: pip install 'psycopg[binary]'"
        ) from e
    return psycopg


class PostgreSQLBackend(Backend):
    """PostgreSQL implementation of the benchmark backend.

    Attributes:
        _settings: Connection settings of the role this instance serves
        _conn: psycopg connection object
    """

    def __init__(self, settings: ConnectionSettings) -> None:
        self._settings = settings
        self._conn: Optional[Any] = None

    @property
    def name(self) -> str:
        return "postgresql"

    @property
    def dialect(self) -> str:
        return "postgresql"

    @property
    def settings(self) -> ConnectionSettings:
        return self._settings

    def _connect_to(self, database: str) -> Any:
        psycopg = _import_psycopg()
        s = self._settings
        try:
            return psycopg.connect(
                host=s.host,
                port=s.port,
                dbname=database,
                user=s.username,
                password=s.password,
                autocommit=True,
            )
        except psycopg.OperationalError as e:
            raise TransientBackendError(
                f"Cannot reach PostgreSQL at {s.host}:{s.port}/{database}: {e}"
            ) from e

    def _require_connection(self) -> Any:
        if self._conn is None:
            raise RuntimeError("Connection not established. Call connect() first.")
        return self._conn

    def connect(self) -> None:
        s = self._settings
        logger.debug(f"Connecting to PostgreSQL at {s.host}:{s.port}/{s.database}")
        self._conn = self._connect_to(s.database)

    def disconnect(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def query(self, sql: str) -> Sequence[Any]:
        with self._require_connection().cursor() as cur:
            cur.execute(sql)
            if cur.description is None:
                return []
            return cur.fetchall()

    def insert_batch(self, records: Sequence[Record]) -> None:
        with self._require_connection().cursor() as cur:
            with cur.copy(COPY_SQL) as copy:
                copy.set_types(COPY_TYPES)
                for record in records:
                    copy.write_row([record[column] for column in COLUMNS])

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
        """Create the target database through the maintenance database."""
        from psycopg import sql

        database = self._settings.database
        conn = self._connect_to("postgres")
        try:
            exists = conn.execute(
                "SELECT 1 FROM pg_database WHERE datname = %s", (database,)
            ).fetchone()
            if exists is None:
                conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(database)))
                logger.info(f"Created PostgreSQL database: {database}")
        finally:
            conn.close()

    def replicate(self) -> "PostgreSQLBackend":
        return PostgreSQLBackend(self._settings)

    def get_version(self) -> str:
        if self._conn is None:
            return "unknown"
        try:
            row = self._conn.execute("SHOW server_version").fetchone()
            return f"PostgreSQL {row[0]}" if row else "unknown"
        except Exception:
            return "unknown"
