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
Synthetic Aircraft Tracking Data Generator

Produces ADS-B style position reports for the benchmark table. Generation is
deterministic for a given seed and reference time, so every backend in a run
is loaded with exactly the same rows.

Records are produced on demand through a RecordSource (a callable returning
the next ``n`` records), so a dataset is never materialized in full.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_SEED = "default-benchmark-seed"

# Column order of the performance_test table in every backend
COLUMNS: tuple[str, ...] = (
    "zorder_coordinate", "approach", "autopilot", "althold", "lnav", "tcas",
    "hex", "transponder_type", "flight", "r", "aircraft_type", "db_flags",
    "lat", "lon", "alt_baro", "alt_baro_is_ground", "alt_geom", "gs", "track",
    "baro_rate", "geom_rate", "squawk", "emergency", "category", "nav_qnh",
    "nav_altitude_mcp", "nav_heading", "nav_modes", "nic", "rc", "seen_pos",
    "version", "nic_baro", "nac_p", "nac_v", "sil", "sil_type", "gva", "sda",
    "alert", "spi", "mlat", "tisb", "messages", "seen", "rssi", "timestamp",
)

RecordSource = Callable[[int], list[dict[str, Any]]]

AIRCRAFT_CATEGORIES = ["A1", "A2", "A3", "A4", "A5", "A6", "A7", "B1", "B2", "C1", "C2"]
EMERGENCY_STATES = ["none", "general", "lifeguard", "minfuel", "nordo", "unlawful", "downed"]
SIL_TYPES = ["perhour", "persample"]
NAV_MODES = ["autopilot", "althold", "approach", "lnav", "tcas", "vnav"]
AIRCRAFT_TYPES = ["B738", "A320", "B777", "A330", "C172", "PA28", "B752", "E145", "CRJ2", "DH8D"]
COMMON_SQUAWKS = ["1200", "7000", "2000", "0400"]

FLIGHT_PREFIXES = ["AAL", "DAL", "UAL", "SWA", "JBU", "ASA", "SKW", "TETON", "REACH", "CTM", "BAW", "AFR"]
MILITARY_CALLSIGNS = ["TETON", "REACH", "SENTRY", "KNIFE", "VAPOR", "RIDER"]
REGISTRATION_PREFIXES = ["N", "G-", "F-", "D-", "C-", "92-", "11-", "86-"]

# (lat range, lon range)
REGIONS = [
    ((25.0, 47.0), (-85.0, -65.0)),    # US east
    ((32.0, 48.0), (-125.0, -100.0)),  # US west
    ((35.0, 60.0), (-10.0, 25.0)),     # Europe
    ((30.0, 50.0), (-60.0, -20.0)),    # Atlantic
]

MAX_FLEET_SIZE = 5000


@dataclass(frozen=True)
class Aircraft:
    hex: str
    flight: str
    registration: str
    category: str


class DataGenerator:
    """Seeded generator of aircraft tracking records.

    Timestamps are spread uniformly over the ``days_past`` days before the
    reference time and are naive UTC datetimes.

    Args:
        seed: Seed for the pseudo-random generator
        now: Reference time (default: current UTC time)
        days_past: Width of the timestamp window in days
    """

    def __init__(
        self,
        seed: str = DEFAULT_SEED,
        now: Optional[datetime] = None,
        days_past: int = 7,
    ) -> None:
        self.seed = seed
        self._rng = random.Random(seed)

        if now is None:
            now = datetime.now(timezone.utc)
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc).replace(tzinfo=None)
        self._end = now
        self._start = now - timedelta(days=days_past)
        self._range_seconds = (self._end - self._start).total_seconds()

        logger.debug(f"DataGenerator initialized with seed: {seed}")

    def build_fleet(self, row_count: int) -> list[Aircraft]:
        """Create the aircraft pool records are drawn from (one per 10 rows, capped)."""
        count = max(1, min(row_count // 10, MAX_FLEET_SIZE))
        return [self._generate_aircraft() for _ in range(count)]

    def record_source(self, row_count: int) -> RecordSource:
        """Return a callable producing the next ``n`` records of a dataset."""
        fleet = self.build_fleet(row_count)

        def next_records(n: int) -> list[dict[str, Any]]:
            return self.generate_batch(n, fleet)

        return next_records

    def generate_batch(self, count: int, fleet: list[Aircraft]) -> list[dict[str, Any]]:
        return [self.generate_record(fleet) for _ in range(count)]

    def generate_record(self, fleet: list[Aircraft]) -> dict[str, Any]:
        """Generate one position report for a random aircraft of the fleet."""
        rnd = self._rng.random

        timestamp = self._start + timedelta(seconds=rnd() * self._range_seconds)
        timestamp = timestamp.replace(microsecond=0)

        aircraft = fleet[int(rnd() * len(fleet))]
        lat_range, lon_range = REGIONS[int(rnd() * len(REGIONS))]
        lat = lat_range[0] + rnd() * (lat_range[1] - lat_range[0])
        lon = lon_range[0] + rnd() * (lon_range[1] - lon_range[0])

        is_commercial = aircraft.category.startswith("A") and "TETON" not in aircraft.flight
        alt_baro = 20000 + rnd() * 20000 if is_commercial else rnd() * 15000

        return {
            "zorder_coordinate": int((lat + 90) * 1_000_000 + (lon + 180) * 1000),
            "approach": rnd() < 0.05,
            "autopilot": rnd() < (0.8 if is_commercial else 0.3),
            "althold": rnd() < 0.7,
            "lnav": rnd() < (0.6 if is_commercial else 0.2),
            "tcas": rnd() < (0.9 if is_commercial else 0.4),
            "hex": aircraft.hex,
            "transponder_type": "",
            "flight": aircraft.flight,
            "r": aircraft.registration,
            "aircraft_type": self._choice(AIRCRAFT_TYPES) if rnd() < 0.8 else None,
            "db_flags": 1,
            "lat": round(lat, 6),
            "lon": round(lon, 6),
            "alt_baro": round(alt_baro),
            "alt_baro_is_ground": alt_baro < 50,
            "alt_geom": round(alt_baro + (rnd() - 0.5) * 200),
            "gs": round(rnd() * 500 + 100),
            "track": round(rnd() * 360),
            "baro_rate": round((rnd() - 0.5) * 4000),
            "geom_rate": round((rnd() - 0.5) * 128) if rnd() < 0.9 else None,
            "squawk": self._generate_squawk(),
            "emergency": self._choice(EMERGENCY_STATES),
            "category": aircraft.category,
            "nav_qnh": max(0, round(1013 + (rnd() - 0.5) * 50)) if rnd() < 0.8 else None,
            "nav_altitude_mcp": (
                max(0, round(alt_baro + (rnd() - 0.5) * 1000)) if rnd() < 0.7 else None
            ),
            "nav_heading": round(rnd() * 360) if rnd() < 0.6 else None,
            "nav_modes": [mode for mode in NAV_MODES if rnd() < 0.3],
            "nic": int(rnd() * 11),
            "rc": int(rnd() * 500),
            "seen_pos": rnd() * 10,
            "version": 2 if rnd() < 0.9 else 1,
            "nic_baro": int(rnd() * 2),
            "nac_p": int(rnd() * 12),
            "nac_v": int(rnd() * 5),
            "sil": int(rnd() * 4),
            "sil_type": self._choice(SIL_TYPES),
            "gva": int(rnd() * 3),
            "sda": int(rnd() * 3),
            "alert": 0,
            "spi": 0,
            "mlat": [],
            "tisb": [],
            "messages": int(rnd() * 100_000),
            "seen": rnd() * 60,
            "rssi": -5 - rnd() * 15,
            "timestamp": timestamp,
        }

    def _choice(self, values: list[str]) -> str:
        return values[int(self._rng.random() * len(values))]

    def _generate_aircraft(self) -> Aircraft:
        rnd = self._rng.random
        is_military = rnd() < 0.1
        if is_military:
            prefix = self._choice(MILITARY_CALLSIGNS)
            flight = f"{prefix}{int(rnd() * 99):02d} "
        else:
            prefix = self._choice(FLIGHT_PREFIXES)
            flight = f"{prefix}{int(rnd() * 9999):04d}"

        return Aircraft(
            hex=f"{int(rnd() * 0xFFFFFF):06x}",
            flight=flight,
            registration=f"{self._choice(REGISTRATION_PREFIXES)}{int(rnd() * 99999):04d}",
            category=self._choice(AIRCRAFT_CATEGORIES),
        )

    def _generate_squawk(self) -> str:
        rnd = self._rng.random
        if rnd() < 0.3:
            return self._choice(COMMON_SQUAWKS)
        return f"{int(rnd() * 7777):04d}"
