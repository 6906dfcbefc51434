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
Benchmark Result Reporting

This module provides utilities for formatting and outputting benchmark results.
"""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO

from trackbench.models import TestResults

FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def format_duration(ms: float) -> str:
    """Format a duration in milliseconds for display.

    Examples:
        850 -> "850 ms", 1500 -> "1.5 s", 120000 -> "2.0 m"
    """
    if ms < 1000:
        return f"{ms:.0f} ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f} s"
    return f"{ms / 60_000:.1f} m"


def short_query_name(name: str) -> str:
    """Return the leading token of a query name ("Q3 Hourly ..." -> "Q3")."""
    return name.split(" ", 1)[0]


def file_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(FILE_TIMESTAMP_FORMAT)


def print_results_table(
    results: Sequence[TestResults],
    file: TextIO | None = None,
) -> None:
    """Print one ASCII table per dataset size.

    Each row is a configuration; columns hold the representative duration of
    every query, the total query time and the setup time.

    Args:
        results: Completed configuration results
        file: Output file (defaults to stdout)
    """
    import sys

    if file is None:
        file = sys.stdout

    if not results:
        print("No results to report", file=file)
        return

    query_names = [short_query_name(r.name) for r in results[0].query_results]
    headers = ["Database"] + query_names + ["Total", "Setup"]
    widths = [20] + [10] * len(query_names) + [10, 10]

    header_line = " | ".join(h.ljust(w) for h, w in zip(headers, widths))
    separator = "-+-".join("-" * w for w in widths)

    for row_count in sorted({r.configuration.row_count for r in results}):
        group = [r for r in results if r.configuration.row_count == row_count]

        print("\n" + "=" * len(separator), file=file)
        print(f"RESULTS: {row_count:,} rows", file=file)
        print("=" * len(separator), file=file)
        print(header_line, file=file)
        print(separator, file=file)

        for result in group:
            row = [result.configuration.display_name.ljust(widths[0])]
            for i in range(len(query_names)):
                if i < len(result.query_results):
                    cell = format_duration(result.query_results[i].duration_ms)
                else:
                    cell = "-"
                row.append(cell.rjust(widths[i + 1]))
            row.append(format_duration(result.total_query_time_ms).rjust(widths[-2]))
            row.append(format_duration(result.setup_time_ms).rjust(widths[-1]))
            print(" | ".join(row), file=file)

        print(separator, file=file)


def print_statistics_table(
    result: TestResults,
    file: TextIO | None = None,
) -> None:
    """Print per-query statistics of a query-only configuration.

    Args:
        result: Result carrying query_stats
        file: Output file (defaults to stdout)
    """
    import sys

    if file is None:
        file = sys.stdout

    config = result.configuration
    print(f"\n{config.display_name} - {config.row_count:,} rows", file=file)
    if result.completed_iterations is not None:
        suffix = " (time limit reached)" if result.timed_out else ""
        print(f"Completed iterations: {result.completed_iterations}{suffix}", file=file)

    stats = result.query_stats
    if stats is None:
        print("No completed iterations, no statistics available", file=file)
        return

    headers = ["Query", "Mean (ms)", "Median (ms)", "Min (ms)", "Max (ms)", "StdDev", "95% CI"]
    widths = [8, 10, 11, 10, 10, 10, 21]

    header_line = " | ".join(h.ljust(w) for h, w in zip(headers, widths))
    separator = "-+-".join("-" * w for w in widths)

    print(separator, file=file)
    print(header_line, file=file)
    print(separator, file=file)

    for i in range(stats.query_count):
        name = short_query_name(result.query_results[i].name) if i < len(result.query_results) else f"Q{i + 1}"
        ci = stats.ci95[i]
        row = [
            name.ljust(widths[0]),
            f"{stats.mean[i]:.2f}".rjust(widths[1]),
            f"{stats.median[i]:.2f}".rjust(widths[2]),
            f"{stats.min[i]:.2f}".rjust(widths[3]),
            f"{stats.max[i]:.2f}".rjust(widths[4]),
            f"{stats.std_dev[i]:.2f}".rjust(widths[5]),
            f"[{ci.lower:.2f}, {ci.upper:.2f}]".rjust(widths[6]),
        ]
        print(" | ".join(row), file=file)

    print(separator, file=file)


def build_report(
    results: Sequence[TestResults],
    metadata: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Convert results to a JSON-serializable report document."""
    return {
        "timestamp": datetime.now().isoformat(),
        **(metadata or {}),
        "results": [r.to_dict() for r in results],
    }


def save_json(
    results: Sequence[TestResults],
    output_path: Path,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """Save benchmark results to JSON file.

    Args:
        results: Completed configuration results
        output_path: Path to output file
        metadata: Extra top-level fields (test type, versions, ...)
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(build_report(results, metadata), f, indent=2, default=str)


def save_csv(results: Sequence[TestResults], output_path: Path) -> None:
    """Save benchmark results to CSV file, one row per configuration and query.

    Args:
        results: Completed configuration results
        output_path: Path to output file
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([
            "database",
            "with_index",
            "row_count",
            "query_name",
            "duration_ms",
            "rows",
            "mean_ms",
            "median_ms",
            "min_ms",
            "max_ms",
            "std_dev_ms",
            "ci95_lower_ms",
            "ci95_upper_ms",
            "completed_iterations",
            "setup_time_ms",
            "total_time_ms",
        ])

        for result in results:
            config = result.configuration
            stats = result.query_stats
            for i, query in enumerate(result.query_results):
                if stats is not None and i < stats.query_count:
                    stat_cells = [
                        stats.mean[i],
                        stats.median[i],
                        stats.min[i],
                        stats.max[i],
                        stats.std_dev[i],
                        stats.ci95[i].lower,
                        stats.ci95[i].upper,
                    ]
                else:
                    stat_cells = [None] * 7
                writer.writerow([
                    config.backend,
                    config.with_index,
                    config.row_count,
                    query.name,
                    query.duration_ms,
                    query.row_count,
                    *stat_cells,
                    result.completed_iterations,
                    result.setup_time_ms,
                    result.total_time_ms,
                ])


def save_partial_results(
    results: Sequence[TestResults],
    output_dir: Path,
    now: Optional[datetime] = None,
) -> Path:
    """Save results of an interrupted run next to the regular output files.

    Returns:
        Path of the written file
    """
    output_path = output_dir / f"partial-results_{file_timestamp(now)}.json"
    save_json(results, output_path, {"partial": True})
    return output_path
