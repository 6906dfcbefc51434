#!/usr/bin/env python3
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
TrackBench Benchmark Runner

A CLI tool for loading synthetic aircraft tracking data into several
databases and timing a fixed set of analytical queries against them. Runs
are checkpointed after every configuration; re-running the same command
after a crash or Ctrl-C resumes where the previous run stopped.

Usage Examples:
    # Load 10K and 100K rows into ClickHouse and PostgreSQL and time the queries
    python runner.py --sizes 10000,100000 --databases clickhouse,postgresql

    # Use the parallel loader with 8 workers
    python runner.py --sizes 1000000 --parallel-insert --workers 8

    # Re-run the queries 50 times against already loaded data
    python runner.py --mode query-only --iterations 50 --time-limit 10

    # Local run without any server
    python runner.py --databases duckdb,duckdb-indexed --sizes 10000

    # List available databases
    python runner.py --list-backends
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from trackbench.backends import TARGETS, create_backend, list_targets
from trackbench.checkpoint import DEFAULT_CHECKPOINT_PATH, CheckpointStore
from trackbench.config import Settings, load_settings
from trackbench.errors import TrackBenchError
from trackbench.models import TEST_TYPE_LOAD, TEST_TYPE_QUERY_ONLY, TEST_TYPES, TestResults
from trackbench.orchestrator import ResumableOrchestrator, RunOptions, RunStatus
from trackbench.planner import plan_configurations
from trackbench.queries import QUERY_CATALOGUE, get_query_count, list_dialects
from trackbench.reporting import (
    file_timestamp,
    print_results_table,
    print_statistics_table,
    save_csv,
    save_json,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def print_result(result: TestResults) -> None:
    """Print the per-query lines of a completed configuration."""
    config = result.configuration
    print(f"\n{config.display_name} - {config.row_count:,} rows")
    for query in result.query_results:
        print(f"  [✓] {query.name}: {query.duration_ms:.2f}ms ({query.row_count} rows)")
    if result.completed_iterations is not None:
        print(f"  Iterations: {result.completed_iterations}/{result.iterations}"
              + (" (time limit reached)" if result.timed_out else ""))


def cli_overrides(args: argparse.Namespace) -> dict[str, str]:
    """Map CLI flags onto the environment variables they override."""
    overrides: dict[str, Optional[str]] = {
        "BULK_TEST_SIZES": args.sizes,
        "BENCHMARK_DATABASES": args.databases,
        "QUERY_TEST_ITERATIONS": str(args.iterations) if args.iterations is not None else None,
        "QUERY_TEST_TIME_LIMIT": str(args.time_limit) if args.time_limit is not None else None,
        "BATCH_SIZE": str(args.batch_size) if args.batch_size is not None else None,
        "PARALLEL_WORKERS": str(args.workers) if args.workers is not None else None,
        "PARALLEL_INSERT": "true" if args.parallel_insert else None,
        "BENCHMARK_SEED": args.seed,
    }
    return {k: v for k, v in overrides.items() if v is not None}


def run_benchmark(settings: Settings, args: argparse.Namespace) -> int:
    """Plan, run and report a benchmark session.

    Returns:
        Process exit code
    """
    configurations = plan_configurations(settings.dataset_sizes, settings.databases)
    logger.info(
        f"Planned {len(configurations)} configurations "
        f"({args.mode} test, sizes: {', '.join(f'{s:,}' for s in settings.dataset_sizes)})"
    )

    backends = {
        key: create_backend(key, settings)
        for key in dict.fromkeys(c.target_key for c in configurations)
    }

    options = RunOptions(
        test_type=args.mode,
        batch_size=settings.batch_size,
        parallel_insert=settings.parallel_insert,
        worker_count=settings.parallel_workers,
        iterations=settings.query_iterations,
        time_limit_minutes=settings.query_time_limit_minutes,
        seed=settings.seed,
        startup_timeout=settings.worker_timeout_ms / 1000.0,
    )

    orchestrator = ResumableOrchestrator(
        configurations=configurations,
        backends=backends,
        store=CheckpointStore(args.checkpoint_path),
        options=options,
        output_dir=args.output_dir,
        on_result=print_result,
    )
    outcome = orchestrator.run(fresh=args.fresh)

    if outcome.status is RunStatus.INTERRUPTED:
        print(f"\n{'='*60}")
        print(
            f"Interrupted: {outcome.checkpoint.completed_count}/"
            f"{outcome.checkpoint.total_configurations} configurations completed"
        )
        print("Run the same command to resume from checkpoint.")
        return outcome.exit_code

    # Print results
    print(f"\n{'='*60}")
    print("RESULTS")
    print(f"{'='*60}")

    print_results_table(outcome.results)
    if args.mode == TEST_TYPE_QUERY_ONLY:
        for result in outcome.results:
            print_statistics_table(result)

    # Save results
    metadata = {
        "testType": args.mode,
        "datasetSizes": list(settings.dataset_sizes),
        "databases": list(settings.databases),
        "seed": settings.seed,
        "versions": orchestrator.backend_versions,
    }
    if args.output:
        output_path = args.output
        if output_path.suffix.lower() == ".csv":
            save_csv(outcome.results, output_path)
        else:
            save_json(outcome.results, output_path, metadata)
        logger.info(f"Results saved to {output_path}")
    else:
        stem = args.output_dir / f"results_{file_timestamp()}"
        save_json(outcome.results, stem.with_suffix(".json"), metadata)
        save_csv(outcome.results, stem.with_suffix(".csv"))
        logger.info(f"Results saved to {stem}.json and {stem}.csv")

    return outcome.exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="TrackBench Benchmark Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --sizes 10000,100000 --databases clickhouse,postgresql
  %(prog)s --sizes 1000000 --parallel-insert --workers 8
  %(prog)s --mode query-only --iterations 50 --time-limit 10
  %(prog)s --list-backends

Settings not given on the command line are read from the environment
(or a .env file): DATASET_SIZE, BULK_TEST_SIZES, BATCH_SIZE, PARALLEL_INSERT,
PARALLEL_WORKERS, QUERY_TEST_ITERATIONS, QUERY_TEST_TIME_LIMIT,
BENCHMARK_DATABASES, CLICKHOUSE_*, POSTGRES_*, POSTGRES_INDEXED_*, DUCKDB_PATH.
        """,
    )

    # Test selection
    parser.add_argument(
        "--mode",
        type=str,
        choices=list(TEST_TYPES),
        default=TEST_TYPE_LOAD,
        help="load: recreate tables, insert data and time one pass; "
        "query-only: time repeated passes over existing data (default: load)",
    )

    parser.add_argument(
        "--sizes",
        "-s",
        type=str,
        help="Comma-separated dataset sizes (e.g., 10000,100000). "
        "Default: BULK_TEST_SIZES or DATASET_SIZE",
    )

    parser.add_argument(
        "--databases",
        "-d",
        type=str,
        help=f"Comma-separated databases to test. Available: {', '.join(list_targets())}",
    )

    # Sampling configuration
    parser.add_argument(
        "--iterations",
        "-n",
        type=int,
        help="Query passes per configuration in query-only mode (default: 100)",
    )

    parser.add_argument(
        "--time-limit",
        "-t",
        type=int,
        help="Time limit per configuration in minutes, query-only mode (default: 60)",
    )

    # Loading configuration
    parser.add_argument(
        "--batch-size",
        type=int,
        help="Records per insert batch (default: 50000)",
    )

    parser.add_argument(
        "--workers",
        type=int,
        help="Parallel insert workers, 1-16 (default: 4)",
    )

    parser.add_argument(
        "--parallel-insert",
        action="store_true",
        help="Insert through a pool of parallel workers",
    )

    parser.add_argument(
        "--seed",
        type=str,
        help="Seed for the synthetic data generator",
    )

    # Output configuration
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Output file path for results (JSON or CSV based on extension)",
    )

    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory for result files and partial results (default: output)",
    )

    parser.add_argument(
        "--checkpoint-path",
        type=Path,
        default=DEFAULT_CHECKPOINT_PATH,
        help=f"Checkpoint file location (default: {DEFAULT_CHECKPOINT_PATH})",
    )

    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Discard any existing checkpoint and start from scratch",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    # Information commands
    parser.add_argument(
        "--list-backends",
        action="store_true",
        help="List available databases and exit",
    )

    parser.add_argument(
        "--list-queries",
        action="store_true",
        help="List benchmark queries and exit",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the benchmark runner."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Handle verbose logging
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Handle information commands
    if args.list_backends:
        print("Available databases:")
        for key in list_targets():
            target = TARGETS[key]
            index = "with index" if target.with_index else "no index"
            print(f"  - {key} (backend: {target.backend}, {index})")
        return 0

    if args.list_queries:
        print(f"Benchmark queries ({get_query_count()} total, "
              f"dialects: {', '.join(list_dialects())}):")
        for query in QUERY_CATALOGUE:
            print(f"  - {query.key}: {query.name}")
        return 0

    try:
        settings = load_settings(overrides=cli_overrides(args))
        return run_benchmark(settings, args)
    except TrackBenchError as e:
        logger.error(str(e))
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1
    except KeyboardInterrupt:
        logger.error("Hard stop requested, checkpoint saved at last completed configuration")
        return 1


if __name__ == "__main__":
    sys.exit(main())
