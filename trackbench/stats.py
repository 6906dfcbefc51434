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
Query Timing Statistics

Reduces the per-pass, per-query durations collected by the sampler into
descriptive statistics. The 95% confidence interval uses a coarse t value
(1.96 for more than 30 samples, 2.0 otherwise) rather than the exact
Student-t quantile, so that results stay comparable with earlier runs.
"""

import math
import statistics
from typing import Sequence

from trackbench.models import ConfidenceInterval, QueryStatistics

LARGE_SAMPLE_T = 1.96
SMALL_SAMPLE_T = 2.0
LARGE_SAMPLE_THRESHOLD = 30


def t_value(sample_count: int) -> float:
    """Return the t multiplier used for a sample of the given size."""
    return LARGE_SAMPLE_T if sample_count > LARGE_SAMPLE_THRESHOLD else SMALL_SAMPLE_T


def confidence_interval(mean: float, std_dev: float, sample_count: int) -> ConfidenceInterval:
    """Compute ``mean ± t * (std_dev / sqrt(n))`` with the lower bound clamped at 0."""
    margin = t_value(sample_count) * (std_dev / math.sqrt(sample_count))
    return ConfidenceInterval(lower=max(0.0, mean - margin), upper=mean + margin)


def compute_statistics(all_passes: Sequence[Sequence[float]]) -> QueryStatistics:
    """Reduce sampled durations into per-query statistics.

    Args:
        all_passes: One sequence per completed pass, each holding one
            duration (ms) per query in catalogue order

    Returns:
        QueryStatistics whose lists are indexed by query position

    Raises:
        ValueError: If there are no passes or passes differ in length
    """
    if not all_passes:
        raise ValueError("Cannot compute statistics without any completed pass")

    query_count = len(all_passes[0])
    if query_count == 0:
        raise ValueError("Passes must contain at least one query duration")
    for index, durations in enumerate(all_passes):
        if len(durations) != query_count:
            raise ValueError(
                f"Pass {index} has {len(durations)} durations, expected {query_count}"
            )

    means, medians, mins, maxes, std_devs, intervals = [], [], [], [], [], []

    for query_index in range(query_count):
        samples = [float(durations[query_index]) for durations in all_passes]
        n = len(samples)

        mean = statistics.fmean(samples)
        # Population standard deviation (divide by N); zero for a single sample
        std_dev = statistics.pstdev(samples, mu=mean)

        means.append(mean)
        medians.append(statistics.median(samples))
        mins.append(min(samples))
        maxes.append(max(samples))
        std_devs.append(std_dev)
        intervals.append(confidence_interval(mean, std_dev, n))

    return QueryStatistics(
        mean=tuple(means),
        median=tuple(medians),
        min=tuple(mins),
        max=tuple(maxes),
        std_dev=tuple(std_devs),
        ci95=tuple(intervals),
    )
