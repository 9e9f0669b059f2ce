"""Collapse a multi-dimensional reading into one comfort score."""

from __future__ import annotations

from typing import Mapping, Union

from models.records import AggregatedReading, Dimension, SensitivityProfile, SensoryReport

Readable = Union[AggregatedReading, SensoryReport, Mapping[Dimension, float]]


def _values(source: Readable) -> Mapping[Dimension, float]:
    if isinstance(source, AggregatedReading):
        return source.dimensions
    if isinstance(source, SensoryReport):
        return source.dimensions()
    return source


def dimension_weight(profile: SensitivityProfile, dimension: Dimension) -> float:
    return profile.threshold(dimension) / 10


def personalize(source: Readable, profile: SensitivityProfile) -> float:
    """Profile-weighted mean of the present dimensions.

    A threshold of 0 removes a dimension from both the numerator and the
    denominator. Returns 0 when nothing is left to weigh.
    """
    total_score = 0.0
    total_weight = 0.0
    for dimension, value in _values(source).items():
        weight = dimension_weight(profile, dimension)
        total_score += value * weight
        total_weight += weight

    if total_weight <= 0:
        return 0.0
    return total_score / total_weight
