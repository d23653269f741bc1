"""Aggregation helpers for per-sample time costs.

Functions
---------
mean_std
    Compute population mean and std for a sequence of floats.
us_to_ms
    Convert microseconds (the `.cpuprofile` time unit) to milliseconds.
"""

from __future__ import annotations

from statistics import mean, pstdev


def mean_std(values: list[float]) -> tuple[float, float]:
    """Return population mean and std for a list of sample costs.

    Parameters
    ----------
    values : list[float]
        Per-sample costs; must be non-empty.

    Returns
    -------
    tuple[float, float]
        ``(mean, std)`` where ``std`` is 0.0 if only one sample is given.
    """

    if not values:
        raise ValueError("mean_std() requires at least one value")
    return mean(values), (pstdev(values) if len(values) > 1 else 0.0)


def us_to_ms(value_us: float) -> float:
    """Return ``value_us`` microseconds expressed in milliseconds."""

    return float(value_us) / 1000.0
