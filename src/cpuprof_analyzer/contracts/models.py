"""Contract models (attrs-based schemas).

This module defines the request/response schemas of the CPU profile
analyzer. Responses are JSON-friendly views over the internal domain models
defined in :mod:`cpuprof_analyzer.data.models`; see
:mod:`cpuprof_analyzer.contracts.convert` for the conversion hooks.

Notes
-----
- ``profile_path`` is absolute; validators enforce this.
- Times in summaries are milliseconds.
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from attrs import define, field
from attrs.validators import ge, instance_of, optional


def _abs_path(_: object, attr: object, value: str) -> None:
    """Enforce absolute paths for string fields.

    Raises
    ------
    ValueError
        If ``value`` is not an absolute path.
    """

    if not os.path.isabs(value):
        name = getattr(attr, "name", "path")
        raise ValueError(f"{name} must be an absolute path")


@define(kw_only=True)
class ProfileAnalysisRequest:
    """Inputs for an analysis run.

    Examples
    --------
    >>> ProfileAnalysisRequest(profile_path="/abs/.perf/app.cpuprofile", function_name="get")
    ProfileAnalysisRequest(...)
    """

    profile_path: str = field(validator=[instance_of(str), _abs_path])
    function_name: Optional[str] = field(default=None, validator=optional(instance_of(str)))
    file_filter: Optional[str] = field(default=None, validator=optional(instance_of(str)))
    top_n: int = field(default=20, validator=[instance_of(int), ge(1)])
    max_depth: int = field(default=20, validator=[instance_of(int), ge(1)])


@define(kw_only=True)
class FrameSummary:
    """Caller frame as exposed in summaries."""

    function_name: str = field(validator=[instance_of(str)])
    location: str = field(validator=[instance_of(str)])
    node_id: int = field(validator=[instance_of(int)])


@define(kw_only=True)
class CallerStackSummary:
    """One ranked caller stack."""

    signature: str = field(validator=[instance_of(str)])
    frames: list[FrameSummary] = field(factory=list)
    count: int = field(validator=[instance_of(int)])
    share_pct: float = field(validator=[instance_of(float)])
    avg_time_ms: float = field(validator=[instance_of(float)])
    std_time_ms: float = field(validator=[instance_of(float)])
    total_time_ms: float = field(validator=[instance_of(float)])
    truncated: bool = field(default=False, validator=[instance_of(bool)])


@define(kw_only=True)
class CalleeSummary:
    """One ranked descendant ("function called by" the target)."""

    function_name: str = field(validator=[instance_of(str)])
    location: str = field(validator=[instance_of(str)])
    node_id: int = field(validator=[instance_of(int)])
    sample_count: int = field(validator=[instance_of(int)])
    share_pct: float = field(validator=[instance_of(float)])
    total_time_ms: float = field(validator=[instance_of(float)])


@define(kw_only=True)
class TargetAnalysisSummary:
    """Caller/callee summary for one matched node."""

    node_id: int = field(validator=[instance_of(int)])
    function_name: str = field(validator=[instance_of(str)])
    location: str = field(validator=[instance_of(str)])
    hit_count: int = field(validator=[instance_of(int)])
    callers: list[CallerStackSummary] = field(factory=list)
    unique_stacks: int = field(default=0, validator=[instance_of(int)])
    caller_samples: int = field(default=0, validator=[instance_of(int)])
    caller_time_ms: float = field(default=0.0, validator=[instance_of(float)])
    caller_avg_time_ms: float = field(default=0.0, validator=[instance_of(float)])
    truncated_samples: int = field(default=0, validator=[instance_of(int)])
    callees: list[CalleeSummary] = field(factory=list)
    callee_samples: int = field(default=0, validator=[instance_of(int)])


@define(kw_only=True)
class TopFunctionSummary:
    """Row of the hit-count ranking."""

    function_name: str = field(validator=[instance_of(str)])
    file: str = field(validator=[instance_of(str)])
    node_id: int = field(validator=[instance_of(int)])
    hit_count: int = field(validator=[instance_of(int)])


@define(kw_only=True)
class ProfileAnalysisSummary:
    """Summary of an analysis run for external consumption."""

    mode: Literal["targets", "top_functions"] = field(validator=[instance_of(str)])
    duration_s: float = field(validator=[instance_of(float)])
    total_samples: int = field(validator=[instance_of(int)])
    function_name: Optional[str] = field(default=None)
    file_filter: Optional[str] = field(default=None)
    targets_found: int = field(default=0, validator=[instance_of(int)])
    targets: list[TargetAnalysisSummary] = field(factory=list)
    top_functions: list[TopFunctionSummary] = field(factory=list)
    notes: str = field(default="", validator=[instance_of(str)])
