"""Domain models for ``cpuprof_analyzer``.

This package hosts the attrs-based models for `.cpuprofile` parsing,
call-stack reconstruction and analysis reports.
"""

from __future__ import annotations

from .models import (
    AggregatedStackEntry,
    CalleeReport,
    CallerReport,
    CallFrame,
    CallStackFrame,
    DescendantSampleEntry,
    Profile,
    ProfileAnalysisReport,
    ProfileNode,
    StackWalk,
    TargetAnalysis,
    TargetNode,
    TopFunctionEntry,
)

__all__ = [
    # Profile input
    "CallFrame",
    "ProfileNode",
    "Profile",
    # Reconstruction
    "CallStackFrame",
    "StackWalk",
    "AggregatedStackEntry",
    "DescendantSampleEntry",
    # Reports
    "TargetNode",
    "CallerReport",
    "CalleeReport",
    "TargetAnalysis",
    "TopFunctionEntry",
    "ProfileAnalysisReport",
]
