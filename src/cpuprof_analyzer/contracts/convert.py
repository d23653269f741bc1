"""Contract/domain conversion utilities using `cattrs`.

Provides a shared converter that unstructures the domain
:class:`~cpuprof_analyzer.data.models.ProfileAnalysisReport` into the
JSON-friendly :class:`~cpuprof_analyzer.contracts.models.ProfileAnalysisSummary`.
"""

from __future__ import annotations

from typing import List

from cattrs import Converter

from cpuprof_analyzer.contracts.models import (
    CalleeSummary,
    CallerStackSummary,
    FrameSummary,
    ProfileAnalysisSummary,
    TargetAnalysisSummary,
    TopFunctionSummary,
)
from cpuprof_analyzer.data.models import ProfileAnalysisReport, TargetAnalysis
from cpuprof_analyzer.profiling.aggregate import us_to_ms

# Public converter instance; register hooks as needed.
converter = Converter()


def _build_target_summary(ta: TargetAnalysis) -> TargetAnalysisSummary:
    cf = ta.target.node.call_frame
    callers = ta.callers
    callees = ta.callees

    caller_rows: List[CallerStackSummary] = []
    for e in callers.entries:
        caller_rows.append(
            CallerStackSummary(
                signature=e.signature,
                frames=[
                    FrameSummary(function_name=f.function_name, location=f.location, node_id=f.node_id)
                    for f in e.frames
                ],
                count=e.count,
                share_pct=float(callers.share(e)),
                avg_time_ms=us_to_ms(e.avg_time_us),
                std_time_ms=us_to_ms(e.std_time_us),
                total_time_ms=us_to_ms(e.total_time_us),
                truncated=bool(e.truncated),
            )
        )

    callee_rows = [
        CalleeSummary(
            function_name=c.function_name,
            location=c.location,
            node_id=c.node_id,
            sample_count=c.sample_count,
            share_pct=float(callees.share(c)),
            total_time_ms=us_to_ms(c.total_time_us),
        )
        for c in callees.entries
    ]

    return TargetAnalysisSummary(
        node_id=ta.target.node_id,
        function_name=cf.display_name,
        location=cf.location,
        hit_count=ta.target.hit_count,
        callers=caller_rows,
        unique_stacks=callers.unique_stacks,
        caller_samples=callers.total_samples,
        caller_time_ms=us_to_ms(callers.total_time_us),
        caller_avg_time_ms=us_to_ms(callers.avg_time_us),
        truncated_samples=callers.truncated_samples,
        callees=callee_rows,
        callee_samples=callees.total_samples,
    )


def build_analysis_summary(report: ProfileAnalysisReport) -> ProfileAnalysisSummary:
    """Construct a ProfileAnalysisSummary from a ProfileAnalysisReport."""

    return ProfileAnalysisSummary(
        mode=report.mode,  # type: ignore[arg-type]
        duration_s=float(report.duration_s),
        total_samples=int(report.total_samples),
        function_name=report.function_name,
        file_filter=report.file_filter,
        targets_found=len(report.targets),
        targets=[_build_target_summary(ta) for ta in report.targets],
        top_functions=[
            TopFunctionSummary(function_name=f.function_name, file=f.short_url, node_id=f.node_id, hit_count=f.hit_count)
            for f in report.top_functions
        ],
        notes=report.notes,
    )


def register_report_hooks(conv: Converter) -> None:
    """Register the ProfileAnalysisReport -> summary unstructure hook.

    Unstructuring a report yields the plain-dict form of its summary, which
    is what the runner writes to ``report.json`` / ``report.yaml``.
    """

    def _unstructure_report(report: ProfileAnalysisReport) -> dict:
        summary = build_analysis_summary(report)
        return conv.unstructure(summary)

    conv.register_unstructure_hook(ProfileAnalysisReport, _unstructure_report)


# Configure the shared converter on import so downstream callers can rely on it.
register_report_hooks(converter)
