"""Plain-text rendering of CPU profile analysis reports for terminals."""

from __future__ import annotations

from cpuprof_analyzer.data.models import AggregatedStackEntry, CallerReport, ProfileAnalysisReport, TargetAnalysis
from cpuprof_analyzer.profiling.aggregate import us_to_ms

RULE = "=" * 80
THIN_RULE = "-" * 80


def render_stack_entry(entry: AggregatedStackEntry, rank: int, callers: CallerReport, target_name: str) -> list[str]:
    """Render one aggregated caller stack as an indented tree ending at the target."""

    lines = [
        "",
        (
            f"{rank}. Call Stack ({entry.count} samples, {callers.share(entry):.2f}%, "
            f"avg: {us_to_ms(entry.avg_time_us):.3f}ms, total: {us_to_ms(entry.total_time_us):.3f}ms):"
        ),
    ]
    frames = list(entry.frames)
    if entry.truncated:
        lines.append("  ┆ … (stack truncated at depth limit)")
    if not frames:
        lines.append("  └─ (direct call or root)")
    for i, frame in enumerate(frames):
        connector = "└─" if i == len(frames) - 1 else "├─"
        lines.append(f"{'  ' * i}{connector} {frame.function_name} ({frame.location})")
    lines.append(f"{'  ' * len(frames)}└─ {target_name} (target)")
    return lines


def render_target(ta: TargetAnalysis, top_n: int) -> list[str]:
    cf = ta.target.node.call_frame
    name = cf.display_name
    lines = [
        "",
        RULE,
        f"Target Function: {name}",
        f"Location: {cf.location}",
        f"Hit Count: {ta.target.hit_count}",
        RULE,
    ]

    callers = ta.callers
    if not callers.entries:
        lines.extend(["", "No call stacks found for this function."])
    else:
        lines.extend(["", f"Total call stack samples: {callers.total_samples}"])
        lines.extend(["", f"Top {min(top_n, callers.unique_stacks)} Call Stacks:", THIN_RULE])
        for rank, entry in enumerate(callers.entries, start=1):
            lines.extend(render_stack_entry(entry, rank, callers, name))
        lines.extend(
            [
                "",
                THIN_RULE,
                "Summary:",
                f"  Total unique call stacks: {callers.unique_stacks}",
                f"  Total samples: {callers.total_samples}",
                f"  Total time: {us_to_ms(callers.total_time_us):.3f}ms",
                f"  Average time per sample: {us_to_ms(callers.avg_time_us):.3f}ms",
            ]
        )
        if callers.truncated_samples:
            lines.append(f"  Samples with truncated stacks: {callers.truncated_samples}")

    lines.extend(["", RULE, f'Functions Called BY "{name}" (where time is actually spent):', RULE])
    callees = ta.callees
    if not callees.entries:
        lines.extend(["", "No child functions found (function may be leaf node or samples not captured)."])
        return lines

    lines.extend(["", f"Top {len(callees.entries)} functions called (by sample count):", ""])
    for rank, c in enumerate(callees.entries, start=1):
        lines.append(
            f"{rank:>2}. {c.function_name:<50} | {c.sample_count:>6} samples ({callees.share(c):>5.2f}%) | {c.location}"
        )
    lines.extend(["", f"Total samples in called functions: {callees.total_samples}"])
    return lines


def render_text_report(report: ProfileAnalysisReport) -> str:
    """Render ``report`` in the console layout of the analyzer CLI."""

    if report.mode == "top_functions":
        lines = ["", "No function specified. Finding top functions...", ""]
        lines.append(f"Top {len(report.top_functions)} Functions by Hit Count:")
        for i, f in enumerate(report.top_functions, start=1):
            lines.append(f"  {i}. {f.function_name} - {f.hit_count} hits ({f.short_url})")
        lines.extend(["", "Use --function <name> to analyze a specific function.", ""])
        return "\n".join(lines)

    lines = [
        RULE,
        "CPU Profile Call Stack Analysis",
        RULE,
        "",
        f"Profile Duration: {report.duration_s:.2f} seconds",
        f"Total Samples: {report.total_samples}",
        f"Target Nodes Found: {len(report.targets)}",
    ]
    if not report.targets:
        lines.extend(
            [
                "",
                "No matching nodes found. Try different search criteria.",
                f"  Function: {report.function_name or '(any)'}",
                f"  File: {report.file_filter or '(any)'}",
            ]
        )
        return "\n".join(lines)

    if report.notes:
        lines.extend(["", f"Note: {report.notes}"])
    for ta in report.targets:
        lines.extend(render_target(ta, report.top_n))
    return "\n".join(lines)


__all__ = ["render_stack_entry", "render_target", "render_text_report"]
