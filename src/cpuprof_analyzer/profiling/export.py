"""Report building and export helpers for CPU profile analysis.

Functions
---------
find_target_nodes
    Select nodes matching a function/file filter, ordered by hit count.
top_functions_by_hits
    Hit-count ranking used when no function filter is given.
analyze_callers
    Aggregate and rank the caller stacks of one target node.
analyze_callees
    Rank the descendants of one target node by samples landing on them.
build_profile_report
    Run the full analysis for a profile and return a `ProfileAnalysisReport`.
write_report_markdown
    Emit the report as Markdown tables using mdutils.
write_report_json / write_report_yaml
    Persist the cattrs-unstructured report payload.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from mdutils.mdutils import MdUtils  # type: ignore[import-untyped]
from ruamel.yaml import YAML  # type: ignore[import-untyped]

from cpuprof_analyzer.data.models import (
    ANONYMOUS,
    CalleeReport,
    CallerReport,
    DescendantSampleEntry,
    Profile,
    ProfileAnalysisReport,
    TargetAnalysis,
    TargetNode,
    TopFunctionEntry,
)
from cpuprof_analyzer.profiling.aggregate import us_to_ms
from cpuprof_analyzer.profiling.callgraph import DEFAULT_MAX_DEPTH, AdjacencyIndex, build_adjacency, collect_descendants
from cpuprof_analyzer.profiling.stacks import aggregate_call_stacks, collect_call_stacks

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 20


def find_target_nodes(
    profile: Profile,
    function_name: Optional[str] = None,
    file_filter: Optional[str] = None,
) -> list[TargetNode]:
    """Return nodes matching the filters that have at least one direct hit.

    A node matches when the function filter is absent or contained in its
    function name, and the file filter is absent or contained in its url.
    Results are sorted by descending hit count (node order on ties).
    """

    out: list[TargetNode] = []
    for i, node in enumerate(profile.nodes):
        matches_function = not function_name or function_name in node.function_name
        matches_file = not file_filter or file_filter in node.url
        if matches_function and matches_file and node.hit_count > 0:
            out.append(TargetNode(node=node, index=i))
    out.sort(key=lambda t: -t.hit_count)
    return out


def top_functions_by_hits(profile: Profile, n: int = DEFAULT_TOP_N) -> list[TopFunctionEntry]:
    """Return up to ``n`` nodes with hits, ranked by descending ``hit_count``."""

    rows = [
        TopFunctionEntry(
            node_id=node.id,
            function_name=node.call_frame.display_name,
            url=node.url,
            line_number=node.call_frame.line_number,
            hit_count=node.hit_count,
        )
        for node in profile.nodes
        if node.hit_count > 0
    ]
    rows.sort(key=lambda r: -r.hit_count)
    return rows[: max(int(n), 0)]


def analyze_callers(
    profile: Profile,
    adjacency: AdjacencyIndex,
    target_id: int,
    top_n: int = DEFAULT_TOP_N,
    max_depth: int = DEFAULT_MAX_DEPTH,
    descendants: Optional[set[int]] = None,
) -> CallerReport:
    """Aggregate the caller stacks of ``target_id`` and keep the top-N.

    Summary totals cover every aggregated entry, not only the kept ones.
    """

    stacks = collect_call_stacks(profile, adjacency, target_id, max_depth=max_depth, descendants=descendants)
    aggregated = aggregate_call_stacks(stacks)
    report = CallerReport(
        entries=aggregated[: max(int(top_n), 0)],
        unique_stacks=len(aggregated),
        total_samples=sum(e.count for e in aggregated),
        total_time_us=sum(e.total_time_us for e in aggregated),
        truncated_samples=sum(e.count for e in aggregated if e.truncated),
    )
    if report.truncated_samples:
        logger.debug(
            "Caller walks hit the depth ceiling | target=%d truncated_samples=%d max_depth=%d",
            target_id,
            report.truncated_samples,
            max_depth,
        )
    return report


def analyze_callees(
    profile: Profile,
    adjacency: AdjacencyIndex,
    target_id: int,
    top_n: int = DEFAULT_TOP_N,
    descendants: Optional[set[int]] = None,
) -> CalleeReport:
    """Rank the descendants of ``target_id`` by samples landing exactly on them.

    Percentages in the returned report are relative to the samples of all
    descendants, including those ranked below the top-N.
    """

    if descendants is None:
        descendants = collect_descendants(target_id, adjacency)

    by_node: dict[int, DescendantSampleEntry] = {}
    for sample_id, delta in zip(profile.samples, profile.time_deltas):
        if sample_id not in descendants:
            continue
        entry = by_node.get(sample_id)
        if entry is None:
            node = adjacency.node(sample_id)
            if node is None:
                entry = DescendantSampleEntry(node_id=sample_id)
            else:
                entry = DescendantSampleEntry(
                    node_id=sample_id,
                    function_name=node.call_frame.display_name,
                    url=node.url,
                    line_number=node.call_frame.line_number,
                    hit_count=node.hit_count,
                )
            by_node[sample_id] = entry
        entry.sample_count += 1
        entry.total_time_us += delta

    ranked = sorted(by_node.values(), key=lambda e: (-e.sample_count, -e.total_time_us, e.node_id))
    return CalleeReport(
        entries=ranked[: max(int(top_n), 0)],
        descendant_count=len(descendants),
        total_samples=sum(e.sample_count for e in ranked),
    )


def build_profile_report(
    profile: Profile,
    function_name: Optional[str] = None,
    file_filter: Optional[str] = None,
    top_n: int = DEFAULT_TOP_N,
    max_depth: int = DEFAULT_MAX_DEPTH,
    adjacency: Optional[AdjacencyIndex] = None,
) -> ProfileAnalysisReport:
    """Analyze ``profile`` for the given filters.

    Without a function filter the report holds the hit-count ranking only.
    Otherwise every matched node is analyzed independently, in descending
    hit-count order; zero matches yields an empty ``targets`` list.

    Parameters
    ----------
    profile : Profile
        Loaded profile.
    function_name : str or None
        Function-name substring filter.
    file_filter : str or None
        Url substring filter.
    top_n : int, default=20
        Rows kept per ranking.
    max_depth : int, default=20
        Ancestor walk ceiling.
    adjacency : AdjacencyIndex or None
        Prebuilt index; built from ``profile.nodes`` when omitted.
    """

    report = ProfileAnalysisReport(
        mode="top_functions" if not function_name else "targets",
        duration_s=profile.duration_s,
        total_samples=profile.sample_count,
        function_name=function_name,
        file_filter=file_filter,
        top_n=int(top_n),
    )

    if not function_name:
        report.top_functions = top_functions_by_hits(profile, n=top_n)
        report.notes = "No function specified; nodes ranked by hit count."
        return report

    targets = find_target_nodes(profile, function_name, file_filter)
    logger.info(
        "Target nodes found | function=%s file=%s count=%d",
        function_name,
        file_filter or "(any)",
        len(targets),
    )
    if not targets:
        report.notes = "No matching nodes found. Try different search criteria."
        return report

    if adjacency is None:
        adjacency = build_adjacency(profile.nodes)
    shared = adjacency.shared_node_ids()
    if shared:
        report.notes = (
            f"{len(shared)} node(s) have multiple parents; caller stacks follow the first parent "
            "recorded in the node table."
        )

    for target in targets:
        descendants = collect_descendants(target.node_id, adjacency)
        callers = analyze_callers(
            profile, adjacency, target.node_id, top_n=top_n, max_depth=max_depth, descendants=descendants
        )
        callees = analyze_callees(profile, adjacency, target.node_id, top_n=top_n, descendants=descendants)
        report.targets.append(TargetAnalysis(target=target, callers=callers, callees=callees))
    return report


def _md_cell(text: str) -> str:
    return str(text).replace("|", "\\|")


def _caller_chain(frames: Any, truncated: bool) -> str:
    parts = [f"{f.function_name} ({f.location})" for f in frames]
    if truncated:
        parts.insert(0, "…")
    return " → ".join(parts) if parts else "(direct call or root)"


def write_report_markdown(report: ProfileAnalysisReport, path: str) -> None:
    """Write ``report`` as a Markdown document using mdutils.

    Parameters
    ----------
    report : ProfileAnalysisReport
        Analysis result.
    path : str
        Destination file path (created/overwritten). A ``.md`` suffix is
        stripped because mdutils appends it.
    """

    file_base = path[:-3] if path.endswith(".md") else path
    md = MdUtils(file_name=file_base)
    md.new_header(level=1, title="CPU Profile Call Stack Analysis")
    md.new_list(
        items=[
            f"Profile Duration: {report.duration_s:.2f} seconds",
            f"Total Samples: {report.total_samples}",
            f"Function filter: {report.function_name or '(any)'}",
            f"File filter: {report.file_filter or '(any)'}",
        ]
    )
    if report.notes:
        md.new_paragraph(report.notes)

    if report.mode == "top_functions":
        md.new_header(level=2, title=f"Top {len(report.top_functions)} Functions by Hit Count")
        if not report.top_functions:
            md.new_paragraph("No nodes with direct hits.")
            md.create_md_file()
            return
        header = ["Rank", "Function", "Hits", "File"]
        table: list[str] = header.copy()
        for i, row in enumerate(report.top_functions, start=1):
            table.extend([str(i), _md_cell(row.function_name), str(row.hit_count), _md_cell(row.short_url)])
        md.new_table(columns=4, rows=len(report.top_functions) + 1, text=table, text_align="left")
        md.create_md_file()
        return

    md.new_paragraph(f"Target Nodes Found: {len(report.targets)}")
    for ta in report.targets:
        cf = ta.target.node.call_frame
        md.new_header(level=2, title=f"Target: {cf.display_name} ({cf.location})")
        md.new_list(items=[f"Node id: {ta.target.node_id}", f"Hit Count: {ta.target.hit_count}"])

        callers = ta.callers
        md.new_header(level=3, title="Call Stacks")
        if not callers.entries:
            md.new_paragraph("No call stacks found for this function.")
        else:
            header = ["Rank", "Caller chain (outer → inner)", "Samples", "Share %", "Avg ms", "Std ms", "Total ms"]
            table = header.copy()
            for i, e in enumerate(callers.entries, start=1):
                table.extend(
                    [
                        str(i),
                        _md_cell(_caller_chain(e.frames, e.truncated)),
                        str(e.count),
                        f"{callers.share(e):.2f}",
                        f"{us_to_ms(e.avg_time_us):.3f}",
                        f"{us_to_ms(e.std_time_us):.3f}",
                        f"{us_to_ms(e.total_time_us):.3f}",
                    ]
                )
            md.new_table(columns=7, rows=len(callers.entries) + 1, text=table, text_align="left")
            md.new_list(
                items=[
                    f"Total unique call stacks: {callers.unique_stacks}",
                    f"Total samples: {callers.total_samples}",
                    f"Total time: {us_to_ms(callers.total_time_us):.3f} ms",
                    f"Average time per sample: {us_to_ms(callers.avg_time_us):.3f} ms",
                    f"Samples with truncated stacks: {callers.truncated_samples}",
                ]
            )

        callees = ta.callees
        md.new_header(level=3, title=f'Functions Called BY "{cf.display_name}"')
        if not callees.entries:
            md.new_paragraph("No child functions found (function may be leaf node or samples not captured).")
        else:
            header = ["Rank", "Function", "Samples", "Share %", "Location"]
            table = header.copy()
            for i, c in enumerate(callees.entries, start=1):
                table.extend(
                    [
                        str(i),
                        _md_cell(c.function_name or ANONYMOUS),
                        str(c.sample_count),
                        f"{callees.share(c):.2f}",
                        _md_cell(c.location),
                    ]
                )
            md.new_table(columns=5, rows=len(callees.entries) + 1, text=table, text_align="left")
            md.new_paragraph(f"Total samples in called functions: {callees.total_samples}")

    md.create_md_file()


def write_report_json(payload: dict, output_path: Path) -> None:
    """Write an unstructured report payload as JSON."""

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def write_report_yaml(payload: dict, output_path: Path) -> None:
    """Write an unstructured report payload as YAML (ruamel safe dumper)."""

    yaml = YAML(typ="safe")
    with Path(output_path).open("w", encoding="utf-8") as f:
        yaml.dump(payload, f)
