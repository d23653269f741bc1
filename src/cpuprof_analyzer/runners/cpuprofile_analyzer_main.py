"""Contract-oriented CLI wrapper for CPU profile call-stack analysis.

This entry point accepts arguments mirroring the `ProfileAnalysisRequest`
contract and dispatches an analysis run via
`cpuprof_analyzer.runners.cpuprofile_analyzer`.

Examples
--------
    cpuprof-analyze .perf/app.cpuprofile --function get --file filesystem.js
    cpuprof-analyze .perf/app.cpuprofile --function get --top 30
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from cpuprof_analyzer.contracts.models import ProfileAnalysisRequest
from cpuprof_analyzer.profiling.artifacts import new_run_id
from cpuprof_analyzer.runners.cpuprofile_analyzer import CpuProfileAnalyzer, CpuProfileAnalyzerConfig


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Analyze a V8 .cpuprofile: caller stacks and callees of a target function."
    )
    parser.add_argument("profile", type=str, help="Path to the .cpuprofile file.")
    parser.add_argument(
        "--function",
        type=str,
        default=None,
        help="Function name to analyze (substring match). Without it, nodes are ranked by hit count.",
    )
    parser.add_argument("--file", type=str, default=None, help="Filter by source url (substring match).")
    parser.add_argument("--top", type=int, default=20, help="Number of top call stacks/callees to show.")
    parser.add_argument("--max-depth", type=int, default=20, help="Ancestor walk depth ceiling.")
    parser.add_argument("--run-id", type=str, default=None, help="Optional output run id (defaults to a timestamp).")
    parser.add_argument("--output-dir", type=str, default=None, help="Write artifacts here instead of tmp/cpuprof-output/<run_id>.")
    parser.add_argument(
        "--override",
        action="append",
        default=None,
        help="Extra Hydra override in key=value form (e.g., output.write_yaml=false). May be repeated.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        request = ProfileAnalysisRequest(
            profile_path=str(Path(args.profile).resolve()),
            function_name=args.function or None,
            file_filter=args.file or None,
            top_n=int(args.top),
            max_depth=int(args.max_depth),
        )
    except (TypeError, ValueError) as exc:
        print(f"ERROR: invalid arguments: {exc}", file=sys.stderr)
        return 1

    # Free-text inputs go to the runner as a contract, never through the override grammar.
    overrides: list[str] = list(args.override or [])

    run_id = args.run_id or new_run_id()
    print(f"Loading profile: {args.profile}")
    analyzer = CpuProfileAnalyzer()
    try:
        analyzer.run(
            cfg=CpuProfileAnalyzerConfig(run_id=run_id, output_dir=args.output_dir or None),
            overrides=overrides,
            request=request,
        )
    except Exception as exc:  # noqa: BLE001
        print(f"ERROR: profile analysis failed: {exc}", file=sys.stderr)
        return 1

    print(f"\nArtifacts written to: {analyzer.last_output_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
