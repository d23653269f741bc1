"""Caller-stack reconstruction and aggregation for a target node.

For a target node every sample whose reconstructed ancestor chain contains
the target contributes one caller path (outermost caller first, target
last). Paths are grouped by a string signature built from the callers only,
so the same function reached through different call chains yields separate
entries.

Functions
---------
frame_key
    ``functionName@shortFileName:line`` label of one frame.
stack_signature
    Deterministic signature of a caller sequence.
collect_call_stacks
    Reconstruct caller paths for every qualifying sample.
aggregate_call_stacks
    Group caller paths into ranked :class:`AggregatedStackEntry` objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set

from cpuprof_analyzer.data.models import AggregatedStackEntry, CallStackFrame, Profile, StackWalk
from cpuprof_analyzer.profiling.callgraph import DEFAULT_MAX_DEPTH, AdjacencyIndex, collect_descendants, walk_up

logger = logging.getLogger(__name__)

SIGNATURE_SEPARATOR = " -> "
TRUNCATED_MARKER = "[truncated]"


@dataclass(frozen=True)
class CallStackSample:
    """Caller path for one sample: ``frames`` run caller → … → target."""

    frames: tuple[CallStackFrame, ...]
    time_us: float
    sample_index: int
    truncated: bool = False

    @property
    def callers(self) -> tuple[CallStackFrame, ...]:
        return self.frames[:-1]


def frame_key(frame: CallStackFrame) -> str:
    """Return the signature label of ``frame``.

    Examples
    --------
    >>> frame_key(CallStackFrame(node_id=3, function_name="get", url="file:///a/fs.js", line_number=12))
    'get@fs.js:12'
    """

    line = frame.line_number if frame.line_number else "?"
    return f"{frame.function_name}@{frame.short_url}:{line}"


def stack_signature(callers: Sequence[CallStackFrame], truncated: bool = False) -> str:
    """Join caller labels into a signature; truncated paths carry a leading marker."""

    parts = [frame_key(f) for f in callers]
    if truncated:
        parts.insert(0, TRUNCATED_MARKER)
    return SIGNATURE_SEPARATOR.join(parts)


def collect_call_stacks(
    profile: Profile,
    adjacency: AdjacencyIndex,
    target_id: int,
    max_depth: int = DEFAULT_MAX_DEPTH,
    descendants: Optional[Set[int]] = None,
) -> list[CallStackSample]:
    """Reconstruct the caller path of every sample that ran under ``target_id``.

    A sample qualifies when its node is the target or one of its
    descendants; the ancestor walk must then actually contain the target,
    otherwise the sample is skipped. Walks are cached per sample node.

    Parameters
    ----------
    profile
        Loaded profile.
    adjacency
        Index built from ``profile.nodes``.
    target_id
        Node id under analysis.
    max_depth
        Ancestor walk ceiling.
    descendants
        Precomputed :func:`collect_descendants` result, if available.

    Returns
    -------
    list[CallStackSample]
        One entry per qualifying sample, in sample order.
    """

    if descendants is None:
        descendants = collect_descendants(target_id, adjacency)
    # Only the target or its descendants can have the target above them.
    candidates = set(descendants)
    candidates.add(target_id)

    walks: Dict[int, StackWalk] = {}
    out: List[CallStackSample] = []
    skipped = 0
    for i, (sample_id, delta) in enumerate(zip(profile.samples, profile.time_deltas)):
        if sample_id not in candidates:
            continue
        walk = walks.get(sample_id)
        if walk is None:
            walk = walk_up(sample_id, adjacency, max_depth=max_depth)
            walks[sample_id] = walk
        pos = walk.index_of(target_id)
        if pos < 0:
            skipped += 1
            continue
        frames = tuple(reversed(walk.frames[pos:]))
        out.append(CallStackSample(frames=frames, time_us=delta, sample_index=i, truncated=walk.truncated))

    if skipped:
        logger.debug(
            "Skipped descendant samples without target in reconstructed stack | target=%d skipped=%d",
            target_id,
            skipped,
        )
    return out


def aggregate_call_stacks(stacks: Iterable[CallStackSample]) -> list[AggregatedStackEntry]:
    """Group caller paths by signature.

    Returns entries ordered by descending count, then descending total
    time, then signature.
    """

    by_signature: Dict[str, AggregatedStackEntry] = {}
    for sample in stacks:
        callers = sample.callers
        signature = stack_signature(callers, truncated=sample.truncated)
        entry = by_signature.get(signature)
        if entry is None:
            entry = AggregatedStackEntry(signature=signature, frames=callers, truncated=sample.truncated)
            by_signature[signature] = entry
        entry.add_sample(sample.time_us)

    return sorted(by_signature.values(), key=lambda e: (-e.count, -e.total_time_us, e.signature))
