"""Domain data models for CPU profile analysis.

This module defines `attrs`-based data models for the `.cpuprofile` domain.
These are internal representations and may be converted to public contract
schemas using `cattrs` hooks (see `cpuprof_analyzer.contracts.convert`).

Classes
-------
CallFrame
    Call-site identity of a profile node (function, url, line, column).
ProfileNode
    One entry of the flattened call graph.
Profile
    Node arena plus the sample / timeDelta sequence.
CallStackFrame
    Single step of a reconstructed ancestor walk.
StackWalk
    Result of an ancestor walk (frames plus termination flags).
AggregatedStackEntry
    Equivalence class of caller paths for one target.
DescendantSampleEntry
    Per-descendant sample count for callee ranking.
TargetNode
    Node matched by the function/file filter.
CallerReport, CalleeReport, TargetAnalysis, TopFunctionEntry, ProfileAnalysisReport
    Report objects assembled by :mod:`cpuprof_analyzer.profiling.export`.
"""

from __future__ import annotations

from typing import Optional

from attrs import define, field
from attrs.validators import ge, instance_of

from cpuprof_analyzer.profiling.aggregate import mean_std

ANONYMOUS = "(anonymous)"
NATIVE = "(native)"


def short_file_name(url: str) -> str:
    """Return the last path segment of ``url`` or ``(native)`` when empty.

    Examples
    --------
    >>> short_file_name("file:///app/lib/fs.js")
    'fs.js'
    >>> short_file_name("")
    '(native)'
    """

    if not url:
        return NATIVE
    return url.rsplit("/", 1)[-1]


@define(kw_only=True, frozen=True)
class CallFrame:
    """Call-site identity of a profile node.

    Line and column numbers are kept as found in the profile (V8 emits
    0-based values; ``-1`` or missing means unknown).
    """

    function_name: str = field(default="", validator=[instance_of(str)])
    url: str = field(default="", validator=[instance_of(str)])
    line_number: Optional[int] = field(default=None)
    column_number: Optional[int] = field(default=None)
    script_id: str = field(default="", validator=[instance_of(str)])

    @property
    def display_name(self) -> str:
        return self.function_name or ANONYMOUS

    @property
    def short_url(self) -> str:
        return short_file_name(self.url)

    @property
    def location(self) -> str:
        """``file:line`` when a line is known, otherwise the short file name."""

        if self.line_number:
            return f"{self.short_url}:{self.line_number}"
        return self.short_url


@define(kw_only=True, frozen=True)
class ProfileNode:
    """One entry of the flattened call graph.

    ``child_ids`` may reference nodes that also appear under other parents;
    the graph is a DAG over shared nodes rather than a tree.
    """

    id: int = field(validator=[instance_of(int)])
    call_frame: CallFrame = field(factory=CallFrame)
    hit_count: int = field(default=0, validator=[instance_of(int), ge(0)])
    child_ids: tuple[int, ...] = field(default=(), converter=tuple)

    @property
    def function_name(self) -> str:
        return self.call_frame.function_name

    @property
    def url(self) -> str:
        return self.call_frame.url


@define(kw_only=True)
class Profile:
    """In-memory `.cpuprofile`: a node arena and a chronological sample sequence.

    Parameters
    ----------
    nodes : tuple[ProfileNode, ...]
        Node arena in file order.
    samples : tuple[int, ...]
        Node id per sample tick.
    time_deltas : tuple[float, ...]
        Microseconds attributed to each sample; same length as ``samples``.
        Integral values are ints; fractional deltas are kept as floats.
    start_time, end_time : int
        Profile bounds in microseconds.
    """

    nodes: tuple[ProfileNode, ...] = field(factory=tuple, converter=tuple)
    samples: tuple[int, ...] = field(factory=tuple, converter=tuple)
    time_deltas: tuple[float, ...] = field(factory=tuple, converter=tuple)
    start_time: int = field(default=0)
    end_time: int = field(default=0)
    m_by_id: dict[int, ProfileNode] = field(init=False, repr=False, eq=False)

    def __attrs_post_init__(self) -> None:
        if len(self.samples) != len(self.time_deltas):
            raise ValueError(
                f"samples and time_deltas must have equal length ({len(self.samples)} != {len(self.time_deltas)})"
            )
        self.m_by_id = {n.id: n for n in self.nodes}

    def node(self, node_id: int) -> Optional[ProfileNode]:
        """Return the node with ``node_id`` or ``None`` for unknown ids."""

        return self.m_by_id.get(node_id)

    @property
    def duration_us(self) -> int:
        return int(self.end_time) - int(self.start_time)

    @property
    def duration_s(self) -> float:
        return self.duration_us / 1_000_000.0

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def total_sampled_us(self) -> float:
        return sum(self.time_deltas)


@define(kw_only=True, frozen=True)
class CallStackFrame:
    """Single frame of a reconstructed call stack."""

    node_id: int
    function_name: str = ANONYMOUS
    url: str = ""
    line_number: Optional[int] = None
    column_number: Optional[int] = None

    @classmethod
    def from_node(cls, node: ProfileNode) -> "CallStackFrame":
        cf = node.call_frame
        return cls(
            node_id=node.id,
            function_name=cf.display_name,
            url=cf.url,
            line_number=cf.line_number,
            column_number=cf.column_number,
        )

    @property
    def short_url(self) -> str:
        return short_file_name(self.url)

    @property
    def location(self) -> str:
        if self.line_number:
            return f"{self.short_url}:{self.line_number}"
        return self.short_url


@define(kw_only=True, frozen=True)
class StackWalk:
    """Ancestor walk result, innermost frame first.

    ``truncated`` is set when the depth ceiling stopped the walk before a
    root was reached; ``cycle_detected`` when an already-visited node ended it.
    """

    frames: tuple[CallStackFrame, ...] = field(factory=tuple, converter=tuple)
    truncated: bool = False
    cycle_detected: bool = False

    @property
    def node_ids(self) -> list[int]:
        return [f.node_id for f in self.frames]

    def index_of(self, node_id: int) -> int:
        """Return the position of ``node_id`` in the walk or ``-1``."""

        for i, frame in enumerate(self.frames):
            if frame.node_id == node_id:
                return i
        return -1


@define(kw_only=True)
class AggregatedStackEntry:
    """One equivalence class of caller paths for a target node.

    ``frames`` holds callers only, ordered outermost first. Created on the
    first sample with a new signature and updated via :meth:`add_sample`.
    """

    signature: str = field(validator=[instance_of(str)])
    frames: tuple[CallStackFrame, ...] = field(factory=tuple, converter=tuple)
    truncated: bool = False
    count: int = 0
    total_time_us: float = 0
    sample_times_us: list[float] = field(factory=list)

    def add_sample(self, time_us: float) -> None:
        self.count += 1
        self.total_time_us += time_us
        self.sample_times_us.append(time_us)

    @property
    def avg_time_us(self) -> float:
        return self.total_time_us / self.count if self.count else 0.0

    @property
    def std_time_us(self) -> float:
        if not self.sample_times_us:
            return 0.0
        return mean_std([float(t) for t in self.sample_times_us])[1]


@define(kw_only=True)
class DescendantSampleEntry:
    """Samples that landed exactly on one descendant of a target node."""

    node_id: int
    function_name: str = ANONYMOUS
    url: str = ""
    line_number: Optional[int] = None
    hit_count: int = 0
    sample_count: int = 0
    total_time_us: float = 0

    @property
    def location(self) -> str:
        short = short_file_name(self.url)
        return f"{short}:{self.line_number}" if self.line_number else short


@define(kw_only=True, frozen=True)
class TargetNode:
    """Node selected for caller/callee analysis."""

    node: ProfileNode
    index: int = field(metadata={"help": "Position of the node in the profile's node table"})

    @property
    def node_id(self) -> int:
        return self.node.id

    @property
    def hit_count(self) -> int:
        return self.node.hit_count


@define(kw_only=True)
class CallerReport:
    """Ranked caller stacks for one target.

    ``entries`` is limited to the top-N; totals cover every aggregated entry.
    """

    entries: list[AggregatedStackEntry] = field(factory=list)
    unique_stacks: int = 0
    total_samples: int = 0
    total_time_us: float = 0
    truncated_samples: int = 0

    @property
    def avg_time_us(self) -> float:
        return self.total_time_us / self.total_samples if self.total_samples else 0.0

    def share(self, entry: AggregatedStackEntry) -> float:
        """Percentage of the target's qualifying samples held by ``entry``."""

        return 100.0 * entry.count / self.total_samples if self.total_samples else 0.0


@define(kw_only=True)
class CalleeReport:
    """Ranked descendant nodes where a target's time is actually spent."""

    entries: list[DescendantSampleEntry] = field(factory=list)
    descendant_count: int = 0
    total_samples: int = 0

    def share(self, entry: DescendantSampleEntry) -> float:
        return 100.0 * entry.sample_count / self.total_samples if self.total_samples else 0.0


@define(kw_only=True)
class TargetAnalysis:
    """Caller and callee analysis for one matched target node."""

    target: TargetNode
    callers: CallerReport
    callees: CalleeReport


@define(kw_only=True, frozen=True)
class TopFunctionEntry:
    """Row of the hit-count fallback report."""

    node_id: int
    function_name: str
    url: str
    line_number: Optional[int]
    hit_count: int

    @property
    def short_url(self) -> str:
        return short_file_name(self.url)


@define(kw_only=True)
class ProfileAnalysisReport:
    """Complete analysis of one profile.

    ``mode`` is ``"targets"`` when a function filter was given and
    ``"top_functions"`` for the hit-count fallback.
    """

    mode: str = field(validator=[instance_of(str)])
    duration_s: float = 0.0
    total_samples: int = 0
    function_name: Optional[str] = None
    file_filter: Optional[str] = None
    top_n: int = 20
    targets: list[TargetAnalysis] = field(factory=list)
    top_functions: list[TopFunctionEntry] = field(factory=list)
    notes: str = ""
