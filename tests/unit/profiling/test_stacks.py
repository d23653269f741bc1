"""Unit tests for caller-stack reconstruction and aggregation."""

from __future__ import annotations

from cpuprof_analyzer.data.models import CallFrame, CallStackFrame, Profile, ProfileNode
from cpuprof_analyzer.profiling.callgraph import build_adjacency, walk_up
from cpuprof_analyzer.profiling.stacks import (
    TRUNCATED_MARKER,
    aggregate_call_stacks,
    collect_call_stacks,
    frame_key,
    stack_signature,
)


def _node(node_id: int, name: str, url: str = "", line: int | None = None, children: tuple[int, ...] = (), hits: int = 0) -> ProfileNode:
    return ProfileNode(
        id=node_id,
        call_frame=CallFrame(function_name=name, url=url, line_number=line),
        hit_count=hits,
        child_ids=children,
    )


def _root_a_b(samples: list[int], deltas: list[int]) -> Profile:
    """root(0) -> A(1) -> B(2)."""

    return Profile(
        nodes=[
            _node(0, "(root)", children=(1,)),
            _node(1, "A", "file:///app/src/a.js", 10, children=(2,), hits=2),
            _node(2, "B", "file:///app/src/b.js", 20, hits=3),
        ],
        samples=samples,
        time_deltas=deltas,
    )


def _shared_profile() -> Profile:
    """root -> main -> {load, save}; load -> read; save -> read (shared); read -> parse."""

    return Profile(
        nodes=[
            _node(0, "(root)", children=(1,)),
            _node(1, "main", "file:///app/main.js", 1, children=(2, 3)),
            _node(2, "load", "file:///app/io.js", 5, children=(4,), hits=1),
            _node(3, "save", "file:///app/io.js", 9, children=(4,), hits=1),
            _node(4, "read", "file:///app/fs.js", 30, children=(5,), hits=5),
            _node(5, "parse", "file:///app/json.js", 2, hits=4),
        ],
        samples=[4, 5, 4, 2, 5, 3, 4, 1, 5],
        time_deltas=[10, 20, 30, 40, 50, 60, 70, 80, 90],
    )


def test_frame_key_format() -> None:
    frame = CallStackFrame(node_id=1, function_name="get", url="file:///srv/lib/filesystem.js", line_number=42)
    assert frame_key(frame) == "get@filesystem.js:42"
    assert frame_key(CallStackFrame(node_id=0, function_name="(root)")) == "(root)@(native):?"


def test_stack_signature_marks_truncation() -> None:
    frames = [CallStackFrame(node_id=0, function_name="a"), CallStackFrame(node_id=1, function_name="b")]
    assert stack_signature(frames) == "a@(native):? -> b@(native):?"
    assert stack_signature(frames, truncated=True).startswith(TRUNCATED_MARKER + " -> ")
    assert stack_signature([]) == ""
    assert stack_signature([], truncated=True) == TRUNCATED_MARKER


def test_scenario_root_a_b_single_caller_entry() -> None:
    """Every sample on B aggregates into one `root -> A` entry."""

    profile = _root_a_b(samples=[2, 2, 2], deltas=[100, 200, 300])
    adj = build_adjacency(profile.nodes)

    entries = aggregate_call_stacks(collect_call_stacks(profile, adj, target_id=2))

    assert len(entries) == 1
    entry = entries[0]
    assert entry.signature == "(root)@(native):? -> A@a.js:10"
    assert [f.function_name for f in entry.frames] == ["(root)", "A"]
    assert entry.count == 3
    assert entry.total_time_us == 600
    assert entry.sample_times_us == [100, 200, 300]
    assert entry.avg_time_us == 200.0
    assert not entry.truncated


def test_sample_outside_target_is_not_counted() -> None:
    """A sample on the caller A never ran under B."""

    profile = _root_a_b(samples=[1, 2, 2], deltas=[100, 200, 300])
    adj = build_adjacency(profile.nodes)

    stacks = collect_call_stacks(profile, adj, target_id=2)
    assert [s.sample_index for s in stacks] == [1, 2]
    entries = aggregate_call_stacks(stacks)
    assert entries[0].count == 2
    assert entries[0].total_time_us == 500


def test_descendant_samples_are_attributed_to_target_callers() -> None:
    profile = _shared_profile()
    adj = build_adjacency(profile.nodes)

    stacks = collect_call_stacks(profile, adj, target_id=4)
    # read (4) and parse (5) samples, all reached via read's first parent ``load``.
    assert [s.sample_index for s in stacks] == [0, 1, 2, 4, 6, 8]
    for s in stacks:
        assert s.frames[-1].node_id == 4
        assert [f.function_name for f in s.callers] == ["(root)", "main", "load"]

    entries = aggregate_call_stacks(stacks)
    assert len(entries) == 1
    assert entries[0].count == 6
    assert entries[0].total_time_us == 10 + 20 + 30 + 50 + 70 + 90


def test_shared_node_second_parent_samples_are_skipped() -> None:
    """``save`` is not on the reconstructed stack of ``read``; containment is verified."""

    profile = _shared_profile()
    adj = build_adjacency(profile.nodes)

    stacks = collect_call_stacks(profile, adj, target_id=3)
    # Only the direct sample on ``save`` qualifies.
    assert [s.sample_index for s in stacks] == [5]


def test_count_sum_matches_samples_with_target_on_stack() -> None:
    profile = _shared_profile()
    adj = build_adjacency(profile.nodes)

    for node in profile.nodes:
        expected = sum(1 for sid in profile.samples if node.id in walk_up(sid, adj).node_ids)
        entries = aggregate_call_stacks(collect_call_stacks(profile, adj, target_id=node.id))
        assert sum(e.count for e in entries) == expected


def test_entries_ranked_by_count_then_time() -> None:
    profile = Profile(
        nodes=[
            _node(0, "(root)", children=(1, 2, 3)),
            _node(1, "a", children=(4,)),
            _node(2, "b", children=(5,)),
            _node(3, "c", children=(6,)),
            _node(4, "t", "file:///x/t.js", 1, hits=1),
            _node(5, "t", "file:///x/t.js", 1, hits=2),
            _node(6, "t", "file:///x/t.js", 1, hits=2),
        ],
        samples=[4, 5, 5, 6, 6],
        time_deltas=[1000, 10, 10, 50, 50],
    )
    adj = build_adjacency(profile.nodes)
    stacks = []
    for target in (4, 5, 6):
        stacks.extend(collect_call_stacks(profile, adj, target_id=target))
    entries = aggregate_call_stacks(stacks)

    assert [e.frames[-1].function_name for e in entries] == ["c", "b", "a"]
    assert [e.count for e in entries] == [2, 2, 1]


def test_truncated_walks_are_marked_and_kept_apart() -> None:
    nodes = [_node(i, f"f{i}", children=(i + 1,)) for i in range(30)] + [_node(30, "leaf", hits=2)]
    profile = Profile(nodes=nodes, samples=[30, 30, 26], time_deltas=[5, 5, 7])
    adj = build_adjacency(profile.nodes)

    stacks = collect_call_stacks(profile, adj, target_id=26, max_depth=5)
    assert len(stacks) == 3
    entries = aggregate_call_stacks(stacks)
    by_sig = {e.signature: e for e in entries}

    deep = [e for e in entries if e.count == 2][0]
    assert deep.truncated
    assert deep.signature == TRUNCATED_MARKER
    shallow = [e for e in entries if e.count == 1][0]
    assert shallow.truncated
    assert shallow.signature.startswith(TRUNCATED_MARKER)
    assert len(by_sig) == 2


def test_target_above_depth_ceiling_is_not_counted() -> None:
    nodes = [_node(i, f"f{i}", children=(i + 1,)) for i in range(30)] + [_node(30, "leaf", hits=1)]
    profile = Profile(nodes=nodes, samples=[30], time_deltas=[5])
    adj = build_adjacency(profile.nodes)

    assert collect_call_stacks(profile, adj, target_id=10, max_depth=5) == []


def test_cyclic_graph_does_not_hang() -> None:
    profile = Profile(
        nodes=[
            _node(0, "(root)", children=(1,)),
            _node(1, "rec", children=(2,)),
            _node(2, "helper", children=(1,), hits=3),
        ],
        samples=[2, 1, 2],
        time_deltas=[1, 1, 1],
    )
    adj = build_adjacency(profile.nodes)
    stacks = collect_call_stacks(profile, adj, target_id=1)
    for s in stacks:
        ids = [f.node_id for f in s.frames]
        assert len(ids) == len(set(ids))


def test_empty_samples_yield_no_entries() -> None:
    profile = _root_a_b(samples=[], deltas=[])
    adj = build_adjacency(profile.nodes)
    assert aggregate_call_stacks(collect_call_stacks(profile, adj, target_id=2)) == []


def test_aggregation_is_deterministic() -> None:
    profile = _shared_profile()
    adj = build_adjacency(profile.nodes)
    first = aggregate_call_stacks(collect_call_stacks(profile, adj, target_id=5))
    second = aggregate_call_stacks(collect_call_stacks(profile, adj, target_id=5))
    assert [(e.signature, e.count, e.total_time_us) for e in first] == [
        (e.signature, e.count, e.total_time_us) for e in second
    ]
