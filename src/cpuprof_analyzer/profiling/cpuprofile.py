"""V8 `.cpuprofile` parsing helpers.

This module converts the raw JSON emitted by ``node --cpu-prof`` (or the
DevTools ``Profiler.stop`` response) into the project's :class:`Profile`
data model.

Functions
---------
load_profile
    Parse raw bytes/text into a `Profile`; raises `ProfileParseError`.
load_profile_file
    Read a `.cpuprofile` file from disk and parse it.
profile_from_dict
    Build a `Profile` from an already-decoded JSON object.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Mapping

from cpuprof_analyzer.data.models import CallFrame, Profile, ProfileNode

logger = logging.getLogger(__name__)


class ProfileParseError(ValueError):
    """Input is not a well-formed `.cpuprofile` document."""


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _int_list(obj: Mapping[str, Any], key: str) -> list[int]:
    """Return ``obj[key]`` as a list of ints; missing or null yields ``[]``."""

    raw = obj.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ProfileParseError(f"'{key}' must be an array, got {type(raw).__name__}")
    try:
        return [int(v) for v in raw]
    except (TypeError, ValueError, OverflowError) as exc:
        raise ProfileParseError(f"'{key}' must contain only numbers: {exc}") from exc


def _delta_list(obj: Mapping[str, Any], key: str) -> list[float]:
    """Return ``obj[key]`` as sample durations; integral values stay ``int``, fractions are kept."""

    raw = obj.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ProfileParseError(f"'{key}' must be an array, got {type(raw).__name__}")
    out: list[float] = []
    for v in raw:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ProfileParseError(f"'{key}' must contain only numbers, got {v!r}")
        if isinstance(v, float):
            if not math.isfinite(v):
                raise ProfileParseError(f"'{key}' must contain only finite numbers, got {v!r}")
            if v.is_integer():
                v = int(v)
        out.append(v)
    return out


def _reject_constant(name: str) -> float:
    raise ProfileParseError(f"invalid profile JSON: non-finite number {name}")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ProfileParseError(f"invalid profile JSON: number out of range {text}")
    return value


def _parse_node(raw: Any, index: int) -> ProfileNode:
    if not isinstance(raw, dict):
        raise ProfileParseError(f"nodes[{index}] must be an object, got {type(raw).__name__}")
    cf = raw.get("callFrame") or {}
    if not isinstance(cf, dict):
        raise ProfileParseError(f"nodes[{index}].callFrame must be an object")
    call_frame = CallFrame(
        function_name=str(cf.get("functionName") or ""),
        url=str(cf.get("url") or ""),
        line_number=_optional_int(cf.get("lineNumber")),
        column_number=_optional_int(cf.get("columnNumber")),
        script_id=str(cf.get("scriptId") or ""),
    )
    # Index-addressed profiles omit ``id``; fall back to the arena position.
    node_id = _as_int(raw.get("id"), default=index)
    children = _int_list(raw, "children")
    return ProfileNode(
        id=node_id,
        call_frame=call_frame,
        hit_count=max(_as_int(raw.get("hitCount")), 0),
        child_ids=children,
    )


def profile_from_dict(data: Any) -> Profile:
    """Build a :class:`Profile` from a decoded JSON object.

    Parameters
    ----------
    data : Any
        Decoded JSON document. Must be an object holding a ``nodes`` array;
        ``samples``/``timeDeltas`` are optional.

    Returns
    -------
    Profile
        Parsed profile. ``time_deltas`` is zero-padded or truncated to the
        length of ``samples``.

    Raises
    ------
    ProfileParseError
        If the document does not have the expected shape.
    """

    if not isinstance(data, dict):
        raise ProfileParseError(f"profile must be a JSON object, got {type(data).__name__}")
    raw_nodes = data.get("nodes")
    if not isinstance(raw_nodes, list):
        raise ProfileParseError("profile is missing the 'nodes' array")

    nodes = [_parse_node(raw, i) for i, raw in enumerate(raw_nodes)]
    samples = _int_list(data, "samples")
    deltas = _delta_list(data, "timeDeltas")

    if len(deltas) != len(samples):
        logger.warning(
            "samples/timeDeltas length mismatch | samples=%d timeDeltas=%d (padding/truncating deltas)",
            len(samples),
            len(deltas),
        )
        if len(deltas) < len(samples):
            deltas = deltas + [0] * (len(samples) - len(deltas))
        else:
            deltas = deltas[: len(samples)]

    profile = Profile(
        nodes=nodes,
        samples=samples,
        time_deltas=deltas,
        start_time=_as_int(data.get("startTime")),
        end_time=_as_int(data.get("endTime")),
    )
    logger.debug(
        "Parsed profile | nodes=%d samples=%d duration_s=%.3f",
        len(profile.nodes),
        profile.sample_count,
        profile.duration_s,
    )
    return profile


def load_profile(raw: bytes | str) -> Profile:
    """Parse raw `.cpuprofile` content.

    Parameters
    ----------
    raw : bytes or str
        File content. Bytes are decoded as UTF-8.

    Raises
    ------
    ProfileParseError
        If the content is not valid JSON, holds a non-finite number
        (`NaN`, `Infinity`, `1e999`) or is not a profile document.

    Examples
    --------
    >>> p = load_profile(b'{"nodes": [{"id": 1, "callFrame": {"functionName": "(root)"}}]}')
    >>> p.sample_count
    0
    """

    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        data = json.loads(text, parse_float=_finite_float, parse_constant=_reject_constant)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProfileParseError(f"invalid profile JSON: {exc}") from exc
    return profile_from_dict(data)


def load_profile_file(path: str | Path, max_bytes: int | None = None) -> Profile:
    """Read and parse a `.cpuprofile` file.

    Parameters
    ----------
    path : str or Path
        Profile file path.
    max_bytes : int or None, optional
        Reject files larger than this many bytes before reading them.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ProfileParseError
        If the file is oversized or malformed.
    """

    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"profile not found: {p}")
    size = p.stat().st_size
    if max_bytes is not None and size > int(max_bytes):
        raise ProfileParseError(f"profile too large: {size} bytes > limit {int(max_bytes)}")
    logger.info("Loading profile | path=%s bytes=%d", str(p), size)
    return load_profile(p.read_bytes())
