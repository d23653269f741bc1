"""Path utilities.

Helpers to normalize and resolve filesystem paths in a Hydra-aware workflow
without depending directly on Hydra in this module.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


def resolve_hydra_path(value: Optional[str], cwd: Path) -> Optional[str]:
    """
    Return an absolute path string for a config-provided path.

    Parameters
    ----------
    value : str or None
        Path value from configuration. May be absolute or relative. ``None`` or
        empty/whitespace-only strings yield ``None``.
    cwd : pathlib.Path
        Base directory to resolve relative paths against.

    Returns
    -------
    str or None
        Absolute path string if the input was non-empty; otherwise ``None``.
    """

    if value is None:
        return None
    s = str(value).strip()
    if not s or s.lower() == "null":
        return None
    p = Path(s)
    if p.is_absolute():
        return str(p.resolve())
    base = cwd if isinstance(cwd, Path) else Path(str(cwd))
    return str((base / p).resolve())


def workspace_root() -> str:
    """
    Return the absolute path to the workspace root.

    The root is inferred by walking parents of this file until a directory
    containing ``pyproject.toml`` or ``.git`` is found; when the package is
    installed outside a checkout the current working directory is used.
    """

    here = Path(__file__).resolve()
    for parent in here.parents:
        if (parent / "pyproject.toml").is_file() or (parent / ".git").is_dir():
            return str(parent)
    return str(Path.cwd().resolve())


def configs_dir() -> str:
    """Return the absolute path of the packaged Hydra config directory."""

    return str((Path(__file__).resolve().parents[1] / "conf").resolve())


def analysis_output_dir(run_id: str) -> str:
    """
    Return the default artifacts directory for an analysis run.

    The output path is always absolute and rooted under::

        tmp/cpuprof-output/<run_id>
    """

    return str(Path(workspace_root()) / "tmp" / "cpuprof-output" / run_id)
