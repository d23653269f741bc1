"""Artifacts management utilities.

This module provides a small manager for an analysis run directory and
helpers to write provenance files.

Classes
-------
Artifacts
    Manager class for a run directory with read-only property access and
    explicit setters/factories.

Functions
---------
new_run_id
    Build a timestamp-based run identifier (YYYYMMDD-HHMMSS).
write_config_yaml
    Serialize a Hydra/OmegaConf config to YAML.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

from omegaconf import OmegaConf  # type: ignore[import-untyped]

T = TypeVar("T", bound="Artifacts")

REPORT_JSON = "report.json"
REPORT_YAML = "report.yaml"
REPORT_MD = "report.md"
CONFIG_YAML = "config.yaml"
LOG_FILE = "analyzer.log"


def new_run_id(dt: Optional[datetime] = None) -> str:
    """Return a timestamped run identifier.

    Examples
    --------
    >>> rid = new_run_id()
    >>> len(rid) == 15
    True
    """

    ts = (dt or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return ts


class Artifacts:
    """Artifacts manager for analysis runs.

    Constructor takes no arguments; use the `from_root()` factory or the
    `set_root()` mutator to configure the target directory. Member variables
    are prefixed with `m_` and read-only access is provided via properties.

    Attributes
    ----------
    root : pathlib.Path
        Read-only property for the artifacts root directory.
    """

    def __init__(self) -> None:
        self.m_root: Optional[Path] = None

    @property
    def root(self) -> Path:
        """Artifacts root directory (read-only)."""

        if self.m_root is None:
            raise RuntimeError("Artifacts root not set. Use from_root() or set_root().")
        return self.m_root

    def set_root(self, root: Path | str) -> None:
        """Set and create the artifacts root directory."""

        rp = Path(root).resolve()
        rp.mkdir(parents=True, exist_ok=True)
        self.m_root = rp

    @classmethod
    def from_root(cls: Type[T], root: Path | str) -> T:
        """Factory that returns an initialized manager for ``root``.

        Examples
        --------
        >>> a = Artifacts.from_root('tmp/cpuprof-output/demo')
        >>> a.root.name == 'demo'
        True
        """

        obj = cls()
        obj.set_root(root)
        return obj

    def path(self, name: str) -> Path:
        """Return a path within the artifacts root."""

        return self.root / name


def write_config_yaml(path: Path, cfg: Any) -> None:
    """Serialize a Hydra/OmegaConf config object to YAML at ``path``."""

    yml = OmegaConf.to_yaml(cfg)
    path.write_text(yml, encoding="utf-8")
