"""CPU profile call-stack analysis runner.

This runner composes the analyzer Hydra config, loads a V8 `.cpuprofile`,
runs caller/callee analysis and writes artifacts under:

    tmp/cpuprof-output/<run_id>/

(or ``output.dir`` when configured): ``report.json``, ``report.yaml``,
``report.md``, ``config.yaml`` and ``analyzer.log``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from hydra import compose, initialize_config_dir
from omegaconf import DictConfig, OmegaConf

from cpuprof_analyzer.contracts.convert import converter
from cpuprof_analyzer.contracts.models import ProfileAnalysisRequest
from cpuprof_analyzer.data.models import ProfileAnalysisReport
from cpuprof_analyzer.profiling.artifacts import (
    CONFIG_YAML,
    LOG_FILE,
    REPORT_JSON,
    REPORT_MD,
    REPORT_YAML,
    Artifacts,
    write_config_yaml,
)
from cpuprof_analyzer.profiling.callgraph import build_adjacency
from cpuprof_analyzer.profiling.cpuprofile import load_profile_file
from cpuprof_analyzer.profiling.export import (
    build_profile_report,
    write_report_json,
    write_report_markdown,
    write_report_yaml,
)
from cpuprof_analyzer.utils.paths import analysis_output_dir, configs_dir, resolve_hydra_path
from cpuprof_analyzer.visualize.callstack_text import render_text_report


def _load_cfg(overrides: List[str] | None = None, *, config_name: str = "analyzer") -> DictConfig:
    """Compose the packaged analyzer Hydra config with ``overrides``."""

    config_dir = Path(configs_dir()).resolve()
    overrides = overrides or []
    with initialize_config_dir(config_dir=str(config_dir), version_base=None):
        cfg: DictConfig = compose(config_name=str(config_name), overrides=overrides)
    return cfg


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value)
    return s if s else None


def _request_from_cfg(cfg: DictConfig) -> ProfileAnalysisRequest:
    """Validate the composed config against the request contract."""

    profile_path = resolve_hydra_path(cfg.get("profile_path"), Path.cwd())
    if profile_path is None:
        raise ValueError("profile_path must be set")
    analysis = cfg.analysis
    return ProfileAnalysisRequest(
        profile_path=profile_path,
        function_name=_optional_str(analysis.get("function_name")),
        file_filter=_optional_str(analysis.get("file_filter")),
        top_n=int(analysis.top_n),
        max_depth=int(analysis.max_depth),
    )


def _literal(value: Optional[str]) -> Optional[str]:
    """Escape OmegaConf interpolation markers so ``value`` is stored verbatim."""

    if value is None:
        return None
    return value.replace("${", "\\${")


def _record_request(cfg: DictConfig, request: ProfileAnalysisRequest) -> None:
    """Write explicit request fields onto the composed config (for ``config.yaml``)."""

    OmegaConf.update(cfg, "profile_path", _literal(request.profile_path), merge=False)
    OmegaConf.update(cfg, "analysis.function_name", _literal(request.function_name), merge=False)
    OmegaConf.update(cfg, "analysis.file_filter", _literal(request.file_filter), merge=False)
    OmegaConf.update(cfg, "analysis.top_n", request.top_n, merge=False)
    OmegaConf.update(cfg, "analysis.max_depth", request.max_depth, merge=False)


@dataclass
class CpuProfileAnalyzerConfig:
    """Inputs for an analysis run that are not part of the Hydra config."""

    run_id: str
    config_name: str = "analyzer"
    output_dir: Optional[str] = None


class CpuProfileAnalyzer:
    """Analyze a `.cpuprofile` and persist report artifacts.

    Usage
    -----
    >>> analyzer = CpuProfileAnalyzer()
    >>> report = analyzer.run(
    ...     cfg=CpuProfileAnalyzerConfig(run_id="demo"),
    ...     overrides=["profile_path=/abs/app.cpuprofile", "analysis.function_name=get"],
    ... )  # doctest: +SKIP

    Attributes
    ----------
    m_logger : logging.Logger
        Logger instance for this analyzer.
    m_last_output_dir : pathlib.Path or None
        Artifacts directory of the most recent run.
    m_last_text : str
        Text rendering of the most recent report.
    """

    def __init__(self) -> None:
        self.m_logger = logging.getLogger(__name__)
        self.m_last_output_dir: Optional[Path] = None
        self.m_last_text: str = ""

    @property
    def last_output_dir(self) -> Optional[Path]:
        return self.m_last_output_dir

    @property
    def last_text(self) -> str:
        return self.m_last_text

    def analyze(self, request: ProfileAnalysisRequest, max_profile_bytes: Optional[int] = None) -> ProfileAnalysisReport:
        """Load the requested profile and build the analysis report (no artifacts)."""

        profile = load_profile_file(request.profile_path, max_bytes=max_profile_bytes)
        adjacency = build_adjacency(profile.nodes)
        self.m_logger.info(
            "Profile loaded | nodes=%d edges=%d samples=%d duration_s=%.2f",
            len(profile.nodes),
            adjacency.edge_count,
            profile.sample_count,
            profile.duration_s,
        )
        return build_profile_report(
            profile,
            function_name=request.function_name,
            file_filter=request.file_filter,
            top_n=request.top_n,
            max_depth=request.max_depth,
            adjacency=adjacency,
        )

    def run(
        self,
        *,
        cfg: CpuProfileAnalyzerConfig,
        overrides: List[str] | None = None,
        request: Optional[ProfileAnalysisRequest] = None,
    ) -> ProfileAnalysisReport:
        """Analyze a profile and write report artifacts.

        Parameters
        ----------
        cfg:
            Run id used for the default output path ``tmp/cpuprof-output/<run_id>/``;
            ``cfg.output_dir`` replaces ``output.dir`` when set.
        overrides:
            Hydra override strings applied when composing the analyzer config
            (e.g. ``profile_path=...``, ``analysis.top_n=30``).
        request:
            Explicit analysis inputs. When given they replace ``profile_path``
            and ``analysis.*`` from the composed config, and free-text filters
            are used verbatim (no override parsing, no interpolation).

        Returns
        -------
        ProfileAnalysisReport
            The generated report object (also written to disk).
        """

        hydra_cfg = _load_cfg(list(overrides or []), config_name=cfg.config_name)
        if request is None:
            request = _request_from_cfg(hydra_cfg)
        else:
            _record_request(hydra_cfg, request)

        if cfg.output_dir:
            out_dir_cfg: Optional[str] = str(Path(cfg.output_dir).resolve())
            OmegaConf.update(hydra_cfg, "output.dir", _literal(out_dir_cfg), merge=False)
        else:
            out_dir_cfg = resolve_hydra_path(hydra_cfg.output.get("dir"), Path.cwd())
        artifacts = Artifacts.from_root(out_dir_cfg or analysis_output_dir(cfg.run_id))
        self.m_last_output_dir = artifacts.root

        fh = logging.FileHandler(artifacts.path(LOG_FILE), encoding="utf-8")
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.INFO)
        root_logger.addHandler(fh)
        logging.captureWarnings(True)
        try:
            self.m_logger.info(
                "Analysis start | run_id=%s profile=%s function=%s file=%s top_n=%d max_depth=%d artifacts_dir=%s",
                cfg.run_id,
                request.profile_path,
                request.function_name or "(any)",
                request.file_filter or "(any)",
                request.top_n,
                request.max_depth,
                str(artifacts.root),
            )
            write_config_yaml(artifacts.path(CONFIG_YAML), hydra_cfg)

            max_bytes = hydra_cfg.limits.get("max_profile_bytes")
            report = self.analyze(request, max_profile_bytes=int(max_bytes) if max_bytes is not None else None)

            payload = converter.unstructure(report)
            if bool(hydra_cfg.output.write_json):
                write_report_json(payload, artifacts.path(REPORT_JSON))
            if bool(hydra_cfg.output.write_yaml):
                write_report_yaml(payload, artifacts.path(REPORT_YAML))
            if bool(hydra_cfg.output.write_markdown):
                write_report_markdown(report, str(artifacts.path(REPORT_MD)))

            self.m_last_text = render_text_report(report)
            if bool(hydra_cfg.output.print_text):
                print(self.m_last_text)

            self.m_logger.info(
                "Analysis complete | mode=%s targets=%d artifacts_dir=%s",
                report.mode,
                len(report.targets),
                str(artifacts.root),
            )
            return report
        finally:
            root_logger.removeHandler(fh)
            fh.close()
