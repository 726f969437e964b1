"""
Invocation surface: one function per stage, each returning a process exit code.
The only place where SfmStageError becomes an exit status.
"""
from pathlib import Path

from sfmstage.config import get_config
from sfmstage.core.context import PipelineRun
from sfmstage.core.engine import create_engine
from sfmstage.core.exceptions import SfmStageError
from sfmstage.core.hardware import detect_capabilities, get_hardware_profile
from sfmstage.core.logger import attach_project_log, get_logger
from sfmstage.core.pipeline import Pipeline
from sfmstage.core.stage import StageRunner

_log = get_logger("api")


class SfmStageController:
    """Builds engine, runner and pipeline from runtime settings; runs one stage per call."""

    def __init__(self, engine=None, capabilities=None, settings=None):
        self.settings = settings if settings is not None else get_config()
        self.engine = engine
        self.capabilities = capabilities

    def _prepare(self):
        if self.engine is None:
            self.engine = create_engine(self.settings.get("engine") or "pycolmap")
        if self.capabilities is None:
            self.capabilities = detect_capabilities(self.engine)
            hw = get_hardware_profile()
            _log.info(
                "Engine %s (%s); RAM %.2f GB, VRAM %d MB",
                self.engine.name, self.capabilities.describe(), hw.ram_gb, hw.vram_mb,
            )
        runner = StageRunner(
            self.capabilities,
            context_factory=self.engine.create_compute_context,
            gpu_fallback_to_cpu=bool(self.settings.get("gpu_fallback_to_cpu", True)),
        )
        return Pipeline(self.engine, runner, self.settings.get("snapshot_name") or "project.yaml")

    def run_stage(self, stage: str, project_path) -> int:
        run = PipelineRun(project_path, stage)
        if self.settings.get("project_log") and Path(project_path).parent.is_dir():
            attach_project_log(Path(project_path).parent)
        try:
            self._prepare().run(run)
        except SfmStageError as e:
            run.fail(e)
            _log.error("%s failed: %s", stage, e)
            return run.exit_code
        run.succeed()
        _log.info("%s succeeded", stage)
        return run.exit_code


def run_stage(stage: str, project_path, engine=None, capabilities=None) -> int:
    return SfmStageController(engine, capabilities).run_stage(stage, project_path)


def extract_features(project_path, engine=None, capabilities=None) -> int:
    return run_stage("feature_extractor", project_path, engine, capabilities)


def match_features_exhaustively(project_path, engine=None, capabilities=None) -> int:
    return run_stage("exhaustive_matcher", project_path, engine, capabilities)


def reconstruct_sparse(project_path, engine=None, capabilities=None) -> int:
    """Incremental mapping; from raw images every model lands in <mapper_output_path>/<index>/."""
    return run_stage("mapper", project_path, engine, capabilities)


def convert_model(project_path, engine=None, capabilities=None) -> int:
    return run_stage("model_converter", project_path, engine, capabilities)


def undistort_images(project_path, engine=None, capabilities=None) -> int:
    return run_stage("image_undistorter", project_path, engine, capabilities)


def create_database(project_path, engine=None, capabilities=None) -> int:
    return run_stage("database_creator", project_path, engine, capabilities)


def patch_match_stereo(project_path, engine=None, capabilities=None) -> int:
    """Needs a CUDA build."""
    return run_stage("patch_match_stereo", project_path, engine, capabilities)


def stereo_fusion(project_path, engine=None, capabilities=None) -> int:
    return run_stage("stereo_fusion", project_path, engine, capabilities)


def poisson_mesher(project_path, engine=None, capabilities=None) -> int:
    return run_stage("poisson_mesher", project_path, engine, capabilities)


def delaunay_mesher(project_path, engine=None, capabilities=None) -> int:
    """Needs a CGAL build."""
    return run_stage("delaunay_mesher", project_path, engine, capabilities)
