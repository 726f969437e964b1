"""
Pipeline: one driver per stage, orchestration only.
Flow per driver: resolve options -> validate -> build the engine Stage -> StageRunner.run.
Everything that can be checked before the engine starts is checked before it starts.
Delegates: options (options.py), validation (validation.py), formats (formats.py),
persistence (persistence.py), execution (stage.py).
"""
from pathlib import Path

from .config import (
    GROUP_DATABASE,
    GROUP_DELAUNAY,
    GROUP_EXTRACTION,
    GROUP_FUSION,
    GROUP_IMAGE,
    GROUP_MAPPER,
    GROUP_MATCHING,
    GROUP_PATCH_MATCH,
    GROUP_POISSON,
    GROUP_UNDISTORTION,
)
from .events import ProgressEmitter
from .exceptions import ConfigurationError, PreconditionError
from .formats import (
    FormatDispatcher,
    FusionInputType,
    MeshingInputType,
    UndistortFormat,
    WorkspaceFormat,
    conversion_dispatcher,
    parse_format,
)
from .logger import get_logger, run_logger
from .options import Option, resolve_options
from .persistence import IncrementalPersistenceController, write_seed_result
from .stage import ExecutionPolicy, Stage
from .validation import (
    read_list_file,
    require_dir,
    require_file,
    require_writable_dir,
    verify_camera_params,
)

DEFAULT_PMVS_OPTION_NAME = "option-all"

FEATURES_IMAGE_LIST = Option("features_image_list_path")
MAPPER_OUTPUT = Option("mapper_output_path", required=True)
MAPPER_INPUT = Option("mapper_input_path")
MAPPER_IMAGE_LIST = Option("mapper_image_list_path")
CONVERTER_INPUT = Option("converter_input_path", required=True)
CONVERTER_OUTPUT = Option("converter_output_path", required=True)
CONVERTER_TYPE = Option("converter_output_type", required=True, choices="{BIN, TXT, NVM, Bundler, VRML, PLY}")
UNDISTORT_MODEL_INPUT = Option("model_input_path", required=True)
UNDISTORT_OUTPUT = Option("undistorter_output_path", required=True)
UNDISTORT_TYPE = Option("undistorter_output_type", default="COLMAP", choices="{COLMAP, PMVS, CMP-MVS}")
DENSE_WORKSPACE = Option("dense_workspace_path", required=True)
DENSE_WORKSPACE_FORMAT = Option("dense_workspace_format", default="COLMAP", choices="{COLMAP, PMVS}")
PMVS_OPTION_NAME = Option("pmvs_option_name", default=DEFAULT_PMVS_OPTION_NAME)
DENSE_OUTPUT = Option("dense_output_path", required=True)
FUSION_WORKSPACE_FORMAT = Option("workspace_format", default="COLMAP", choices="{COLMAP, PMVS}")
FUSION_INPUT_TYPE = Option("input_type", default="geometric", choices="{photometric, geometric}")
POISSON_INPUT = Option("poisson_input_path", required=True)
POISSON_OUTPUT = Option("poisson_output_path", required=True, aliases=("possion_output_path",))
DELAUNAY_INPUT = Option("delaunay_input_path", required=True)
DELAUNAY_OUTPUT = Option("delaunay_output_path", required=True)
DELAUNAY_INPUT_TYPE = Option("delaunay_input_type", default="dense", choices="{sparse, dense}")


class Pipeline:
    def __init__(self, engine, runner, snapshot_name="project.yaml"):
        self.engine = engine
        self.runner = runner
        self.snapshot_name = snapshot_name
        self._log = get_logger("pipeline")
        self._drivers = {
            "feature_extractor": self._extract_features,
            "exhaustive_matcher": self._match_exhaustively,
            "mapper": self._map,
            "model_converter": self._convert_model,
            "image_undistorter": self._undistort,
            "database_creator": self._create_database,
            "patch_match_stereo": self._patch_match_stereo,
            "stereo_fusion": self._stereo_fusion,
            "poisson_mesher": self._poisson_mesh,
            "delaunay_mesher": self._delaunay_mesh,
        }

    def run(self, run) -> None:
        """Run the stage named by run.stage; raises SfmStageError subclasses on failure."""
        try:
            driver = self._drivers[run.stage]
        except KeyError:
            raise ConfigurationError("Unknown stage `%s`" % run.stage) from None
        run.start()
        driver(run, run_logger(self._log, run))

    def _resolve(self, run, groups=(), options=()):
        configuration = resolve_options(run.project_path, groups, options)
        run.configuration = configuration
        return configuration

    def _new_manager(self, run, seed_path):
        """Reading a seed model is engine work, so it runs as a stage like the mapper itself."""
        managers = []

        def read():
            managers.append(self.engine.new_reconstruction_manager(seed_path))

        self.runner.run(Stage("%s-input" % run.stage, read))
        return managers[0]

    # ------------------------------------------------------------------
    # Sparse
    # ------------------------------------------------------------------

    def _extract_features(self, run, log):
        cfg = self._resolve(run, (GROUP_DATABASE, GROUP_IMAGE, GROUP_EXTRACTION), (FEATURES_IMAGE_LIST,))
        extraction = cfg.group(GROUP_EXTRACTION)
        verify_camera_params(extraction["camera_model"], extraction["camera_params"])
        image_path = require_dir(cfg["image_path"], "image_path")

        image_names = []
        if cfg["features_image_list_path"]:
            list_path = require_file(cfg["features_image_list_path"], "features_image_list_path")
            image_names = read_list_file(list_path)
            if not image_names:
                log.info("Image list %s is empty; nothing to extract", list_path)
                return

        policy, use_gpu = self.runner.select_policy(run.stage, extraction["use_gpu"])
        log.info("Extracting features from %s (%s, gpu=%s)", image_path, extraction["camera_model"], use_gpu)
        stage = self.engine.feature_extractor(cfg["database_path"], image_path, image_names, extraction, use_gpu)
        self.runner.run(stage, policy)

    def _match_exhaustively(self, run, log):
        cfg = self._resolve(run, (GROUP_DATABASE, GROUP_MATCHING))
        matching = cfg.group(GROUP_MATCHING)
        policy, use_gpu = self.runner.select_policy(run.stage, matching["use_gpu"])
        log.info("Exhaustive matching on %s (gpu=%s)", cfg["database_path"], use_gpu)
        stage = self.engine.exhaustive_matcher(cfg["database_path"], matching, use_gpu)
        self.runner.run(stage, policy)

    def _map(self, run, log):
        cfg = self._resolve(
            run,
            (GROUP_DATABASE, GROUP_IMAGE, GROUP_MAPPER),
            (MAPPER_OUTPUT, MAPPER_INPUT, MAPPER_IMAGE_LIST),
        )
        output_path = require_writable_dir(cfg["mapper_output_path"], "mapper_output_path")
        seed_path = None
        if cfg["mapper_input_path"]:
            seed_path = require_dir(cfg["mapper_input_path"], "mapper_input_path")
        image_names = []
        if cfg["mapper_image_list_path"]:
            image_names = read_list_file(require_file(cfg["mapper_image_list_path"], "mapper_image_list_path"))

        manager = self._new_manager(run, seed_path)
        progress = ProgressEmitter()
        controller = None
        if seed_path is None:
            controller = IncrementalPersistenceController(
                manager, output_path, cfg, self.snapshot_name, log.child("flush")
            )
            progress.subscribe(controller)

        stage = self.engine.incremental_mapper(
            cfg["database_path"], cfg["image_path"], cfg.group(GROUP_MAPPER), manager, progress, image_names
        )
        self.runner.run(stage, ExecutionPolicy.DIRECT)

        if seed_path is not None:
            write_seed_result(manager, output_path, log.child("seed"))
        else:
            log.info("Mapper finished with %d model(s); written: %s", manager.size(), controller.written)

    def _convert_model(self, run, log):
        cfg = self._resolve(run, options=(CONVERTER_INPUT, CONVERTER_OUTPUT, CONVERTER_TYPE))
        dispatcher = conversion_dispatcher(CONVERTER_TYPE.name)
        fmt = dispatcher.resolve(cfg["converter_output_type"])
        input_path = require_dir(cfg["converter_input_path"], "converter_input_path")
        output_path = cfg["converter_output_path"]

        def convert():
            reconstruction = self.engine.read_reconstruction(input_path)
            dispatcher.dispatch(fmt.value, reconstruction, output_path)

        log.info("Converting %s to %s (%s)", input_path, output_path, fmt.value)
        self.runner.run(Stage(run.stage, convert))

    def _create_database(self, run, log):
        cfg = self._resolve(run, (GROUP_DATABASE,))
        log.info("Creating database %s", cfg["database_path"])
        self.runner.run(self.engine.create_database(cfg["database_path"]))

    # ------------------------------------------------------------------
    # Dense
    # ------------------------------------------------------------------

    def _undistort(self, run, log):
        cfg = self._resolve(
            run,
            (GROUP_IMAGE, GROUP_UNDISTORTION),
            (UNDISTORT_MODEL_INPUT, UNDISTORT_OUTPUT, UNDISTORT_TYPE),
        )
        fmt = parse_format(UndistortFormat, cfg["undistorter_output_type"], UNDISTORT_TYPE.name)
        input_path = require_dir(cfg["model_input_path"], "model_input_path")
        output_path = Path(cfg["undistorter_output_path"])
        try:
            output_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PreconditionError("`undistorter_output_path` cannot be created: %s (%s)" % (output_path, e)) from e
        require_writable_dir(output_path, "undistorter_output_path")
        log.info("Undistorting images of %s into %s (%s)", input_path, output_path, fmt.engine_name)
        stage = self.engine.image_undistorter(
            fmt.engine_name, input_path, cfg["image_path"], output_path, cfg.group(GROUP_UNDISTORTION)
        )
        self.runner.run(stage)

    def _patch_match_stereo(self, run, log):
        self.runner.require("cuda", "Dense stereo reconstruction")
        cfg = self._resolve(
            run, (GROUP_PATCH_MATCH,), (DENSE_WORKSPACE, DENSE_WORKSPACE_FORMAT, PMVS_OPTION_NAME)
        )
        fmt = parse_format(WorkspaceFormat, cfg["dense_workspace_format"], DENSE_WORKSPACE_FORMAT.name)
        workspace = require_dir(cfg["dense_workspace_path"], "dense_workspace_path")
        log.info("Patch-match stereo in %s (%s)", workspace, fmt.engine_name)
        stage = self.engine.patch_match_stereo(
            workspace, fmt.engine_name, cfg["pmvs_option_name"], cfg.group(GROUP_PATCH_MATCH)
        )
        self.runner.run(stage)

    def _stereo_fusion(self, run, log):
        cfg = self._resolve(
            run,
            (GROUP_FUSION,),
            (DENSE_WORKSPACE, DENSE_OUTPUT, FUSION_WORKSPACE_FORMAT, PMVS_OPTION_NAME, FUSION_INPUT_TYPE),
        )
        fmt = parse_format(WorkspaceFormat, cfg["workspace_format"], FUSION_WORKSPACE_FORMAT.name)
        input_type = parse_format(FusionInputType, cfg["input_type"], FUSION_INPUT_TYPE.name)
        workspace = require_dir(cfg["dense_workspace_path"], "dense_workspace_path")
        log.info("Fusing %s depth maps of %s into %s", input_type.value, workspace, cfg["dense_output_path"])
        stage = self.engine.stereo_fusion(
            cfg["dense_output_path"], workspace, fmt.engine_name, cfg["pmvs_option_name"],
            input_type.value, cfg.group(GROUP_FUSION),
        )
        self.runner.run(stage)

    def _poisson_mesh(self, run, log):
        cfg = self._resolve(run, (GROUP_POISSON,), (POISSON_INPUT, POISSON_OUTPUT))
        input_path = require_file(cfg["poisson_input_path"], "poisson_input_path")
        log.info("Poisson meshing %s -> %s", input_path, cfg["poisson_output_path"])
        stage = self.engine.poisson_meshing(input_path, cfg["poisson_output_path"], cfg.group(GROUP_POISSON))
        self.runner.run(stage)

    def _delaunay_mesh(self, run, log):
        self.runner.require("cgal", "Delaunay meshing")
        cfg = self._resolve(
            run, (GROUP_DELAUNAY,), (DELAUNAY_INPUT, DELAUNAY_OUTPUT, DELAUNAY_INPUT_TYPE)
        )
        dispatcher = FormatDispatcher(DELAUNAY_INPUT_TYPE.name, MeshingInputType, {
            MeshingInputType.SPARSE: self.engine.sparse_delaunay_meshing,
            MeshingInputType.DENSE: self.engine.dense_delaunay_meshing,
        })
        input_type = dispatcher.resolve(cfg["delaunay_input_type"])
        input_path = require_dir(cfg["delaunay_input_path"], "delaunay_input_path")
        log.info("Delaunay meshing (%s) %s -> %s", input_type.value, input_path, cfg["delaunay_output_path"])
        stage = dispatcher.dispatch(
            input_type.value, input_path, cfg["delaunay_output_path"], cfg.group(GROUP_DELAUNAY)
        )
        self.runner.run(stage)
