"""
pycolmap engine: runs COLMAP in-process through its Python bindings.
Pipeline never calls pycolmap directly, only through this engine.
Every long-running call is wrapped in a Stage so the StageRunner picks the thread.
"""
import os
import shutil
import tempfile
from pathlib import Path

import pycolmap

from sfmstage.config import get_config
from sfmstage.core.engine import BaseEngine
from sfmstage.core.events import ProgressKind
from sfmstage.core.exceptions import EngineFailure, PreconditionError
from sfmstage.core.hardware import Capabilities
from sfmstage.core.logger import get_logger
from sfmstage.core.reconstruction import Reconstruction, ReconstructionManager
from sfmstage.core.stage import Stage
from sfmstage.core.wrapper import colmap_model_converter, get_colmap_bin

os.environ.setdefault("OMP_NUM_THREADS", "4")

_log = get_logger("engine.pycolmap")

MODEL_FILES = ("cameras", "images", "points3D")

# extraction group keys -> pycolmap option objects
_READER_KEYS = ("camera_params", "default_focal_length_factor", "camera_mask_path")
_SIFT_EXTRACTION_KEYS = (
    "max_image_size", "max_num_features", "estimate_affine_shape",
    "domain_size_pooling", "num_threads", "gpu_index",
)
_SIFT_MATCHING_KEYS = ("num_threads", "gpu_index", "max_ratio", "max_distance", "cross_check",
                       "max_num_matches", "guided_matching")


def _apply(target, values: dict, keys=None):
    """Copy values onto a pycolmap options object; keys the build does not know are skipped."""
    for key in (keys if keys is not None else values):
        if key not in values:
            continue
        if not hasattr(target, key):
            _log.debug("%s has no option %s; skipped", type(target).__name__, key)
            continue
        setattr(target, key, values[key])
    return target


def _device(use_gpu: bool):
    return pycolmap.Device.cuda if use_gpu else pycolmap.Device.cpu


def _camera_mode(options: dict):
    if options.get("single_camera"):
        return pycolmap.CameraMode.SINGLE
    if options.get("single_camera_per_folder"):
        return pycolmap.CameraMode.PER_FOLDER
    return pycolmap.CameraMode.AUTO


def _require_model_dir(path, option_name: str) -> None:
    """A sparse model directory holds cameras, images and points3D as .bin or .txt."""
    p = Path(path)
    for ext in (".bin", ".txt"):
        if all((p / (name + ext)).is_file() for name in MODEL_FILES):
            return
    raise PreconditionError("`%s` holds no sparse model (cameras, images, points3D): %s" % (option_name, p))


def _move_if_needed(produced: str, wanted: str) -> None:
    if Path(produced) != Path(wanted):
        Path(wanted).parent.mkdir(parents=True, exist_ok=True)
        shutil.move(produced, wanted)


class PycolmapReconstruction(Reconstruction):
    """Adapter over pycolmap.Reconstruction; directories are created before writing."""

    def __init__(self, native, colmap_bin=None):
        self.native = native
        self.colmap_bin = colmap_bin

    @staticmethod
    def _dir(path) -> str:
        p = Path(path)
        p.mkdir(parents=True, exist_ok=True)
        return str(p)

    @staticmethod
    def _parent(path) -> str:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        return str(path)

    def write(self, path) -> None:
        self.native.write(self._dir(path))

    @property
    def num_reg_images(self) -> int:
        return self.native.num_reg_images()

    @property
    def num_points3D(self) -> int:
        return self.native.num_points3D()

    def write_binary(self, path) -> None:
        self.native.write_binary(self._dir(path))

    def write_text(self, path) -> None:
        self.native.write_text(self._dir(path))

    def export_ply(self, path) -> None:
        self.native.export_PLY(self._parent(path))

    # NVM, Bundler and VRML exporters are not bound in pycolmap; the model is written
    # to a scratch directory and converted by `colmap model_converter`.
    def _convert(self, output_path, output_type: str) -> None:
        with tempfile.TemporaryDirectory(prefix="sfmstage-model-") as scratch:
            self.native.write(scratch)
            colmap_model_converter(get_colmap_bin(self.colmap_bin), scratch, output_path, output_type, _log)

    def export_nvm(self, path) -> None:
        self._convert(self._parent(path), "NVM")

    def export_bundler(self, bundle_path, list_path) -> None:
        # colmap appends .bundle.out / .list.txt to the path it is given
        bundle_path = str(bundle_path)
        base = bundle_path[:-len(".bundle.out")] if bundle_path.endswith(".bundle.out") else bundle_path
        self._convert(self._parent(base), "Bundler")
        _move_if_needed(base + ".bundle.out", bundle_path)
        _move_if_needed(base + ".list.txt", str(list_path))

    def export_vrml(self, images_path, points3D_path, image_scale=1.0, image_rgb=(1.0, 0.0, 0.0)) -> None:
        """colmap writes <base>.images.wrl and <base>.points3D.wrl at scale 1, red frustums."""
        images_path = str(images_path)
        base = images_path[:-len(".images.wrl")] if images_path.endswith(".images.wrl") else images_path
        # colmap cuts its output path at the last '.', so hand it <base>.wrl
        self._convert(self._parent(base + ".wrl"), "VRML")
        _move_if_needed(base + ".images.wrl", images_path)
        _move_if_needed(base + ".points3D.wrl", str(points3D_path))


class PycolmapReconstructionManager(ReconstructionManager):
    """Live view over pycolmap.ReconstructionManager; the mapper appends, we only read."""

    def __init__(self, native=None):
        super().__init__()
        self.native = native if native is not None else pycolmap.ReconstructionManager()

    def size(self) -> int:
        return self.native.size()

    def get(self, idx: int) -> Reconstruction:
        if not 0 <= idx < self.size():
            raise IndexError("Reconstruction index %d out of range (size %d)" % (idx, self.size()))
        return PycolmapReconstruction(self.native.get(idx))

    def add(self, model: Reconstruction) -> int:
        raise NotImplementedError("pycolmap models are appended by the incremental mapper")

    def read(self, path) -> int:
        return self.native.read(str(path))


class IncrementalMapperStage(Stage):
    """Runs pycolmap.IncrementalPipeline, forwarding its callbacks to a ProgressEmitter."""

    def __init__(self, options, image_path, database_path, manager: PycolmapReconstructionManager, progress):
        super().__init__("mapper")
        self.options = options
        self.image_path = str(image_path)
        self.database_path = str(database_path)
        self.manager = manager
        self.progress = progress

    def _emit(self, kind: ProgressKind):
        self.progress.emit(kind, self.manager.size())

    def run(self) -> None:
        mapper = pycolmap.IncrementalPipeline(self.options, self.image_path, self.database_path,
                                              self.manager.native)
        callbacks = pycolmap.IncrementalMapperCallback
        mapper.add_callback(callbacks.INITIAL_IMAGE_PAIR_REG_CALLBACK,
                            lambda: self._emit(ProgressKind.INITIAL_IMAGE_PAIR_REGISTERED))
        mapper.add_callback(callbacks.NEXT_IMAGE_REG_CALLBACK,
                            lambda: self._emit(ProgressKind.NEXT_IMAGE_REGISTERED))
        mapper.add_callback(callbacks.LAST_IMAGE_REG_CALLBACK,
                            lambda: self._emit(ProgressKind.LAST_IMAGE_REGISTERED))
        mapper.run()


class PycolmapEngine(BaseEngine):
    name = "pycolmap"

    def __init__(self, colmap_bin=None):
        # only needed for the NVM, Bundler and VRML conversions
        self.colmap_bin = colmap_bin if colmap_bin is not None else get_config().get("colmap_bin")

    def capabilities(self) -> Capabilities:
        return Capabilities(
            cuda=bool(getattr(pycolmap, "has_cuda", False)),
            opengl=False,
            cgal=hasattr(pycolmap, "dense_delaunay_meshing"),
        )

    def feature_extractor(self, database_path, image_path, image_names, options, use_gpu):
        reader = _apply(pycolmap.ImageReaderOptions(), options, _READER_KEYS)
        sift = _apply(pycolmap.SiftExtractionOptions(), options, _SIFT_EXTRACTION_KEYS)

        def target():
            pycolmap.extract_features(
                database_path=str(database_path),
                image_path=str(image_path),
                image_list=list(image_names),
                camera_mode=_camera_mode(options),
                camera_model=str(options["camera_model"]).strip().upper(),
                reader_options=reader,
                sift_options=sift,
                device=_device(use_gpu),
            )

        return Stage("feature_extractor", target)

    def exhaustive_matcher(self, database_path, options, use_gpu):
        sift = _apply(pycolmap.SiftMatchingOptions(), options, _SIFT_MATCHING_KEYS)
        matching = _apply(pycolmap.ExhaustiveMatchingOptions(), options, ("block_size",))
        verification = _apply(pycolmap.TwoViewGeometryOptions(), options, ("min_num_inliers",))
        _apply(verification.ransac, options, ("max_error", "confidence"))

        def target():
            pycolmap.match_exhaustive(
                database_path=str(database_path),
                sift_options=sift,
                matching_options=matching,
                verification_options=verification,
                device=_device(use_gpu),
            )

        return Stage("exhaustive_matcher", target)

    def new_reconstruction_manager(self, seed_path=None):
        manager = PycolmapReconstructionManager()
        if seed_path is not None:
            _require_model_dir(seed_path, "mapper_input_path")
            manager.read(seed_path)
            _log.info("Seed model read from %s (%s)", seed_path, manager.get(0).summary())
        return manager

    def incremental_mapper(self, database_path, image_path, options, manager, progress, image_names=()):
        pipeline_options = _apply(pycolmap.IncrementalPipelineOptions(), options)
        if image_names:
            pipeline_options.image_names = list(image_names)
        return IncrementalMapperStage(pipeline_options, image_path, database_path, manager, progress)

    def read_reconstruction(self, path):
        _require_model_dir(path, "converter_input_path")
        return PycolmapReconstruction(pycolmap.Reconstruction(str(path)), self.colmap_bin)

    def image_undistorter(self, output_type, input_path, image_path, output_path, options):
        camera_options = _apply(pycolmap.UndistortCameraOptions(), options)

        def target():
            pycolmap.undistort_images(
                output_path=str(output_path),
                input_path=str(input_path),
                image_path=str(image_path),
                output_type=output_type,
                undistort_options=camera_options,
            )

        return Stage("image_undistorter", target)

    def create_database(self, database_path):
        def target():
            Path(database_path).parent.mkdir(parents=True, exist_ok=True)
            database = pycolmap.Database(str(database_path))
            database.close()

        return Stage("database_creator", target)

    def patch_match_stereo(self, workspace_path, workspace_format, pmvs_option_name, options):
        patch_match = _apply(pycolmap.PatchMatchOptions(), options)

        def target():
            pycolmap.patch_match_stereo(
                workspace_path=str(workspace_path),
                workspace_format=workspace_format,
                pmvs_option_name=pmvs_option_name,
                options=patch_match,
            )

        return Stage("patch_match_stereo", target)

    def stereo_fusion(self, output_path, workspace_path, workspace_format, pmvs_option_name, input_type, options):
        fusion = _apply(pycolmap.StereoFusionOptions(), options)

        def target():
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            pycolmap.stereo_fusion(
                output_path=str(output_path),
                workspace_path=str(workspace_path),
                workspace_format=workspace_format,
                pmvs_option_name=pmvs_option_name,
                input_type=input_type,
                options=fusion,
            )

        return Stage("stereo_fusion", target)

    def poisson_meshing(self, input_path, output_path, options):
        poisson = _apply(pycolmap.PoissonMeshingOptions(), options)

        def target():
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            ok = pycolmap.poisson_meshing(str(input_path), str(output_path), poisson)
            if ok is False:
                raise EngineFailure("Poisson meshing failed for %s" % input_path)

        return Stage("poisson_mesher", target)

    def sparse_delaunay_meshing(self, input_path, output_path, options):
        return self._delaunay("sparse_delaunay_meshing", input_path, output_path, options)

    def dense_delaunay_meshing(self, input_path, output_path, options):
        return self._delaunay("dense_delaunay_meshing", input_path, output_path, options)

    def _delaunay(self, function_name, input_path, output_path, options):
        delaunay = _apply(pycolmap.DelaunayMeshingOptions(), options)
        mesher = getattr(pycolmap, function_name)

        def target():
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            mesher(str(input_path), str(output_path), delaunay)

        return Stage("delaunay_mesher", target)
