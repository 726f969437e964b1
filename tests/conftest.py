"""
Pytest configuration and shared fixtures.

FakeEngine stands in for pycolmap: every stage records its call and writes small
placeholder files, and the fake mapper grows a ReconstructionManager following a
scripted list of growth steps so persistence can be checked without COLMAP.
"""
import logging
import threading
from pathlib import Path

import pytest
import yaml

from sfmstage.config import reset_config
from sfmstage.core.engine import BaseEngine
from sfmstage.core.events import ProgressKind
from sfmstage.core.hardware import Capabilities
from sfmstage.core.logger import ROOT_NAME
from sfmstage.core.reconstruction import Reconstruction, ReconstructionManager
from sfmstage.core.stage import Stage

MODEL_FILES = ("cameras.txt", "images.txt", "points3D.txt")


class FakeReconstruction(Reconstruction):
    def __init__(self, num_images=3, num_points=10):
        self._num_images = num_images
        self._num_points = num_points
        self.writes = []

    @property
    def num_reg_images(self):
        return self._num_images

    @property
    def num_points3D(self):
        return self._num_points

    def write(self, path):
        p = Path(path)
        p.mkdir(parents=True, exist_ok=True)
        for name in MODEL_FILES:
            (p / name).write_text("# %d images\n" % self._num_images)
        self.writes.append(str(p))

    def write_text(self, path):
        self.write(path)

    def write_binary(self, path):
        p = Path(path)
        p.mkdir(parents=True, exist_ok=True)
        for name in ("cameras.bin", "images.bin", "points3D.bin"):
            (p / name).write_bytes(b"\x00")
        self.writes.append(str(p))

    def export_nvm(self, path):
        Path(path).write_text("NVM_V3\n")

    def export_bundler(self, bundle_path, list_path):
        Path(bundle_path).write_text("# Bundle file v0.3\n")
        Path(list_path).write_text("image1.jpg\n")

    def export_ply(self, path):
        Path(path).write_text("ply\n")

    def export_vrml(self, images_path, points3D_path, image_scale=1.0, image_rgb=(1.0, 0.0, 0.0)):
        Path(images_path).write_text("#VRML V2.0 utf8\n")
        Path(points3D_path).write_text("#VRML V2.0 utf8\n")


class FakeEngine(BaseEngine):
    """In-memory engine. growth: models appended per growth step of the fake mapper."""

    name = "fake"

    def __init__(self, capabilities=None, growth=(), fail_with=None):
        self.caps = capabilities if capabilities is not None else Capabilities()
        self.growth = list(growth)
        self.fail_with = fail_with
        self.calls = []
        self.threads = []
        self.manager = None
        self.reconstruction = FakeReconstruction()

    def called(self, name):
        return [kwargs for method, kwargs in self.calls if method == name]

    def capabilities(self):
        return self.caps

    def _stage(self, name, body=None, **kwargs):
        self.calls.append((name, kwargs))

        def target():
            self.threads.append(threading.get_ident())
            if self.fail_with is not None:
                raise self.fail_with
            if body is not None:
                body()

        return Stage(name, target)

    def feature_extractor(self, database_path, image_path, image_names, options, use_gpu):
        return self._stage("feature_extractor", database_path=database_path, image_path=image_path,
                           image_names=list(image_names), options=options, use_gpu=use_gpu)

    def exhaustive_matcher(self, database_path, options, use_gpu):
        return self._stage("exhaustive_matcher", database_path=database_path, options=options, use_gpu=use_gpu)

    def new_reconstruction_manager(self, seed_path=None):
        self.calls.append(("new_reconstruction_manager", {"seed_path": seed_path}))
        models = [FakeReconstruction(num_images=5)] if seed_path is not None else []
        self.manager = ReconstructionManager(models)
        return self.manager

    def incremental_mapper(self, database_path, image_path, options, manager, progress, image_names=()):
        def grow():
            for step in self.growth:
                progress.emit(ProgressKind.INITIAL_IMAGE_PAIR_REGISTERED, manager.size())
                for _ in range(step):
                    manager.add(FakeReconstruction())
                    progress.emit(ProgressKind.NEXT_IMAGE_REGISTERED, manager.size())
                progress.emit(ProgressKind.LAST_IMAGE_REGISTERED, manager.size())

        return self._stage("incremental_mapper", grow, database_path=database_path, image_path=image_path,
                           options=options, image_names=list(image_names))

    def read_reconstruction(self, path):
        self.calls.append(("read_reconstruction", {"path": path}))
        return self.reconstruction

    def image_undistorter(self, output_type, input_path, image_path, output_path, options):
        return self._stage("image_undistorter", output_type=output_type, input_path=input_path,
                           image_path=image_path, output_path=output_path, options=options)

    def create_database(self, database_path):
        return self._stage("create_database", lambda: Path(database_path).touch(), database_path=database_path)

    def patch_match_stereo(self, workspace_path, workspace_format, pmvs_option_name, options):
        return self._stage("patch_match_stereo", workspace_path=workspace_path, workspace_format=workspace_format,
                           pmvs_option_name=pmvs_option_name, options=options)

    def stereo_fusion(self, output_path, workspace_path, workspace_format, pmvs_option_name, input_type, options):
        return self._stage("stereo_fusion", output_path=output_path, workspace_path=workspace_path,
                           workspace_format=workspace_format, pmvs_option_name=pmvs_option_name,
                           input_type=input_type, options=options)

    def poisson_meshing(self, input_path, output_path, options):
        return self._stage("poisson_meshing", input_path=input_path, output_path=output_path, options=options)

    def sparse_delaunay_meshing(self, input_path, output_path, options):
        return self._stage("sparse_delaunay_meshing", input_path=input_path, output_path=output_path,
                           options=options)

    def dense_delaunay_meshing(self, input_path, output_path, options):
        return self._stage("dense_delaunay_meshing", input_path=input_path, output_path=output_path,
                           options=options)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Built-in settings only; no leftover project log handlers between tests."""
    for name in ("SFMSTAGE_CONFIG", "SFMSTAGE_ENGINE", "SFMSTAGE_LOG_LEVEL", "SFMSTAGE_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
    root = logging.getLogger(ROOT_NAME)
    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def workspace(tmp_path):
    """Project layout: images/ with two files, database path, sparse/ output dir."""
    images = tmp_path / "images"
    images.mkdir()
    (images / "a.jpg").write_bytes(b"")
    (images / "b.jpg").write_bytes(b"")
    (tmp_path / "sparse").mkdir()
    return tmp_path


@pytest.fixture
def write_project(workspace):
    """Factory: write a YAML project file with database/image paths plus extra keys."""

    def _write(name="project.yaml", **values):
        data = {
            "database_path": str(workspace / "database.db"),
            "image_path": str(workspace / "images"),
        }
        data.update(values)
        path = workspace / name
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write
