"""Incremental persistence of mapper results."""
import yaml

from sfmstage.core.config import GROUP_DATABASE, GROUP_MAPPER
from sfmstage.core.events import ProgressEmitter, ProgressKind
from sfmstage.core.options import resolve_options
from sfmstage.core.persistence import IncrementalPersistenceController, write_seed_result
from sfmstage.core.reconstruction import ReconstructionManager
from tests.conftest import FakeReconstruction


def _controller(tmp_path, write_project, manager=None):
    cfg = resolve_options(write_project(), (GROUP_DATABASE, GROUP_MAPPER))
    out = tmp_path / "sparse"
    return IncrementalPersistenceController(manager if manager is not None else ReconstructionManager(), out, cfg), out


def test_two_models_land_in_indexed_dirs_with_snapshot(tmp_path, write_project):
    manager = ReconstructionManager()
    controller, out = _controller(tmp_path, write_project, manager)
    emitter = ProgressEmitter()
    emitter.subscribe(controller)

    manager.add(FakeReconstruction())
    emitter.emit(ProgressKind.LAST_IMAGE_REGISTERED, 1)
    manager.add(FakeReconstruction())
    emitter.emit(ProgressKind.LAST_IMAGE_REGISTERED, 2)

    for idx in (0, 1):
        model_dir = out / str(idx)
        assert (model_dir / "cameras.txt").exists()
        snapshot = yaml.safe_load((model_dir / "project.yaml").read_text())
        assert snapshot["mapper"]["min_num_matches"] == 15
    assert controller.written == [0, 1]


def test_flush_is_idempotent_per_watermark(tmp_path, write_project):
    manager = ReconstructionManager([FakeReconstruction()])
    controller, _ = _controller(tmp_path, write_project, manager)
    assert controller.flush() == [0]
    assert controller.flush() == []
    assert controller.watermark == 1
    assert controller.written == [0]


def test_every_new_index_is_flushed_once(tmp_path, write_project):
    manager = ReconstructionManager([FakeReconstruction()])
    controller, out = _controller(tmp_path, write_project, manager)
    controller.flush()
    for _ in range(3):
        manager.add(FakeReconstruction())
    assert controller.flush() == [1, 2, 3]
    assert controller.watermark == 4
    assert sorted(p.name for p in out.iterdir()) == ["0", "1", "2", "3"]


def test_other_progress_kinds_do_not_flush(tmp_path, write_project):
    manager = ReconstructionManager([FakeReconstruction()])
    controller, out = _controller(tmp_path, write_project, manager)
    emitter = ProgressEmitter()
    emitter.subscribe(controller)
    emitter.emit(ProgressKind.INITIAL_IMAGE_PAIR_REGISTERED, 1)
    emitter.emit(ProgressKind.NEXT_IMAGE_REGISTERED, 1)
    assert controller.written == []
    assert not (out / "0").exists()


def test_flush_overwrites_existing_model_files(tmp_path, write_project):
    manager = ReconstructionManager([FakeReconstruction()])
    (tmp_path / "sparse" / "0").mkdir(parents=True)
    (tmp_path / "sparse" / "0" / "cameras.txt").write_text("stale")
    controller, out = _controller(tmp_path, write_project, manager)
    assert controller.flush() == [0]
    assert (out / "0" / "cameras.txt").read_text() != "stale"


def test_seed_result_is_written_flat(tmp_path):
    manager = ReconstructionManager([FakeReconstruction(), FakeReconstruction()])
    assert write_seed_result(manager, tmp_path) is True
    assert (tmp_path / "cameras.txt").exists()
    assert not (tmp_path / "0").exists()


def test_seed_result_without_models_writes_nothing(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    assert write_seed_result(ReconstructionManager(), out) is False
    assert list(out.iterdir()) == []
