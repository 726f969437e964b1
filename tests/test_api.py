"""Exit codes of the invocation surface."""
import logging

import pytest

from sfmstage import api
from sfmstage.core.hardware import Capabilities
from tests.conftest import FakeEngine


def test_success_returns_zero(fake_engine, write_project):
    assert api.create_database(write_project(), engine=fake_engine) == 0


@pytest.mark.parametrize("stage_call,values", [
    (api.extract_features, {"extraction": {"camera_model": "NOPE"}}),
    (api.extract_features, {"extraction": {"camera_model": "PINHOLE", "camera_params": "1,2"}}),
    (api.reconstruct_sparse, {}),
    (api.reconstruct_sparse, {"mapper_output_path": "/does/not/exist"}),
    (api.convert_model, {"converter_input_path": "/x", "converter_output_path": "/y",
                         "converter_output_type": "XML"}),
    (api.patch_match_stereo, {"dense_workspace_path": "/x"}),
    (api.delaunay_mesher, {"delaunay_input_path": "/x", "delaunay_output_path": "/y"}),
])
def test_each_error_kind_returns_one(fake_engine, write_project, stage_call, values):
    assert stage_call(write_project(**values), engine=fake_engine) == 1


def test_missing_project_returns_one(fake_engine, tmp_path):
    assert api.match_features_exhaustively(tmp_path / "missing.yaml", engine=fake_engine) == 1


def test_engine_failure_returns_one_and_logs(write_project, caplog):
    engine = FakeEngine(fail_with=RuntimeError("segfault in matcher"))
    with caplog.at_level(logging.ERROR, logger="sfmstage"):
        code = api.match_features_exhaustively(write_project(), engine=engine)
    assert code == 1
    assert "segfault in matcher" in caplog.text


def test_explicit_capabilities_override_engine(write_project, workspace):
    engine = FakeEngine(Capabilities())
    project = write_project(dense_workspace_path=str(workspace))
    assert api.patch_match_stereo(project, engine=engine, capabilities=Capabilities(cuda=True)) == 0


def test_controller_uses_snapshot_name_setting(write_project, workspace):
    engine = FakeEngine(growth=[1])
    controller = api.SfmStageController(engine, settings={"snapshot_name": "run.yaml", "project_log": False})
    project = write_project(mapper_output_path=str(workspace / "sparse"))
    assert controller.run_stage("mapper", project) == 0
    assert (workspace / "sparse" / "0" / "run.yaml").exists()


def test_project_log_file_is_created(fake_engine, write_project, workspace):
    api.create_database(write_project(), engine=fake_engine)
    assert (workspace / "logs" / "sfmstage.log").exists()


def test_unknown_stage_returns_one(fake_engine, write_project):
    assert api.run_stage("bundle_adjuster", write_project(), engine=fake_engine) == 1


def test_malformed_inputs_return_one(fake_engine, write_project, workspace):
    assert api.extract_features(
        write_project(extraction={"camera_model": "SIMPLE_PINHOLE", "camera_params": 1200}), engine=fake_engine
    ) == 1
    image_list = workspace / "list.txt"
    image_list.write_bytes(b"\xff\xfe")
    assert api.extract_features(write_project(features_image_list_path=str(image_list)), engine=fake_engine) == 1
    ini = workspace / "project.ini"
    ini.write_bytes(b"database_path=\xff\n")
    assert api.create_database(ini, engine=fake_engine) == 1
    assert fake_engine.calls == []
