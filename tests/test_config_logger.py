"""Runtime settings and logging setup."""
import logging

import pytest

from sfmstage import config as settings_module
from sfmstage.config import get_config, load_config, reset_config
from sfmstage.core import logger as logger_module
from sfmstage.core.context import PipelineRun
from sfmstage.core.logger import RunFormatter, attach_project_log, get_logger, run_logger, setup_logging


def test_builtin_settings():
    cfg = get_config()
    assert cfg["engine"] == "pycolmap"
    assert cfg["snapshot_name"] == "project.yaml"
    assert cfg["gpu_fallback_to_cpu"] is True


def test_override_file_is_merged(tmp_path):
    override = tmp_path / "settings.yaml"
    override.write_text("snapshot_name: snapshot.yaml\ngpu_fallback_to_cpu: false\n")
    cfg = load_config(override_path=override)
    assert cfg["snapshot_name"] == "snapshot.yaml"
    assert cfg["gpu_fallback_to_cpu"] is False
    assert cfg["engine"] == "pycolmap"


def test_env_config_and_cache(tmp_path, monkeypatch):
    env_file = tmp_path / "env.yaml"
    env_file.write_text("project_log: false\n")
    monkeypatch.setenv("SFMSTAGE_CONFIG", str(env_file))
    reset_config()
    assert get_config()["project_log"] is False
    env_file.write_text("project_log: true\n")
    assert get_config()["project_log"] is False  # cached
    reset_config()
    assert get_config()["project_log"] is True


def test_unknown_engine_env_falls_back(monkeypatch):
    monkeypatch.setenv("SFMSTAGE_ENGINE", "meshroom")
    reset_config()
    assert get_config()["engine"] == "pycolmap"


def test_deep_merge_keeps_nested_keys():
    merged = settings_module._deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}})
    assert merged == {"a": {"x": 1, "y": 3}}


def test_get_logger_namespaces():
    assert get_logger("pipeline").name == "sfmstage.pipeline"
    assert get_logger("sfmstage.api").name == "sfmstage.api"


def test_run_logger_tags_records(caplog, tmp_path):
    run = PipelineRun(tmp_path / "project.yaml", "mapper")
    log = run_logger(get_logger("pipeline"), run)
    with caplog.at_level(logging.INFO, logger="sfmstage"):
        log.info("hello")
        log.child("flush").info("wrote")
    first, second = caplog.records[-2:]
    assert first.run_id == run.run_id
    assert first.stage == "mapper"
    assert second.stage == "mapper/flush"
    assert RunFormatter().format(first).endswith("sfmstage.pipeline <%s mapper> hello" % run.run_id)


def test_records_outside_a_run_have_no_tag():
    record = logging.LogRecord("sfmstage.api", logging.INFO, __file__, 1, "plain", (), None)
    assert RunFormatter().format(record).endswith("sfmstage.api plain")


def test_runs_get_distinct_ids(tmp_path):
    assert PipelineRun(tmp_path, "mapper").run_id != PipelineRun(tmp_path, "mapper").run_id


def test_project_log_file(tmp_path):
    path = attach_project_log(tmp_path)
    assert path == tmp_path / "logs" / "sfmstage.log"
    again = attach_project_log(tmp_path)
    assert again == path
    handlers = [h for h in logging.getLogger("sfmstage").handlers
                if isinstance(h, logging.FileHandler) and h.baseFilename == str(path.resolve())]
    assert len(handlers) == 1


@pytest.fixture
def fresh_logging(monkeypatch):
    root = logging.getLogger("sfmstage")
    before = list(root.handlers)
    monkeypatch.setattr(logger_module, "_setup_done", False)
    yield root
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()


def test_setup_logging_is_idempotent(fresh_logging, tmp_path):
    setup_logging(level=logging.DEBUG, log_dir=tmp_path)
    count = len(fresh_logging.handlers)
    setup_logging(level=logging.DEBUG, log_dir=tmp_path)
    assert len(fresh_logging.handlers) == count
    assert (tmp_path / "sfmstage.log").exists()
