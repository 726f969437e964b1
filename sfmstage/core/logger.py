"""
Logging for stage runs. Every record emitted through a run logger carries the run id
and stage name, so interleaved lines from a project log can be told apart:

    2026-01-01 12:00:00 [INFO] sfmstage.pipeline <3fa2c1d0 mapper> Registered image 12

setup_logging() configures the sfmstage.* tree once per process; run_logger() binds a
PipelineRun; attach_project_log() adds the per-project file next to the project file.
"""
import logging
import os
from pathlib import Path
from typing import Optional

from .config import ENV_LOG_DIR, ENV_LOG_LEVEL

ROOT_NAME = "sfmstage"
LOG_FILE_NAME = "sfmstage.log"
LINE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s%(run)s %(message)s"
_setup_done = False


class RunFormatter(logging.Formatter):
    """Renders the run tag; records logged outside a run get none."""

    def __init__(self):
        super().__init__(fmt=LINE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        run_id = getattr(record, "run_id", "")
        stage = getattr(record, "stage", "")
        tag = " ".join(p for p in (run_id, stage) if p)
        record.run = " <%s>" % tag if tag else ""
        return super().format(record)


class RunAdapter(logging.LoggerAdapter):
    """Stamps run_id and stage onto every record."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("run_id", self.extra["run_id"])
        extra.setdefault("stage", self.extra["stage"])
        kwargs["extra"] = extra
        return msg, kwargs

    def child(self, step: str) -> "RunAdapter":
        """Same run, narrower step: <id mapper> -> <id mapper/flush>."""
        return RunAdapter(self.logger, {"run_id": self.extra["run_id"],
                                        "stage": "%s/%s" % (self.extra["stage"], step)})


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(RunFormatter())
    return handler


def setup_logging(level: Optional[int] = None, log_dir=None, use_console: bool = True) -> None:
    """
    Configure the sfmstage logger tree once: console handler, plus sfmstage.log in
    log_dir (or $SFMSTAGE_LOG_DIR) when one is given. Level defaults to
    $SFMSTAGE_LOG_LEVEL, then INFO. Later calls are no-ops.
    """
    global _setup_done
    if _setup_done:
        return

    if level is None:
        level = getattr(logging, os.environ.get(ENV_LOG_LEVEL, "").strip().upper(), logging.INFO)
    root = logging.getLogger(ROOT_NAME)
    root.setLevel(level)

    if use_console:
        root.addHandler(_handler(logging.StreamHandler(), level))

    log_dir = log_dir or os.environ.get(ENV_LOG_DIR)
    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(_handler(logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8"), level))

    _setup_done = True


def get_logger(name: str) -> logging.Logger:
    """Logger under sfmstage.* (get_logger('pipeline') -> sfmstage.pipeline)."""
    if not name.startswith(ROOT_NAME + "."):
        name = "%s.%s" % (ROOT_NAME, name)
    return logging.getLogger(name)


def run_logger(logger: logging.Logger, run) -> RunAdapter:
    """Bind logger to a PipelineRun."""
    return RunAdapter(logger, {"run_id": run.run_id, "stage": run.stage})


def attach_project_log(project_dir) -> Path:
    """Log to <project_dir>/logs/sfmstage.log as well; one handler per file."""
    root = logging.getLogger(ROOT_NAME)
    log_file = Path(project_dir) / "logs" / LOG_FILE_NAME
    target = str(log_file.resolve())
    if any(isinstance(h, logging.FileHandler) and h.baseFilename == target for h in root.handlers):
        return log_file
    log_file.parent.mkdir(parents=True, exist_ok=True)
    root.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8"), root.level or logging.INFO))
    return log_file
