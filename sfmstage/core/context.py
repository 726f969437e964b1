import uuid
from pathlib import Path

from .config import EXIT_FAILURE, EXIT_SUCCESS

CREATED = "created"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"


class PipelineRun:
    """Single source of truth for one stage invocation: project, stage, configuration, status."""

    def __init__(self, project_path, stage: str):
        self.project_path = Path(project_path)
        self.stage = stage
        self.run_id = uuid.uuid4().hex[:8]
        self.configuration = None
        self.status = CREATED
        self.error = None

    def start(self) -> None:
        if self.status != CREATED:
            raise RuntimeError("Run for %s already %s" % (self.stage, self.status))
        self.status = RUNNING

    def succeed(self) -> None:
        self.status = SUCCEEDED

    def fail(self, error=None) -> None:
        self.status = FAILED
        self.error = error

    @property
    def exit_code(self):
        """0 after success, 1 after failure, None while undecided."""
        if self.status == SUCCEEDED:
            return EXIT_SUCCESS
        if self.status == FAILED:
            return EXIT_FAILURE
        return None
