"""
Incremental persistence of mapping results.

From raw images the mapper may grow several disjoint models. After the last
registration attempt of each growth step, every model appended since the previous
flush is written to <output>/<index>/ together with a snapshot of the resolved
project configuration. A watermark keeps one flush per index per step.

From a seed model the indexed layout is skipped: model 0 is written once, flat,
to the output path after the mapper finishes (write_seed_result).
"""
from pathlib import Path

from .events import ProgressKind
from .logger import get_logger

_log = get_logger("persistence")


class IncrementalPersistenceController:
    """
    Observer of mapper progress. Runs synchronously on the mapper's notification
    path, so step k's flush completes before step k+1 is delivered.
    """

    def __init__(self, manager, output_path, configuration, snapshot_name="project.yaml", log=None):
        self.log = log or _log
        self.manager = manager
        self.output_path = Path(output_path)
        self.configuration = configuration
        self.snapshot_name = snapshot_name
        self.watermark = 0
        self.written: list[int] = []

    def notify(self, event) -> None:
        if event.kind is ProgressKind.LAST_IMAGE_REGISTERED:
            self.flush()

    def flush(self) -> list[int]:
        """Write models [watermark, size) and advance the watermark. Returns indices written."""
        size = self.manager.size()
        if size <= self.watermark:
            return []
        indices = list(range(self.watermark, size))
        for idx in indices:
            self._write_model(idx)
        self.watermark = size
        return indices

    def _write_model(self, idx: int) -> Path:
        model_dir = self.output_path / str(idx)
        model_dir.mkdir(parents=True, exist_ok=True)
        model = self.manager.get(idx)
        model.write(model_dir)
        self.configuration.write(model_dir / self.snapshot_name)
        self.written.append(idx)
        self.log.info("Wrote model %d (%s) to %s", idx, model.summary(), model_dir)
        return model_dir


def write_seed_result(manager, output_path, log=None) -> bool:
    """Seeded run: write model 0 flat to output_path. False if the run produced no model."""
    log = log or _log
    if manager.size() == 0:
        log.warning("Mapper finished without a model; nothing written to %s", output_path)
        return False
    model = manager.get(0)
    model.write(Path(output_path))
    log.info("Wrote seeded model (%s) to %s", model.summary(), output_path)
    return True
