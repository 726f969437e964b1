"""
Stage execution: a Stage is an asynchronous worker (start() then wait()).
StageRunner runs one stage at a time, either directly or on a dedicated thread that
owns the accelerated-compute context for the stage's whole lifetime.
"""
import threading
from enum import Enum
from typing import Callable, Optional

from .exceptions import BackendUnavailable, EngineFailure, SfmStageError
from .hardware import Capabilities
from .logger import get_logger

_log = get_logger("stage")


class ExecutionPolicy(Enum):
    DIRECT = "direct"
    CONTEXT_AFFINE = "context_affine"


def _reraise(stage_name: str, error: Exception) -> None:
    if isinstance(error, SfmStageError):
        raise error
    raise EngineFailure("%s failed: %s" % (stage_name, error)) from error


class Stage:
    """
    One long-running pipeline stage. Subclass and override run(), or pass target.
    start() runs the body on a worker thread; wait() joins it and re-raises any
    failure as EngineFailure (taxonomy errors pass through unchanged).
    """

    def __init__(self, name: str, target: Optional[Callable[[], None]] = None):
        self.name = name
        self._target = target
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[Exception] = None

    def run(self) -> None:
        if self._target is None:
            raise NotImplementedError
        self._target()

    def _main(self) -> None:
        try:
            self.run()
        except Exception as e:
            self._error = e

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Stage %s already started" % self.name)
        self._thread = threading.Thread(target=self._main, name="stage-%s" % self.name, daemon=True)
        self._thread.start()

    def wait(self) -> None:
        if self._thread is None:
            raise RuntimeError("Stage %s was not started" % self.name)
        self._thread.join()
        if self._error is not None:
            _reraise(self.name, self._error)

    @property
    def started(self) -> bool:
        return self._thread is not None

    @property
    def finished(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()


class ComputeContext:
    """
    Exclusive accelerated-compute context. Entered (with-statement) on the thread
    that owns it; a second owner is refused while it is held.
    Engines override make_current()/release() to bind their backend.
    """

    def __init__(self, name: str = "gpu"):
        self.name = name
        self.owner: Optional[int] = None
        self._lock = threading.Lock()

    def make_current(self) -> None:
        pass

    def release(self) -> None:
        pass

    def __enter__(self):
        if not self._lock.acquire(blocking=False):
            raise EngineFailure("Compute context %s is already owned by another stage" % self.name)
        self.owner = threading.get_ident()
        try:
            self.make_current()
        except Exception:
            self.owner = None
            self._lock.release()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.release()
        finally:
            self.owner = None
            self._lock.release()
        return False


class StageRunner:
    """Runs at most one stage at a time, with the policy the capabilities allow."""

    def __init__(self, capabilities: Capabilities, context_factory: Callable[[], ComputeContext] = ComputeContext,
                 gpu_fallback_to_cpu: bool = True):
        self.capabilities = capabilities
        self.gpu_fallback_to_cpu = gpu_fallback_to_cpu
        self._context_factory = context_factory
        self._context: Optional[ComputeContext] = None
        self._busy = threading.Lock()

    @property
    def compute_context(self) -> ComputeContext:
        if self._context is None:
            self._context = self._context_factory()
        return self._context

    def require(self, backend: str, stage_name: str) -> None:
        """Fail fast if the build lacks backend ('cuda', 'opengl', 'cgal')."""
        if not getattr(self.capabilities, backend, False):
            raise BackendUnavailable(
                "%s requires %s, which is not available in this build (available: %s)"
                % (stage_name, backend.upper(), self.capabilities.describe())
            )

    def select_policy(self, stage_name: str, use_gpu: bool) -> tuple[ExecutionPolicy, bool]:
        """
        Return (policy, use_gpu) for a stage that may run on GPU.
        CUDA manages its own device context; an OpenGL-only build needs a context-owning thread.
        """
        if not use_gpu:
            return ExecutionPolicy.DIRECT, False
        if self.capabilities.cuda:
            return ExecutionPolicy.DIRECT, True
        if self.capabilities.opengl:
            return ExecutionPolicy.CONTEXT_AFFINE, True
        if self.gpu_fallback_to_cpu:
            _log.warning("%s: GPU requested but no GPU backend available; running on CPU", stage_name)
            return ExecutionPolicy.DIRECT, False
        raise BackendUnavailable("%s: GPU requested but neither CUDA nor OpenGL is available" % stage_name)

    def run(self, stage: Stage, policy: ExecutionPolicy = ExecutionPolicy.DIRECT) -> None:
        """Run stage to completion; blocks the caller."""
        if not self._busy.acquire(blocking=False):
            raise EngineFailure("Cannot start %s: another stage is running" % stage.name)
        try:
            _log.info("Starting %s (%s)", stage.name, policy.value)
            if policy is ExecutionPolicy.CONTEXT_AFFINE:
                self._run_with_context(stage)
            else:
                stage.start()
                stage.wait()
            _log.info("Finished %s", stage.name)
        finally:
            self._busy.release()

    def _run_with_context(self, stage: Stage) -> None:
        context = self.compute_context
        errors: list[Exception] = []

        def owner():
            try:
                with context:
                    stage.run()
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=owner, name="compute-context-%s" % stage.name)
        thread.start()
        thread.join()
        if errors:
            _reraise(stage.name, errors[0])
