"""Stage execution: policies, compute context ownership, error propagation."""
import threading

import pytest

from sfmstage.core.exceptions import BackendUnavailable, EngineFailure, PreconditionError
from sfmstage.core.hardware import Capabilities
from sfmstage.core.stage import ComputeContext, ExecutionPolicy, Stage, StageRunner


class RecordingContext(ComputeContext):
    def __init__(self):
        super().__init__("test-gl")
        self.current_on = None
        self.released = False

    def make_current(self):
        self.current_on = threading.get_ident()

    def release(self):
        self.released = True


def test_direct_stage_runs_to_completion():
    done = []
    runner = StageRunner(Capabilities())
    stage = Stage("noop", lambda: done.append(True))
    runner.run(stage)
    assert done == [True]
    assert stage.finished


def test_stage_error_is_wrapped_as_engine_failure():
    def boom():
        raise RuntimeError("out of memory")

    with pytest.raises(EngineFailure, match="out of memory") as exc:
        StageRunner(Capabilities()).run(Stage("boom", boom))
    assert isinstance(exc.value.__cause__, RuntimeError)


def test_taxonomy_errors_pass_through_unchanged():
    def fail():
        raise PreconditionError("missing dir")

    with pytest.raises(PreconditionError):
        StageRunner(Capabilities()).run(Stage("fail", fail))


def test_context_affine_runs_on_dedicated_thread_inside_context():
    context = RecordingContext()
    runner = StageRunner(Capabilities(opengl=True), context_factory=lambda: context)
    seen = {}

    def body():
        seen["thread"] = threading.get_ident()
        seen["owner"] = context.owner

    runner.run(Stage("gl", body), ExecutionPolicy.CONTEXT_AFFINE)
    assert seen["thread"] != threading.get_ident()
    assert seen["owner"] == seen["thread"] == context.current_on
    assert context.released
    assert context.owner is None


def test_context_affine_failure_reaches_caller():
    runner = StageRunner(Capabilities(opengl=True), context_factory=RecordingContext)

    def body():
        raise ValueError("shader compile")

    with pytest.raises(EngineFailure, match="shader compile"):
        runner.run(Stage("gl", body), ExecutionPolicy.CONTEXT_AFFINE)
    assert runner.compute_context.owner is None


def test_compute_context_refuses_second_owner():
    context = ComputeContext()
    with context:
        errors = []

        def second():
            try:
                with context:
                    pass
            except EngineFailure as e:
                errors.append(e)

        t = threading.Thread(target=second)
        t.start()
        t.join()
    assert len(errors) == 1


def test_runner_refuses_concurrent_stage():
    runner = StageRunner(Capabilities())
    entered = threading.Event()
    release = threading.Event()

    def slow():
        entered.set()
        release.wait(5)

    t = threading.Thread(target=runner.run, args=(Stage("slow", slow),))
    t.start()
    assert entered.wait(5)
    try:
        with pytest.raises(EngineFailure, match="another stage"):
            runner.run(Stage("second", lambda: None))
    finally:
        release.set()
        t.join()


@pytest.mark.parametrize("caps,use_gpu,expected", [
    (Capabilities(), False, (ExecutionPolicy.DIRECT, False)),
    (Capabilities(cuda=True), True, (ExecutionPolicy.DIRECT, True)),
    (Capabilities(opengl=True), True, (ExecutionPolicy.CONTEXT_AFFINE, True)),
    (Capabilities(cuda=True, opengl=True), True, (ExecutionPolicy.DIRECT, True)),
    (Capabilities(), True, (ExecutionPolicy.DIRECT, False)),
])
def test_policy_selection(caps, use_gpu, expected):
    assert StageRunner(caps).select_policy("feature_extractor", use_gpu) == expected


def test_gpu_without_backend_and_no_fallback_is_unavailable():
    runner = StageRunner(Capabilities(), gpu_fallback_to_cpu=False)
    with pytest.raises(BackendUnavailable):
        runner.select_policy("feature_extractor", True)


def test_require_names_missing_backend():
    runner = StageRunner(Capabilities(cuda=True))
    runner.require("cuda", "Dense stereo")
    with pytest.raises(BackendUnavailable, match="CGAL"):
        runner.require("cgal", "Delaunay meshing")


def test_stage_cannot_start_twice():
    stage = Stage("once", lambda: None)
    stage.start()
    stage.wait()
    with pytest.raises(RuntimeError):
        stage.start()
