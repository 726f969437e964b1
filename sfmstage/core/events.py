from enum import Enum


class ProgressKind(Enum):
    INITIAL_IMAGE_PAIR_REGISTERED = "initial_image_pair_registered"
    NEXT_IMAGE_REGISTERED = "next_image_registered"
    LAST_IMAGE_REGISTERED = "last_image_registered"


class ProgressEvent:
    def __init__(self, kind: ProgressKind, num_reconstructions=None):
        self.kind = kind
        self.num_reconstructions = num_reconstructions

    def __repr__(self):
        return "ProgressEvent(%s, num_reconstructions=%r)" % (self.kind.value, self.num_reconstructions)


class ProgressEmitter:
    """
    Single-subscriber progress hook for the incremental mapper.
    emit() delivers synchronously: the emitter proceeds only after the handler returns.
    Handler errors propagate to the emitter (a failed flush is fatal to the run).
    """

    def __init__(self):
        self._observer = None

    @property
    def observer(self):
        return self._observer

    def subscribe(self, observer) -> None:
        """Register the observer (anything with notify(event)). Replaces a previous one."""
        self._observer = observer

    def unsubscribe(self) -> None:
        self._observer = None

    def emit(self, kind: ProgressKind, num_reconstructions=None) -> None:
        if self._observer is None:
            return
        self._observer.notify(ProgressEvent(kind, num_reconstructions))
