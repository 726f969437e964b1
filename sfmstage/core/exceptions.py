"""sfmstage exceptions. Every failure is terminal for the current invocation."""


class SfmStageError(Exception):
    """Base exception for sfmstage."""


class ConfigurationError(SfmStageError):
    """Missing required option or invalid option value."""


class InvalidCameraModel(ConfigurationError):
    """Camera model name is not in the catalog."""


class InvalidCameraParameters(ConfigurationError):
    """Explicit camera parameters do not fit the model."""


class UnsupportedFormat(SfmStageError):
    """Format token not in the stage's supported set."""

    def __init__(self, option, token, valid):
        self.option = option
        self.token = token
        self.valid = tuple(valid)
        super().__init__(
            "Invalid `%s` %r - supported values are {%s}"
            % (option, token, ", ".join(self.valid))
        )


class PreconditionError(SfmStageError):
    """Expected directory missing, not a directory, or not writable."""


class BackendUnavailable(SfmStageError):
    """Stage needs a compute backend this build does not provide."""


class EngineFailure(SfmStageError):
    """External engine failed while running a stage."""
