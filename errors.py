class StudioError(Exception):
    """Base class for everything the studio surfaces to a caller."""


class ConfigError(StudioError):
    pass


class ValidationRejected(StudioError):
    """The uploaded file cannot be used; the user should pick another one."""

    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason


class GenerationFailure(StudioError):
    """The backend failed, timed out, or returned nothing usable."""


class SessionBusy(StudioError):
    """A generation is already in flight for this session."""

    def __init__(self, message="A generation is already running. Wait for it to finish."):
        super().__init__(message)


class InvalidInstruction(StudioError):
    pass
