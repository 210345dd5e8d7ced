"""Exception hierarchy for Jukebox Remote.

Remote engine failures propagate as typed errors so callers can tell a
dropped connection from a rejected command.  Local validation never raises.
"""


class JukeboxError(Exception):
    """Base exception for all jukebox errors."""


class ConfigurationError(JukeboxError):
    """Errors related to configuration."""


class EngineError(JukeboxError):
    """Errors reported by, or while talking to, the remote engine."""


class EngineUnavailableError(EngineError):
    """Transient failure: network error, timeout, HTTP error status."""


class EngineProtocolError(EngineError):
    """The engine answered with a body we could not understand."""


class EngineCommandError(EngineError):
    """The engine rejected a command (bad index, permissions, ...)."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class CommandSuperseded(JukeboxError):
    """A command was invalidated by a newer one before it completed.

    Raised by engine clients whose transport aborts in-flight requests, and
    treated as a cancellation (logged, not surfaced) by the dispatcher.
    """
