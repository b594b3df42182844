class EmpathicAgentError(Exception):
    """Base class for errors raised by the agent."""


class InitializationFailure(EmpathicAgentError):
    """A model or capture device could not be loaded."""


class PermissionDenied(EmpathicAgentError):
    """The host refused access to the camera or microphone."""


class TranscriptionStartError(EmpathicAgentError):
    """The recognizer refused to start (unsupported or busy)."""


class BackendCallFailure(EmpathicAgentError):
    """The chat backend returned an error or could not be reached."""


class DetectionTickFailure(EmpathicAgentError):
    """A single analysis tick failed."""


class SessionStateError(EmpathicAgentError):
    """An operation was called in a session state that does not allow it."""
