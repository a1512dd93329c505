"""
Exception hierarchy for TermTutor.

Transport and decode failures are raised inside the Gemini client helpers
and converted into ``Error`` results at the client boundary. Session and
configuration errors propagate to the CLI.
"""


class TutorError(Exception):
    """Base class for TermTutor errors"""

    pass


class TransportError(TutorError):
    """Raised when the remote service cannot be reached or rejects a request"""

    pass


class DecodeError(TutorError):
    """Raised when a response body is not the JSON we expect"""

    pass


class PersistenceError(TutorError):
    """Raised when a session file cannot be written"""

    pass


class SessionNotFoundError(TutorError):
    """Raised when deleting a session that does not exist"""

    pass


class InvalidSessionNameError(TutorError):
    """Raised for session names that cannot map to a file"""

    pass


class ConfigError(TutorError):
    """Raised for invalid or missing configuration"""

    pass
