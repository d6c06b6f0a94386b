"""Custom exceptions for the terminal panel"""


class TermPanelException(Exception):
    """Base exception for all terminal panel errors

    All custom exceptions should inherit from this class.
    The server's global exception handler catches it and returns ErrorResponse.

    Attributes:
        message: Human-readable error message
        code: Error code for client-side error handling
    """

    def __init__(self, message: str, code: str):
        """Initialize terminal panel exception

        Args:
            message: Human-readable error message
            code: Error code (e.g., "TAB_NOT_FOUND", "SESSION_NOT_FOUND")
        """
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigError(TermPanelException):
    """Configuration error

    Examples:
        - Invalid [panel] values in config.toml
        - Negative lock window or refresh delay
    """

    def __init__(self, message: str):
        super().__init__(message, "CONFIG_ERROR")


class TabNotFoundError(TermPanelException):
    """Tab not found in the tab set

    Examples:
        - Switching to a tab that was already closed
        - Closing an unknown tab id
    """

    def __init__(self, message: str):
        super().__init__(message, "TAB_NOT_FOUND")


# ==================== Host Layer Exceptions ====================


class HostException(TermPanelException):
    """Base exception for errors raised at the host action boundary"""

    def __init__(self, message: str, code: str):
        super().__init__(message, code)


class HostActionUnavailableError(HostException):
    """The host does not implement a required action

    Examples:
        - create_terminal_session missing when a new tab needs a session
    """

    def __init__(self, message: str):
        super().__init__(message, "HOST_ACTION_UNAVAILABLE")


class SessionCreationError(HostException):
    """The host rejected or failed a session creation request

    Examples:
        - Working directory does not exist
        - PTY allocation failed
    """

    def __init__(self, message: str):
        super().__init__(message, "SESSION_CREATION_FAILED")


class SessionNotFoundError(HostException):
    """Session does not exist in the session directory

    Examples:
        - Writing to a session destroyed by another window
        - Claiming a session that exited between list and claim
    """

    def __init__(self, message: str):
        super().__init__(message, "SESSION_NOT_FOUND")


class SessionNotRunningError(HostException):
    """Session exists but its process is no longer running

    Examples:
        - Writing to a PTY whose shell exited
    """

    def __init__(self, message: str):
        super().__init__(message, "SESSION_NOT_RUNNING")


class WindowNotFoundError(HostException):
    """Window is not registered with the session directory

    Examples:
        - Calling an action through a window handle after close_window()
    """

    def __init__(self, message: str):
        super().__init__(message, "WINDOW_NOT_FOUND")
