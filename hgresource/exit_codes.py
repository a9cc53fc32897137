"""
Standard exit codes and error types for hgresource commands.

Following Unix/POSIX conventions for command-line tools. Pipeline
runners only distinguish success, operational failure and usage errors,
so every operational error maps to GENERAL_ERROR.
"""
from typing import Optional

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination
GENERAL_ERROR = 1        # Configuration, backend, retry exhaustion
USAGE_ERROR = 2          # Missing required CLI argument


def get_exit_code_for_exception(exc: Exception) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    return getattr(exc, 'exit_code', GENERAL_ERROR)


class CommandError(Exception):
    """
    Exception that commands can raise to indicate specific exit codes.
    """
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class ConfigurationError(CommandError):
    """Raised when the input envelope is missing a required value."""
    def __init__(self, message: str):
        super().__init__(message, GENERAL_ERROR)


class ResourceError(CommandError):
    """Raised when a local filesystem or process resource cannot be set up."""
    def __init__(self, message: str):
        super().__init__(message, GENERAL_ERROR)


class BackendInvocationError(CommandError):
    """
    Raised when an hg invocation exits non-zero.

    The raw hg output is kept on `output` so it can be written verbatim
    to the error stream.
    """
    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message, GENERAL_ERROR)
        self.output = output or ""


class UnknownReference(BackendInvocationError):
    """Raised when hg does not know the requested revision."""
    def __init__(self, ref: str, output: Optional[str] = None):
        super().__init__(f"Unknown revision: {ref}", output)
        self.ref = ref


class ResolutionError(BackendInvocationError):
    """Raised when a revision query cannot be evaluated."""


class PublishError(BackendInvocationError):
    """Raised when a publish step fails fatally."""


class RetriesExhausted(PublishError):
    """Raised when every push attempt was rejected by a concurrent publish."""
    def __init__(self, attempts: int, output: Optional[str] = None):
        super().__init__(
            f"Giving up after {attempts} push attempts: "
            "destination kept moving during rebase",
            output,
        )
        self.attempts = attempts


class PublishConflict(Exception):
    """Internal signal: the destination moved since the last rebase."""
