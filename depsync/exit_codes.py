"""
Standard exit codes and error types for depsync.

Following Unix/POSIX conventions for command-line tools.

Run-level errors (configuration, registry access) abort the whole run.
Record-level errors (forge, resolution, packaging, publishing) are caught
by the batch driver, logged, and never abort the run.
"""
from typing import Optional

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination
GENERAL_ERROR = 1        # General errors
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
NO_REPOS_FOUND = 64      # No repositories matched the name filter
API_ERROR = 65           # External API call failed (forge, registry)
CONFIG_ERROR = 66        # Missing tool, credential or malformed input
PARTIAL_SUCCESS = 71     # Some records succeeded, some failed
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)


class CommandError(Exception):
    """
    Base error for depsync.

    Carries an exit code for run-level failures and, optionally, the raw
    output of the collaborator (HTTP body, tool stderr) that failed.
    """
    def __init__(
        self,
        message: str,
        exit_code: int = GENERAL_ERROR,
        output: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
        self.output = output


class ConfigurationError(CommandError):
    """Missing tool, missing credential or unreadable repository table."""
    def __init__(self, message: str):
        super().__init__(message, CONFIG_ERROR)


class RegistryUnavailable(CommandError):
    """The package registry could not be queried or returned malformed data."""
    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message, API_ERROR, output)


class NoReposFoundError(CommandError):
    """Raised when the name filter matches no repository."""
    def __init__(self, message: str = "No repositories found"):
        super().__init__(message, NO_REPOS_FOUND)


class PartialSuccessError(CommandError):
    """Raised when some records succeed and some fail."""
    def __init__(self, message: str, succeeded: int = 0, failed: int = 0):
        super().__init__(message, PARTIAL_SUCCESS)
        self.succeeded = succeeded
        self.failed = failed


class RecordError(CommandError):
    """Failure confined to a single repository record."""


class UnsupportedForge(RecordError):
    """The descriptor names a forge with no adapter."""
    def __init__(self, forge: str):
        super().__init__(f"unknown forge {forge}")
        self.forge = forge


class UnsupportedLanguage(RecordError):
    """The descriptor names a language with no vendorer."""
    def __init__(self, lang: str):
        super().__init__(f"unknown language {lang}")
        self.lang = lang


class ResolutionFailed(RecordError):
    """A forge API call or its response parsing failed."""


class NoRevisionsAvailable(RecordError):
    """Tag-based resolution found no tags."""
    def __init__(self, message: str = "there are no tags"):
        super().__init__(message)


class PackagingFailed(RecordError):
    """Fetching, vendoring or compressing the dependencies failed."""


class PublishFailed(RecordError):
    """Uploading the dependency archive failed."""
