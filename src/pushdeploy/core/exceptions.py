"""Custom exceptions for pushdeploy."""

from typing import Optional


class PushDeployError(Exception):
    """Base exception for all pushdeploy errors."""

    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(PushDeployError):
    """Configuration error."""
    pass


class AuthenticationError(PushDeployError):
    """Missing, malformed or incorrect credential."""

    status_code = 401


class UploadError(PushDeployError):
    """The request did not carry a usable archive upload."""

    status_code = 400


class WorkspaceError(PushDeployError):
    """Filesystem failure while preparing a workspace."""
    pass


class ArchiveError(PushDeployError):
    """The archive could not be read or extracted."""
    pass


class UnsafeArchiveEntryError(ArchiveError):
    """An archive entry would be written outside the destination root."""

    status_code = 400

    def __init__(self, entry_name: str):
        super().__init__(f"Invalid file path in archive: {entry_name}", code="unsafe_path")
        self.entry_name = entry_name


class MissingEntryPointError(PushDeployError):
    """The extracted deployment has no entry-point script."""

    status_code = 400


class ClientError(PushDeployError):
    """Errors raised on the sending side."""
    pass


class TransportError(ClientError):
    """The deployment could not be delivered to the agent."""
    pass


class DeploymentRejectedError(ClientError):
    """The agent answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"server returned status {status_code}: {body}")
        self.status_code = status_code
        self.body = body
