"""Exception taxonomy for the incident response pipeline."""


class OutageXError(Exception):
    """Base class for OutageX errors."""


class ExternalServiceError(OutageXError):
    """A collaborator (model, repository, research, deployment) call failed."""

    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class MissingPrerequisiteError(OutageXError):
    """A phase cannot run because an earlier phase produced nothing usable."""


class SandboxError(OutageXError):
    """Sandbox creation or command execution failed or timed out."""
