"""Exception hierarchy shared by the services and routers."""

from __future__ import annotations

from typing import Optional


class CreatorLogicError(Exception):
    """Base class for all application errors."""


class ConfigurationError(CreatorLogicError):
    """A required setting (such as an API token) is missing."""


class InvalidSeedError(CreatorLogicError, ValueError):
    """The seed handle is empty or looks like a URL."""


class RemoteJobError(CreatorLogicError):
    """The remote actor platform could not be reached or returned an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class JobNotFoundError(CreatorLogicError, KeyError):
    """No tier knows about the requested job id."""

    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job {self.job_id} not found"


class PartnershipNotFoundError(CreatorLogicError, KeyError):
    def __init__(self, partnership_id: str) -> None:
        super().__init__(partnership_id)
        self.partnership_id = partnership_id

    def __str__(self) -> str:
        return f"Partnership {self.partnership_id} not found"


class InvalidTransitionError(CreatorLogicError):
    """A job was asked to move backwards or out of a terminal state."""


class CredentialVerificationError(CreatorLogicError):
    """App Store Connect rejected the supplied credentials."""
