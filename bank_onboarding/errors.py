"""
Onboarding Error Module

Error taxonomy for the provisioning workflow. Remote failures are classified
into these types by the API client and handled at the orchestrator boundary.
"""

from dataclasses import dataclass
from typing import Optional


class OnboardingError(Exception):
    """Base class for all onboarding errors"""

    kind = "onboarding_error"
    user_message = "Failed to complete setup."

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(OnboardingError):
    """Credential missing, expired or rejected (401/403)"""

    kind = "auth_error"
    user_message = "Authorization error. Please login again."


class ValidationError(OnboardingError):
    """Input rejected locally or by the remote service (4xx other than auth)"""

    kind = "validation_error"


class TransientError(OnboardingError):
    """Network failure, timeout or 5xx response"""

    kind = "transient_error"
    user_message = "The banking service is temporarily unavailable. Please try again."


class ProvisioningError(OnboardingError):
    """Successful response that lacks the fields the next step depends on"""

    kind = "provisioning_error"


class RollbackFailure(OnboardingError):
    """Compensating delete failed; logged and never surfaced as blocking"""

    kind = "rollback_failure"

    def __init__(self, account_id: str, cause: Optional[OnboardingError] = None):
        message = f"Rollback of account {account_id} failed"
        if cause is not None:
            message = f"{message}: {cause.message}"
        super().__init__(message, cause.status_code if cause else None)
        self.account_id = account_id
        self.cause = cause


class SensitiveDataError(ValueError):
    """Attempt to persist or log a record that still carries a secret"""


class WorkflowStateError(Exception):
    """Caller action not permitted in the current workflow phase"""


class WorkflowInProgressError(WorkflowStateError):
    """Another attempt for the same identity is already in flight"""


@dataclass
class ErrorInfo:
    """Snapshot of the last workflow error, safe to show and to serialize"""
    kind: str
    message: str
    user_message: str
    status_code: Optional[int] = None

    @classmethod
    def from_error(cls, error: OnboardingError) -> 'ErrorInfo':
        """Build the user-facing view of an onboarding error"""
        if isinstance(error, ValidationError):
            # Validation messages are shown verbatim
            user_message = error.message
        elif isinstance(error, ProvisioningError):
            user_message = f"Failed to complete setup: {error.message}"
        else:
            user_message = error.user_message
        return cls(
            kind=error.kind,
            message=error.message,
            user_message=user_message,
            status_code=error.status_code,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "user_message": self.user_message,
            "status_code": self.status_code,
        }
