"""
Rollback Coordinator Module

Best-effort compensation for an account whose dependent card could not be
issued. A failed delete is logged and swallowed; the outcome is reported back
so the orchestrator knows whether the account still exists remotely.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .audit import AuditTrail, AuditEventType
from .client import BankingAPIClient
from .errors import AuthError, OnboardingError, RollbackFailure

logger = logging.getLogger("bank_onboarding.rollback")


@dataclass
class RollbackOutcome:
    """Result of one compensating delete"""
    account_id: str
    confirmed: bool
    failure: Optional[RollbackFailure] = None
    
    @property
    def credential_rejected(self) -> bool:
        return self.failure is not None and isinstance(self.failure.cause, AuthError)


class RollbackCoordinator:
    """Deletes accounts left behind by a failed card issuance"""
    
    def __init__(self, client: BankingAPIClient, audit_trail: Optional[AuditTrail] = None):
        self.client = client
        self.audit_trail = audit_trail
    
    def rollback(self, account_id: str, identity_id: Optional[str] = None,
                 attempt_id: Optional[str] = None) -> RollbackOutcome:
        """
        Issue DeleteAccount for the committed account.
        
        Never raises for remote failures; they are logged and returned as a
        RollbackFailure on the outcome.
        """
        try:
            self.client.delete_account(account_id)
        except OnboardingError as e:
            failure = RollbackFailure(account_id, e)
            logger.error(failure.message)
            if self.audit_trail:
                self.audit_trail.log_event(
                    AuditEventType.ROLLBACK_FAILED,
                    'account',
                    account_id,
                    {'identity_id': identity_id, 'error_kind': e.kind, 'error': e.message},
                    attempt_id=attempt_id
                )
            return RollbackOutcome(account_id=account_id, confirmed=False, failure=failure)
        
        logger.info(f"Rolled back account {account_id}")
        if self.audit_trail:
            self.audit_trail.log_event(
                AuditEventType.ROLLBACK_COMPLETED,
                'account',
                account_id,
                {'identity_id': identity_id},
                attempt_id=attempt_id
            )
        return RollbackOutcome(account_id=account_id, confirmed=True)
