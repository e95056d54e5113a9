"""
Provisioning Orchestrator Module

Drives one onboarding attempt per identity through an explicit state machine:
profile submission, account creation, card issuance and the one-time PIN
disclosure. A card failure after the account was committed triggers a
compensating delete and parks the workflow until the user retries.

All remote failures are caught here and recorded on the provisioning state;
only caller mistakes (wrong phase, duplicate submission) are raised.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional, Union

from .accounts import AccountProvisioner
from .audit import AuditTrail, AuditEventType
from .cards import CardProvisioner
from .disclosure import SecretDisclosure
from .errors import (
    AuthError, ErrorInfo, OnboardingError, WorkflowInProgressError, WorkflowStateError
)
from .logging_config import log_action
from .models import (
    Account, Card, Profile, ProfileForm, ProvisioningPhase, ProvisioningState, SafeCard
)
from .profile import ProfileSubmitter
from .records import ClientStore
from .rollback import RollbackCoordinator
from .session import SessionContext

logger = logging.getLogger("bank_onboarding.orchestrator")

Phase = ProvisioningPhase

# Allowed phase changes within one attempt. DONE and AUTH_FAILED are terminal;
# a new attempt starts from a fresh IDLE state.
TRANSITIONS = {
    Phase.IDLE: {Phase.SUBMITTING_PROFILE},
    Phase.SUBMITTING_PROFILE: {Phase.CREATING_ACCOUNT, Phase.DONE, Phase.IDLE, Phase.AUTH_FAILED},
    Phase.CREATING_ACCOUNT: {Phase.CREATING_CARD, Phase.IDLE, Phase.AUTH_FAILED},
    Phase.CREATING_CARD: {Phase.DISCLOSING_SECRET, Phase.ROLLING_BACK, Phase.AUTH_FAILED},
    Phase.ROLLING_BACK: {Phase.AWAITING_RETRY, Phase.AUTH_FAILED},
    Phase.AWAITING_RETRY: {Phase.CREATING_CARD, Phase.CREATING_ACCOUNT},
    Phase.DISCLOSING_SECRET: {Phase.DONE},
    Phase.DONE: set(),
    Phase.AUTH_FAILED: set(),
}

# Phases from which a new attempt may be started
STARTABLE_PHASES = frozenset({Phase.IDLE, Phase.DONE, Phase.AUTH_FAILED})


class ProvisioningOrchestrator:
    """Single onboarding workflow instance for one identity"""

    def __init__(
        self,
        session: SessionContext,
        profile_submitter: ProfileSubmitter,
        account_provisioner: AccountProvisioner,
        card_provisioner: CardProvisioner,
        rollback_coordinator: RollbackCoordinator,
        store: ClientStore,
        audit_trail: Optional[AuditTrail] = None,
        account_type: Optional[str] = None,
        recreate_account_on_retry: bool = False
    ):
        self.session = session
        self.profile_submitter = profile_submitter
        self.account_provisioner = account_provisioner
        self.card_provisioner = card_provisioner
        self.rollback_coordinator = rollback_coordinator
        self.store = store
        self.audit_trail = audit_trail
        self.account_type = account_type
        self.recreate_account_on_retry = recreate_account_on_retry

        self._state = ProvisioningState(identity_id=session.identity_id)
        self._guard = threading.Lock()
        self._account: Optional[Account] = None
        self._disclosure: Optional[SecretDisclosure] = None
        self.profile: Optional[Profile] = None

    @property
    def identity_id(self) -> str:
        return self.session.identity_id

    @property
    def state(self) -> ProvisioningState:
        """Snapshot of the provisioning state"""
        return self._state.snapshot()

    @property
    def in_flight(self) -> bool:
        return self._guard.locked()

    # Entry points

    def submit_profile(self, form: ProfileForm) -> ProvisioningState:
        """
        Start an onboarding attempt from a profile submission.

        Returns:
            State snapshot after the attempt ran as far as it could

        Raises:
            WorkflowInProgressError: Another attempt is running for this identity
            WorkflowStateError: The current phase does not accept a submission
        """
        with self._in_flight():
            phase = self._state.phase
            if phase not in STARTABLE_PHASES:
                raise WorkflowStateError(f"Cannot submit profile while {phase.value}")
            if phase == Phase.AUTH_FAILED and not self.session.is_authenticated:
                raise WorkflowStateError("Re-authenticate before starting a new attempt")

            self._begin_attempt()
            try:
                self._run_attempt(form)
            except OnboardingError as e:
                self._handle_failure(e)
            return self.state

    def retry(self) -> ProvisioningState:
        """
        Retry card issuance after a compensated card failure.

        Raises:
            WorkflowInProgressError: Another action is running for this identity
            WorkflowStateError: The workflow is not awaiting a retry
        """
        with self._in_flight():
            if self._state.phase != Phase.AWAITING_RETRY:
                raise WorkflowStateError(f"Nothing to retry while {self._state.phase.value}")

            self._state.retry_count += 1
            self._audit(AuditEventType.RETRY_REQUESTED, 'account', self._state.account_id,
                        {'retry_count': self._state.retry_count})
            try:
                if self.recreate_account_on_retry and self._state.rollback_confirmed:
                    # The recorded account was deleted; open a replacement first
                    self._create_account()
                self._issue_card()
            except OnboardingError as e:
                self._handle_failure(e)
            return self.state

    def reveal_secret(self) -> Union[Card, SafeCard]:
        """
        Hand the new card to the presentation layer.

        The first call while disclosing returns the card with its temporary
        PIN; every other read returns the redacted card.
        """
        with self._in_flight():
            if self._state.phase == Phase.DISCLOSING_SECRET and self._disclosure:
                return self._disclosure.reveal()
            if self._state.phase == Phase.DONE:
                card = self.store.get_card(self.identity_id)
                if card is not None:
                    return card
            raise WorkflowStateError(f"No card to show while {self._state.phase.value}")

    def acknowledge_secret(self) -> SafeCard:
        """Confirm the PIN was seen; the PIN is discarded and the attempt completes"""
        with self._in_flight():
            if self._state.phase != Phase.DISCLOSING_SECRET or self._disclosure is None:
                raise WorkflowStateError(f"No secret to acknowledge while {self._state.phase.value}")

            safe_card = self._disclosure.acknowledge()
            self._disclosure = None
            self.store.save_card(self.identity_id, safe_card)

            self._audit(AuditEventType.SECRET_ACKNOWLEDGED, 'card', safe_card.id or safe_card.masked_number)
            self._transition(Phase.DONE)
            self._audit(AuditEventType.ONBOARDING_COMPLETED, 'identity', self.identity_id,
                        {'account_id': self._state.account_id, 'card_id': safe_card.id})
            return safe_card

    def abandon(self) -> ProvisioningState:
        """Drop the current attempt, e.g. when the user logs in again"""
        with self._in_flight():
            previous = self._state
            if previous.phase == Phase.AWAITING_RETRY and not previous.rollback_confirmed:
                logger.warning(
                    f"Abandoning attempt {previous.attempt_id} with account "
                    f"{previous.account_id} still open remotely"
                )
            if previous.phase != Phase.IDLE:
                self._audit(AuditEventType.ONBOARDING_ABANDONED, 'identity', self.identity_id,
                            {'phase': previous.phase, 'account_id': previous.account_id})

            self._disclosure = None
            self._account = None
            self._state = ProvisioningState(identity_id=self.identity_id)
            return self.state

    # Workflow steps

    def _run_attempt(self, form: ProfileForm) -> None:
        self._transition(Phase.SUBMITTING_PROFILE)
        self.profile = self.profile_submitter.submit(self.identity_id, form)
        self._audit(AuditEventType.PROFILE_SUBMITTED, 'identity', self.identity_id,
                    {'has_image': self.profile.profile_image_reference is not None})

        existing = self.store.get_account(self.identity_id)
        if existing is not None and self.store.has_completed(self.identity_id):
            # Already onboarded: the submission only refreshes the profile
            self._account = existing
            self._state.account_id = existing.id
            self._transition(Phase.DONE)
            self._audit(AuditEventType.ONBOARDING_COMPLETED, 'identity', self.identity_id,
                        {'account_id': existing.id, 'profile_only': True})
            return

        self._create_account()
        self._issue_card()

    def _create_account(self) -> None:
        self._transition(Phase.CREATING_ACCOUNT)
        account = self.account_provisioner.create(self.identity_id, self.account_type)

        # Recorded before anything else can fail
        self._account = account
        self._state.account_id = account.id
        self._state.rollback_confirmed = None
        self._audit(AuditEventType.ACCOUNT_CREATED, 'account', account.id,
                    {'identity_id': self.identity_id, 'account_type': account.account_type})

    def _issue_card(self) -> None:
        self._transition(Phase.CREATING_CARD)
        account_id = self._state.account_id
        try:
            card = self.card_provisioner.create(self._account)
        except AuthError:
            raise
        except OnboardingError as e:
            self._compensate(account_id, e)
            return

        self._disclose(card)

    def _compensate(self, account_id: str, error: OnboardingError) -> None:
        """Roll back the committed account and wait for the user to retry"""
        self._record_error(error)
        self._log("warning", f"Card issuance failed for account {account_id}: {error.message}",
                  action="card_issue_failed")
        self._audit(AuditEventType.CARD_ISSUE_FAILED, 'account', account_id,
                    {'error_kind': error.kind, 'error': error.message})

        self._transition(Phase.ROLLING_BACK)
        outcome = self.rollback_coordinator.rollback(
            account_id, identity_id=self.identity_id, attempt_id=self._state.attempt_id
        )
        self._state.rollback_confirmed = outcome.confirmed

        if outcome.credential_rejected:
            self._enter_auth_failed(outcome.failure.cause)
            return
        self._transition(Phase.AWAITING_RETRY)

    def _disclose(self, card: Card) -> None:
        disclosure = SecretDisclosure(card)
        safe_card = disclosure.safe_card

        # Persist before disclosure so an abandoned reveal never causes a second account
        self.store.save_account(self.identity_id, self._account)
        self.store.save_card(self.identity_id, safe_card)

        self._disclosure = disclosure
        self._state.last_error = None
        self._audit(AuditEventType.CARD_ISSUED, 'card', safe_card.id or safe_card.masked_number,
                    {'account_id': card.account_id, 'card_last4': safe_card.card_number[-4:]})
        self._transition(Phase.DISCLOSING_SECRET)

    # Failure handling

    def _handle_failure(self, error: OnboardingError) -> None:
        if isinstance(error, AuthError):
            self._enter_auth_failed(error)
        else:
            self._halt(error)

    def _halt(self, error: OnboardingError) -> None:
        """
        Stop at the failing step without advancing or compensating.

        The phase returns to IDLE so a corrected profile can be submitted;
        the step that failed is kept in failed_phase.
        """
        failed_phase = self._state.phase
        self._record_error(error)
        self._state.failed_phase = failed_phase
        self._log("warning", f"Onboarding halted at {failed_phase.value}: {error.message}",
                  action="halted")
        self._audit(AuditEventType.ONBOARDING_HALTED, 'identity', self.identity_id,
                    {'failed_phase': failed_phase, 'error_kind': error.kind})

        # No account is live at this point; the attempt is over
        self._account = None
        self._state.account_id = None
        self._transition(Phase.IDLE)

    def _enter_auth_failed(self, error: OnboardingError) -> None:
        failed_phase = self._state.phase
        self._record_error(error)
        self._state.failed_phase = failed_phase

        account_id = self._state.account_id
        if account_id and not self._state.rollback_confirmed and self._disclosure is None:
            # A rejected credential cannot delete it either; flag for reconciliation
            self._state.orphaned_account_id = account_id
            self._log("warning", f"Account {account_id} left uncompensated after auth failure",
                      action="account_orphaned")
            self._audit(AuditEventType.ACCOUNT_ORPHANED, 'account', account_id,
                        {'identity_id': self.identity_id, 'failed_phase': failed_phase})

        self.session.invalidate()
        self._audit(AuditEventType.AUTH_FAILED, 'identity', self.identity_id,
                    {'failed_phase': failed_phase, 'status_code': error.status_code})
        self._transition(Phase.AUTH_FAILED)

    # Helpers

    @contextmanager
    def _in_flight(self):
        """Reject a second action while one is running for this identity"""
        if not self._guard.acquire(blocking=False):
            raise WorkflowInProgressError(
                f"Onboarding for identity {self.identity_id} is already in progress"
            )
        try:
            yield
        finally:
            self._guard.release()

    def _begin_attempt(self) -> None:
        self._state = ProvisioningState(
            identity_id=self.identity_id,
            attempt_id=str(uuid.uuid4())
        )
        self._account = None
        self._disclosure = None
        self._audit(AuditEventType.ONBOARDING_STARTED, 'identity', self.identity_id)

    def _transition(self, phase: ProvisioningPhase) -> None:
        current = self._state.phase
        if phase not in TRANSITIONS[current]:
            raise WorkflowStateError(f"Invalid transition {current.value} -> {phase.value}")
        self._state.phase = phase
        self._state.updated_at = datetime.now(timezone.utc)
        self._log("info", f"{current.value} -> {phase.value}", action="transition")

    def _record_error(self, error: OnboardingError) -> None:
        self._state.last_error = ErrorInfo.from_error(error)

    def _log(self, level: str, message: str, action: Optional[str] = None) -> None:
        log_action(
            logger, level, message,
            identity_id=self.identity_id,
            action=action,
            phase=self._state.phase.value,
            attempt_id=self._state.attempt_id
        )

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id,
               metadata: Optional[dict] = None) -> None:
        if self.audit_trail is None:
            return
        self.audit_trail.log_event(
            event_type, entity_type, str(entity_id), metadata or {},
            attempt_id=self._state.attempt_id
        )
