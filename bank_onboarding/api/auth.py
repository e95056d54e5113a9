"""
Authentication and system dependencies
"""

import logging
import threading
from typing import Dict, Optional

import httpx
from fastapi import Depends, Header, HTTPException, status

from ..storage import StorageInterface, InMemoryStorage, SQLiteStorage
from ..audit import AuditTrail
from ..records import ClientStore
from ..session import SessionContext
from ..client import BankingAPIClient
from ..profile import ProfileSubmitter
from ..accounts import AccountProvisioner
from ..cards import CardProvisioner
from ..rollback import RollbackCoordinator
from ..orchestrator import ProvisioningOrchestrator
from ..config import OnboardingConfig, get_config

logger = logging.getLogger("bank_onboarding.api")


class OnboardingSystem:
    """Onboarding components wired from configuration, one workflow per identity"""

    def __init__(
        self,
        config: Optional[OnboardingConfig] = None,
        storage: Optional[StorageInterface] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.config = config or get_config()
        self.transport = transport

        # Initialize storage
        if storage is not None:
            self.storage = storage
        elif self.config.storage_backend == "memory":
            self.storage = InMemoryStorage()
        else:
            self.storage = SQLiteStorage(self.config.storage_path)

        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.store = ClientStore(self.storage)

        self._orchestrators: Dict[str, ProvisioningOrchestrator] = {}
        self._lock = threading.Lock()

    @property
    def image_base_url(self) -> str:
        return f"{self.config.api_base_url.rstrip('/')}/{self.config.image_base_path.strip('/')}"

    def get_orchestrator(self, identity_id: str) -> Optional[ProvisioningOrchestrator]:
        with self._lock:
            return self._orchestrators.get(str(identity_id))

    def orchestrator_for(self, identity_id: str) -> ProvisioningOrchestrator:
        """Get or create the workflow for an identity"""
        identity_id = str(identity_id)
        with self._lock:
            orchestrator = self._orchestrators.get(identity_id)
            if orchestrator is None:
                orchestrator = self._create_orchestrator(identity_id)
                self._orchestrators[identity_id] = orchestrator
            return orchestrator

    def _create_orchestrator(self, identity_id: str) -> ProvisioningOrchestrator:
        session = SessionContext(identity_id)
        client = self._create_client(session)
        return ProvisioningOrchestrator(
            session=session,
            profile_submitter=ProfileSubmitter(client, self.image_base_url, self.audit_trail),
            account_provisioner=AccountProvisioner(client, self.config.default_account_type),
            card_provisioner=CardProvisioner(client),
            rollback_coordinator=RollbackCoordinator(client, self.audit_trail),
            store=self.store,
            audit_trail=self.audit_trail,
            account_type=self.config.default_account_type,
            recreate_account_on_retry=self.config.recreate_account_on_retry
        )

    def _create_client(self, session: SessionContext) -> BankingAPIClient:
        """Create a banking client bound to one session"""
        return BankingAPIClient(
            session,
            base_url=self.config.api_base_url,
            timeout=self.config.request_timeout,
            transport=self.transport
        )

    def health_check(self) -> bool:
        """Check if the banking service is reachable"""
        client = self._create_client(SessionContext("health"))
        try:
            return client.health_check()
        finally:
            client.close()

    def close(self) -> None:
        with self._lock:
            for orchestrator in self._orchestrators.values():
                orchestrator.profile_submitter.client.close()
            self._orchestrators.clear()
        self.storage.close()


# Global onboarding system instance, created on first use
onboarding_system: Optional[OnboardingSystem] = None
_system_lock = threading.Lock()


# Dependency to get onboarding system
def get_onboarding_system() -> OnboardingSystem:
    global onboarding_system
    with _system_lock:
        if onboarding_system is None:
            onboarding_system = OnboardingSystem()
        return onboarding_system


def bearer_credential(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Extract the bearer token from the Authorization header"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


def require_bearer(credential: Optional[str] = Depends(bearer_credential)) -> str:
    """Dependency for every identity route: the caller must present a bearer token"""
    if credential is None:
        logger.warning("Request rejected: missing bearer credential")
        raise unauthorized("No auth token, please login")
    return credential
