"""
Shared fixtures: an in-process banking service on httpx.MockTransport and the
onboarding components wired against it.
"""

import json
import re
from collections import defaultdict, deque

import httpx
import pytest

from bank_onboarding.storage import InMemoryStorage
from bank_onboarding.audit import AuditTrail
from bank_onboarding.records import ClientStore
from bank_onboarding.session import SessionContext
from bank_onboarding.client import BankingAPIClient
from bank_onboarding.profile import ProfileSubmitter
from bank_onboarding.accounts import AccountProvisioner
from bank_onboarding.cards import CardProvisioner
from bank_onboarding.rollback import RollbackCoordinator
from bank_onboarding.orchestrator import ProvisioningOrchestrator
from bank_onboarding.models import ProfileForm


BASE_URL = "http://bank.test"
CARD_NUMBER = "4111111111111111"
TEMP_PIN = "4821"

ROUTES = [
    ("PUT", re.compile(r"^/api/users/(?P<id>[^/]+)$"), "update_profile"),
    ("POST", re.compile(r"^/api/users/(?P<id>[^/]+)/image$"), "upload_image"),
    ("POST", re.compile(r"^/api/accounts/(?P<id>[^/]+)$"), "create_account"),
    ("DELETE", re.compile(r"^/api/accounts/(?P<id>[^/]+)$"), "delete_account"),
    ("POST", re.compile(r"^/api/cards$"), "create_card"),
    ("GET", re.compile(r"^/api/health$"), "health"),
]


class FakeBankingService:
    """
    Simulated banking service.

    Every request is recorded. Failures are queued per operation and consumed
    in order; an operation with nothing queued succeeds.
    """

    def __init__(self):
        self.calls = []
        self.accounts = {}
        self.next_account_id = 42
        self.next_card_id = 7
        self.profile_image_reference = None
        self._overrides = defaultdict(deque)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(lambda request: self.handler(request))

    def fail(self, operation, status=500, body=None, times=1):
        """Queue an error response for an operation"""
        for _ in range(times):
            self._overrides[operation].append(("status", status, body))

    def timeout(self, operation, times=1):
        """Queue a read timeout for an operation"""
        for _ in range(times):
            self._overrides[operation].append(("timeout", None, None))

    def respond(self, operation, body, status=200):
        """Queue a literal response body for an operation"""
        self._overrides[operation].append(("status", status, body))

    def count(self, operation) -> int:
        return sum(1 for call in self.calls if call["operation"] == operation)

    def calls_for(self, operation):
        return [call for call in self.calls if call["operation"] == operation]

    def handler(self, request: httpx.Request) -> httpx.Response:
        operation, params = self._route(request)
        body = None
        if request.headers.get("content-type", "").startswith("application/json"):
            body = json.loads(request.content or b"null")
        self.calls.append({
            "operation": operation,
            "method": request.method,
            "path": request.url.path,
            "json": body,
            "authorization": request.headers.get("authorization"),
        })

        if self._overrides[operation]:
            kind, status, override = self._overrides[operation].popleft()
            if kind == "timeout":
                raise httpx.ReadTimeout("timed out", request=request)
            if isinstance(override, (dict, list)):
                return httpx.Response(status, json=override)
            return httpx.Response(status, text=override or "")

        return getattr(self, f"_{operation}")(params, body)

    @staticmethod
    def _route(request: httpx.Request):
        for method, pattern, operation in ROUTES:
            match = pattern.match(request.url.path)
            if request.method == method and match:
                return operation, match.groupdict()
        raise AssertionError(f"Unexpected request {request.method} {request.url.path}")

    def _update_profile(self, params, body):
        return httpx.Response(200, json={
            "id": params["id"],
            "profileImageUrl": self.profile_image_reference,
            **body
        })

    def _upload_image(self, params, body):
        self.profile_image_reference = f"{params['id']}-avatar.jpg"
        return httpx.Response(200, json={"profileImageUrl": self.profile_image_reference})

    def _create_account(self, params, body):
        account_id = self.next_account_id
        self.next_account_id += 1
        account = {
            "id": account_id,
            "accountNumber": f"ACC{account_id:06d}",
            "balance": 0.0,
            "accountType": body["accountType"],
            "status": "ACTIVE",
        }
        self.accounts[str(account_id)] = account
        return httpx.Response(200, json=account)

    def _delete_account(self, params, body):
        self.accounts.pop(params["id"], None)
        return httpx.Response(200, text="Account deleted")

    def _create_card(self, params, body):
        card_id = self.next_card_id
        self.next_card_id += 1
        return httpx.Response(200, json={
            "id": card_id,
            "accountId": body["accountId"],
            "cardNumber": CARD_NUMBER,
            "cvv": "123",
            "expiry": "12/29",
            "tempPin": TEMP_PIN,
            "cardType": "DEBIT",
        })

    def _health(self, params, body):
        return httpx.Response(200, json={"status": "UP"})


@pytest.fixture
def banking_service():
    return FakeBankingService()


@pytest.fixture
def session():
    return SessionContext("user-1", "test-token")


@pytest.fixture
def api_client(session, banking_service):
    client = BankingAPIClient(session, base_url=BASE_URL, transport=banking_service.transport)
    yield client
    client.close()


@pytest.fixture
def storage():
    """Create in-memory storage for testing"""
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def store(storage):
    return ClientStore(storage)


@pytest.fixture
def build_orchestrator(session, api_client, store, audit_trail):
    """Factory for orchestrators sharing the fixtures above"""
    def build(**kwargs):
        return ProvisioningOrchestrator(
            session=session,
            profile_submitter=ProfileSubmitter(api_client, f"{BASE_URL}/uploads", audit_trail),
            account_provisioner=AccountProvisioner(api_client),
            card_provisioner=CardProvisioner(api_client),
            rollback_coordinator=RollbackCoordinator(api_client, audit_trail),
            store=store,
            audit_trail=audit_trail,
            **kwargs
        )
    return build


@pytest.fixture
def orchestrator(build_orchestrator):
    return build_orchestrator()


@pytest.fixture
def ada():
    return ProfileForm(
        first_name="Ada",
        last_name="Lovelace",
        phone_number="5551234567",
        address="1 Analytical Engine Way"
    )
