"""
Onboarding Data Model

Profile, account and card records exchanged with the banking service, the
redacted card view that is safe to persist, and the provisioning state that
drives the onboarding workflow.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Any
from enum import Enum
import re

from .errors import ErrorInfo, ValidationError


PHONE_PATTERN = re.compile(r'^\+?[0-9][0-9 ()-]{5,18}[0-9]$')


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class ProvisioningPhase(Enum):
    """Phases of one onboarding attempt"""
    IDLE = "idle"
    SUBMITTING_PROFILE = "submitting_profile"
    CREATING_ACCOUNT = "creating_account"
    CREATING_CARD = "creating_card"
    ROLLING_BACK = "rolling_back"
    AWAITING_RETRY = "awaiting_retry"
    DISCLOSING_SECRET = "disclosing_secret"
    DONE = "done"
    AUTH_FAILED = "auth_failed"


@dataclass
class ProfileForm:
    """Personal details as submitted by the user"""
    first_name: str
    last_name: str
    phone_number: str
    address: str
    
    def validate(self) -> 'ProfileForm':
        """
        Return a normalized copy of the form.
        
        Raises:
            ValidationError: If a required field is blank or the phone is malformed
        """
        values = {
            'first_name': (self.first_name or "").strip(),
            'last_name': (self.last_name or "").strip(),
            'phone_number': (self.phone_number or "").strip(),
            'address': (self.address or "").strip(),
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        
        if not PHONE_PATTERN.match(values['phone_number']):
            raise ValidationError("Invalid phone number format")
        
        return ProfileForm(**values)
    
    def to_payload(self) -> Dict[str, str]:
        """Wire representation for UpdateProfile"""
        return {
            'firstName': self.first_name,
            'lastName': self.last_name,
            'phoneNumber': self.phone_number,
            'address': self.address,
        }


@dataclass
class Profile:
    """Profile as returned by the banking service"""
    identity_id: str
    first_name: str
    last_name: str
    phone_number: str
    address: str
    profile_image_reference: Optional[str] = None
    profile_image_url: Optional[str] = None
    
    @classmethod
    def from_api(cls, identity_id: str, data: Dict[str, Any], form: ProfileForm) -> 'Profile':
        """Merge the service response over the submitted form"""
        return cls(
            identity_id=identity_id,
            first_name=data.get('firstName') or form.first_name,
            last_name=data.get('lastName') or form.last_name,
            phone_number=data.get('phoneNumber') or form.phone_number,
            address=data.get('address') or form.address,
            profile_image_reference=_optional_str(data.get('profileImageUrl')),
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'identity_id': self.identity_id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone_number': self.phone_number,
            'address': self.address,
            'profile_image_reference': self.profile_image_reference,
            'profile_image_url': self.profile_image_url,
        }


@dataclass
class Account:
    """Financial account; the account number is assigned by the service"""
    id: Optional[str]
    account_number: Optional[str]
    account_type: str = "SAVINGS"
    balance: Decimal = Decimal('0')
    status: str = "ACTIVE"
    
    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Account':
        # The service has used several spellings for the identifier
        account_id = data.get('id', data.get('accountId', data.get('account_id')))
        try:
            balance = Decimal(str(data.get('balance') or '0'))
        except InvalidOperation:
            balance = Decimal('0')
        return cls(
            id=_optional_str(account_id),
            account_number=_optional_str(data.get('accountNumber')),
            account_type=data.get('accountType') or "SAVINGS",
            balance=balance,
            status=data.get('status') or "ACTIVE",
        )
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        return cls(
            id=data['id'],
            account_number=data['account_number'],
            account_type=data['account_type'],
            balance=Decimal(data['balance']),
            status=data['status'],
        )
    
    @property
    def is_confirmed(self) -> bool:
        """Both identifiers are present, so a card may be bound to it"""
        return bool(self.id) and bool(self.account_number)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'account_number': self.account_number,
            'account_type': self.account_type,
            'balance': str(self.balance),
            'status': self.status,
        }


@dataclass(frozen=True)
class SafeCard:
    """Card with the temporary PIN removed; the only persistable card form"""
    id: Optional[str]
    account_id: Optional[str]
    card_number: str
    cvv: Optional[str]
    expiry: Optional[str]
    card_type: str = "DEBIT"
    
    @property
    def masked_number(self) -> str:
        return f"**** **** **** {self.card_number[-4:]}"
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SafeCard':
        return cls(
            id=data.get('id'),
            account_id=data.get('account_id'),
            card_number=data['card_number'],
            cvv=data.get('cvv'),
            expiry=data.get('expiry'),
            card_type=data.get('card_type') or "DEBIT",
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'account_id': self.account_id,
            'card_number': self.card_number,
            'cvv': self.cvv,
            'expiry': self.expiry,
            'card_type': self.card_type,
        }


@dataclass(frozen=True)
class Card:
    """Freshly issued card, still carrying its temporary PIN"""
    id: Optional[str]
    account_id: Optional[str]
    card_number: Optional[str]
    cvv: Optional[str]
    expiry: Optional[str]
    temp_pin: Optional[str] = field(default=None, repr=False)
    card_type: str = "DEBIT"
    
    @classmethod
    def from_api(cls, data: Dict[str, Any], account_id: Optional[str] = None) -> 'Card':
        return cls(
            id=_optional_str(data.get('id')),
            account_id=_optional_str(data.get('accountId')) or account_id,
            card_number=_optional_str(data.get('cardNumber')),
            cvv=_optional_str(data.get('cvv')),
            expiry=_optional_str(data.get('expiry')),
            temp_pin=_optional_str(data.get('tempPin')),
            card_type=data.get('cardType') or "DEBIT",
        )
    
    def redact(self) -> SafeCard:
        """Pure transformation dropping the PIN; this card is left untouched"""
        return SafeCard(
            id=self.id,
            account_id=self.account_id,
            card_number=self.card_number or "",
            cvv=self.cvv,
            expiry=self.expiry,
            card_type=self.card_type,
        )


@dataclass
class ProvisioningState:
    """Mutable record driving one onboarding attempt; owned by the orchestrator"""
    identity_id: str
    attempt_id: Optional[str] = None
    phase: ProvisioningPhase = ProvisioningPhase.IDLE
    account_id: Optional[str] = None
    last_error: Optional[ErrorInfo] = None
    failed_phase: Optional[ProvisioningPhase] = None
    rollback_confirmed: Optional[bool] = None
    orphaned_account_id: Optional[str] = None
    retry_count: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    
    def snapshot(self) -> 'ProvisioningState':
        """Copy handed to readers so only the orchestrator mutates the original"""
        return replace(self)
    
    @property
    def can_retry(self) -> bool:
        return self.phase == ProvisioningPhase.AWAITING_RETRY
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'identity_id': self.identity_id,
            'attempt_id': self.attempt_id,
            'phase': self.phase.value,
            'account_id': self.account_id,
            'last_error': self.last_error.to_dict() if self.last_error else None,
            'failed_phase': self.failed_phase.value if self.failed_phase else None,
            'rollback_confirmed': self.rollback_confirmed,
            'orphaned_account_id': self.orphaned_account_id,
            'retry_count': self.retry_count,
            'can_retry': self.can_retry,
            'updated_at': self.updated_at.isoformat(),
        }
