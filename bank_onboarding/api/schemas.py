"""
Pydantic schemas for API requests and responses
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..models import Card, ProfileForm, SafeCard


class ProfileRequest(BaseModel):
    first_name: str = Field(..., description="Given name")
    last_name: str = Field(..., description="Family name")
    phone_number: str = Field(..., description="Phone number, digits with optional +, spaces, () and -")
    address: str

    def to_form(self) -> ProfileForm:
        return ProfileForm(
            first_name=self.first_name,
            last_name=self.last_name,
            phone_number=self.phone_number,
            address=self.address
        )


class ErrorModel(BaseModel):
    kind: str
    message: str
    user_message: str
    status_code: Optional[int] = None


class ProvisioningStateResponse(BaseModel):
    identity_id: str
    attempt_id: Optional[str] = None
    phase: str
    account_id: Optional[str] = None
    last_error: Optional[ErrorModel] = None
    failed_phase: Optional[str] = None
    rollback_confirmed: Optional[bool] = None
    orphaned_account_id: Optional[str] = None
    retry_count: int = 0
    can_retry: bool = False
    updated_at: str


class CardModel(BaseModel):
    id: Optional[str] = None
    account_id: Optional[str] = None
    card_number: str
    masked_number: str
    cvv: Optional[str] = None
    expiry: Optional[str] = None
    card_type: str = "DEBIT"

    @classmethod
    def from_card(cls, card: SafeCard) -> 'CardModel':
        return cls(masked_number=card.masked_number, **card.to_dict())


class SecretResponse(BaseModel):
    card: CardModel
    temp_pin: Optional[str] = Field(None, description="Present on the first reveal only")

    @classmethod
    def from_reveal(cls, card) -> 'SecretResponse':
        """Leave temp_pin unset for a redacted card so it is omitted from the response"""
        if isinstance(card, Card):
            if card.temp_pin:
                return cls(card=CardModel.from_card(card.redact()), temp_pin=card.temp_pin)
            card = card.redact()
        return cls(card=CardModel.from_card(card))


class AccountModel(BaseModel):
    id: Optional[str] = None
    account_number: Optional[str] = None
    account_type: str
    balance: str = Field(..., description="Decimal amount as string")
    status: str


class ProfileImageResponse(BaseModel):
    image_reference: str
    image_url: Optional[str] = None


def state_response(data: Dict[str, Any]) -> ProvisioningStateResponse:
    return ProvisioningStateResponse(**data)
