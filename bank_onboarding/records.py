"""
Client Store Module

Durable client-side records surfaced to the dashboard, pay and transaction
views after onboarding: the account and the redacted card, keyed by identity.
"""

import logging
from typing import Optional

from .errors import SensitiveDataError
from .models import Account, SafeCard
from .storage import StorageInterface

logger = logging.getLogger("bank_onboarding.records")


class ClientStore:
    """Keyed access to the persisted onboarding records"""
    
    ACCOUNTS_TABLE = "onboarding_accounts"
    CARDS_TABLE = "onboarding_cards"
    
    def __init__(self, storage: StorageInterface):
        self.storage = storage
    
    def save_account(self, identity_id: str, account: Account) -> None:
        self.storage.save(self.ACCOUNTS_TABLE, str(identity_id), account.to_dict())
    
    def save_card(self, identity_id: str, card: SafeCard) -> None:
        """Persist the redacted card; a card still holding its PIN is refused"""
        if not isinstance(card, SafeCard):
            raise SensitiveDataError("Only redacted cards may be persisted")
        self.storage.save(self.CARDS_TABLE, str(identity_id), card.to_dict())
    
    def get_account(self, identity_id: str) -> Optional[Account]:
        data = self.storage.load(self.ACCOUNTS_TABLE, str(identity_id))
        return Account.from_dict(data) if data else None
    
    def get_card(self, identity_id: str) -> Optional[SafeCard]:
        data = self.storage.load(self.CARDS_TABLE, str(identity_id))
        return SafeCard.from_dict(data) if data else None
    
    def has_completed(self, identity_id: str) -> bool:
        """True once an account and its card are both on record"""
        return (self.storage.exists(self.ACCOUNTS_TABLE, str(identity_id))
                and self.storage.exists(self.CARDS_TABLE, str(identity_id)))
    
    def clear(self, identity_id: str) -> None:
        """Forget the identity's records, as on logout"""
        self.storage.delete(self.ACCOUNTS_TABLE, str(identity_id))
        self.storage.delete(self.CARDS_TABLE, str(identity_id))
        logger.info(f"Cleared stored onboarding records for identity {identity_id}")
