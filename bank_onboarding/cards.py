"""
Card Provisioner Module

Issues one payment card bound to a confirmed account. The response is the only
place the temporary PIN ever appears.
"""

import logging

from .client import BankingAPIClient
from .errors import ProvisioningError
from .models import Account, Card

logger = logging.getLogger("bank_onboarding.cards")


class CardProvisioner:
    """Issues cards through the banking service"""
    
    def __init__(self, client: BankingAPIClient):
        self.client = client
    
    def create(self, account: Account) -> Card:
        """
        Create one card for the account.
        
        Raises:
            ProvisioningError: The account is not confirmed, or no card number in the response
        """
        if account is None or not account.is_confirmed:
            raise ProvisioningError("Cannot issue a card without a confirmed account")
        
        account_id = account.id
        data = self.client.create_card(account_id)
        card = Card.from_api(data, account_id=account_id)
        if not card.card_number:
            raise ProvisioningError("Card creation failed or missing cardNumber")
        
        # Card number and PIN stay out of the log
        logger.info(f"Card issued for account {account_id}")
        return card
