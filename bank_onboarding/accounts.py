"""
Account Provisioner Module

Creates the single financial account for an identity. Account creation is not
idempotent: every call opens a new account, so callers must invoke it at most
once per onboarding attempt.
"""

import logging

from .client import BankingAPIClient
from .errors import ProvisioningError
from .models import Account

logger = logging.getLogger("bank_onboarding.accounts")

DEFAULT_ACCOUNT_TYPE = "SAVINGS"


class AccountProvisioner:
    """Opens accounts through the banking service"""
    
    def __init__(self, client: BankingAPIClient, default_account_type: str = DEFAULT_ACCOUNT_TYPE):
        self.client = client
        self.default_account_type = default_account_type
    
    def create(self, identity_id: str, account_type: str = None) -> Account:
        """
        Create one account for the identity.
        
        Returns:
            Account carrying both the internal id and the public account number
            
        Raises:
            ProvisioningError: The service answered 2xx without an id or account number
        """
        account_type = account_type or self.default_account_type
        data = self.client.create_account(identity_id, account_type)
        account = Account.from_api(data)
        
        if not account.is_confirmed:
            missing = "account id" if not account.id else "accountNumber"
            raise ProvisioningError(f"Account creation failed or missing {missing}")
        
        logger.info(f"Account {account.id} ({account.account_type}) created for identity {identity_id}")
        return account
