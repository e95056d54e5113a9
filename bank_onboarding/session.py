"""
Session Context Module

Holds the bearer credential and identity reference supplied to every remote
call. The credential is cleared entirely when the service rejects it.
"""

import hmac
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Optional

import jwt

from .errors import AuthError

logger = logging.getLogger("bank_onboarding.session")


class SessionContext:
    """Credential and identity for one signed-in user"""
    
    def __init__(self, identity_id: str, credential: Optional[str] = None):
        if not identity_id:
            raise ValueError("identity_id is required")
        self.identity_id = str(identity_id)
        self._credential = credential or None
        self._lock = threading.Lock()
    
    @property
    def is_authenticated(self) -> bool:
        with self._lock:
            return self._credential is not None and not self._is_expired(self._credential)
    
    def authenticate(self, credential: Optional[str]) -> None:
        """Install a credential issued by the login flow"""
        with self._lock:
            self._credential = credential or None
    
    def claim(self, credential: str) -> bool:
        """
        Install the caller's credential unless a different live one is held.
        
        Returns:
            False when another unexpired credential owns this session
        """
        with self._lock:
            current = self._credential
            if current is not None and not self._is_expired(current) and not _same(current, credential):
                return False
            self._credential = credential
            return True
    
    def holds(self, credential: Optional[str]) -> bool:
        """True if credential is the session's current, unexpired credential"""
        with self._lock:
            current = self._credential
        if current is None or not credential or not _same(current, credential):
            return False
        return not self._is_expired(current)
    
    def invalidate(self) -> None:
        """Drop the credential after an authorization failure"""
        with self._lock:
            had_credential = self._credential is not None
            self._credential = None
        if had_credential:
            logger.info(f"Session credential cleared for identity {self.identity_id}")
    
    def require_credential(self) -> str:
        """
        Return the credential for an outgoing call.
        
        Raises:
            AuthError: If no credential is present or it has expired
        """
        with self._lock:
            credential = self._credential
        if credential is None:
            raise AuthError("No auth token, please login")
        if self._is_expired(credential):
            raise AuthError("Auth token expired, please login")
        return credential
    
    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.require_credential()}"}
    
    @staticmethod
    def _is_expired(credential: str) -> bool:
        """
        Check the exp claim of a JWT credential.
        
        The signature is verified by the banking service, not here; opaque
        tokens are never considered expired.
        """
        try:
            claims = jwt.decode(credential, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return False
        exp = claims.get("exp")
        if exp is None:
            return False
        try:
            return datetime.now(timezone.utc).timestamp() >= float(exp)
        except (TypeError, ValueError):
            return False


def _same(first: str, second: str) -> bool:
    return hmac.compare_digest(first.encode("utf-8"), second.encode("utf-8"))
