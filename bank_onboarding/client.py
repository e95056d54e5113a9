"""
Banking API Client Module

REST client for the remote banking service that owns profiles, accounts and
cards. Translates transport failures and HTTP status codes into the onboarding
error taxonomy so callers only ever see OnboardingError subclasses.
"""

import httpx
import logging
import time
from typing import Any, Dict, Optional

from .errors import AuthError, ValidationError, TransientError, ProvisioningError
from .session import SessionContext

logger = logging.getLogger("bank_onboarding.client")


class BankingAPIClient:
    """REST client for the banking service"""
    
    def __init__(
        self,
        session: SessionContext,
        base_url: str = "http://localhost:8050",
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(timeout=timeout, transport=transport)
    
    # Remote operations
    
    def update_profile(self, identity_id: str, payload: Dict[str, str]) -> Dict[str, Any]:
        """UpdateProfile: PUT /api/users/{id}"""
        return self._json(self._request("PUT", f"/api/users/{identity_id}", json=payload))
    
    def upload_profile_image(self, identity_id: str, filename: str, content: bytes,
                             content_type: str = "image/jpeg") -> Dict[str, Any]:
        """UploadProfileImage: POST /api/users/{id}/image (multipart)"""
        response = self._request(
            "POST",
            f"/api/users/{identity_id}/image",
            files={"file": (filename, content, content_type)}
        )
        return self._json(response)
    
    def create_account(self, identity_id: str, account_type: str) -> Dict[str, Any]:
        """CreateAccount: POST /api/accounts/{identityId}"""
        response = self._request(
            "POST", f"/api/accounts/{identity_id}", json={"accountType": account_type}
        )
        return self._json(response)
    
    def create_card(self, account_id: str) -> Dict[str, Any]:
        """CreateCard: POST /api/cards"""
        return self._json(self._request("POST", "/api/cards", json={"accountId": account_id}))
    
    def delete_account(self, account_id: str) -> None:
        """DeleteAccount: DELETE /api/accounts/{id}; the body is only an ack"""
        self._request("DELETE", f"/api/accounts/{account_id}")
    
    def health_check(self) -> bool:
        """Check if the banking service is reachable"""
        try:
            r = self._client.get(f"{self.base_url}/api/health")
            return r.status_code == 200
        except httpx.HTTPError:
            return False
    
    def close(self):
        """Close the HTTP client"""
        self._client.close()
    
    # Internals
    
    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Issue one authenticated request and classify the outcome.
        
        Raises:
            AuthError: Missing credential, or 401/403 from the service
            ValidationError: Any other 4xx
            TransientError: Timeout, connection failure or 5xx
        """
        headers = self.session.auth_headers()
        url = f"{self.base_url}{path}"
        
        logger.info(f"API-> {method} {path} token_present=True")
        start = time.time()
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"API timeout on {method} {path} after {self.timeout}s")
            raise TransientError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.warning(f"API connection failed on {method} {path}: {e}")
            raise TransientError(f"Request to banking service failed: {e}") from e
        
        latency_ms = (time.time() - start) * 1000
        logger.info(f"API<- {method} {path} status={response.status_code} latency_ms={latency_ms:.1f}")
        
        status = response.status_code
        if 200 <= status < 300:
            return response
        
        message = self._error_message(response)
        if status in (401, 403):
            raise AuthError(message, status)
        if 400 <= status < 500:
            raise ValidationError(message, status)
        raise TransientError(message, status)
    
    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the service's error text from a JSON or plain body"""
        try:
            body = response.json()
        except ValueError:
            body = response.text
        if isinstance(body, dict):
            body = body.get("error") or body.get("message") or body.get("detail") or body
        text = str(body).strip() if body else ""
        return text or f"HTTP {response.status_code}"
    
    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ProvisioningError("Banking service returned an unreadable response") from e
        if not isinstance(data, dict):
            raise ProvisioningError("Banking service returned an unexpected response")
        return data
