"""Subscriber authentication against the account service.

Clients obtain an anonymous session from the account service themselves and
present it as ``Authorization: Bearer <token>``. The relay accepts the token
when the service returns an account whose ``$id`` equals it.
"""

from typing import Optional

import httpx

from .errors import AuthenticationError
from .logging_setup import get_logger

logger = get_logger(__name__)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]


class AccountVerifier:

    def __init__(
            self,
            endpoint: str,
            project_id: str,
            api_key: str,
            timeout: float = 5.0,
            debug: bool = False,
            client: Optional[httpx.AsyncClient] = None,
        ):
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.api_key = api_key
        self.timeout = timeout
        self.debug = debug
        self._client = client

    async def _get_account(self, token: str) -> httpx.Response:
        url = f"{self.endpoint}/account"
        headers = {
            "X-Appwrite-Project": self.project_id,
            "X-Appwrite-Key": self.api_key,
            "X-Appwrite-Session": token,
        }
        if self._client is not None:
            return await self._client.get(url, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, headers=headers)

    async def verify(self, authorization: Optional[str]) -> Optional[str]:
        """Return the verified token, or None when running in debug mode."""
        if self.debug:
            logger.info("auth_skipped", reason="debug mode")
            return None

        token = bearer_token(authorization)
        if token is None:
            raise AuthenticationError("Missing bearer token")
        if not self.endpoint:
            raise AuthenticationError("Account service is not configured")

        try:
            response = await self._get_account(token)
        except httpx.HTTPError as e:
            logger.warning("auth_request_failed", error=str(e))
            raise AuthenticationError("Account service unreachable") from e

        if not response.is_success:
            raise AuthenticationError(f"Account service rejected session ({response.status_code})")

        try:
            account = response.json()
        except ValueError as e:
            raise AuthenticationError("Account service returned invalid JSON") from e

        if not isinstance(account, dict) or account.get("$id") != token:
            raise AuthenticationError("Session does not match account")
        return token
