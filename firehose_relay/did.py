"""DID resolution against the PLC directory.

Follows the DID PLC method: ``GET {directory}/{did}`` returns the DID
document as JSON.
"""

from typing import Optional

import httpx
from pydantic import ValidationError

from .errors import DIDResolutionError, InvalidDIDError
from .logging_setup import get_logger
from .types import DIDDocument

logger = get_logger(__name__)


def validate_did_format(did: str) -> None:
    if not did.startswith("did:plc:"):
        raise InvalidDIDError('Invalid DID format. Must start with "did:plc:"')
    if len(did.split(":")) != 3:
        raise InvalidDIDError('Invalid DID format. Must contain exactly two ":" separators')


class DIDResolver:
    """Resolve ``did:plc`` identifiers with a bounded request timeout."""

    def __init__(
            self,
            base_url: str = "https://plc.directory",
            timeout: float = 5.0,
            client: Optional[httpx.AsyncClient] = None,
        ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get(self, url: str) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._client is not None:
            return await self._client.get(url, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, headers=headers)

    async def resolve(self, did: str) -> DIDDocument:
        """Return the DID document for ``did``.

        Raises :class:`DIDResolutionError` on malformed DIDs, network failures,
        non-2xx responses and responses that are not DID documents.
        """
        validate_did_format(did)
        url = f"{self.base_url}/{did}"

        try:
            response = await self._get(url)
        except httpx.TimeoutException as e:
            logger.warning("did_resolve_timeout", did=did, timeout=self.timeout)
            raise DIDResolutionError("Timed out during DID resolution") from e
        except httpx.HTTPError as e:
            logger.warning("did_resolve_network_error", did=did, error=str(e))
            raise DIDResolutionError("Network error during DID resolution") from e

        if not response.is_success:
            raise DIDResolutionError(
                f"Failed to resolve DID: {response.reason_phrase}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DIDResolutionError("Invalid response: not JSON") from e

        if not isinstance(data, dict):
            raise DIDResolutionError("Invalid response: not an object")
        try:
            return DIDDocument.model_validate(data)
        except ValidationError as e:
            raise DIDResolutionError("Invalid response: missing required fields") from e
