# grantledger/services/token_gateway.py
from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from grantledger.core.errors import ExternalCallError, ParameterError

logger = logging.getLogger(__name__)


class TokenGateway(Protocol):
    """
    Fungible-token boundary. A transfer either fully happens or raises
    ExternalCallError; the caller's transaction is rolled back on raise.
    """

    def transfer_from(self, *, token: str, sender: str, recipient: str, amount: int) -> str:
        ...


class HttpTokenGateway:
    """
    Talks to the payment-rail service over HTTP.

    POST {base_url}/transfers  {"token", "from", "to", "amount"}
    -> 2xx {"transaction_hash": "..."}
    """

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.Client] = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    def transfer_from(self, *, token: str, sender: str, recipient: str, amount: int) -> str:
        if amount <= 0:
            raise ParameterError("Transfer amount must be positive.")

        body = {"token": token, "from": sender, "to": recipient, "amount": str(amount)}
        try:
            if self._client is not None:
                resp = self._client.post(f"{self._base_url}/transfers", json=body, timeout=self._timeout)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    resp = client.post(f"{self._base_url}/transfers", json=body)
        except httpx.HTTPError as e:
            logger.warning("token transfer transport failure", extra={"token": token, "error": str(e)})
            raise ExternalCallError(f"Token transfer failed: {e}") from e

        if resp.status_code // 100 != 2:
            logger.warning(
                "token transfer rejected",
                extra={"token": token, "status_code": resp.status_code},
            )
            raise ExternalCallError(f"Token transfer rejected ({resp.status_code}): {resp.text}")

        try:
            return str(resp.json().get("transaction_hash", ""))
        except ValueError:
            return ""


class UnconfiguredTokenGateway:
    """
    Used when no payment rail is configured: every transfer fails.
    """

    def transfer_from(self, *, token: str, sender: str, recipient: str, amount: int) -> str:
        raise ExternalCallError("Token gateway is not configured.")
