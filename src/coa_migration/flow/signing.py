"""Local and remote signers for Flow transaction roles."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping
from typing import Any

import requests
from eth_keys import keys

from ..base import SigningBackend
from ..config import HASH_ALGORITHMS
from ..constants import DEFAULT_REQUEST_TIMEOUT, HTTP_STATUS_TOO_MANY_REQUESTS, Network, get_network
from ..exceptions import AuthorizationFailure, ValidationError
from ..types import RateLimited, Signable, SigningRole
from ..utils import hex_to_byte_array

logger = logging.getLogger(__name__)

REMOTE_SIGNING_PATHS = {
    SigningRole.FEE_PAYER: "/api/signAsFeePayer",
    SigningRole.BRIDGE_PAYER: "/api/signAsBridgePayer",
}


class LocalKeySigner:
    """secp256k1 signer for the proposer's account key.

    Flow signatures are the raw 32-byte ``r`` and ``s`` values of an ECDSA
    signature over the SHA2-256 or SHA3-256 digest of the message.
    """

    def __init__(self, private_key: str | bytes, hash_algorithm: str = "SHA2_256") -> None:
        if hash_algorithm not in HASH_ALGORITHMS:
            raise ValidationError(
                "Unsupported hash algorithm", field="hash_algorithm", value=hash_algorithm
            )
        raw = hex_to_byte_array(private_key) if isinstance(private_key, str) else private_key
        if len(raw) != 32:
            raise ValidationError("Private key must be 32 bytes", field="private_key", value="***")
        self._key = keys.PrivateKey(raw)
        self._hash_algorithm = hash_algorithm

    @property
    def public_key(self) -> str:
        return self._key.public_key.to_hex()

    def digest(self, message: bytes) -> bytes:
        if self._hash_algorithm == "SHA3_256":
            return hashlib.sha3_256(message).digest()
        return hashlib.sha256(message).digest()

    def sign(self, message: str) -> str:
        """Sign a hex-encoded message and return the hex ``r || s`` signature."""
        signature = self._key.sign_msg_hash(self.digest(hex_to_byte_array(message)))
        return (signature.r.to_bytes(32, "big") + signature.s.to_bytes(32, "big")).hex()


class FlowSigningBackend(SigningBackend):
    """Signs as the proposer locally and as sponsored payers through the wallet API."""

    def __init__(
        self,
        local_signer: LocalKeySigner,
        wallet_api_url: str,
        network: Network | str,
        *,
        session: requests.Session | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._local_signer = local_signer
        self._wallet_api_url = wallet_api_url.rstrip("/")
        self._network = get_network(network)
        self._session = session or requests.Session()
        self._request_timeout = request_timeout

    async def sign_local(self, message: str) -> str:
        return self._local_signer.sign(message)

    async def sign_remote(self, role: SigningRole, signable: Signable) -> str | RateLimited:
        path = REMOTE_SIGNING_PATHS.get(role)
        if path is None:
            raise AuthorizationFailure(f"No remote signer for role {role.value}", role=role.value)

        url = f"{self._wallet_api_url}{path}"
        message_key = "envelopeMessage" if role is SigningRole.FEE_PAYER else "payload"
        body = {"transaction": dict(signable.voucher), "message": {message_key: signable.message}}

        logger.debug("Stage SIGN [%s]: requesting remote signature (url=%s)", role.value, url)
        try:
            response = self._session.post(
                url,
                json=body,
                headers={"network": self._network.value},
                timeout=self._request_timeout,
            )
        except requests.RequestException as exc:
            raise AuthorizationFailure(
                f"{role.value} signing request failed",
                role=role.value,
                details={"endpoint": url, "error": str(exc)},
            ) from exc

        if response.status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
            return self._rate_limited(role, response, self._safe_json(response))

        if response.status_code >= 400:
            raise AuthorizationFailure(
                f"{role.value} signing request returned HTTP {response.status_code}",
                role=role.value,
                details={"endpoint": url, "body": response.text[:500]},
            )

        envelope = self._safe_json(response)
        if envelope.get("status") == HTTP_STATUS_TOO_MANY_REQUESTS:
            return self._rate_limited(role, response, envelope)

        data = envelope.get("data")
        signature = data.get("sig") if isinstance(data, Mapping) else None
        if not isinstance(signature, str) or not signature:
            raise AuthorizationFailure(
                f"{role.value} signing response missing signature",
                role=role.value,
                details={"endpoint": url, "response": envelope},
            )

        logger.debug("Stage SIGN [%s]: remote signature received", role.value)
        return signature

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _safe_json(response: requests.Response) -> Mapping[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, Mapping) else {}

    @staticmethod
    def _rate_limited(
        role: SigningRole, response: requests.Response, body: Mapping[str, Any]
    ) -> RateLimited:
        retry_after: float | None = None
        header = response.headers.get("Retry-After")
        if header:
            try:
                retry_after = float(header)
            except ValueError:
                retry_after = None

        message = str(body.get("message") or "Too Many Requests")
        logger.warning(
            "Stage SIGN [%s]: rate limited (retry_after=%s, message=%s)",
            role.value,
            retry_after,
            message,
        )
        return RateLimited(role=role, message=message, retry_after=retry_after)
