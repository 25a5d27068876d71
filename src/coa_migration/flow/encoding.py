"""Canonical Flow transaction encoding (RLP payload and envelope messages)."""

from __future__ import annotations

import base64
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import rlp

from ..utils import hex_to_byte_array, normalise_flow_address

TRANSACTION_DOMAIN_TAG = b"FLOW-V0.0-transaction".ljust(32, b"\x00")


def encode_argument(argument: Mapping[str, Any]) -> bytes:
    """Serialise a JSON-Cadence argument exactly as it is signed and submitted."""
    return json.dumps(argument, separators=(",", ":")).encode("utf-8")


def _address_bytes(address: str) -> bytes:
    return bytes.fromhex(normalise_flow_address(address)[2:])


@dataclass(frozen=True)
class ProposalKey:
    address: str
    key_index: int
    sequence_number: int


@dataclass(frozen=True)
class TransactionSignature:
    address: str
    key_index: int
    signature: bytes


@dataclass
class FlowTransaction:
    """An unsigned or partially signed Flow transaction.

    Every address in the signer list other than the payer signs the payload;
    the payer signs the envelope, which covers the payload signatures.
    """

    script: str
    arguments: list[dict[str, Any]]
    reference_block_id: str
    gas_limit: int
    proposal_key: ProposalKey
    payer: str
    authorizers: list[str]
    payload_signatures: list[TransactionSignature] = field(default_factory=list)
    envelope_signatures: list[TransactionSignature] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.payer = normalise_flow_address(self.payer)
        self.authorizers = [normalise_flow_address(a) for a in self.authorizers]
        self.proposal_key = ProposalKey(
            address=normalise_flow_address(self.proposal_key.address),
            key_index=self.proposal_key.key_index,
            sequence_number=self.proposal_key.sequence_number,
        )

    # ------------------------------------------------------------------
    # Signers
    # ------------------------------------------------------------------
    def signers(self) -> list[str]:
        """Return the de-duplicated signer list: proposer, payer, then authorizers."""
        ordered: list[str] = []
        for address in [self.proposal_key.address, self.payer, *self.authorizers]:
            if address not in ordered:
                ordered.append(address)
        return ordered

    def signer_index(self, address: str) -> int:
        return self.signers().index(normalise_flow_address(address))

    def add_payload_signature(self, address: str, key_index: int, signature: bytes) -> None:
        self.payload_signatures.append(
            TransactionSignature(normalise_flow_address(address), key_index, signature)
        )

    def add_envelope_signature(self, address: str, key_index: int, signature: bytes) -> None:
        self.envelope_signatures.append(
            TransactionSignature(normalise_flow_address(address), key_index, signature)
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def payload_fields(self) -> list[Any]:
        return [
            self.script.encode("utf-8"),
            [encode_argument(arg) for arg in self.arguments],
            hex_to_byte_array(self.reference_block_id),
            self.gas_limit,
            _address_bytes(self.proposal_key.address),
            self.proposal_key.key_index,
            self.proposal_key.sequence_number,
            _address_bytes(self.payer),
            [_address_bytes(a) for a in self.authorizers],
        ]

    def _signature_fields(self, signatures: list[TransactionSignature]) -> list[list[Any]]:
        entries = [
            [self.signer_index(sig.address), sig.key_index, sig.signature] for sig in signatures
        ]
        return sorted(entries, key=lambda entry: (entry[0], entry[1]))

    def payload_message(self) -> bytes:
        return TRANSACTION_DOMAIN_TAG + rlp.encode(self.payload_fields())

    def envelope_message(self) -> bytes:
        envelope = [self.payload_fields(), self._signature_fields(self.payload_signatures)]
        return TRANSACTION_DOMAIN_TAG + rlp.encode(envelope)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------
    def voucher(self) -> dict[str, Any]:
        """Return the wallet-style voucher remote signers receive alongside the message."""

        def sigs(signatures: list[TransactionSignature]) -> list[dict[str, Any]]:
            return [
                {"address": s.address, "keyId": s.key_index, "sig": s.signature.hex()}
                for s in signatures
            ]

        return {
            "cadence": self.script,
            "refBlock": self.reference_block_id.removeprefix("0x"),
            "computeLimit": self.gas_limit,
            "arguments": list(self.arguments),
            "proposalKey": {
                "address": self.proposal_key.address,
                "keyId": self.proposal_key.key_index,
                "sequenceNum": self.proposal_key.sequence_number,
            },
            "payer": self.payer,
            "authorizers": list(self.authorizers),
            "payloadSigs": sigs(self.payload_signatures),
            "envelopeSigs": sigs(self.envelope_signatures),
        }

    def to_rest(self) -> dict[str, Any]:
        """Return the body for ``POST /v1/transactions``."""

        def b64(data: bytes) -> str:
            return base64.b64encode(data).decode("ascii")

        def sigs(signatures: list[TransactionSignature]) -> list[dict[str, str]]:
            return [
                {
                    "address": s.address[2:],
                    "key_index": str(s.key_index),
                    "signature": b64(s.signature),
                }
                for s in signatures
            ]

        return {
            "script": b64(self.script.encode("utf-8")),
            "arguments": [b64(encode_argument(arg)) for arg in self.arguments],
            "reference_block_id": self.reference_block_id.removeprefix("0x"),
            "gas_limit": str(self.gas_limit),
            "payer": self.payer[2:],
            "proposal_key": {
                "address": self.proposal_key.address[2:],
                "key_index": str(self.proposal_key.key_index),
                "sequence_number": str(self.proposal_key.sequence_number),
            },
            "authorizers": [a[2:] for a in self.authorizers],
            "payload_signatures": sigs(self.payload_signatures),
            "envelope_signatures": sigs(self.envelope_signatures),
        }
