"""Signing-role resolution for migration transactions."""

from __future__ import annotations

import logging
from enum import Enum

from .base import FreeGasCheck, PayerStatusProvider, SigningBackend, SurgePrompt
from .constants import DEFAULT_COMPUTE_LIMIT, DEFAULT_EVM_GAS_LIMIT, Network, get_network
from .exceptions import AuthorizationFailure, SurgeRateLimited, UserCancelled
from .types import (
    ActiveAccount,
    AuthorizationAccount,
    CallBatch,
    CompositeSignature,
    PayerInfo,
    PayerStatus,
    RateLimited,
    Signable,
    SigningRole,
    TransactionConfig,
    TransactionKind,
)
from .utils import normalise_flow_address

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    """Progress of a single role resolution."""

    IDLE = "idle"
    RESOLVING_PROPOSER = "resolving_proposer"
    RESOLVING_BRIDGE = "resolving_bridge"
    RESOLVING_PAYER = "resolving_payer"
    AWAITING_SURGE_DECISION = "awaiting_surge_decision"
    RESOLVED = "resolved"
    ABORTED = "aborted"


class TransactionAuthorizationResolver:
    """Decide who proposes, authorizes and pays for a transaction.

    The payer decision runs in order: surge pricing forces self-pay, a
    disabled free-gas policy forces self-pay, an unavailable fee payer forces
    self-pay, otherwise the sponsored fee payer is used. When the sponsor
    answers a signing request with a rate limit, ``fallback_to_self_pay``
    asks the user whether to pay with the proposer's own account.
    """

    def __init__(
        self,
        account: ActiveAccount,
        network: Network | str,
        payer_status_provider: PayerStatusProvider,
        signing_backend: SigningBackend,
        *,
        allow_free_gas: FreeGasCheck,
        confirm_surge: SurgePrompt,
    ) -> None:
        self._account = account
        self._network = get_network(network)
        self._payer_status_provider = payer_status_provider
        self._signing_backend = signing_backend
        self._allow_free_gas = allow_free_gas
        self._confirm_surge = confirm_surge
        self._state = ResolutionState.IDLE

    @property
    def state(self) -> ResolutionState:
        return self._state

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------
    async def resolve(
        self,
        kind: TransactionKind,
        body: CallBatch,
        *,
        gas_limit: int = DEFAULT_COMPUTE_LIMIT,
        evm_gas_limit: int = DEFAULT_EVM_GAS_LIMIT,
    ) -> TransactionConfig:
        try:
            self._state = ResolutionState.RESOLVING_PROPOSER
            proposer = self.proposer_authorization()
            authorizations = [proposer]
            logger.debug(
                "Stage AUTH [%s]: proposer resolved (addr=%s, key_id=%s)",
                kind.name,
                proposer.addr,
                proposer.key_id,
            )

            status = await self._payer_status_provider.get_payer_status(self._network)

            if kind.requires_bridge_payer:
                self._state = ResolutionState.RESOLVING_BRIDGE
                bridge = self._bridge_authorization(status.bridge_payer)
                authorizations.append(bridge)
                logger.debug(
                    "Stage AUTH [%s]: bridge payer resolved (addr=%s, key_id=%s)",
                    kind.name,
                    bridge.addr,
                    bridge.key_id,
                )

            self._state = ResolutionState.RESOLVING_PAYER
            payer = await self._select_payer(kind, proposer, status)
        except Exception:
            self._state = ResolutionState.ABORTED
            raise

        self._state = ResolutionState.RESOLVED
        logger.info(
            "Stage AUTH [%s]: roles resolved (proposer=%s, payer=%s, payer_role=%s, "
            "authorizers=%s)",
            kind.name,
            proposer.addr,
            payer.addr,
            payer.role.value,
            [auth.addr for auth in authorizations],
        )
        return TransactionConfig(
            kind=kind,
            body=body,
            gas_limit=gas_limit,
            evm_gas_limit=evm_gas_limit,
            proposer=proposer,
            authorizations=tuple(authorizations),
            payer=payer,
        )

    async def fallback_to_self_pay(
        self, config: TransactionConfig, error: SurgeRateLimited
    ) -> TransactionConfig:
        """Ask the user to self-pay after the fee payer was rate limited.

        Raises:
            UserCancelled: If the user declines
        """
        self._state = ResolutionState.AWAITING_SURGE_DECISION
        try:
            status = await self._payer_status_provider.get_payer_status(self._network)
            logger.warning(
                "Stage AUTH [%s]: fee payer rate limited (retry_after=%s, multiplier=%s, "
                "max_fee=%s); awaiting user decision",
                config.kind.name,
                error.retry_after,
                status.surge.multiplier,
                status.surge.max_fee,
            )
            approved = await self._confirm_surge(status)
        except Exception:
            self._state = ResolutionState.ABORTED
            raise

        if not approved:
            self._state = ResolutionState.ABORTED
            logger.warning("Stage AUTH [%s]: user declined surge self-pay", config.kind.name)
            raise UserCancelled(
                "Transaction cancelled by user due to surge pricing",
                details={"kind": config.kind.name, "retry_after": error.retry_after},
            ) from error

        self._state = ResolutionState.RESOLVED
        logger.info(
            "Stage AUTH [%s]: user approved surge self-pay (payer=%s)",
            config.kind.name,
            config.proposer.addr,
        )
        return config.with_payer(config.proposer)

    # ------------------------------------------------------------------
    # Role factories
    # ------------------------------------------------------------------
    def proposer_authorization(self) -> AuthorizationAccount:
        address = normalise_flow_address(self._account.proposer_address)
        key_id = int(self._account.key_index or 0)
        backend = self._signing_backend

        async def signing_function(signable: Signable) -> CompositeSignature:
            signature = await backend.sign_local(signable.message)
            return CompositeSignature(addr=address, key_id=key_id, signature=signature)

        return AuthorizationAccount(
            temp_id=f"{address}-{key_id}",
            addr=address[2:],
            key_id=key_id,
            role=SigningRole.PROPOSER,
            signing_function=signing_function,
        )

    def _bridge_authorization(self, payer: PayerInfo) -> AuthorizationAccount:
        if not payer.available or not payer.address:
            raise AuthorizationFailure(
                "Bridge payer is not available",
                role=SigningRole.BRIDGE_PAYER.value,
                details={"network": self._network.value},
            )
        return self._remote_authorization(SigningRole.BRIDGE_PAYER, payer)

    def _remote_authorization(self, role: SigningRole, payer: PayerInfo) -> AuthorizationAccount:
        address = normalise_flow_address(str(payer.address))
        key_id = int(payer.key_index or 0)
        backend = self._signing_backend

        async def signing_function(signable: Signable) -> CompositeSignature:
            outcome = await backend.sign_remote(role, signable)
            if isinstance(outcome, RateLimited):
                if role is SigningRole.FEE_PAYER:
                    raise SurgeRateLimited(
                        outcome.message,
                        role=role.value,
                        retry_after=outcome.retry_after,
                    )
                raise AuthorizationFailure(
                    f"{role.value} signing request was rate limited",
                    role=role.value,
                    details={"message": outcome.message, "retry_after": outcome.retry_after},
                )
            return CompositeSignature(addr=address, key_id=key_id, signature=outcome)

        return AuthorizationAccount(
            temp_id=f"{address}-{key_id}",
            addr=address[2:],
            key_id=key_id,
            role=role,
            signing_function=signing_function,
        )

    async def _select_payer(
        self, kind: TransactionKind, proposer: AuthorizationAccount, status: PayerStatus
    ) -> AuthorizationAccount:
        if status.surge.active:
            logger.info(
                "Stage AUTH [%s]: surge pricing active (multiplier=%s, max_fee=%s); proposer pays",
                kind.name,
                status.surge.multiplier,
                status.surge.max_fee,
            )
            return proposer

        if not await self._allow_free_gas():
            logger.info("Stage AUTH [%s]: free gas not permitted; proposer pays", kind.name)
            return proposer

        fee_payer = status.fee_payer
        if not fee_payer.available or not fee_payer.address:
            logger.warning(
                "Stage AUTH [%s]: fee payer unavailable (reason=%s); proposer pays",
                kind.name,
                status.reason,
            )
            return proposer

        logger.debug(
            "Stage AUTH [%s]: sponsored fee payer selected (addr=%s, key_id=%s)",
            kind.name,
            fee_payer.address,
            fee_payer.key_index,
        )
        return self._remote_authorization(SigningRole.FEE_PAYER, fee_payer)
