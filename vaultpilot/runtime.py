"""Wiring of settings into clients, components and workflows for one run."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from .config import Settings
from .core.execution import ExecutionContext, LocalSigner, TransactionSequencer
from .core.models import VaultAbi
from .core.routing import QuoteResolver
from .core.workflows import (
    ChainSession,
    SwapDepositPlan,
    SwapDepositWorkflow,
    VaultRouterPlan,
    VaultRouterWorkflow,
)
from .providers.lifi import LifiProvider
from .providers.rpc import RpcClient
from .services.chain_reader import ChainReader

logger = logging.getLogger(__name__)


class Runtime:
    """Owns the RPC clients and per-chain sessions; close it when the run ends."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.signer = LocalSigner(settings.private_key)
        self.context = ExecutionContext.from_settings(settings)
        self.vault_abi = VaultAbi.from_settings(settings)
        self.provider = LifiProvider(
            api_key=settings.lifi_api_key,
            base_url=settings.lifi_base_url or None,
            integrator=settings.lifi_integrator,
            timeout_s=settings.request_timeout_seconds,
        )
        self.resolver = QuoteResolver(self.provider, default_slippage_bps=settings.slippage_bps)
        self._clients: Dict[int, RpcClient] = {}
        self._sessions: Dict[int, ChainSession] = {}

    @property
    def address(self) -> str:
        return self.signer.address

    def session(self, chain_id: Optional[int] = None) -> ChainSession:
        """Reader and sequencer for ``chain_id`` (default: the configured chain)."""
        chain_id = chain_id or self.settings.chain_id
        if chain_id not in self._sessions:
            rpc = RpcClient(
                self.settings.rpc_url_for(chain_id),
                chain_id=chain_id,
                timeout_s=self.settings.request_timeout_seconds,
            )
            self._clients[chain_id] = rpc
            self._sessions[chain_id] = ChainSession(
                reader=ChainReader(rpc, vault_abi=self.vault_abi),
                sequencer=TransactionSequencer(rpc, self.signer, context=self.context),
            )
            logger.debug("Opened session for chain %s", chain_id)
        return self._sessions[chain_id]

    def vault_router_workflow(self) -> VaultRouterWorkflow:
        session = self.session()
        return VaultRouterWorkflow(
            VaultRouterPlan.from_settings(self.settings),
            reader=session.reader,
            sequencer=session.sequencer,
            resolver=self.resolver,
        )

    def swap_deposit_workflow(self, plan: SwapDepositPlan) -> SwapDepositWorkflow:
        return SwapDepositWorkflow(
            plan,
            resolver=self.resolver,
            source=self.session(plan.source_chain),
            destination=self.session(plan.dest_chain),
        )

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
        self._sessions.clear()
