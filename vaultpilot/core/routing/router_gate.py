"""Router authorization gate for vault-held funds."""

from __future__ import annotations

import logging

from ...services.chain_reader import ChainReader
from ..errors import RouterNotAuthorized
from ..execution.sequencer import TransactionSequencer
from ..execution.tx_builder import TransactionBuilder

logger = logging.getLogger(__name__)


class RouterGate:
    """Fails closed: a router the vault does not accept is never used to move funds."""

    def __init__(self, reader: ChainReader, sequencer: TransactionSequencer) -> None:
        self.reader = reader
        self.sequencer = sequencer

    async def ensure_router_authorized(
        self,
        holding_contract: str,
        router: str,
        auto_authorize: bool,
    ) -> bool:
        """Return whether ``router`` may move funds held by ``holding_contract``.

        When the router is unknown and ``auto_authorize`` is set, an
        authorization transaction is submitted and confirmed first. A revert
        of that transaction propagates.
        """
        if await self.reader.router_authorized(holding_contract, router):
            return True

        if not auto_authorize:
            logger.warning("Router %s is not authorized on %s and auto-authorize is off", router, holding_contract)
            return False

        tx = TransactionBuilder.build_set_router_allowed(
            chain_id=self.sequencer.chain_id,
            owner_address=self.sequencer.address,
            holding_contract=holding_contract,
            router=router,
            abi=self.reader.vault_abi,
        )
        await self.sequencer.submit_and_confirm(tx)

        # Trust the chain, not the receipt
        authorized = await self.reader.router_authorized(holding_contract, router)
        if authorized:
            logger.info("Router %s authorized on %s", router, holding_contract)
        else:
            logger.error("Authorization of %s confirmed but %s still rejects it", router, holding_contract)
        return authorized

    async def require_router_authorized(
        self,
        holding_contract: str,
        router: str,
        auto_authorize: bool,
    ) -> None:
        if not await self.ensure_router_authorized(holding_contract, router, auto_authorize):
            raise RouterNotAuthorized(router, holding_contract)
