"""
Deposit and partial-redeem runs against the in-memory node.
"""

import pytest

from vaultpilot.core.errors import (
    InsufficientBalance,
    NothingToRedeem,
    RouterNotAuthorized,
    TransactionReverted,
)
from vaultpilot.core.execution import TransactionType
from vaultpilot.core.workflows import VaultRouterPlan, VaultRouterWorkflow, shares_to_redeem
from vaultpilot.services.abi import decode_call, selector


AMOUNT = 1_000_000


@pytest.fixture
def plan(node):
    return VaultRouterPlan(
        chain_id=node.chain_id,
        vault=node.vault,
        source_asset=node.source,
        target_asset=node.target,
        share_token=node.share_token,
        auto_authorize=True,
    )


@pytest.fixture
def workflow(plan, reader, sequencer, resolver):
    return VaultRouterWorkflow(plan, reader=reader, sequencer=sequencer, resolver=resolver)


@pytest.fixture
def funded(node):
    node.set_balance(node.source, node.signer, AMOUNT)
    node.share_price = (105, 100)
    return node


@pytest.mark.asyncio
async def test_deposit_end_to_end(workflow, funded, provider):
    node = funded

    outcome = await workflow.deposit(AMOUNT)

    # approve exact amount, authorize the unseen router, then deposit
    assert node.sent_signatures() == [
        "approve(address,uint256)",
        node.abi.set_router_allowed,
        node.abi.deposit_via_router,
    ]
    assert node.allowance(node.source, node.signer, node.vault) == 0
    spender, approved = decode_call("approve(address,uint256)", node.transactions[0]["data"])
    assert spender.lower() == node.vault.lower()
    assert approved == AMOUNT

    assert outcome.quote.min_amount_out == 950_000
    assert outcome.min_shares == 950_000 * 100 // 105
    assert outcome.position.share_balance == outcome.min_shares
    assert outcome.position.underlying_estimate == 950_000
    assert node.balance(node.source, node.signer) == 0

    params = provider.quote.await_args.args[0]
    assert params["fromAddress"] == node.vault
    assert params["toAddress"] == node.vault
    assert params["fromAmount"] == str(AMOUNT)
    assert params["slippage"] == 0.005


@pytest.mark.asyncio
async def test_deposit_passes_quote_through_unmodified(workflow, funded, provider):
    node = funded

    outcome = await workflow.deposit(AMOUNT)

    amount, router, payload, min_out, min_shares = decode_call(
        node.abi.deposit_via_router, node.transactions[-1]["data"]
    )
    assert amount == AMOUNT
    assert router == outcome.quote.router
    assert payload == outcome.quote.payload
    assert min_out == outcome.quote.min_amount_out
    assert min_shares == outcome.min_shares
    # One quote per deposit, fetched fresh
    assert provider.quote.await_count == 1


@pytest.mark.asyncio
async def test_approval_confirmed_before_deposit_submitted(workflow, funded, sequencer):
    await workflow.deposit(AMOUNT)

    journal = sequencer.journal
    approval = next(r for r in journal if r.tx_type == TransactionType.APPROVE)
    deposit = next(r for r in journal if r.tx_type == TransactionType.DEPOSIT)
    assert approval.confirmed_seq < deposit.submitted_seq
    assert [r.submitted_seq for r in journal] == sorted(r.submitted_seq for r in journal)


@pytest.mark.asyncio
async def test_deposit_skips_approval_and_authorization_when_in_place(workflow, funded):
    node = funded
    node.set_allowance(node.source, node.signer, node.vault, AMOUNT * 2)
    node.allow_router(node.vault, node.router)

    outcome = await workflow.deposit(AMOUNT)

    assert outcome.approval is None
    assert node.sent_signatures() == [node.abi.deposit_via_router]


@pytest.mark.asyncio
async def test_deposit_fails_closed_when_router_not_authorized(plan, reader, sequencer, resolver, funded):
    node = funded
    node.set_allowance(node.source, node.signer, node.vault, AMOUNT)
    plan = VaultRouterPlan(**{**plan.__dict__, "auto_authorize": False})
    workflow = VaultRouterWorkflow(plan, reader=reader, sequencer=sequencer, resolver=resolver)

    with pytest.raises(RouterNotAuthorized) as exc_info:
        await workflow.deposit(AMOUNT)

    assert exc_info.value.step == "router_gate"
    assert node.sent == []
    assert node.balance(node.source, node.signer) == AMOUNT


@pytest.mark.asyncio
async def test_deposit_rejects_when_balance_short(workflow, node, provider):
    node.set_balance(node.source, node.signer, AMOUNT - 1)

    with pytest.raises(InsufficientBalance):
        await workflow.deposit(AMOUNT)

    assert node.sent == []
    provider.quote.assert_not_awaited()


@pytest.mark.asyncio
async def test_deposit_revert_stops_the_run(workflow, funded):
    node = funded
    node.revert_selectors.add(selector(node.abi.deposit_via_router))

    with pytest.raises(TransactionReverted) as exc_info:
        await workflow.deposit(AMOUNT)

    assert exc_info.value.step == "deposit"
    assert exc_info.value.tx_hash is not None
    assert node.user_shares == {}


@pytest.mark.asyncio
async def test_redeem_half_of_position(workflow, funded, provider):
    node = funded
    node.allow_router(node.vault, node.router)
    node.set_position(node.vault, node.signer, shares=1_000, assets=1_050)

    outcome = await workflow.redeem(5000)

    assert outcome.shares_redeemed == 500
    assert outcome.expected_out == 525
    params = provider.quote.await_args.args[0]
    assert params["fromToken"] == node.target
    assert params["toToken"] == node.source
    assert params["fromAmount"] == "525"
    assert params["fromAddress"] == node.vault

    shares, router, payload, min_out = decode_call(node.abi.withdraw_via_router, node.transactions[-1]["data"])
    assert shares == 500
    assert router == outcome.quote.router
    assert payload == outcome.quote.payload
    assert min_out == outcome.quote.min_amount_out
    assert outcome.position.share_balance == 500
    assert outcome.signer_balance == AMOUNT + outcome.quote.min_amount_out


@pytest.mark.asyncio
async def test_redeem_full_fraction_takes_every_share(workflow, node):
    node.allow_router(node.vault, node.router)
    node.set_position(node.vault, node.signer, shares=777, assets=777)

    outcome = await workflow.redeem(12_000)

    assert outcome.shares_redeemed == 777
    assert outcome.position.is_empty


@pytest.mark.asyncio
async def test_redeem_rounding_to_zero_sends_nothing(workflow, node, provider):
    node.set_position(node.vault, node.signer, shares=1, assets=1)

    with pytest.raises(NothingToRedeem) as exc_info:
        await workflow.redeem(1)

    assert exc_info.value.step == "redeem"
    assert node.sent == []
    provider.quote.assert_not_awaited()


@pytest.mark.asyncio
async def test_redeem_with_empty_position(workflow, node):
    with pytest.raises(NothingToRedeem):
        await workflow.redeem(5000)


@pytest.mark.asyncio
async def test_run_cycle_deposits_then_redeems(workflow, funded):
    node = funded

    outcome = await workflow.run_cycle(AMOUNT, 5000)

    minted = 950_000 * 100 // 105
    assert outcome.deposit.position.share_balance == minted
    assert outcome.redeem.shares_redeemed == minted // 2
    assert outcome.redeem.position.share_balance == minted - minted // 2
    assert node.sent_signatures() == [
        "approve(address,uint256)",
        node.abi.set_router_allowed,
        node.abi.deposit_via_router,
        node.abi.withdraw_via_router,
    ]
    # The router authorized during the deposit is reused by the redeem
    assert node.sent_signatures().count(node.abi.set_router_allowed) == 1


@pytest.mark.parametrize(
    "total,bps,expected",
    [
        (1_000, 5000, 500),
        (1_001, 5000, 500),
        (1_000, 10_000, 1_000),
        (1_000, 25_000, 1_000),
        (1, 1, 0),
        (0, 5000, 0),
        (3, 3333, 0),
    ],
)
def test_shares_to_redeem(total, bps, expected):
    result = shares_to_redeem(total, bps)

    assert result == expected
    assert result <= total


@pytest.mark.parametrize("bps", [0, -1])
def test_shares_to_redeem_rejects_non_positive_fraction(bps):
    with pytest.raises(ValueError):
        shares_to_redeem(100, bps)
