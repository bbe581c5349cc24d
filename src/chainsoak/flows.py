"""The five transaction patterns an actor picks from.

Every flow has the same shape: check the balance covers fees and amounts,
issue, confirm on every node, verify the consumed UTXOs are gone everywhere.
A flow that issues two dependent transactions only issues the second once
the first is confirmed on every node.

Running short of funds is a normal skip. Any RPC error ends the flow; the
scheduler's next iteration is the only retry.
"""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from time import perf_counter
from typing import TYPE_CHECKING

import chainsoak.constants as C
from chainsoak.confirm import confirm
from chainsoak.errors import RPCError
from chainsoak.models import FlowReport, TxRecord, TxReport
from chainsoak.outcomes import OutcomeRecorder
from chainsoak.rpc import ClientFactory
from chainsoak.utils import since
from chainsoak.verify import verify_consumed

if TYPE_CHECKING:
    from chainsoak.actor import Actor

log = logging.getLogger("chainsoak.flows")


class Flow(StrEnum):
    X_TRANSFER     = "x_transfer"
    X_CREATE_ASSET = "x_create_asset"
    X_MINT_ASSET   = "x_mint_asset"
    X_TO_P         = "x_to_p"
    P_TO_X         = "p_to_x"


@dataclass(frozen=True, slots=True)
class FlowContext:
    """What flows need besides the actor itself. Shared by all actors."""

    clients: ClientFactory
    recorder: OutcomeRecorder = field(default_factory=OutcomeRecorder)
    poll_interval: float = C.POLL_INTERVAL
    confirm_timeout: float | None = None
    transfer_amount: int = C.TRANSFER_AMOUNT
    cross_chain_amount: int = C.CROSS_CHAIN_AMOUNT


async def _avax_balance(actor: "Actor", chain: C.Chain, report: FlowReport) -> int | None:
    try:
        balances = await actor.wallet.balances(chain)
    except RPCError as e:
        log.warning("failed to fetch %s-chain balances: %s", chain, e)
        report.error = str(e)
        return None
    return balances.get(C.AVAX, 0)


def _covers(report: FlowReport, chain: C.Chain, balance: int, needed: int) -> bool:
    if balance < needed:
        log.info("skipping %s-chain tx issuance due to insufficient balance: %d < %d", chain, balance, needed)
        report.skipped = True
        return False
    return True


async def _issue(report: FlowReport, what: str, issue: Awaitable[TxRecord]) -> TxRecord | None:
    start = perf_counter()
    try:
        record = await issue
    except RPCError as e:
        log.warning("failed to issue %s: %s", what, e)
        report.error = f"{what}: {e}"
        return None
    log.info("issued %s %s in %s", what, record.tx_id, since(start))
    return record


async def _settle(actor: "Actor", ctx: FlowContext, report: FlowReport, record: TxRecord) -> bool:
    """Confirm ``record`` everywhere, then verify it. True if confirmed on every node."""
    confirmation = await confirm(
        record, actor.endpoints, ctx.clients, interval=ctx.poll_interval, timeout=ctx.confirm_timeout
    )
    ctx.recorder.confirmation(actor.id, confirmation)
    tx = TxReport(record=record, confirmation=confirmation)
    report.txs.append(tx)
    if not confirmation.confirmed:
        return False
    tx.verification = await verify_consumed(record, actor.endpoints, actor.addresses, ctx.clients)
    ctx.recorder.verification(actor.id, tx.verification)
    return True


async def x_transfer(actor: "Actor", ctx: FlowContext) -> FlowReport:
    report = FlowReport(Flow.X_TRANSFER, actor.id)
    wallet = actor.wallet
    balance = await _avax_balance(actor, C.Chain.X, report)
    if balance is None:
        return report
    needed = wallet.base_tx_fee(C.Chain.X) + ctx.transfer_amount
    if not _covers(report, C.Chain.X, balance, needed):
        return report

    record = await _issue(report, "X-chain baseTx", wallet.issue_base_tx(actor.owner, ctx.transfer_amount))
    if record is not None:
        await _settle(actor, ctx, report, record)
    return report


async def x_create_asset(actor: "Actor", ctx: FlowContext) -> FlowReport:
    report = FlowReport(Flow.X_CREATE_ASSET, actor.id)
    wallet = actor.wallet
    balance = await _avax_balance(actor, C.Chain.X, report)
    if balance is None:
        return report
    if not _covers(report, C.Chain.X, balance, wallet.create_asset_tx_fee()):
        return report

    record = await _issue(report, "X-chain create asset tx", wallet.issue_create_asset_tx(
        C.ASSET_NAME,
        C.ASSET_SYMBOL,
        C.ASSET_DENOMINATION,
        holders={actor.owner: ctx.transfer_amount},
    ))
    if record is not None:
        await _settle(actor, ctx, report, record)
    return report


async def x_mint_asset(actor: "Actor", ctx: FlowContext) -> FlowReport:
    """Create an asset the actor may mint, then mint one more unit of it."""
    report = FlowReport(Flow.X_MINT_ASSET, actor.id)
    wallet = actor.wallet
    balance = await _avax_balance(actor, C.Chain.X, report)
    if balance is None:
        return report
    needed = wallet.create_asset_tx_fee() + wallet.base_tx_fee(C.Chain.X)
    if not _covers(report, C.Chain.X, balance, needed):
        return report

    create = await _issue(report, "X-chain create asset tx", wallet.issue_create_asset_tx(
        C.ASSET_NAME,
        C.ASSET_SYMBOL,
        C.ASSET_DENOMINATION,
        holders={},
        minters=[actor.owner],
    ))
    if create is None or not await _settle(actor, ctx, report, create):
        return report

    # The created asset's ID is its creation tx ID
    mint = await _issue(report, "X-chain operation tx", wallet.issue_mint_tx(create.tx_id, actor.owner, 1))
    if mint is not None:
        await _settle(actor, ctx, report, mint)
    return report


async def _cross_chain(actor: "Actor", ctx: FlowContext, flow: Flow, source: C.Chain, amount: int) -> FlowReport:
    report = FlowReport(flow, actor.id)
    wallet = actor.wallet
    destination = source.other()
    balance = await _avax_balance(actor, source, report)
    if balance is None:
        return report
    needed = wallet.base_tx_fee(source) + wallet.base_tx_fee(destination) + amount
    if not _covers(report, source, balance, needed):
        return report

    export = await _issue(report, f"{source}-chain export tx", wallet.issue_export_tx(source, actor.owner, amount))
    if export is None or not await _settle(actor, ctx, report, export):
        return report

    imported = await _issue(report, f"{destination}-chain import tx", wallet.issue_import_tx(destination, actor.owner))
    if imported is not None:
        await _settle(actor, ctx, report, imported)
    return report


async def x_to_p(actor: "Actor", ctx: FlowContext) -> FlowReport:
    return await _cross_chain(actor, ctx, Flow.X_TO_P, C.Chain.X, ctx.cross_chain_amount)


async def p_to_x(actor: "Actor", ctx: FlowContext) -> FlowReport:
    return await _cross_chain(actor, ctx, Flow.P_TO_X, C.Chain.P, ctx.transfer_amount)


FLOWS: dict[Flow, Callable[["Actor", FlowContext], Awaitable[FlowReport]]] = {
    Flow.X_TRANSFER: x_transfer,
    Flow.X_CREATE_ASSET: x_create_asset,
    Flow.X_MINT_ASSET: x_mint_asset,
    Flow.X_TO_P: x_to_p,
    Flow.P_TO_X: p_to_x,
}
