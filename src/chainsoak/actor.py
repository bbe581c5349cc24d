import asyncio
import logging
import random
from dataclasses import dataclass

import chainsoak.constants as C
from chainsoak.errors import FatalError, RPCError
from chainsoak.flows import FLOWS, Flow, FlowContext
from chainsoak.models import FlowReport
from chainsoak.utils import sleep_or_stop
from chainsoak.wallet import Wallet

log = logging.getLogger("chainsoak.actor")

_FLOW_ORDER = tuple(Flow)


def draw_flow(rng: random.Random) -> Flow:
    try:
        return _FLOW_ORDER[rng.randrange(len(_FLOW_ORDER))]
    except (OSError, NotImplementedError) as e:
        raise FatalError(f"failed to read randomness: {e}") from e


def draw_delay(rng: random.Random, max_delay: float) -> float:
    """Uniform in ``[0, max_delay)``."""
    try:
        return rng.random() * max_delay
    except (OSError, NotImplementedError) as e:
        raise FatalError(f"failed to read randomness: {e}") from e


@dataclass(frozen=True, slots=True)
class Actor:
    """One simulated user: a wallet, the addresses it owns, and the nodes to check."""

    id: int
    wallet: Wallet
    addresses: frozenset[str]
    endpoints: tuple[str, ...]

    @property
    def owner(self) -> str:
        """Address new outputs are sent to."""
        return min(self.addresses)

    async def log_balances(self) -> dict[C.Chain, int]:
        """Starting AVAX balance per chain. Failing to read them is fatal."""
        out = {}
        for chain in C.Chain:
            try:
                out[chain] = (await self.wallet.balances(chain)).get(C.AVAX, 0)
            except RPCError as e:
                raise FatalError(f"failed to fetch {chain}-chain balances: {e}") from e
        log.info(
            "actor %d starting with %d X-chain nAVAX and %d P-chain nAVAX", self.id, out[C.Chain.X], out[C.Chain.P]
        )
        return out

    async def run_flow(self, flow: Flow, ctx: FlowContext) -> FlowReport | None:
        """Run one flow. Anything but a FatalError is logged and swallowed here."""
        log.info("actor %d executing flow %s", self.id, flow)
        try:
            report = await FLOWS[flow](self, ctx)
        except (FatalError, asyncio.CancelledError):
            raise
        except Exception:
            log.exception("actor %d flow %s failed unexpectedly", self.id, flow)
            return None
        ctx.recorder.flow(report)
        return report

    async def run(
        self,
        ctx: FlowContext,
        stop: asyncio.Event,
        *,
        rng: random.Random | None = None,
        max_delay: float = C.MAX_FLOW_DELAY,
    ) -> None:
        """Pick a random flow, run it, pause, repeat until ``stop`` is set.

        ``stop`` is only looked at between flows: a flow that has started
        always runs to its end.
        """
        rng = rng or random.SystemRandom()
        await self.log_balances()

        while not stop.is_set():
            await self.run_flow(draw_flow(rng), ctx)
            if await sleep_or_stop(stop, draw_delay(rng, max_delay)):
                break
        log.info("actor %d stopped", self.id)
