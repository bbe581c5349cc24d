import logging
from collections.abc import Awaitable, Callable
from time import perf_counter

from chainsoak.actor import Actor
from chainsoak.config import Settings
from chainsoak.confirm import confirm
from chainsoak.errors import FatalError, RPCError
from chainsoak.rpc import ClientFactory
from chainsoak.utils import since
from chainsoak.wallet import Wallet, generate_private_key

log = logging.getLogger("chainsoak.bootstrap")

# (node uri, private key) -> wallet bound to that node
WalletFactory = Callable[[str, str], Awaitable[Wallet]]


async def open_wallet(wallets: WalletFactory, uri: str, private_key: str) -> Wallet:
    start = perf_counter()
    try:
        wallet = await wallets(uri, private_key)
    except RPCError as e:
        raise FatalError(f"failed to initialize wallet on {uri}: {e}") from e
    log.info("synced wallet on %s in %s", uri, since(start))
    return wallet


async def bootstrap(
    settings: Settings,
    wallets: WalletFactory,
    clients: ClientFactory,
    *,
    keygen: Callable[[], str] = generate_private_key,
) -> list[Actor]:
    """Build the genesis actor and fund ``num_actors - 1`` fresh ones from it.

    Each new actor's wallet is bound to a different node, round robin. Its
    funding transfer must be confirmed on every node before the next actor
    is built. Anything going wrong here is fatal: the run never starts with
    part of its actors.
    """
    uris = tuple(settings.uris)
    genesis_wallet = await open_wallet(wallets, uris[0], settings.genesis_key)
    genesis = Actor(id=0, wallet=genesis_wallet, addresses=frozenset(genesis_wallet.addresses), endpoints=uris)
    actors = [genesis]

    for i in range(1, settings.num_actors):
        try:
            key = keygen()
        except OSError as e:
            raise FatalError(f"failed to generate key: {e}") from e

        uri = uris[i % len(uris)]
        wallet = await open_wallet(wallets, uri, key)
        actor = Actor(id=i, wallet=wallet, addresses=frozenset(wallet.addresses), endpoints=uris)

        start = perf_counter()
        try:
            funding = await genesis_wallet.issue_base_tx(actor.owner, settings.funding_amount)
        except RPCError as e:
            raise FatalError(f"failed to issue initial funding X-chain baseTx: {e}") from e
        log.info("issued initial funding X-chain baseTx %s in %s", funding.tx_id, since(start))

        confirmation = await confirm(
            funding, uris, clients, interval=settings.poll_interval, timeout=settings.confirm_timeout
        )
        if not confirmation.confirmed:
            raise FatalError(f"initial funding {funding} was not confirmed: {confirmation.outcome}")
        actors.append(actor)
        log.info("actor %d ready with address %s on %s", i, actor.owner, uri)

    return actors
