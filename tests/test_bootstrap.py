import itertools
from unittest import IsolatedAsyncioTestCase

import chainsoak.constants as C
from chainsoak.bootstrap import bootstrap
from chainsoak.config import Settings
from chainsoak.errors import FatalError, RPCError

from tests.fakes import URIS, FakeNetwork, FakeWallet


class TestBootstrap(IsolatedAsyncioTestCase):
    def setUp(self):
        self.net = FakeNetwork()
        self.settings = Settings(uris=URIS, num_actors=5, poll_interval=0)
        self.opened: list[tuple[str, str]] = []
        self.wallets: dict[str, FakeWallet] = {}
        self.fail_wallet_on: str | None = None
        counter = itertools.count(1)
        self.keygen = lambda: f"PrivateKey-k{next(counter)}"

    async def open_wallet(self, uri: str, private_key: str) -> FakeWallet:
        if private_key == self.fail_wallet_on:
            raise RPCError("keystore unavailable", uri=uri, method="keystore.createUser")
        self.opened.append((uri, private_key))
        wallet = FakeWallet(x=C.KILO_AVAX * 1000, addresses=(f"local1{private_key[-2:]}",))
        self.wallets[private_key] = wallet
        return wallet

    async def test_actors_funded_round_robin(self):
        actors = await bootstrap(self.settings, self.open_wallet, self.net, keygen=self.keygen)

        self.assertEqual([a.id for a in actors], [0, 1, 2, 3, 4])
        self.assertEqual(self.opened[0], (URIS[0], C.GENESIS_KEY))
        self.assertEqual([uri for uri, _ in self.opened[1:]], [URIS[1], URIS[2], URIS[0], URIS[1]])
        for actor in actors:
            self.assertEqual(actor.endpoints, URIS)

        genesis = self.wallets[C.GENESIS_KEY]
        self.assertEqual(genesis.names(), ["base"] * 4)
        # every funding transfer was confirmed on every node
        for _, record in genesis.issued:
            self.assertEqual({uri for uri, tx in self.net.status_calls if tx == record.tx_id}, set(URIS))

    async def test_single_actor_needs_no_funding(self):
        settings = Settings(uris=URIS, num_actors=1, poll_interval=0)
        actors = await bootstrap(settings, self.open_wallet, self.net, keygen=self.keygen)
        self.assertEqual(len(actors), 1)
        self.assertEqual(self.wallets[C.GENESIS_KEY].issued, [])

    async def test_genesis_wallet_failure_is_fatal(self):
        self.fail_wallet_on = C.GENESIS_KEY
        with self.assertRaises(FatalError):
            await bootstrap(self.settings, self.open_wallet, self.net, keygen=self.keygen)

    async def test_actor_wallet_failure_is_fatal(self):
        self.fail_wallet_on = "PrivateKey-k2"
        with self.assertRaises(FatalError):
            await bootstrap(self.settings, self.open_wallet, self.net, keygen=self.keygen)
        self.assertEqual(len(self.opened), 2)

    async def test_key_generation_failure_is_fatal(self):
        def keygen():
            raise OSError("entropy source unavailable")
        with self.assertRaises(FatalError):
            await bootstrap(self.settings, self.open_wallet, self.net, keygen=keygen)

    async def test_funding_issuance_failure_is_fatal(self):
        original = self.open_wallet

        async def open_wallet(uri, key):
            wallet = await original(uri, key)
            if key == C.GENESIS_KEY:
                wallet.fail.add("base")
            return wallet

        with self.assertRaises(FatalError):
            await bootstrap(self.settings, open_wallet, self.net, keygen=self.keygen)

    async def test_unconfirmed_funding_is_fatal(self):
        self.net.reject_named("base", URIS[1:2])
        with self.assertRaises(FatalError):
            await bootstrap(self.settings, self.open_wallet, self.net, keygen=self.keygen)
        self.assertEqual(len(self.wallets[C.GENESIS_KEY].issued), 1)
