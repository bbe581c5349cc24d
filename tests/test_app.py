import asyncio
from unittest import IsolatedAsyncioTestCase, TestCase

from fastapi.testclient import TestClient

import chainsoak.constants as C
from chainsoak.actor import Actor
from chainsoak.app import create_app, run
from chainsoak.config import Settings
from chainsoak.models import ConfirmationResult, EndpointResult, TxRecord
from chainsoak.outcomes import OutcomeRecorder

from tests.fakes import URIS, FakeWallet


class TestStatusAPI(TestCase):
    def setUp(self):
        self.recorder = OutcomeRecorder()
        wallet = FakeWallet()
        self.actors = [Actor(id=0, wallet=wallet, addresses=wallet.addresses, endpoints=URIS)]
        self.client = TestClient(create_app(self.recorder, self.actors))

    def test_health(self):
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ok"})

    def test_outcomes(self):
        record = TxRecord("tx1", C.Chain.P)
        self.recorder.confirmation(0, ConfirmationResult(record, [EndpointResult(URIS[0], C.Outcome.REJECTED)], expected=3))

        body = self.client.get("/state/outcomes").json()
        self.assertEqual(body["by_outcome"], {"rejected": 1})
        self.assertEqual(body["inconsistencies"], 0)
        self.assertEqual(body["by_actor"], {"0": {"rejected": 1}})

    def test_failures(self):
        record = TxRecord("tx1", C.Chain.X)
        for _ in range(3):
            self.recorder.confirmation(0, ConfirmationResult(record, expected=3))
        self.assertEqual(len(self.client.get("/state/failures").json()), 3)
        failures = self.client.get("/state/failures", params={"limit": 2}).json()
        self.assertEqual(len(failures), 2)
        self.assertEqual(failures[0]["tx_id"], "tx1")

    def test_actors(self):
        self.assertEqual(
            self.client.get("/state/actors").json(),
            [{"id": 0, "addresses": ["local1owner"], "endpoints": list(URIS)}],
        )


class TestRun(IsolatedAsyncioTestCase):
    async def test_stop_before_nodes_are_healthy(self):
        stop = asyncio.Event()
        stop.set()
        # Nothing listens on the port; the readiness gate gives up once stop is set
        settings = Settings(uris=("http://127.0.0.1:9",), poll_interval=0.01, rpc_timeout=0.5, api_enabled=False)
        recorder = await asyncio.wait_for(run(settings, stop), timeout=5)
        self.assertEqual(recorder.snapshot()["by_outcome"], {})
