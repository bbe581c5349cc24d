"""In-memory stand-ins for the wallet and the per-node chain clients."""
import asyncio
import itertools
import json
from collections.abc import Iterable, Sequence

import httpx

import chainsoak.constants as C
from chainsoak.errors import IssuanceError, RPCError
from chainsoak.models import TxRecord, UTXORef

OWNER = "local1owner"
URIS = ("http://node0:9650", "http://node1:9650", "http://node2:9650")

_tx_ids = itertools.count(1)


def utxo(chain: C.Chain = C.Chain.X, n: int | None = None, index: int = 0) -> UTXORef:
    return UTXORef(chain, f"utxo{next(_tx_ids) if n is None else n}", index)


class FakeWallet:
    """Records every issuance. Fails the methods named in ``fail``."""

    def __init__(self, x: int = 0, p: int = 0, *, fee: int = 1_000_000, asset_fee: int = 10_000_000, addresses=(OWNER,)):
        self.addresses = frozenset(addresses)
        self.balance = {C.Chain.X: x, C.Chain.P: p}
        self.fee = fee
        self.asset_fee = asset_fee
        self.fail: set[str] = set()
        self.issued: list[tuple[str, TxRecord]] = []
        self.balance_calls = 0

    async def balances(self, chain: C.Chain) -> dict[str, int]:
        self.balance_calls += 1
        if "balances" in self.fail:
            raise RPCError("balance lookup failed", uri="http://wallet")
        return {C.AVAX: self.balance[chain]}

    def base_tx_fee(self, chain: C.Chain) -> int:
        return self.fee

    def create_asset_tx_fee(self) -> int:
        return self.asset_fee

    def _issue(self, name: str, chain: C.Chain) -> TxRecord:
        if name in self.fail:
            raise IssuanceError(f"{name} rejected", uri="http://wallet", method=name)
        record = TxRecord(tx_id=f"{name}-{next(_tx_ids)}", chain=chain, consumed=frozenset({utxo(chain)}))
        self.issued.append((name, record))
        return record

    def names(self) -> list[str]:
        return [name for name, _ in self.issued]

    async def issue_base_tx(self, to: str, amount: int) -> TxRecord:
        return self._issue("base", C.Chain.X)

    async def issue_create_asset_tx(self, name, symbol, denomination, holders, minters=()) -> TxRecord:
        return self._issue("create_asset", C.Chain.X)

    async def issue_mint_tx(self, asset_id: str, to: str, amount: int) -> TxRecord:
        return self._issue("mint", C.Chain.X)

    async def issue_export_tx(self, source: C.Chain, to: str, amount: int) -> TxRecord:
        return self._issue(f"export_{source}", source)

    async def issue_import_tx(self, destination: C.Chain, to: str) -> TxRecord:
        return self._issue(f"import_{destination}", destination)


class FakeNetwork:
    """Per-node transaction statuses and UTXO sets.

    Transactions are accepted everywhere and every UTXO set is empty unless
    told otherwise. A status or UTXO entry may be an exception to raise.
    """

    def __init__(self):
        self.statuses: dict[tuple[str, str], C.TxStatus | Exception] = {}
        self.hang: set[tuple[str, str]] = set()
        self.utxos: dict[tuple[str, C.Chain], set[UTXORef] | Exception] = {}
        self.prefix_statuses: dict[tuple[str, str], C.TxStatus] = {}
        self.status_calls: list[tuple[str, str]] = []
        self.utxo_calls: list[tuple[str, C.Chain, tuple[str, ...]]] = []

    def reject(self, tx_id: str, uris: Iterable[str], status: C.TxStatus = C.TxStatus.REJECTED) -> None:
        for uri in uris:
            self.statuses[(uri, tx_id)] = status

    def reject_named(self, prefix: str, uris: Sequence[str] = URIS, status: C.TxStatus = C.TxStatus.REJECTED) -> None:
        """Reject any tx whose ID starts with ``prefix``."""
        for uri in uris:
            self.prefix_statuses[(uri, prefix)] = status

    def status_for(self, uri: str, chain: C.Chain, tx_id: str):
        for (u, prefix), status in self.prefix_statuses.items():
            if u == uri and tx_id.startswith(prefix):
                return status
        return self.statuses.get((uri, tx_id), C.ACCEPTED_STATUS[chain])

    def __call__(self, uri: str, chain: C.Chain) -> "FakeChainClient":
        return FakeChainClient(self, uri, chain)


class FakeChainClient:
    def __init__(self, net: FakeNetwork, uri: str, chain: C.Chain):
        self.net = net
        self.uri = uri
        self.chain = chain

    async def await_tx_decided(self, tx_id: str, interval: float = C.POLL_INTERVAL) -> C.TxStatus:
        self.net.status_calls.append((self.uri, tx_id))
        if (self.uri, tx_id) in self.net.hang:
            await asyncio.Event().wait()
        status = self.net.status_for(self.uri, self.chain, tx_id)
        if isinstance(status, Exception):
            raise status
        return status

    async def get_utxos(self, addresses: Iterable[str]) -> set[UTXORef]:
        self.net.utxo_calls.append((self.uri, self.chain, tuple(addresses)))
        found = self.net.utxos.get((self.uri, self.chain), set())
        if isinstance(found, Exception):
            raise found
        return set(found)


class RPCFailure(Exception):
    """Answered as a JSON-RPC error object by ``rpc_handler``."""


def rpc_handler(results: dict):
    """MockTransport handler answering each method with ``results[method]``.

    A callable result is called with the request params. An ``RPCFailure``,
    returned or raised, becomes an error object; an ``httpx.Response`` is
    sent as is. Every request is appended to ``handler.calls``.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        handler.calls.append((request.url.path, body["method"], body["params"]))
        try:
            result = results[body["method"]]
            if callable(result):
                result = result(body["params"])
            if isinstance(result, RPCFailure):
                raise result
        except RPCFailure as e:
            error = {"code": -32000, "message": str(e)}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": error})
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})
    handler.calls = []
    return handler
