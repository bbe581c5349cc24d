"""JSON-RPC clients for the node APIs the harness talks to.

All clients share one ``httpx.AsyncClient`` so connections to a node are
pooled across actors. Every failure surfaces as ``RPCError``: HTTP errors,
JSON-RPC error objects and malformed payloads alike.
"""
import asyncio
import hashlib
import itertools
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol

import base58
import httpx

import chainsoak.constants as C
from chainsoak.errors import RPCError
from chainsoak.models import UTXORef

log = logging.getLogger("chainsoak.rpc")

_ids = itertools.count(1)

CHECKSUM_LEN = 4
CODEC_VERSION_LEN = 2
ID_LEN = 32


def cb58_encode(b: bytes) -> str:
    return base58.b58encode(b + hashlib.sha256(b).digest()[-CHECKSUM_LEN:]).decode()


def cb58_decode(s: str) -> bytes:
    raw = base58.b58decode(s)
    payload, checksum = raw[:-CHECKSUM_LEN], raw[-CHECKSUM_LEN:]
    if hashlib.sha256(payload).digest()[-CHECKSUM_LEN:] != checksum:
        raise ValueError(f"bad cb58 checksum: {s!r}")
    return payload


def decode_hex(s: str) -> bytes:
    """Decode the node's checksummed ``0x`` hex encoding."""
    raw = bytes.fromhex(s.removeprefix("0x"))
    payload, checksum = raw[:-CHECKSUM_LEN], raw[-CHECKSUM_LEN:]
    if hashlib.sha256(payload).digest()[-CHECKSUM_LEN:] != checksum:
        raise ValueError("bad hex checksum")
    return payload


def utxo_ref_from_bytes(chain: C.Chain, b: bytes) -> UTXORef:
    # codec version | tx id | output index (uint32, big endian) | asset id | output ...
    start = CODEC_VERSION_LEN
    if len(b) < start + ID_LEN + 4:
        raise ValueError(f"utxo too short: {len(b)} bytes")
    tx_id = b[start:start + ID_LEN]
    output_index = int.from_bytes(b[start + ID_LEN:start + ID_LEN + 4], "big")
    return UTXORef(chain=chain, tx_id=cb58_encode(tx_id), output_index=output_index)


def parse_consumed_inputs(chain: C.Chain, tx: Mapping[str, Any]) -> frozenset[UTXORef]:
    """UTXOs spent by a JSON-encoded transaction.

    Covers regular inputs, imported inputs and the UTXOs spent by operations
    (e.g. the mint output an operation transaction consumes).
    """
    unsigned = tx.get("unsignedTx", tx)
    refs = set()
    for key in ("inputs", "importedInputs"):
        for i in unsigned.get(key) or ():
            refs.add(UTXORef(chain, i["txID"], int(i["outputIndex"])))
    for op in unsigned.get("operations") or ():
        for i in op.get("inputIDs") or ():
            refs.add(UTXORef(chain, i["txID"], int(i["outputIndex"])))
    return frozenset(refs)


class JSONRPCClient:
    def __init__(self, uri: str, path: str, *, http: httpx.AsyncClient, timeout: float = C.RPC_TIMEOUT):
        self.uri = uri.rstrip("/")
        self.url = f"{self.uri}{path}"
        self._http = http
        self.timeout = timeout

    async def call(self, method: str, params: Mapping[str, Any] | None = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(_ids), "method": method, "params": dict(params or {})}
        log.debug("-> %s %s", self.url, method)
        try:
            r = await self._http.post(self.url, json=payload, timeout=self.timeout)
            r.raise_for_status()
            body = r.json()
        except httpx.HTTPError as e:
            raise RPCError(f"{type(e).__name__}: {e}", uri=self.uri, method=method) from e
        except ValueError as e:
            raise RPCError(f"invalid JSON response: {e}", uri=self.uri, method=method) from e

        if not isinstance(body, dict):
            raise RPCError(f"unexpected response: {body!r}", uri=self.uri, method=method)
        if err := body.get("error"):
            if not isinstance(err, dict):
                raise RPCError(str(err), uri=self.uri, method=method)
            raise RPCError(err.get("message", str(err)), uri=self.uri, method=method, code=err.get("code"))
        if "result" not in body:
            raise RPCError(f"response has no result: {body}", uri=self.uri, method=method)
        return body["result"]


class HealthClient(JSONRPCClient):
    def __init__(self, uri: str, **kw):
        super().__init__(uri, "/ext/health", **kw)

    async def healthy(self) -> bool:
        res = await self.call("health.health")
        return isinstance(res, dict) and bool(res.get("healthy"))


class InfoClient(JSONRPCClient):
    def __init__(self, uri: str, **kw):
        super().__init__(uri, "/ext/info", **kw)

    async def get_tx_fee(self) -> dict[str, int]:
        res = await self.call("info.getTxFee")
        try:
            return {k: int(v) for k, v in res.items()}
        except (AttributeError, ValueError) as e:
            raise RPCError(f"unexpected fees {res!r}", uri=self.uri, method="info.getTxFee") from e


class KeystoreClient(JSONRPCClient):
    def __init__(self, uri: str, **kw):
        super().__init__(uri, "/ext/keystore", **kw)

    async def create_user(self, username: str, password: str) -> None:
        await self.call("keystore.createUser", {"username": username, "password": password})


class ChainClient(JSONRPCClient):
    """Status, transaction and UTXO queries against one chain of one node."""

    def __init__(self, uri: str, chain: C.Chain, **kw):
        super().__init__(uri, chain.path, **kw)
        self.chain = chain

    def _method(self, name: str) -> str:
        return f"{self.chain.api}.{name}"

    async def tx_status(self, tx_id: str) -> C.TxStatus:
        res = await self.call(self._method("getTxStatus"), {"txID": tx_id})
        try:
            return C.TxStatus(res["status"])
        except (KeyError, ValueError) as e:
            raise RPCError(f"unexpected tx status {res!r}", uri=self.uri, method=self._method("getTxStatus")) from e

    async def await_tx_decided(self, tx_id: str, interval: float = C.POLL_INTERVAL) -> C.TxStatus:
        """Poll until the node reports a terminal status for the transaction."""
        terminal = C.TERMINAL_STATUS[self.chain]
        while True:
            status = await self.tx_status(tx_id)
            if status in terminal:
                return status
            await asyncio.sleep(interval)

    async def get_tx(self, tx_id: str) -> dict:
        res = await self.call(self._method("getTx"), {"txID": tx_id, "encoding": "json"})
        tx = res.get("tx")
        if not isinstance(tx, dict):
            raise RPCError(f"getTx returned no JSON tx for {tx_id}", uri=self.uri, method=self._method("getTx"))
        return tx

    async def consumed_inputs(self, tx_id: str) -> frozenset[UTXORef]:
        return parse_consumed_inputs(self.chain, await self.get_tx(tx_id))

    async def get_utxos(
        self,
        addresses: Iterable[str],
        page_size: int = C.UTXO_PAGE_SIZE,
    ) -> set[UTXORef]:
        """Every UTXO the node holds for ``addresses``, following pagination to the end."""
        method = self._method("getUTXOs")
        params: dict[str, Any] = {
            "addresses": [f"{self.chain}-{a}" for a in addresses],
            "sourceChain": str(self.chain),
            "limit": page_size,
            "encoding": "hex",
        }
        utxos: set[UTXORef] = set()
        while True:
            res = await self.call(method, params)
            page = res.get("utxos") or []
            try:
                utxos.update(utxo_ref_from_bytes(self.chain, decode_hex(u)) for u in page)
            except ValueError as e:
                raise RPCError(f"malformed UTXO: {e}", uri=self.uri, method=method) from e
            if len(page) < page_size or "endIndex" not in res:
                return utxos
            params["startIndex"] = res["endIndex"]


class ChainReader(Protocol):
    uri: str
    chain: C.Chain

    async def await_tx_decided(self, tx_id: str, interval: float = C.POLL_INTERVAL) -> C.TxStatus: ...
    async def get_utxos(self, addresses: Iterable[str]) -> set[UTXORef]: ...


ClientFactory = Callable[[str, C.Chain], ChainReader]


def client_factory(http: httpx.AsyncClient) -> ClientFactory:
    """Open chain clients that share ``http``'s connection pool."""
    def open_client(uri: str, chain: C.Chain) -> ChainClient:
        return ChainClient(uri, chain, http=http)
    return open_client
