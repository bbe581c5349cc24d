"""Wallet collaborator: balances, fees and transaction issuance.

The engine only depends on the ``Wallet`` protocol. ``KeystoreWallet`` is the
implementation used against a live node: it imports the actor's key into the
node's keystore and lets the node build, fund and sign transactions, then
reads each issued transaction back to learn which UTXOs it consumed.
"""
import asyncio
import logging
import secrets
from collections.abc import Sequence
from typing import Protocol

import httpx

import chainsoak.constants as C
from chainsoak.errors import IssuanceError, RPCError
from chainsoak.models import TxRecord
from chainsoak.rpc import ChainClient, InfoClient, KeystoreClient, cb58_encode
from chainsoak.utils import with_timeout

log = logging.getLogger("chainsoak.wallet")

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
PRIVATE_KEY_PREFIX = "PrivateKey-"


def generate_private_key() -> str:
    """A fresh secp256k1 private key in the node's ``PrivateKey-<cb58>`` form."""
    while True:
        k = secrets.token_bytes(32)
        if 0 < int.from_bytes(k, "big") < SECP256K1_N:
            return PRIVATE_KEY_PREFIX + cb58_encode(k)


def strip_chain(address: str) -> str:
    """``X-local1abc`` -> ``local1abc``"""
    _, _, body = address.rpartition("-")
    return body


class Wallet(Protocol):
    addresses: frozenset[str]

    async def balances(self, chain: C.Chain) -> dict[str, int]: ...
    def base_tx_fee(self, chain: C.Chain) -> int: ...
    def create_asset_tx_fee(self) -> int: ...
    async def issue_base_tx(self, to: str, amount: int) -> TxRecord: ...
    async def issue_create_asset_tx(
        self,
        name: str,
        symbol: str,
        denomination: int,
        holders: dict[str, int],
        minters: Sequence[str] = (),
    ) -> TxRecord: ...
    async def issue_mint_tx(self, asset_id: str, to: str, amount: int) -> TxRecord: ...
    async def issue_export_tx(self, source: C.Chain, to: str, amount: int) -> TxRecord: ...
    async def issue_import_tx(self, destination: C.Chain, to: str) -> TxRecord: ...


class KeystoreWallet:
    def __init__(
        self,
        uri: str,
        username: str,
        password: str,
        addresses: frozenset[str],
        fees: dict[str, int],
        *,
        http: httpx.AsyncClient,
        poll_interval: float = C.POLL_INTERVAL,
        read_timeout: float | None = None,
    ):
        self.uri = uri
        self.addresses = addresses
        self._auth = {"username": username, "password": password}
        self._fees = fees
        self._poll_interval = poll_interval
        self._read_timeout = read_timeout
        self._clients = {chain: ChainClient(uri, chain, http=http) for chain in C.Chain}

    @classmethod
    async def create(
        cls,
        uri: str,
        private_key: str,
        *,
        http: httpx.AsyncClient,
        poll_interval: float = C.POLL_INTERVAL,
        read_timeout: float | None = None,
    ) -> "KeystoreWallet":
        """Create a keystore user on ``uri`` holding ``private_key``. Raises RPCError.

        ``read_timeout`` bounds how long an issued transaction is read back
        for; unbounded when None.
        """
        username = f"soak-{secrets.token_hex(6)}"
        password = secrets.token_urlsafe(32)
        auth = {"username": username, "password": password}
        await KeystoreClient(uri, http=http).create_user(username, password)

        addrs = set()
        for chain in C.Chain:
            method = f"{chain.api}.importKey"
            res = await ChainClient(uri, chain, http=http).call(method, {**auth, "privateKey": private_key})
            try:
                addrs.add(strip_chain(res["address"]))
            except (KeyError, TypeError) as e:
                raise RPCError(f"response has no address: {res!r}", uri=uri, method=method) from e
        if len(addrs) != 1:
            raise RPCError(f"key imported under different addresses per chain: {sorted(addrs)}", uri=uri)

        fees = await InfoClient(uri, http=http).get_tx_fee()
        return cls(
            uri, username, password, frozenset(addrs), fees,
            http=http, poll_interval=poll_interval, read_timeout=read_timeout,
        )

    @property
    def address(self) -> str:
        return min(self.addresses)

    def _addr(self, chain: C.Chain, address: str | None = None) -> str:
        return f"{chain}-{address or self.address}"

    def base_tx_fee(self, chain: C.Chain) -> int:
        return self._fees["txFee"]

    def create_asset_tx_fee(self) -> int:
        return self._fees.get("createAssetTxFee", self._fees["txFee"])

    async def balances(self, chain: C.Chain) -> dict[str, int]:
        client = self._clients[chain]
        if chain is C.Chain.X:
            out: dict[str, int] = {}
            for a in sorted(self.addresses):
                res = await client.call("avm.getAllBalances", {"address": self._addr(chain, a)})
                for b in res.get("balances") or ():
                    out[b["asset"]] = out.get(b["asset"], 0) + int(b["balance"])
            return out
        res = await client.call("platform.getBalance", {"addresses": [self._addr(chain, a) for a in sorted(self.addresses)]})
        return {C.AVAX: int(res.get("unlocked", 0))}

    async def _issue(self, chain: C.Chain, method: str, params: dict, id_key: str = "txID") -> TxRecord:
        client = self._clients[chain]
        try:
            res = await client.call(method, {**self._auth, "changeAddr": self._addr(chain), **params})
            tx_id = res[id_key]
        except RPCError as e:
            raise IssuanceError(str(e), uri=self.uri, method=method, code=e.code) from e
        except (KeyError, TypeError) as e:
            raise IssuanceError(f"response has no {id_key}", uri=self.uri, method=method) from e
        try:
            consumed = await with_timeout(self._consumed(client, tx_id), self._read_timeout)
        except TimeoutError as e:
            raise IssuanceError(
                f"issued {tx_id} but couldn't read it back within {self._read_timeout}s", uri=client.uri, method=method
            ) from e
        return TxRecord(tx_id=tx_id, chain=chain, consumed=consumed)

    async def _consumed(self, client: ChainClient, tx_id: str):
        """Read the issued transaction back from the issuing node.

        The node may not serve the transaction until it has decided it, so
        this polls. A transaction the node decided against consumed nothing.
        """
        accepted = C.ACCEPTED_STATUS[client.chain]
        terminal = C.TERMINAL_STATUS[client.chain]
        while True:
            try:
                return await client.consumed_inputs(tx_id)
            except RPCError as e:
                log.debug("tx %s not readable yet on %s: %s", tx_id, client.uri, e)
            try:
                status = await client.tx_status(tx_id)
            except RPCError as e:
                raise IssuanceError(f"issued {tx_id} but can't read it back: {e}", uri=client.uri) from e
            if status in terminal and status != accepted:
                return frozenset()
            await asyncio.sleep(self._poll_interval)

    async def issue_base_tx(self, to: str, amount: int) -> TxRecord:
        return await self._issue(C.Chain.X, "avm.send", {
            "assetID": C.AVAX,
            "amount": amount,
            "to": self._addr(C.Chain.X, to),
        })

    async def issue_create_asset_tx(
        self,
        name: str,
        symbol: str,
        denomination: int,
        holders: dict[str, int],
        minters: Sequence[str] = (),
    ) -> TxRecord:
        params = {
            "name": name,
            "symbol": symbol,
            "denomination": denomination,
            "initialHolders": [{"address": self._addr(C.Chain.X, a), "amount": amt} for a, amt in holders.items()],
        }
        if minters:
            params["minterSets"] = [{"minters": [self._addr(C.Chain.X, m) for m in minters], "threshold": 1}]
        # The asset ID is the ID of the transaction that created it
        return await self._issue(C.Chain.X, "avm.createAsset", params, id_key="assetID")

    async def issue_mint_tx(self, asset_id: str, to: str, amount: int) -> TxRecord:
        return await self._issue(C.Chain.X, "avm.mint", {
            "assetID": asset_id,
            "amount": amount,
            "to": self._addr(C.Chain.X, to),
        })

    async def issue_export_tx(self, source: C.Chain, to: str, amount: int) -> TxRecord:
        destination = source.other()
        if source is C.Chain.X:
            params = {"assetID": C.AVAX, "amount": amount, "to": self._addr(destination, to)}
            return await self._issue(source, "avm.export", params)
        return await self._issue(source, "platform.exportAVAX", {"amount": amount, "to": self._addr(destination, to)})

    async def issue_import_tx(self, destination: C.Chain, to: str) -> TxRecord:
        source = destination.other()
        method = "avm.import" if destination is C.Chain.X else "platform.importAVAX"
        return await self._issue(destination, method, {
            "sourceChain": str(source),
            "to": self._addr(destination, to),
        })
