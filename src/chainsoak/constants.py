from typing import Final
from enum import StrEnum

# Well-known pre-funded key of local test networks
GENESIS_KEY: Final = "PrivateKey-ewoqjP7PxY4yr3iLTpLisriqt94hdyDFNgchSxGGztUrTXtNN"

AVAX: Final = "AVAX"

# Denominations, in nAVAX
NANO_AVAX: Final = 1
SCHMECKLE: Final = 49_463 * NANO_AVAX
AVAX_UNIT: Final = 1_000_000_000 * NANO_AVAX
KILO_AVAX: Final = 1_000 * AVAX_UNIT

NUM_ACTORS: Final = 5
POLL_INTERVAL: Final = 0.1  # seconds
MAX_FLOW_DELAY: Final = 1.0  # seconds
FUNDING_AMOUNT: Final = 100 * KILO_AVAX
TRANSFER_AMOUNT: Final = SCHMECKLE
CROSS_CHAIN_AMOUNT: Final = AVAX_UNIT
RPC_TIMEOUT: Final = 10.0
UTXO_PAGE_SIZE: Final = 1024

ASSET_NAME: Final = "HI"
ASSET_SYMBOL: Final = "HI"
ASSET_DENOMINATION: Final = 1


class Chain(StrEnum):
    X = "X"
    P = "P"

    @property
    def api(self) -> str:
        """JSON-RPC namespace served by this chain's endpoint."""
        return "avm" if self is Chain.X else "platform"

    @property
    def path(self) -> str:
        return f"/ext/bc/{self.value}"

    def other(self) -> "Chain":
        return Chain.P if self is Chain.X else Chain.X


class TxStatus(StrEnum):
    ACCEPTED   = "Accepted"
    REJECTED   = "Rejected"
    COMMITTED  = "Committed"
    ABORTED    = "Aborted"
    DROPPED    = "Dropped"
    PROCESSING = "Processing"
    UNKNOWN    = "Unknown"


# Status a node reports once it has accepted a transaction, per chain
ACCEPTED_STATUS: Final = {
    Chain.X: TxStatus.ACCEPTED,
    Chain.P: TxStatus.COMMITTED,
}

TERMINAL_STATUS: Final = {
    Chain.X: frozenset({TxStatus.ACCEPTED, TxStatus.REJECTED}),
    Chain.P: frozenset({TxStatus.COMMITTED, TxStatus.ABORTED, TxStatus.DROPPED}),
}


class Outcome(StrEnum):
    CONFIRMED    = "confirmed"
    REJECTED     = "rejected"
    NODE_ERROR   = "node_error"
    CONSISTENT   = "consistent"
    INCONSISTENT = "inconsistent"


__all__ = [
    "ACCEPTED_STATUS",
    "ASSET_DENOMINATION",
    "ASSET_NAME",
    "ASSET_SYMBOL",
    "AVAX",
    "AVAX_UNIT",
    "CROSS_CHAIN_AMOUNT",
    "FUNDING_AMOUNT",
    "GENESIS_KEY",
    "KILO_AVAX",
    "MAX_FLOW_DELAY",
    "NANO_AVAX",
    "NUM_ACTORS",
    "POLL_INTERVAL",
    "RPC_TIMEOUT",
    "SCHMECKLE",
    "TERMINAL_STATUS",
    "TRANSFER_AMOUNT",
    "UTXO_PAGE_SIZE",

    ######
    "Chain",
    "Outcome",
    "TxStatus",
]
