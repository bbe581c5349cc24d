"""Records passed between wallet, confirmation, verification and reporting."""

from dataclasses import dataclass, field

import chainsoak.constants as C


@dataclass(frozen=True, slots=True, order=True)
class UTXORef:
    """One unspent output, as addressed on a given chain."""

    chain: C.Chain
    tx_id: str
    output_index: int

    def __str__(self):
        return f"{self.tx_id}:{self.output_index}"


@dataclass(frozen=True, slots=True)
class TxRecord:
    tx_id: str
    chain: C.Chain
    consumed: frozenset[UTXORef] = frozenset()

    def __str__(self):
        return f"{self.chain}-chain tx {self.tx_id}"


@dataclass(frozen=True, slots=True)
class EndpointResult:
    uri: str
    outcome: C.Outcome
    detail: str = ""


@dataclass(slots=True)
class ConfirmationResult:
    """Per-endpoint confirmation outcomes, in probing order.

    Probing stops at the first endpoint that does not accept the transaction,
    so endpoints after it are absent from ``endpoints``.
    """

    record: TxRecord
    endpoints: list[EndpointResult] = field(default_factory=list)
    expected: int = 0

    @property
    def confirmed(self) -> bool:
        return (
            self.expected > 0
            and len(self.endpoints) == self.expected
            and all(e.outcome is C.Outcome.CONFIRMED for e in self.endpoints)
        )

    @property
    def outcome(self) -> C.Outcome:
        if self.confirmed:
            return C.Outcome.CONFIRMED
        failed = [e for e in self.endpoints if e.outcome is not C.Outcome.CONFIRMED]
        return failed[-1].outcome if failed else C.Outcome.NODE_ERROR


@dataclass(slots=True)
class VerificationResult:
    record: TxRecord
    endpoints: list[EndpointResult] = field(default_factory=list)
    expected: int = 0
    lingering: list[UTXORef] = field(default_factory=list)  # consumed refs still present

    @property
    def consistent(self) -> bool:
        return (
            self.expected > 0
            and len(self.endpoints) == self.expected
            and all(e.outcome is C.Outcome.CONSISTENT for e in self.endpoints)
        )

    @property
    def outcome(self) -> C.Outcome:
        if self.consistent:
            return C.Outcome.CONSISTENT
        failed = [e for e in self.endpoints if e.outcome is not C.Outcome.CONSISTENT]
        return failed[-1].outcome if failed else C.Outcome.NODE_ERROR


@dataclass(slots=True)
class TxReport:
    record: TxRecord
    confirmation: ConfirmationResult
    verification: VerificationResult | None = None

    @property
    def ok(self) -> bool:
        return self.confirmation.confirmed and self.verification is not None and self.verification.consistent


@dataclass(slots=True)
class FlowReport:
    flow: str
    actor_id: int
    skipped: bool = False
    error: str | None = None
    txs: list[TxReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and all(t.ok for t in self.txs)
