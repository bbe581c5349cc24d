"""Tally of what the actors observed, kept apart by kind of failure.

A node that times out or errors is ordinary noise under fault injection; a
consumed UTXO that is still present after acceptance is a replication bug.
Both are counted, only the latter breaks the ``always`` assertion.
"""
import logging
import time
from collections import Counter, deque

from antithesis.assertions import always, sometimes

import chainsoak.constants as C
from chainsoak.models import ConfirmationResult, FlowReport, VerificationResult

log = logging.getLogger("chainsoak.outcomes")


class OutcomeRecorder:
    def __init__(self, history: int = 1000) -> None:
        self.count_by_outcome: Counter[str] = Counter()
        self.count_by_flow: Counter[str] = Counter()
        self.count_by_actor: dict[int, Counter[str]] = {}
        self.failures: deque[dict] = deque(maxlen=history)
        self.started_at = time.time()

    def _count(self, actor_id: int, outcome: C.Outcome) -> None:
        self.count_by_outcome[outcome] += 1
        self.count_by_actor.setdefault(actor_id, Counter())[outcome] += 1

    def _failure(self, actor_id: int, outcome: C.Outcome, record, endpoints) -> None:
        bad = endpoints[-1] if endpoints else None
        self.failures.append({
            "at": time.time(),
            "actor": actor_id,
            "outcome": str(outcome),
            "chain": str(record.chain),
            "tx_id": record.tx_id,
            "uri": bad.uri if bad else None,
            "detail": bad.detail if bad else "",
        })

    def confirmation(self, actor_id: int, result: ConfirmationResult) -> None:
        outcome = result.outcome
        self._count(actor_id, outcome)
        sometimes(result.confirmed, "transaction confirmed on all nodes", {"chain": str(result.record.chain)})
        if outcome is not C.Outcome.CONFIRMED:
            self._failure(actor_id, outcome, result.record, result.endpoints)

    def verification(self, actor_id: int, result: VerificationResult) -> None:
        outcome = result.outcome
        self._count(actor_id, outcome)
        details = {
            "actor": actor_id,
            "chain": str(result.record.chain),
            "tx_id": result.record.tx_id,
            "lingering": [str(r) for r in result.lingering],
        }
        always(outcome is not C.Outcome.INCONSISTENT, "consumed UTXOs are absent on every node", details)
        if outcome is not C.Outcome.CONSISTENT:
            self._failure(actor_id, outcome, result.record, result.endpoints)

    def flow(self, report: FlowReport) -> None:
        key = "skipped" if report.skipped else "error" if report.error else "ok" if report.ok else "failed"
        self.count_by_flow[f"{report.flow}.{key}"] += 1

    def snapshot(self) -> dict:
        return {
            "uptime_seconds": time.time() - self.started_at,
            "by_outcome": {str(k): v for k, v in self.count_by_outcome.items()},
            "by_flow": dict(self.count_by_flow),
            "by_actor": {a: {str(k): v for k, v in c.items()} for a, c in sorted(self.count_by_actor.items())},
            "inconsistencies": self.count_by_outcome[C.Outcome.INCONSISTENT],
            "node_errors": self.count_by_outcome[C.Outcome.NODE_ERROR],
            "recent_failures": list(self.failures)[-50:],
        }
