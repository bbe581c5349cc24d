from unittest import TestCase

import chainsoak.constants as C
from chainsoak.models import ConfirmationResult, EndpointResult, FlowReport, TxRecord, VerificationResult
from chainsoak.outcomes import OutcomeRecorder

from tests.fakes import URIS, utxo


class TestOutcomeRecorder(TestCase):
    def setUp(self):
        self.recorder = OutcomeRecorder()
        self.record = TxRecord("tx1", C.Chain.X, frozenset({utxo(n=1)}))

    def test_node_errors_and_inconsistencies_are_counted_apart(self):
        errored = ConfirmationResult(self.record, [EndpointResult(URIS[0], C.Outcome.NODE_ERROR, "timed out")], expected=3)
        lingering = VerificationResult(
            self.record,
            [EndpointResult(URIS[0], C.Outcome.CONSISTENT), EndpointResult(URIS[1], C.Outcome.INCONSISTENT, "still there")],
            expected=3,
            lingering=[utxo(n=1)],
        )
        self.recorder.confirmation(1, errored)
        self.recorder.verification(2, lingering)

        snap = self.recorder.snapshot()
        self.assertEqual(snap["node_errors"], 1)
        self.assertEqual(snap["inconsistencies"], 1)
        self.assertEqual(snap["by_actor"], {1: {"node_error": 1}, 2: {"inconsistent": 1}})
        self.assertEqual([f["outcome"] for f in snap["recent_failures"]], ["node_error", "inconsistent"])
        self.assertEqual(snap["recent_failures"][1]["uri"], URIS[1])

    def test_confirmed_is_not_a_failure(self):
        confirmed = ConfirmationResult(
            self.record, [EndpointResult(uri, C.Outcome.CONFIRMED) for uri in URIS], expected=len(URIS)
        )
        self.recorder.confirmation(1, confirmed)
        self.assertEqual(self.recorder.count_by_outcome, {C.Outcome.CONFIRMED: 1})
        self.assertEqual(list(self.recorder.failures), [])

    def test_flow_tally(self):
        self.recorder.flow(FlowReport("x_transfer", 1, skipped=True))
        self.recorder.flow(FlowReport("x_transfer", 1))
        self.recorder.flow(FlowReport("x_to_p", 1, error="x-chain export tx: boom"))
        self.assertEqual(
            self.recorder.snapshot()["by_flow"],
            {"x_transfer.skipped": 1, "x_transfer.ok": 1, "x_to_p.error": 1},
        )

    def test_history_is_bounded(self):
        recorder = OutcomeRecorder(history=2)
        for i in range(5):
            recorder.confirmation(i, ConfirmationResult(self.record, expected=3))
        self.assertEqual(len(recorder.failures), 2)
        self.assertEqual(recorder.count_by_outcome[C.Outcome.NODE_ERROR], 5)
