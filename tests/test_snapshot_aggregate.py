import json
import math
import os
import sys
import tempfile
import unittest

from pydantic import ValidationError

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import snapshot_aggregate as sa
from models import OptionSide, OptionType, Position
from schemas import OptionAnalysisForm, SnapshotDocument, aggregate_to_document, field_errors

EXPIRY_A = 1767600000000
EXPIRY_B = 1768204800000
CREATED_AT = 1767225600000


def snapshot_document(index_price=100.0, created_at=CREATED_AT):
    return {
        "id": "snap-1",
        "underlying": "BTCUSDT",
        "createdAt": created_at,
        "indexPrice": index_price,
        "expiries": [EXPIRY_A, EXPIRY_B],
        "symbols": [
            {
                "symbol": "BTC-260105-100-C",
                "underlying": "BTCUSDT",
                "expiryDate": EXPIRY_A,
                "strikePrice": 100,
                "side": "CALL",
                "markPrice": 6.0,
                "markIV": 0.5,
                "delta": 0.3,
            },
            {
                "symbol": "BTC-260105-100-P",
                "underlying": "BTCUSDT",
                "expiryDate": EXPIRY_A,
                "strikePrice": 100,
                "side": "PUT",
                "markPrice": 4.0,
                "bidIV": 0.5,
                "askIV": 0.6,
                "delta": -0.28,
            },
            {
                "symbol": "BTC-260105-110-C",
                "underlying": "BTCUSDT",
                "expiryDate": EXPIRY_A,
                "strikePrice": 110,
                "side": "CALL",
                "markPrice": 1.0,
                "markIV": 0.45,
                "delta": 0.12,
            },
        ],
    }


class OptionAnalysisFormTests(unittest.TestCase):
    def _payload(self, **overrides):
        payload = {
            "symbol": "spy",
            "expiration": "2025-01-17",
            "option_type": "call",
            "position": "long",
            "strike": "600",
            "premium": "",
            "quantity": "2",
            "volatility": " ",
        }
        payload.update(overrides)
        return payload

    def test_valid_form_converts_to_input(self):
        form = OptionAnalysisForm.model_validate(self._payload())
        data = form.to_input()
        self.assertEqual(data.symbol, "SPY")
        self.assertEqual(data.option_type, OptionType.CALL)
        self.assertEqual(data.position, Position.LONG)
        self.assertEqual(data.strike, 600.0)
        self.assertEqual(data.quantity, 2)
        self.assertIsNone(data.premium)
        self.assertIsNone(data.volatility)
        self.assertEqual(data.interest_rate, 0.045)
        self.assertEqual(data.dividend_yield, 0.0)

    def test_invalid_fields_reported_together(self):
        payload = self._payload(symbol="SPY123", strike="-5", quantity="0", expiration="2025-13-01")
        with self.assertRaises(ValidationError) as ctx:
            OptionAnalysisForm.model_validate(payload)
        errors = field_errors(ctx.exception)
        self.assertEqual(set(errors), {"symbol", "strike", "quantity", "expiration"})
        self.assertIn("Invalid date", errors["expiration"][0])

    def test_rate_bounds(self):
        with self.assertRaises(ValidationError) as ctx:
            OptionAnalysisForm.model_validate(self._payload(interest_rate=0.5, dividend_yield=-0.1))
        self.assertEqual(set(field_errors(ctx.exception)), {"interest_rate", "dividend_yield"})

    def test_non_positive_underlying_override_rejected(self):
        for bad in ("0", "-3"):
            with self.assertRaises(ValidationError) as ctx:
                OptionAnalysisForm.model_validate(self._payload(underlying_override=bad))
            self.assertEqual(set(field_errors(ctx.exception)), {"underlying_override"})
        form = OptionAnalysisForm.model_validate(self._payload(underlying_override=""))
        self.assertIsNone(form.underlying_override)

    def test_non_finite_numbers_rejected(self):
        payload = self._payload(strike="inf", premium="nan", volatility="inf")
        with self.assertRaises(ValidationError) as ctx:
            OptionAnalysisForm.model_validate(payload)
        self.assertEqual(set(field_errors(ctx.exception)), {"strike", "premium", "volatility"})


class SnapshotDocumentTests(unittest.TestCase):
    def test_camel_case_fields_parse(self):
        snapshot = SnapshotDocument.model_validate(snapshot_document()).to_snapshot()
        self.assertEqual(snapshot.created_at, CREATED_AT)
        self.assertEqual(snapshot.index_price, 100.0)
        self.assertEqual(len(snapshot.symbols), 3)
        put = snapshot.symbols[1]
        self.assertEqual(put.side, OptionSide.PUT)
        self.assertEqual(put.expiry_date, EXPIRY_A)
        self.assertEqual((put.bid_iv, put.ask_iv, put.mark_iv), (0.5, 0.6, None))

    def test_missing_mark_price_is_rejected(self):
        doc = snapshot_document()
        del doc["symbols"][0]["markPrice"]
        with self.assertRaises(ValidationError):
            SnapshotDocument.model_validate(doc)


class SnapshotAggregateTests(unittest.TestCase):
    def test_aggregate_per_expiry(self):
        snapshot = SnapshotDocument.model_validate(snapshot_document()).to_snapshot()
        aggregate = sa.build_snapshot_aggregate(snapshot)

        self.assertEqual(aggregate.underlying, "BTCUSDT")
        self.assertEqual(aggregate.metadata.version, sa.AGGREGATE_VERSION)
        self.assertEqual(aggregate.metadata.source_snapshot_id, "snap-1")
        self.assertEqual([e.expiry for e in aggregate.expiries], [EXPIRY_A, EXPIRY_B])

        first, second = aggregate.expiries
        w110 = math.exp(-6 * math.log(1.1))
        self.assertAlmostEqual(first.baseline, (0.2 + 1.0 * w110) / (1.0 + w110))
        self.assertAlmostEqual(first.rr25, 0.5 - 0.55)
        self.assertEqual(first.price, 100.0)
        self.assertEqual(first.strikes_considered, 2)

        self.assertIsNone(second.baseline)
        self.assertIsNone(second.rr25)
        self.assertEqual(second.strikes_considered, 0)

    def test_missing_index_price(self):
        snapshot = SnapshotDocument.model_validate(snapshot_document(index_price=None)).to_snapshot()
        aggregate = sa.build_snapshot_aggregate(snapshot)
        self.assertTrue(all(e.baseline is None and e.rr25 is None for e in aggregate.expiries))

    def test_document_is_camel_case(self):
        snapshot = SnapshotDocument.model_validate(snapshot_document()).to_snapshot()
        doc = aggregate_to_document(sa.build_snapshot_aggregate(snapshot))
        self.assertEqual(doc["createdAt"], CREATED_AT)
        self.assertEqual(doc["indexPrice"], 100.0)
        self.assertEqual(doc["metadata"], {"version": 1, "sourceSnapshotId": "snap-1"})
        self.assertEqual(
            set(doc["expiries"][0]), {"expiry", "baseline", "rr25", "price", "strikesConsidered"}
        )
        json.dumps(doc)


class BackfillTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.out = os.path.join(self.tmp.name, "aggregates")
        self.paths = []
        for i, created_at in enumerate((CREATED_AT, CREATED_AT + 60000)):
            path = os.path.join(self.tmp.name, f"snapshot-{i}.json")
            doc = snapshot_document(created_at=created_at)
            del doc["id"]
            with open(path, "w", encoding="utf-8") as f:
                json.dump(doc, f)
            self.paths.append(path)

    def tearDown(self):
        self.tmp.cleanup()

    def test_writes_then_skips_existing(self):
        first = sa.backfill_aggregates(self.paths, self.out)
        self.assertEqual((first.processed, first.created, first.skipped), (2, 2, 0))

        written = os.path.join(self.out, f"BTCUSDT-{CREATED_AT}.json")
        with open(written, encoding="utf-8") as f:
            doc = json.load(f)
        self.assertEqual(doc["metadata"]["sourceSnapshotId"], "snapshot-0")

        second = sa.backfill_aggregates(self.paths, self.out)
        self.assertEqual((second.processed, second.created, second.skipped), (2, 0, 2))

    def test_force_rewrites(self):
        sa.backfill_aggregates(self.paths[:1], self.out)
        res = sa.backfill_aggregates(self.paths, self.out, force=True)
        self.assertEqual((res.created, res.skipped), (2, 0))

    def test_underlying_filter(self):
        res = sa.backfill_aggregates(self.paths, self.out, underlying="ethusdt")
        self.assertEqual((res.processed, res.created), (0, 0))
        res = sa.backfill_aggregates(self.paths, self.out, underlying="btcusdt")
        self.assertEqual((res.processed, res.created), (2, 2))

    def test_limit_takes_newest_first(self):
        res = sa.backfill_aggregates(self.paths, self.out, limit=1)
        self.assertEqual((res.processed, res.created), (1, 1))
        self.assertEqual(os.listdir(self.out), [f"BTCUSDT-{CREATED_AT + 60000}.json"])

    def test_dry_run_writes_nothing(self):
        res = sa.backfill_aggregates(self.paths, self.out, dry_run=True)
        self.assertEqual((res.processed, res.created), (2, 2))
        self.assertFalse(os.path.exists(self.out))


if __name__ == "__main__":
    unittest.main()
