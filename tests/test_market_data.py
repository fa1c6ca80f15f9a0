import os
import sys
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import numpy as np
import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import market_data
from models import OptionType
from utils import clear_fetch_cache


def chain_frames():
    calls = pd.DataFrame(
        {
            "contractSymbol": ["SPY250117C00590000", "SPY250117C00600000"],
            "strike": [590.0, 600.0],
            "lastPrice": [14.2, 7.9],
            "bid": [14.0, 7.8],
            "ask": [14.4, np.nan],
            "impliedVolatility": [0.18, 0.0],
            "openInterest": [1200, np.nan],
            "volume": [310, 95],
            "inTheMoney": [True, False],
        }
    )
    puts = pd.DataFrame(
        {
            "contractSymbol": ["SPY250117P00600000"],
            "strike": [600.0],
            "lastPrice": [9.1],
            "impliedVolatility": [0.21],
            "openInterest": [800],
        }
    )
    return calls, puts


class FakeTicker:
    options = ("2025-01-17", "2025-01-24")

    def __init__(self, closes=(595.0, 598.5, 601.2)):
        self.closes = list(closes)
        self.requested = []

    def history(self, period="1d"):
        return pd.DataFrame({"Close": self.closes, "Volume": [1_000_000] * len(self.closes)})

    def option_chain(self, expiry):
        self.requested.append(expiry)
        calls, puts = chain_frames()
        return SimpleNamespace(calls=calls, puts=puts)


class ChainConversionTests(unittest.TestCase):
    def test_frames_to_contracts(self):
        calls, puts = chain_frames()
        chain = market_data.chain_from_frames(calls, puts, "2025-01-17")

        self.assertEqual(len(chain.contracts), 3)
        first = chain.contracts[0]
        self.assertEqual(first.contract_symbol, "SPY250117C00590000")
        self.assertEqual(first.option_type, OptionType.CALL)
        self.assertEqual(first.open_interest, 1200)
        self.assertEqual(first.expiration, "2025-01-17")
        self.assertTrue(first.in_the_money)

        second = chain.contracts[1]
        self.assertIsNone(second.ask)
        self.assertIsNone(second.implied_volatility)
        self.assertEqual(second.open_interest, 0)

        put = chain.contracts[2]
        self.assertEqual(put.option_type, OptionType.PUT)
        self.assertIsNone(put.bid)
        self.assertIsNone(put.in_the_money)

    def test_chart_series_skip_empty_points(self):
        calls, puts = chain_frames()
        chain = market_data.chain_from_frames(calls, puts, "2025-01-17")
        self.assertEqual([(p.strike, p.option_type) for p in chain.volatility_smile],
                         [(590.0, OptionType.CALL), (600.0, OptionType.PUT)])
        self.assertEqual([(p.strike, p.open_interest) for p in chain.open_interest],
                         [(590.0, 1200), (600.0, 800)])

    def test_missing_side(self):
        calls, _ = chain_frames()
        chain = market_data.chain_from_frames(calls, None, "2025-01-17")
        self.assertTrue(all(c.option_type == OptionType.CALL for c in chain.contracts))


class QuoteTests(unittest.TestCase):
    def test_change_from_previous_close(self):
        history = pd.DataFrame({"Close": [100.0, 102.0], "Volume": [10, 20]})
        quote = market_data.quote_from_history("spy", history)
        self.assertEqual(quote.symbol, "SPY")
        self.assertEqual(quote.price, 102.0)
        self.assertAlmostEqual(quote.change, 2.0)
        self.assertAlmostEqual(quote.change_percent, 2.0)
        self.assertEqual(quote.volume, 20)

    def test_single_bar(self):
        quote = market_data.quote_from_history("SPY", pd.DataFrame({"Close": [100.0]}))
        self.assertEqual(quote.change, 0.0)
        self.assertIsNone(quote.previous_close)
        self.assertIsNone(quote.volume)

    def test_empty_history_raises(self):
        with self.assertRaises(RuntimeError):
            market_data.quote_from_history("ZZZZ", pd.DataFrame())


class FetchTests(unittest.TestCase):
    def setUp(self):
        clear_fetch_cache()

    def tearDown(self):
        clear_fetch_cache()

    def test_fetch_quote(self):
        with patch("yfinance.Ticker", return_value=FakeTicker()):
            quote = market_data.fetch_quote("SPY")
        self.assertAlmostEqual(quote.price, 601.2)

    def test_unlisted_expiration_falls_back(self):
        ticker = FakeTicker()
        with patch("yfinance.Ticker", return_value=ticker):
            chain = market_data.fetch_options_chain("SPY", "2030-01-01")
        self.assertEqual(chain.resolved_expiration, "2025-01-17")
        self.assertEqual(chain.expiration_dates, ["2025-01-17", "2025-01-24"])
        self.assertEqual(ticker.requested, ["2025-01-17"])
        self.assertTrue(all(c.expiration == "2025-01-17" for c in chain.contracts))

    def test_listed_expiration_is_used(self):
        ticker = FakeTicker()
        with patch("yfinance.Ticker", return_value=ticker):
            chain = market_data.fetch_options_chain("SPY", "2025-01-24")
        self.assertEqual(chain.resolved_expiration, "2025-01-24")

    def test_no_listed_expirations(self):
        ticker = FakeTicker()
        ticker.options = ()
        with patch("yfinance.Ticker", return_value=ticker):
            chain = market_data.fetch_options_chain("ZZZZ", "2025-01-17")
        self.assertEqual(chain.contracts, [])
        self.assertEqual(chain.resolved_expiration, "2025-01-17")

    def test_realized_volatility_from_history(self):
        with patch("yfinance.Ticker", return_value=FakeTicker(closes=[100, 110, 100, 110, 100])):
            rv = market_data.fetch_realized_volatility("SPY", window=21)
        self.assertEqual(rv.observations, 4)
        self.assertGreater(rv.value, 0)


if __name__ == "__main__":
    unittest.main()
