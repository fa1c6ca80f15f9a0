from __future__ import annotations

import argparse
import glob
import logging
import sys
from typing import List, Optional

import structlog
from colorama import Fore, Style, init as colorama_init

import snapshot_aggregate
import trade_analysis
from models import OptionAnalysisResult, OptionPrefill, OptionType, Position
from trade_analysis import OptionAnalysisError


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def _money(value: Optional[float]) -> str:
    if value is None:
        return "unbounded"
    color = Fore.GREEN if value >= 0 else Fore.RED
    return f"{color}{value:,.2f}{Style.RESET_ALL}"


def _optional(value: Optional[float], fmt: str = "{:.4f}") -> str:
    return "-" if value is None else fmt.format(value)


def print_analysis(result: OptionAnalysisResult) -> None:
    a = result.analytics
    q = result.quote
    print(f"=== {q.symbol} {result.resolved_expiration} | {a.position.value} {a.contracts}x ===")
    print(f"Underlying:      {a.underlying_price:,.2f} ({q.change_percent:+.2f}%)")
    print(f"Moneyness:       {a.moneyness.value}")
    print(f"Break-even:      {a.break_even:,.2f}")
    print(f"Max profit:      {_money(a.max_profit)}")
    print(f"Max loss:        {_money(a.max_loss)}")
    print(f"Prob. ITM:       {a.probability_in_the_money * 100:.1f}%")
    print(f"Expected move:   +/-{a.expected_move:,.2f}")
    print(f"Annualized ret.: {_optional(a.annualized_return, '{:.2%}')}")
    print(f"Premium/contract:{a.premium_per_contract:>10,.2f}  position {_money(a.position_premium)}")
    print(f"Intrinsic:       {a.intrinsic_value_total:,.2f}  time value {a.time_value_total:,.2f}")
    print(f"IV source:       {result.iv_source.value}")
    if result.realized_volatility is not None:
        rv = result.realized_volatility
        print(f"Realized vol:    {rv.value:.2%} ({rv.window}d)")
    g = a.greeks
    print(
        f"{'Delta':>8} {'Gamma':>8} {'Theta':>8} {'Vega':>8} {'Rho':>8}\n"
        f"{g.delta:8.4f} {g.gamma:8.4f} {g.theta:8.4f} {g.vega:8.4f} {g.rho:8.4f}"
    )
    if result.notable_strikes:
        print()
        print(f"{'Strike':>8} {'Type':>5} {'Last':>8} {'OI':>8} {'IV':>6}")
        for c in result.notable_strikes:
            iv = _optional(c.implied_volatility, "{:.2f}")
            print(f"{c.strike:8.2f} {c.option_type.value:>5} {c.last_price:8.2f} {c.open_interest or 0:8d} {iv:>6}")


def print_prefill(prefill: OptionPrefill) -> None:
    print(f"Symbol:      {prefill.symbol} @ {prefill.underlying_price:,.2f}")
    print(f"Expiration:  {prefill.expiration}")
    print(f"Contract:    {prefill.contract_symbol or '-'} ({prefill.option_type.value} {prefill.strike:g})")
    print(f"Premium:     {_optional(prefill.premium, '{:.2f}')}")
    print(f"IV:          {_optional(prefill.implied_volatility, '{:.2%}')}")
    if prefill.expiration_dates:
        print(f"Expirations: {', '.join(prefill.expiration_dates[:8])}")


def plot_payoff(result: OptionAnalysisResult) -> None:
    import matplotlib.pyplot as plt

    curve = result.analytics.payoff_at_expiration
    plt.plot([p.price for p in curve], [p.profit for p in curve])
    plt.axhline(0, color="grey", linewidth=0.8)
    plt.axvline(result.analytics.underlying_price, color="grey", linestyle="--", linewidth=0.8)
    plt.xlabel("Underlying at expiry")
    plt.ylabel("Profit")
    plt.title(f"{result.quote.symbol} payoff at expiration")
    plt.tight_layout()
    plt.show()


def _analyze(parsed: argparse.Namespace) -> int:
    form = {
        "symbol": parsed.symbol,
        "expiration": parsed.expiration,
        "option_type": parsed.type,
        "position": parsed.position,
        "strike": parsed.strike,
        "premium": parsed.premium,
        "quantity": parsed.quantity,
        "interest_rate": parsed.rate,
        "dividend_yield": parsed.dividend,
        "volatility": parsed.volatility,
        "underlying_override": parsed.underlying,
    }
    result = trade_analysis.analyze_option_trade(form)
    print_analysis(result)
    if parsed.plot:
        plot_payoff(result)
    return 0


def _suggest(parsed: argparse.Namespace) -> int:
    print_prefill(trade_analysis.suggest_option_defaults(parsed.symbol))
    return 0


def _aggregate(parsed: argparse.Namespace) -> int:
    paths: List[str] = []
    for pattern in parsed.snapshots:
        paths.extend(sorted(glob.glob(pattern)) or [pattern])
    result = snapshot_aggregate.backfill_aggregates(
        paths,
        parsed.out,
        force=parsed.force,
        dry_run=parsed.dry_run,
        underlying=parsed.underlying,
        limit=parsed.limit,
    )
    print(f"processed={result.processed} created={result.created} skipped={result.skipped}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Option pricing, payoff and sentiment tools",
        epilog="Example: cli.py analyze SPY --expiration 2025-01-17 --strike 600",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Price a single-leg option position")
    analyze.add_argument("symbol")
    analyze.add_argument("--expiration", required=True, help="Expiry date (YYYY-MM-DD)")
    analyze.add_argument("--type", choices=[t.value for t in OptionType], default=OptionType.CALL.value)
    analyze.add_argument("--position", choices=[p.value for p in Position], default=Position.LONG.value)
    analyze.add_argument("--strike", type=float, required=True)
    analyze.add_argument("--premium", type=float, help="Per-share premium (default: last trade)")
    analyze.add_argument("--quantity", type=int, default=1, help="Contracts of 100 shares")
    analyze.add_argument("--rate", type=float, default=0.045, help="Risk-free rate (0.045 = 4.5 %%)")
    analyze.add_argument("--dividend", type=float, default=0.0, help="Dividend yield")
    analyze.add_argument("--volatility", type=float, help="Implied volatility override")
    analyze.add_argument("--underlying", type=float, help="Underlying price override")
    analyze.add_argument("--plot", action="store_true", help="Show the payoff chart")
    analyze.set_defaults(handler=_analyze)

    suggest = sub.add_parser("suggest", help="Suggest an at-the-money contract")
    suggest.add_argument("symbol")
    suggest.set_defaults(handler=_suggest)

    aggregate = sub.add_parser("aggregate", help="Aggregate stored chain snapshots")
    aggregate.add_argument("snapshots", nargs="+", help="Snapshot JSON files or glob patterns")
    aggregate.add_argument("--out", required=True, help="Directory for aggregate JSON files")
    aggregate.add_argument("--force", action="store_true", help="Rewrite existing aggregates")
    aggregate.add_argument("--dry-run", action="store_true")
    aggregate.add_argument("--underlying", help="Only aggregate snapshots of this underlying")
    aggregate.add_argument("--limit", type=int, help="Newest snapshots to process per underlying")
    aggregate.set_defaults(handler=_aggregate)
    return parser


def main(args: Optional[List[str]] = None) -> int:
    parsed = build_parser().parse_args(args)
    colorama_init()
    configure_logging(parsed.verbose)

    try:
        return parsed.handler(parsed)
    except OptionAnalysisError as exc:
        print(f"{Fore.RED}{exc.message}{Style.RESET_ALL}", file=sys.stderr)
        for field, messages in exc.errors.items():
            print(f"  {field}: {'; '.join(messages)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
