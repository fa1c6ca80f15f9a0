"""Per-expiry aggregates derived from stored option chain snapshots."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import structlog

from expiry_grid import build_contract_grid, compute_rr25_for_expiry, compute_sentiment_for_expiry
from models import AggregateMetadata, OptionSnapshot, SnapshotAggregate, SnapshotExpiryAggregate
from schemas import SnapshotDocument, aggregate_to_document

AGGREGATE_VERSION = 1

_log = structlog.get_logger(__name__)


def build_snapshot_aggregate(snapshot: OptionSnapshot) -> SnapshotAggregate:
    """Return baseline sentiment and RR25 for every expiry in ``snapshot``."""
    marks = {c.symbol: c for c in snapshot.symbols}
    prices = {c.symbol: c.mark_price for c in snapshot.symbols}

    expiries: List[SnapshotExpiryAggregate] = []
    for expiry in snapshot.expiries:
        grid = build_contract_grid(snapshot.symbols, snapshot.underlying, expiry)
        if not grid or snapshot.index_price is None:
            expiries.append(
                SnapshotExpiryAggregate(
                    expiry=expiry,
                    baseline=None,
                    rr25=None,
                    price=snapshot.index_price,
                    strikes_considered=0,
                )
            )
            continue
        baseline = compute_sentiment_for_expiry(grid, prices, snapshot.index_price)
        expiries.append(
            SnapshotExpiryAggregate(
                expiry=expiry,
                baseline=baseline.score,
                rr25=compute_rr25_for_expiry(grid, marks),
                price=snapshot.index_price,
                strikes_considered=baseline.strikes_considered,
            )
        )

    return SnapshotAggregate(
        underlying=snapshot.underlying,
        created_at=snapshot.created_at,
        index_price=snapshot.index_price,
        expiries=expiries,
        metadata=AggregateMetadata(version=AGGREGATE_VERSION, source_snapshot_id=snapshot.id),
    )


@dataclass
class BackfillResult:
    processed: int = 0
    created: int = 0
    skipped: int = 0


def aggregate_path(output_dir: str, snapshot: OptionSnapshot) -> str:
    return os.path.join(output_dir, f"{snapshot.underlying}-{snapshot.created_at}.json")


def load_snapshot(path: str) -> OptionSnapshot:
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    raw.setdefault("id", os.path.splitext(os.path.basename(path))[0])
    return SnapshotDocument.model_validate(raw).to_snapshot()


def backfill_aggregates(
    snapshot_paths: Iterable[str],
    output_dir: str,
    force: bool = False,
    dry_run: bool = False,
    underlying: Optional[str] = None,
    limit: Optional[int] = None,
) -> BackfillResult:
    """Write one aggregate JSON file per snapshot file.

    Snapshots whose aggregate already exists are skipped unless ``force``.
    With ``dry_run`` nothing is written but the would-be writes are counted.
    ``underlying`` restricts the run to one underlying; ``limit`` caps the
    snapshots handled per underlying, newest first.
    """
    result = BackfillResult()
    if not dry_run:
        os.makedirs(output_dir, exist_ok=True)

    by_underlying: Dict[str, List[OptionSnapshot]] = {}
    for path in snapshot_paths:
        snapshot = load_snapshot(path)
        if underlying and snapshot.underlying.upper() != underlying.upper():
            continue
        by_underlying.setdefault(snapshot.underlying, []).append(snapshot)

    for name in sorted(by_underlying):
        snapshots = sorted(by_underlying[name], key=lambda s: s.created_at, reverse=True)
        if limit is not None:
            snapshots = snapshots[: max(limit, 0)]
        _log.debug("aggregate.underlying", underlying=name, snapshots=len(snapshots))

        for snapshot in snapshots:
            target = aggregate_path(output_dir, snapshot)
            result.processed += 1

            if not force and os.path.exists(target):
                _log.info("aggregate.skipped", underlying=name, created_at=snapshot.created_at)
                result.skipped += 1
                continue

            aggregate = build_snapshot_aggregate(snapshot)
            if dry_run:
                _log.info("aggregate.dry_run", underlying=name, created_at=snapshot.created_at)
                result.created += 1
                continue

            with open(target, "w", encoding="utf-8") as f:
                json.dump(aggregate_to_document(aggregate), f, indent=2)
            _log.info("aggregate.written", underlying=name, path=target)
            result.created += 1

    _log.info(
        "aggregate.backfill_complete",
        processed=result.processed,
        created=result.created,
        skipped=result.skipped,
    )
    return result


__all__ = [
    "AGGREGATE_VERSION",
    "BackfillResult",
    "build_snapshot_aggregate",
    "aggregate_path",
    "load_snapshot",
    "backfill_aggregates",
]
