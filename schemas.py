"""Validation for user-entered trades and stored snapshot documents."""

from __future__ import annotations

import datetime as dt
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import (
    OptionAnalysisInput,
    OptionContract,
    OptionSide,
    OptionSnapshot,
    OptionType,
    Position,
    SnapshotAggregate,
)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class OptionAnalysisForm(BaseModel):
    """Trade form as submitted by a user; numbers may arrive as strings."""

    model_config = ConfigDict(allow_inf_nan=False)

    symbol: str = Field(min_length=1, pattern=r"^[A-Za-z.\-]{1,8}$")
    expiration: str = Field(min_length=1)
    option_type: OptionType
    position: Position
    strike: float = Field(gt=0)
    premium: Optional[float] = None
    quantity: int = Field(default=1, ge=1)
    interest_rate: float = Field(default=0.045, ge=0, le=0.25)
    dividend_yield: float = Field(default=0.0, ge=0, le=0.2)
    volatility: Optional[float] = None
    underlying_override: Optional[float] = Field(default=None, gt=0)

    @field_validator("premium", "volatility", "underlying_override", mode="before")
    @classmethod
    def _optional_number(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("expiration")
    @classmethod
    def _parseable_date(cls, value: str) -> str:
        try:
            dt.date.fromisoformat(value[:10])
        except ValueError:
            raise ValueError("Invalid date")
        return value

    def to_input(self) -> OptionAnalysisInput:
        return OptionAnalysisInput(
            symbol=self.symbol.upper(),
            expiration=self.expiration,
            option_type=self.option_type,
            position=self.position,
            strike=self.strike,
            premium=self.premium,
            quantity=self.quantity,
            interest_rate=self.interest_rate,
            dividend_yield=self.dividend_yield,
            volatility=self.volatility,
            underlying_override=self.underlying_override,
        )


def field_errors(exc) -> Dict[str, List[str]]:
    """Flatten a pydantic ``ValidationError`` into ``{field: [messages]}``."""
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        name = str(err["loc"][0]) if err["loc"] else "__root__"
        errors.setdefault(name, []).append(err["msg"])
    return errors


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContractDocument(_Document):
    symbol: str
    underlying: str
    expiry_date: int
    strike_price: float
    side: OptionSide
    unit: Optional[float] = None
    mark_price: Optional[float]
    bid_iv: Optional[float] = Field(default=None, alias="bidIV")
    ask_iv: Optional[float] = Field(default=None, alias="askIV")
    mark_iv: Optional[float] = Field(default=None, alias="markIV")
    delta: Optional[float] = None
    theta: Optional[float] = None
    gamma: Optional[float] = None
    vega: Optional[float] = None

    def to_contract(self) -> OptionContract:
        return OptionContract(**self.model_dump())


class SnapshotDocument(_Document):
    id: str = ""
    underlying: str
    created_at: int
    index_price: Optional[float]
    expiries: List[int]
    symbols: List[ContractDocument]

    def to_snapshot(self) -> OptionSnapshot:
        return OptionSnapshot(
            id=self.id,
            underlying=self.underlying,
            created_at=self.created_at,
            index_price=self.index_price,
            expiries=list(self.expiries),
            symbols=[s.to_contract() for s in self.symbols],
        )


def aggregate_to_document(aggregate: SnapshotAggregate) -> Dict[str, Any]:
    """Return the camelCase document stored for a snapshot aggregate."""
    raw = asdict(aggregate)
    return {
        "underlying": raw["underlying"],
        "createdAt": raw["created_at"],
        "indexPrice": raw["index_price"],
        "expiries": [
            {
                "expiry": e["expiry"],
                "baseline": e["baseline"],
                "rr25": e["rr25"],
                "price": e["price"],
                "strikesConsidered": e["strikes_considered"],
            }
            for e in raw["expiries"]
        ],
        "metadata": {
            "version": raw["metadata"]["version"],
            "sourceSnapshotId": raw["metadata"]["source_snapshot_id"],
        },
    }


__all__ = [
    "OptionAnalysisForm",
    "field_errors",
    "ContractDocument",
    "SnapshotDocument",
    "aggregate_to_document",
]
