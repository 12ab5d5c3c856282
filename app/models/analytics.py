from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, field_validator

from app.models.expense import Category, as_naive_utc, normalize_currency

ALL_CATEGORIES = "All"


class TimeGranularity(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    YEARLY = "Yearly"
    CUSTOM = "Custom"


class AggregationQuery(BaseModel):
    time_granularity: TimeGranularity = TimeGranularity.MONTHLY
    category_filter: Union[Category, str] = ALL_CATEGORIES
    display_currency: str = "USD"
    custom_start: Optional[datetime] = None
    custom_end: Optional[datetime] = None

    @field_validator("category_filter")
    @classmethod
    def _known_category(cls, value: Union[Category, str]) -> Union[Category, str]:
        if value == ALL_CATEGORIES:
            return ALL_CATEGORIES
        return Category(value)

    @field_validator("display_currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        return normalize_currency(value)

    @field_validator("custom_start", "custom_end")
    @classmethod
    def _naive_bounds(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value) if value is not None else None

    @property
    def has_custom_range(self) -> bool:
        return (
            self.time_granularity == TimeGranularity.CUSTOM
            and self.custom_start is not None
            and self.custom_end is not None
        )


@dataclass(frozen=True)
class ExchangeRateSnapshot:
    """Immutable set of multipliers relative to ``base_currency``."""

    base_currency: str
    rates: Mapping[str, float]
    fetched_at: datetime

    def __post_init__(self) -> None:
        base = normalize_currency(self.base_currency)
        rates = {normalize_currency(code): float(value) for code, value in self.rates.items()}
        rates[base] = 1.0
        object.__setattr__(self, "base_currency", base)
        object.__setattr__(self, "rates", MappingProxyType(rates))


@dataclass(frozen=True)
class TimeSeriesPoint:
    label: str
    start: datetime
    total: float

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "total": round(self.total, 2)}


@dataclass
class CategoryInsight:
    """Represents calculated insights for a single expense category."""

    category: str
    total: float
    average: float
    transaction_count: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["total"] = round(self.total, 2)
        data["average"] = round(self.average, 2)
        return data


@dataclass
class AggregationResult:
    category_totals: Dict[str, float] = field(default_factory=dict)
    time_series: List[TimeSeriesPoint] = field(default_factory=list)
    grand_total: float = 0.0
    filtered_count: int = 0
    insights: List[CategoryInsight] = field(default_factory=list)
    display_currency: str = "USD"
    converted: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category_totals": {cat: round(total, 2) for cat, total in self.category_totals.items()},
            "time_series": [point.to_dict() for point in self.time_series],
            "grand_total": self.grand_total,
            "filtered_count": self.filtered_count,
            "insights": [insight.to_dict() for insight in self.insights],
            "display_currency": self.display_currency,
            "converted": self.converted,
        }


class TimeSeriesPointOut(BaseModel):
    label: str
    total: float


class CategoryInsightOut(BaseModel):
    category: str
    total: float
    average: float
    transaction_count: int


class AnalyticsResponse(BaseModel):
    category_totals: Dict[str, float]
    time_series: List[TimeSeriesPointOut]
    grand_total: float
    filtered_count: int
    insights: List[CategoryInsightOut]
    display_currency: str
    converted: bool


class RatesResponse(BaseModel):
    base: str
    rates: Dict[str, float]
    fetched_at: datetime
