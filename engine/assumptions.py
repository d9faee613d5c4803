"""
Scenario inputs.

ScenarioAssumptions is validated by pydantic and frozen. Field names are
snake_case; camelCase aliases (startingCash, plannedHires, ...) are accepted
for payloads coming from the API layer.

Growth and volatility fields left as None fall back to the historical
baseline (growth) or the default volatility; an explicit 0 is honored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_REVENUE_VOLATILITY = 0.1
DEFAULT_EXPENSE_VOLATILITY = 0.05


class _Input(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class PlannedHire(_Input):
    role: str = ""
    annual_salary: float = Field(ge=0.0)
    benefits: float = Field(default=0.0, ge=0.0)
    start_month: int = Field(default=0, ge=0)

    @property
    def monthly_cost(self) -> float:
        return (self.annual_salary + self.benefits) / 12.0


class PlannedExpense(_Input):
    name: str = ""
    monthly_amount: float
    start_month: int = Field(default=0, ge=0)
    end_month: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_window(self) -> "PlannedExpense":
        if self.end_month is not None and self.end_month < self.start_month:
            raise ValueError("end_month must not be before start_month")
        return self

    def active(self, month_index: int) -> bool:
        if month_index < self.start_month:
            return False
        return self.end_month is None or month_index <= self.end_month


class ScenarioAssumptions(_Input):
    starting_cash: float
    monthly_revenue_growth: Optional[float] = None
    revenue_volatility: Optional[float] = Field(default=None, ge=0.0)
    monthly_expense_growth: Optional[float] = None
    expense_volatility: Optional[float] = Field(default=None, ge=0.0)
    planned_hires: List[PlannedHire] = Field(default_factory=list)
    planned_expenses: List[PlannedExpense] = Field(default_factory=list)
    fundraise_amount: Optional[float] = None
    fundraise_month: Optional[int] = Field(default=None, ge=0)

    @property
    def effective_revenue_volatility(self) -> float:
        return DEFAULT_REVENUE_VOLATILITY if self.revenue_volatility is None else self.revenue_volatility

    @property
    def effective_expense_volatility(self) -> float:
        return DEFAULT_EXPENSE_VOLATILITY if self.expense_volatility is None else self.expense_volatility

    def fundraise_at(self, month_index: int) -> float:
        if self.fundraise_amount and self.fundraise_month is not None and month_index == self.fundraise_month:
            return float(self.fundraise_amount)
        return 0.0

    def overlay_expenses(self, month_index: int) -> float:
        """Planned hires (from their start month on) plus active planned expenses."""
        total = sum(h.monthly_cost for h in self.planned_hires if month_index >= h.start_month)
        total += sum(e.monthly_amount for e in self.planned_expenses if e.active(month_index))
        return float(total)


@dataclass(frozen=True)
class BaselineMetrics:
    """Historical monthly levels and monthly growth rates."""
    avg_revenue: float = 0.0
    avg_expenses: float = 0.0
    revenue_growth: float = 0.0  # monthly
    expense_growth: float = 0.0  # monthly
    months: int = 0

    def growth_factors(self, assumptions: ScenarioAssumptions):
        """(1 + revenue growth, 1 + expense growth): the assumption when set, else the baseline."""
        rg = self.revenue_growth if assumptions.monthly_revenue_growth is None else assumptions.monthly_revenue_growth
        eg = self.expense_growth if assumptions.monthly_expense_growth is None else assumptions.monthly_expense_growth
        return 1.0 + rg, 1.0 + eg
