"""Deterministic repair pricing for the damage-photo pre-assessment.

The vision model only names damaged parts and labor operations; every
dollar figure is computed here.  Lookups use synthetic reference tables
standing in for parts catalogs, labor-rate surveys and valuation guides:

- ``search_parts``: price range per part, scaled by part condition
- ``local_labor_rate``: hourly body-shop rate for the loss locality
- ``actual_cash_value``: vehicle ACV from model year and mileage

``price_vision_assessment`` combines the three into repair totals and a
total-loss call (``repair_high + salvage >= acv``).
"""

from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict

from claimflow.models.claim import LossDetails, VehicleInfo
from claimflow.models.outputs import VisionAssessment

logger = logging.getLogger(__name__)

DEFAULT_SALVAGE_PCT = 0.20
VALUATION_YEAR = 2026

_PART_PRICES: dict[str, tuple[int, int]] = {
    "bumper": (150, 450),
    "fender": (100, 350),
    "hood": (200, 600),
    "door": (250, 700),
    "headlight": (80, 250),
    "taillight": (60, 200),
    "mirror": (50, 180),
    "windshield": (200, 500),
    "trunk": (300, 800),
    "quarter_panel": (200, 500),
}
_UNKNOWN_PART_PRICE = (100, 400)
_CONDITION_MULTIPLIERS = {"aftermarket": 0.6, "lkq": 0.5}

_OHIO_LABOR_RATE = 65
_DEFAULT_LABOR_RATE = 75
_DEALER_MULTIPLIER = 1.3

_ACV_BASE_VALUE = 25000
_ACV_DEPRECIATION_PER_YEAR = 0.08
_ACV_FLOOR_FACTOR = 0.3
_ACV_MILEAGE_BASELINE = 50000
_ACV_PER_EXCESS_MILE = 0.04


def _round(value: float) -> int:
    """Round to whole dollars, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Reference lookups
# ---------------------------------------------------------------------------


class PartPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    part_name: str
    condition: str
    price_low: int
    price_high: int
    source: str


class LaborRate(BaseModel):
    model_config = ConfigDict(frozen=True)

    rate_per_hour: int
    locality: str
    shop_type: str
    source: str


class ActualCashValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    actual_cash_value: int
    mileage_adjustment: int
    condition_adjustment: int = 0
    sources: list[str]


def search_parts(
    vehicle: VehicleInfo, part_name: str, condition: str | None = None
) -> PartPrice:
    """Price range for *part_name*; unknown parts get a generic range.

    Aftermarket parts cost 60% and LKQ (used) parts 50% of new OEM.
    """
    normalized = re.sub(r"[^a-z]", "_", part_name.lower())
    low, high = next(
        (prices for key, prices in _PART_PRICES.items() if key in normalized),
        _UNKNOWN_PART_PRICE,
    )
    condition = condition or "new_oem"
    multiplier = _CONDITION_MULTIPLIERS.get(condition, 1.0)
    return PartPrice(
        part_name=part_name,
        condition=condition,
        price_low=_round(low * multiplier),
        price_high=_round(high * multiplier),
        source=f"synthetic_parts_db/{vehicle.year or 'unknown'}_{vehicle.make or 'unknown'}",
    )


def local_labor_rate(
    city: str | None = None, state: str | None = None, shop_type: str | None = None
) -> LaborRate:
    base = _OHIO_LABOR_RATE if state == "OH" else _DEFAULT_LABOR_RATE
    multiplier = _DEALER_MULTIPLIER if shop_type == "dealer" else 1.0
    return LaborRate(
        rate_per_hour=_round(base * multiplier),
        locality=f"{city or 'Ohio'}, {state or 'OH'}",
        shop_type=shop_type or "independent",
        source="ohio_labor_rate_survey_2026",
    )


def actual_cash_value(vehicle: VehicleInfo, mileage: int | None = None) -> ActualCashValue:
    """ACV from a straight-line depreciation of a base value.

    Each model year below the valuation year takes 8% off, floored at 30%
    of the base.  Mileage above the baseline reduces the value; mileage
    below it never raises it.
    """
    age = VALUATION_YEAR - (vehicle.year or 2020)
    year_factor = max(_ACV_FLOOR_FACTOR, 1 - age * _ACV_DEPRECIATION_PER_YEAR)
    mileage_adj = (
        min(0.0, -(mileage - _ACV_MILEAGE_BASELINE) * _ACV_PER_EXCESS_MILE) if mileage else 0.0
    )
    return ActualCashValue(
        actual_cash_value=_round(_ACV_BASE_VALUE * year_factor + mileage_adj),
        mileage_adjustment=_round(mileage_adj),
        sources=[
            f"kbb_estimate_{vehicle.year or 'unknown'}_{vehicle.make or 'unknown'}",
            "nada_guide_2026",
        ],
    )


# ---------------------------------------------------------------------------
# Estimate
# ---------------------------------------------------------------------------


class PricedPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    qty: int = 1
    condition_recommendation: str | None = None
    pricing: PartPrice


class PricedLabor(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation: str
    estimated_hours: float
    basis: str


class PriceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    low: int
    high: int


class EstimateTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    parts_total_range: PriceRange
    labor_total: int
    estimate_range: PriceRange


class TotalLossCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    recommended: bool
    basis: str
    acv: int
    salvage_pct: float
    salvage_value: int


class RepairEstimate(BaseModel):
    """Priced view of a vision assessment, merged into the assessor context."""

    model_config = ConfigDict(frozen=True)

    parts: list[PricedPart]
    labor: list[PricedLabor]
    labor_rate: LaborRate
    totals: EstimateTotals
    total_loss: TotalLossCall
    acv: ActualCashValue


def is_total_loss(repair_high: int, salvage_value: int, acv: int) -> bool:
    return repair_high + salvage_value >= acv


def price_vision_assessment(
    assessment: VisionAssessment,
    vehicle: VehicleInfo,
    loss: LossDetails,
    *,
    salvage_pct: float = DEFAULT_SALVAGE_PCT,
) -> RepairEstimate:
    """Price the parts and labor a vision assessment calls for."""
    parts = [
        PricedPart(
            name=part.name,
            qty=part.qty,
            condition_recommendation=part.condition_recommendation,
            pricing=search_parts(vehicle, part.name, part.condition_recommendation),
        )
        for part in assessment.parts_needed
    ]
    rate = local_labor_rate(city=loss.city or "Columbus", state=loss.state)
    acv = actual_cash_value(vehicle)

    parts_low = sum(p.pricing.price_low * p.qty for p in parts)
    parts_high = sum(p.pricing.price_high * p.qty for p in parts)
    labor_hours = sum(op.estimated_hours for op in assessment.labor_operations)
    labor_total = _round(labor_hours * rate.rate_per_hour)
    estimate_low = parts_low + labor_total
    estimate_high = parts_high + labor_total

    salvage_value = _round(acv.actual_cash_value * salvage_pct)
    total_loss = is_total_loss(estimate_high, salvage_value, acv.actual_cash_value)
    relation = ">=" if total_loss else "<"

    logger.debug(
        "Priced %d part(s), %.1f labor hour(s): estimate %d-%d against ACV %d",
        len(parts), labor_hours, estimate_low, estimate_high, acv.actual_cash_value,
    )
    return RepairEstimate(
        parts=parts,
        labor=[
            PricedLabor(
                operation=op.operation,
                estimated_hours=op.estimated_hours,
                basis=f"{rate.rate_per_hour}/hr",
            )
            for op in assessment.labor_operations
        ],
        labor_rate=rate,
        totals=EstimateTotals(
            parts_total_range=PriceRange(low=parts_low, high=parts_high),
            labor_total=labor_total,
            estimate_range=PriceRange(low=estimate_low, high=estimate_high),
        ),
        total_loss=TotalLossCall(
            recommended=total_loss,
            basis=(
                f"repair_high({estimate_high}) + salvage({salvage_value}) "
                f"{relation} acv({acv.actual_cash_value})"
            ),
            acv=acv.actual_cash_value,
            salvage_pct=salvage_pct,
            salvage_value=salvage_value,
        ),
        acv=acv,
    )
