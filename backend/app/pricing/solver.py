"""Per-lender quote generation: pick par, buydown and credit rates off a sheet.

Every candidate rate gets a net price::

    net = wholesale price (configured lock) + total LLPA adjustments - lender margin

and each configured target picks the candidate whose net price is nearest
to it, restricted to its side of the par rate.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.models.pricing import (
    AdjustmentBreakdown,
    LenderQuote,
    LoanParameters,
    PriceTarget,
    PricingConfig,
    PricingScenario,
    SolveDirection,
)
from app.models.rate_sheet import LoanType, ParsedRate, ParsedRateSheet
from app.pricing.adjustments import compute_adjustments
from app.pricing.amortization import calculate_apr, calculate_monthly_payment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateOption:
    rate: float
    base_price: float
    net_price: float


def select_rates(rates: list[ParsedRate], params: LoanParameters, lock_days: int) -> list[ParsedRate]:
    """Rates for the requested term and type, one per rate value, ascending.

    When the type has no entries for the term, conventional rates stand in.
    Duplicate rates keep the best price for the lock period.
    """
    for_term = [r for r in rates if r.loan_term == params.loan_term]
    matching = [r for r in for_term if r.loan_type == params.loan_type]
    if not matching and params.loan_type != LoanType.conventional:
        matching = [r for r in for_term if r.loan_type == LoanType.conventional]
        if matching:
            logger.debug("No %s rates for %s, using conventional",
                         params.loan_type.value, params.loan_term.value)

    best: dict[float, ParsedRate] = {}
    for r in matching:
        existing = best.get(r.rate)
        if existing is None or r.price_for_lock(lock_days) > existing.price_for_lock(lock_days):
            best[r.rate] = r
    return sorted(best.values(), key=lambda r: r.rate)


def solve_target(
    options: list[RateOption], target: PriceTarget, par_rate: Optional[float]
) -> Optional[RateOption]:
    """Nearest net price to the target on the allowed side of par; ties go to the lower rate."""
    if par_rate is not None and target.direction == SolveDirection.lower:
        candidates = [o for o in options if o.rate < par_rate]
    elif par_rate is not None and target.direction == SolveDirection.higher:
        candidates = [o for o in options if o.rate > par_rate]
    else:
        candidates = options

    chosen = None
    for option in candidates:  # ascending by rate
        if chosen is None or abs(option.net_price - target.price) < abs(chosen.net_price - target.price):
            chosen = option
    return chosen


def build_scenario(
    option: RateOption,
    params: LoanParameters,
    config: PricingConfig,
    label: str,
    breakdown: list[AdjustmentBreakdown],
) -> PricingScenario:
    points = 100.0 - option.net_price
    is_credit = option.net_price > 100.0
    points_percent = abs(points)
    points_dollar = params.loan_amount * points_percent / 100.0

    if is_credit:
        fees = max(0.0, config.base_closing_costs - points_dollar)
    else:
        fees = config.base_closing_costs + points_dollar

    term_months = params.loan_term.years * 12
    payment = calculate_monthly_payment(params.loan_amount, option.rate, term_months)
    apr = calculate_apr(params.loan_amount, option.rate, term_months, fees, config.apr_method)

    return PricingScenario(
        rate=round(option.rate, 3),
        apr=round(apr, 3),
        monthly_payment=round(payment, 2),
        points_percent=round(points_percent, 3),
        points_dollar=round(points_dollar, 2),
        is_credit=is_credit,
        scenario_label=label,
        net_price=round(option.net_price, 3),
        adjustment_breakdown=list(breakdown),
    )


def generate_quote_from_rate_sheet(
    sheet: ParsedRateSheet, params: LoanParameters, config: PricingConfig
) -> Optional[LenderQuote]:
    """Quote one lender, or None when the sheet has nothing for this scenario."""
    if not sheet.parse_success or not sheet.rates:
        return None

    rates = select_rates(sheet.rates, params, config.lock_period_days)
    if not rates:
        logger.info("%s: no %s %s rates", sheet.lender_name,
                    params.loan_term.value, params.loan_type.value)
        return None

    total_adjustments, breakdown = compute_adjustments(sheet.adjustments, params)
    options = []
    for r in rates:
        base = r.price_for_lock(config.lock_period_days)
        net = round(base + total_adjustments - config.lender_margin, 6)
        options.append(RateOption(rate=r.rate, base_price=base, net_price=net))
        logger.debug("%s: rate %.3f base %.3f net %.3f",
                     sheet.lender_name, r.rate, base, net)

    scenarios: list[PricingScenario] = []
    chosen_rates: set[float] = set()
    par: Optional[RateOption] = None
    for target in config.targets:
        option = solve_target(options, target, par.rate if par else None)
        if option is None or option.rate in chosen_rates:
            continue
        if par is None and target.direction == SolveDirection.closest:
            par = option
        chosen_rates.add(option.rate)
        scenarios.append(build_scenario(option, params, config, target.label, breakdown))

    if not scenarios:
        return None

    anchor = par or options[0]
    logger.info("%s: %d scenarios, par %.3f%% (adjustments %+.3f)",
                sheet.lender_name, len(scenarios), anchor.rate, total_adjustments)
    return LenderQuote(
        lender_name=sheet.lender_name,
        scenarios=scenarios,
        base_price=round(anchor.base_price, 3),
        adjusted_price=round(anchor.base_price + total_adjustments, 3),
        total_adjustments=round(total_adjustments, 3),
    )


def sort_quotes(quotes: list[LenderQuote]) -> list[LenderQuote]:
    """Lowest first-scenario rate first; ties by lender name."""
    return sorted(quotes, key=lambda q: (q.scenarios[0].rate if q.scenarios else 100.0, q.lender_name))
