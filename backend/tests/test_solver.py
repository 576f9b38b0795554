"""Tests for per-lender rate solving."""
import pytest

from app.models.pricing import LenderQuote, LoanParameters, PricingConfig, PricingScenario
from app.models.rate_sheet import (
    AdjustmentGrid,
    GridAxes,
    GridType,
    LoanTerm,
    LoanType,
    ParsedRate,
    ParsedRateSheet,
)
from app.pricing.solver import generate_quote_from_rate_sheet, select_rates, sort_quotes

WORKED_EXAMPLE_PRICES = {6.000: 99.8, 6.125: 100.1, 6.250: 100.6, 6.375: 101.0}


def _make_rate(rate, price, term=LoanTerm.thirty, loan_type=LoanType.conventional, p30=None):
    return ParsedRate(
        rate=rate,
        price_15_day=price,
        price_30_day=price - 0.125 if p30 is None else p30,
        price_45_day=price - 0.25,
        loan_term=term,
        loan_type=loan_type,
    )


def _make_sheet(prices=None, adjustments=None, lender="Test Lender", **rate_kwargs):
    prices = WORKED_EXAMPLE_PRICES if prices is None else prices
    return ParsedRateSheet(
        lender_name=lender,
        rates=[_make_rate(r, p, **rate_kwargs) for r, p in prices.items()],
        adjustments=adjustments or [],
        parse_success=True,
    )


def _make_params(**overrides):
    defaults = dict(
        loan_amount=350000,
        property_value=450000,
        credit_score="732-750",
        loan_term="30yr",
        loan_type="conventional",
        loan_purpose="purchase",
    )
    defaults.update(overrides)
    return LoanParameters(**defaults)


def _pmt(principal, annual_rate, months):
    r = annual_rate / 1200.0
    return principal * r / (1 - (1 + r) ** -months)


def _by_label(quote):
    return {s.scenario_label: s for s in quote.scenarios}


class TestWorkedExample:
    def test_par_without_margin(self):
        config = PricingConfig(lender_margin=0.0)
        quote = generate_quote_from_rate_sheet(_make_sheet(), _make_params(), config)
        par = quote.scenarios[0]
        assert par.scenario_label == "Par Rate (No Points)"
        assert par.rate == 6.125
        assert par.net_price == pytest.approx(100.1)
        assert par.points_percent == pytest.approx(0.1)
        # 100.1 is above par, so the borrower nets a small credit
        assert par.is_credit is True
        assert par.monthly_payment == pytest.approx(_pmt(350000, 6.125, 360), abs=0.01)

    def test_buydown_and_credit_without_margin(self):
        config = PricingConfig(lender_margin=0.0)
        quote = generate_quote_from_rate_sheet(_make_sheet(), _make_params(), config)
        scenarios = _by_label(quote)
        assert scenarios["Pay Points (Lower Rate)"].rate == 6.0
        assert scenarios["Pay Points (Lower Rate)"].is_credit is False
        assert scenarios["Receive Lender Credit"].rate == 6.25
        assert scenarios["Receive Lender Credit"].is_credit is True
        assert [s.rate for s in quote.scenarios] == [6.125, 6.0, 6.25]

    def test_default_margin(self):
        quote = generate_quote_from_rate_sheet(_make_sheet(), _make_params(), PricingConfig())
        par = quote.scenarios[0]
        assert par.rate == 6.375
        assert par.net_price == pytest.approx(98.5)
        assert par.points_percent == pytest.approx(1.5)
        assert par.points_dollar == pytest.approx(5250.0)
        assert par.is_credit is False
        assert _by_label(quote)["Pay Points (Lower Rate)"].rate == 6.25
        # nothing above the top rate, so no credit scenario
        assert "Receive Lender Credit" not in _by_label(quote)

    def test_quote_prices(self):
        quote = generate_quote_from_rate_sheet(_make_sheet(), _make_params(), PricingConfig())
        assert quote.lender_name == "Test Lender"
        assert quote.base_price == pytest.approx(101.0)
        assert quote.adjusted_price == pytest.approx(101.0)
        assert quote.total_adjustments == 0.0

    def test_deterministic(self):
        config = PricingConfig(lender_margin=0.0)
        first = generate_quote_from_rate_sheet(_make_sheet(), _make_params(), config)
        second = generate_quote_from_rate_sheet(_make_sheet(), _make_params(), config)
        assert first.model_dump() == second.model_dump()


class TestScenarioOrdering:
    def test_points_rate_le_par_le_credit_rate(self):
        prices = {5.5 + i * 0.125: 97.0 + i * 0.4 for i in range(16)}
        config = PricingConfig(lender_margin=0.5)
        quote = generate_quote_from_rate_sheet(_make_sheet(prices), _make_params(), config)
        scenarios = _by_label(quote)
        par = scenarios["Par Rate (No Points)"].rate
        assert scenarios["Pay Points (Lower Rate)"].rate < par
        assert scenarios["Receive Lender Credit"].rate > par

    def test_points_scenario_apr_exceeds_rate(self):
        config = PricingConfig(lender_margin=0.0)
        quote = generate_quote_from_rate_sheet(_make_sheet(), _make_params(), config)
        buydown = _by_label(quote)["Pay Points (Lower Rate)"]
        assert buydown.apr > buydown.rate

    def test_single_rate_yields_one_scenario(self):
        quote = generate_quote_from_rate_sheet(
            _make_sheet({6.5: 100.0}), _make_params(), PricingConfig(lender_margin=0.0)
        )
        assert len(quote.scenarios) == 1
        assert quote.scenarios[0].points_percent == 0.0

    def test_tie_goes_to_lower_rate(self):
        quote = generate_quote_from_rate_sheet(
            _make_sheet({6.0: 99.75, 6.125: 100.25}), _make_params(), PricingConfig(lender_margin=0.0)
        )
        assert quote.scenarios[0].rate == 6.0


class TestRateSelection:
    def test_filters_by_term(self):
        quote = generate_quote_from_rate_sheet(
            _make_sheet(term=LoanTerm.fifteen), _make_params(), PricingConfig()
        )
        assert quote is None

    def test_conventional_fallback_for_other_types(self):
        quote = generate_quote_from_rate_sheet(
            _make_sheet(), _make_params(loan_type="fha"), PricingConfig(lender_margin=0.0)
        )
        assert quote is not None
        assert quote.scenarios[0].rate == 6.125

    def test_no_fallback_to_other_types(self):
        quote = generate_quote_from_rate_sheet(
            _make_sheet(loan_type=LoanType.va), _make_params(), PricingConfig()
        )
        assert quote is None

    def test_duplicates_keep_best_price_for_lock(self):
        rates = [
            _make_rate(6.0, 99.0, p30=99.9),
            _make_rate(6.0, 99.5, p30=99.1),
        ]
        params = _make_params()
        assert select_rates(rates, params, 15)[0].price_15_day == 99.5
        assert select_rates(rates, params, 30)[0].price_30_day == 99.9

    def test_lock_period_selects_price_column(self):
        config = PricingConfig(lender_margin=0.0, lock_period_days=45)
        quote = generate_quote_from_rate_sheet(_make_sheet(), _make_params(), config)
        # 45-day prices are 0.25 lower: 6.25 -> 100.35, 6.125 -> 99.85
        assert quote.scenarios[0].rate == 6.125
        assert quote.base_price == pytest.approx(99.85)

    def test_failed_sheet_is_skipped(self):
        sheet = ParsedRateSheet(lender_name="Broken", parse_success=False, parse_error="bad")
        assert generate_quote_from_rate_sheet(sheet, _make_params(), PricingConfig()) is None


class TestAdjustmentsFlowIntoPrice:
    def test_grid_shifts_net_price(self):
        grid = AdjustmentGrid(
            name="FICO/LTV",
            type=GridType.fico_ltv,
            axes=GridAxes(y=[">=740", "720-739"], x=["<=75%", "75.01-80%"]),
            data=[[0.5, 0.4], [0.0, -0.25]],
        )
        config = PricingConfig(lender_margin=0.0)
        quote = generate_quote_from_rate_sheet(_make_sheet(adjustments=[grid]), _make_params(), config)
        # 741 FICO at 77.8% LTV: +0.4, so 6.0 nets 100.2 and wins par
        par = quote.scenarios[0]
        assert par.rate == 6.0
        assert par.net_price == pytest.approx(100.2)
        assert quote.total_adjustments == pytest.approx(0.4)
        assert quote.adjusted_price == pytest.approx(quote.base_price + 0.4)
        assert len(par.adjustment_breakdown) == 1
        assert par.adjustment_breakdown[0].value == pytest.approx(0.4)


class TestSortQuotes:
    def _quote(self, lender, rate):
        scenario = PricingScenario(
            rate=rate, apr=rate, monthly_payment=0.0, points_percent=0.0, points_dollar=0.0,
            is_credit=False, scenario_label="Par Rate (No Points)", net_price=100.0,
        )
        return LenderQuote(lender_name=lender, scenarios=[scenario], base_price=100.0, adjusted_price=100.0)

    def test_sorted_by_first_rate_then_name(self):
        quotes = [self._quote("Zeta", 6.25), self._quote("Beta", 6.125), self._quote("Alpha", 6.25)]
        assert [q.lender_name for q in sort_quotes(quotes)] == ["Beta", "Alpha", "Zeta"]
