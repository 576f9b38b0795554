"""Payment and APR numerics. Rates are annual percents (6.125 means 6.125%)."""
from __future__ import annotations

from app.models.pricing import AprMethod

NEWTON_MAX_ITERATIONS = 20
NEWTON_TOLERANCE = 0.01  # dollars of present value
_MIN_MONTHLY_RATE = 1e-9


def calculate_monthly_payment(principal: float, annual_rate: float, term_months: int) -> float:
    """Standard PMT formula for a fixed-rate amortizing loan.

    PMT = P * r(1+r)^n / ((1+r)^n - 1); a 0% loan pays P/n.
    """
    if term_months <= 0 or principal <= 0:
        return 0.0
    r = annual_rate / 100.0 / 12.0
    if r <= 0:
        return principal / term_months
    growth = (1.0 + r) ** term_months
    return principal * r * growth / (growth - 1.0)


def total_interest(principal: float, annual_rate: float, term_months: int) -> float:
    return calculate_monthly_payment(principal, annual_rate, term_months) * term_months - principal


def present_value(payment: float, monthly_rate: float, term_months: int) -> float:
    if monthly_rate <= 0:
        return payment * term_months
    return payment * (1.0 - (1.0 + monthly_rate) ** -term_months) / monthly_rate


def apr_simple(principal: float, annual_rate: float, term_months: int, fees: float) -> float:
    """((total interest + fees) / principal) / years, as a percent."""
    years = term_months / 12.0
    apr = (total_interest(principal, annual_rate, term_months) + fees) / principal / years * 100.0
    return round(apr, 3)


def apr_newton(principal: float, annual_rate: float, term_months: int, fees: float) -> float:
    """Solve for the monthly rate whose PV of the payment stream equals P - fees."""
    payment = calculate_monthly_payment(principal, annual_rate, term_months)
    net_proceeds = principal - fees
    if payment <= 0 or net_proceeds <= 0:
        return round(annual_rate, 3)

    i = max(annual_rate / 1200.0, _MIN_MONTHLY_RATE)
    n = term_months
    for _ in range(NEWTON_MAX_ITERATIONS):
        pv = present_value(payment, i, n)
        err = pv - net_proceeds
        if abs(err) < NEWTON_TOLERANCE:
            break
        # d(PV)/di
        discount = (1.0 + i) ** -n
        slope = payment * (n * discount / (1.0 + i) / i - (1.0 - discount) / (i * i))
        if slope == 0:
            break
        i = max(i - err / slope, _MIN_MONTHLY_RATE)

    return round(i * 1200.0, 3)


def calculate_apr(
    principal: float,
    annual_rate: float,
    term_months: int,
    fees: float,
    method: AprMethod = AprMethod.newton,
) -> float:
    if method == AprMethod.simple:
        return apr_simple(principal, annual_rate, term_months, fees)
    return apr_newton(principal, annual_rate, term_months, fees)
