from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from exceptions import ValidationError

CENT = Decimal("0.01")

# kg CO2 per km for an average private car, and the share saved by riding
CAR_EMISSIONS_KG_PER_KM = 0.21
CARBON_REDUCTION_FACTOR = 0.6


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FareRates:
    base: float = 3.50
    per_km: float = 0.70
    per_minute: float = 0.25
    platform_fee_rate: float = 0.05
    minimum: float = 4.00
    currency: str = "USD"


@dataclass(frozen=True)
class FareBreakdown:
    base_fare: float
    distance_fee: float
    time_fee: float
    subtotal: float
    platform_fee: float
    total: float
    minimum_applied: bool
    currency: str


class FareEstimator:
    """
    Pure fare computation: (distance, duration) -> breakdown.

    subtotal = base + per_km * km + per_minute * minutes
    total    = max(minimum, subtotal + platform fee)

    Amounts are rounded half-up to cents, which keeps the total monotonic
    in both distance and duration.
    """

    def __init__(self, rates: FareRates = None):
        self.rates = rates or FareRates()

    def estimate(self, distance_km: float, duration_minutes: float) -> FareBreakdown:
        if distance_km is None or duration_minutes is None:
            raise ValidationError("Distance and duration are required for a fare estimate")
        if distance_km < 0 or duration_minutes < 0:
            raise ValidationError("Distance and duration must be non-negative")

        rates = self.rates
        base = Decimal(str(rates.base))
        distance_fee = Decimal(str(rates.per_km)) * Decimal(str(distance_km))
        time_fee = Decimal(str(rates.per_minute)) * Decimal(str(duration_minutes))
        subtotal = base + distance_fee + time_fee
        platform_fee = subtotal * Decimal(str(rates.platform_fee_rate))

        total = _money(subtotal + platform_fee)
        minimum = _money(Decimal(str(rates.minimum)))
        minimum_applied = total < minimum
        if minimum_applied:
            total = minimum

        return FareBreakdown(
            base_fare=float(_money(base)),
            distance_fee=float(_money(distance_fee)),
            time_fee=float(_money(time_fee)),
            subtotal=float(_money(subtotal)),
            platform_fee=float(_money(platform_fee)),
            total=float(total),
            minimum_applied=minimum_applied,
            currency=rates.currency,
        )


def estimate_carbon_saved(distance_km: float) -> float:
    """kg CO2 saved versus a private car over the same distance."""
    return round(max(distance_km, 0.0) * CAR_EMISSIONS_KG_PER_KM * CARBON_REDUCTION_FACTOR, 3)
