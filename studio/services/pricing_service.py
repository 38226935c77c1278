from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

# Volume discount: bookings strictly longer than 4 hours get 10% off the subtotal
DISCOUNT_THRESHOLD_HOURS = 4
DISCOUNT_MULTIPLIER = Decimal('0.9')
CENT = Decimal('0.01')


def _money(value) -> Decimal:
    if value is None:
        raise ValueError("Room rate is not configured.")
    return Decimal(str(value))


@dataclass(frozen=True)
class Flat:
    rate: Decimal

    def to_dict(self):
        return {'mode': 'flat', 'hourly_rate': str(self.rate)}


@dataclass(frozen=True)
class TimeOfDay:
    day_rate: Decimal
    evening_rate: Decimal
    day_start: int  # inclusive hour
    day_end: int    # exclusive hour

    def to_dict(self):
        return {
            'mode': 'time_of_day',
            'day_rate': str(self.day_rate),
            'evening_rate': str(self.evening_rate),
            'day_start_hour': self.day_start,
            'day_end_hour': self.day_end
        }


class PricingService:

    @staticmethod
    def segment_hours(start_hour: int, duration_hours: int):
        """Hour of day for each one-hour segment of a booking, wrapping past midnight."""
        return [(start_hour + offset) % 24 for offset in range(duration_hours)]

    @staticmethod
    def subtotal(policy, start_hour: int, duration_hours: int) -> Decimal:
        if isinstance(policy, Flat):
            return _money(policy.rate) * duration_hours
        if isinstance(policy, TimeOfDay):
            day_rate = _money(policy.day_rate)
            evening_rate = _money(policy.evening_rate)
            total = Decimal('0')
            for hour in PricingService.segment_hours(start_hour, duration_hours):
                if policy.day_start <= hour < policy.day_end:
                    total += day_rate
                else:
                    total += evening_rate
            return total
        raise TypeError(f"Unsupported pricing policy: {policy!r}")

    @staticmethod
    def price(room_or_policy, start_hour: int, duration_hours: int) -> Decimal:
        """
        Price a (room, start hour, duration) tuple.
        Pure: no database access, safe for previews.
        """
        policy = getattr(room_or_policy, 'pricing_policy', room_or_policy)
        total = PricingService.subtotal(policy, start_hour, duration_hours)
        if duration_hours > DISCOUNT_THRESHOLD_HOURS:
            total = total * DISCOUNT_MULTIPLIER
        return total.quantize(CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def discount_applies(duration_hours: int) -> bool:
        return duration_hours > DISCOUNT_THRESHOLD_HOURS
