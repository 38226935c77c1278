import logging
from decimal import Decimal, ROUND_HALF_UP
from flask import current_app
from sqlalchemy import or_
from studio.models import PromoCode
from studio.errors import InvalidRequest
from studio.utils.timeutils import studio_now

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


class PromoService:

    @staticmethod
    def find(code):
        if not code or not isinstance(code, str):
            raise InvalidRequest("Promo code is required")
        return PromoCode.query.filter_by(code=code.strip().upper()).first()

    @staticmethod
    def validate(code, amount, now=None):
        """
        Look up ``code`` and check it can be used on a booking worth ``amount``.
        Returns the PromoCode or raises InvalidRequest with the reason.
        """
        promo = PromoService.find(code)
        if not promo:
            raise InvalidRequest("Promo code not found")
        if not promo.is_active:
            raise InvalidRequest("Promo code is no longer active")

        now = now or studio_now(current_app.config['STUDIO_TIMEZONE'])
        if promo.valid_from and promo.valid_from > now:
            raise InvalidRequest("Promo code is not yet valid")
        if promo.valid_to and promo.valid_to < now:
            raise InvalidRequest("Promo code has expired")
        if promo.usage_limit is not None and promo.current_usage >= promo.usage_limit:
            raise InvalidRequest("Promo code usage limit reached")
        if promo.min_booking_amount is not None and Decimal(amount) < promo.min_booking_amount:
            raise InvalidRequest(f"Minimum booking amount of {promo.min_booking_amount} required")
        return promo

    @staticmethod
    def discount_for(promo, amount):
        """Discount ``promo`` gives on ``amount``, never more than the amount itself."""
        amount = Decimal(amount)
        if promo.discount_type == PromoCode.TYPE_PERCENTAGE:
            discount = amount * Decimal(promo.discount_value) / 100
            if promo.max_discount_amount is not None:
                discount = min(discount, Decimal(promo.max_discount_amount))
        else:
            discount = Decimal(promo.discount_value)
        discount = min(discount, amount)
        return discount.quantize(CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def redeem(promo):
        """
        Count one use of ``promo`` in the current transaction.

        The increment is conditional in SQL, so two bookings racing for the
        last use cannot both get it. Returns False when the limit was hit.
        """
        updated = PromoCode.query.filter(
            PromoCode.id == promo.id,
            or_(PromoCode.usage_limit.is_(None), PromoCode.current_usage < PromoCode.usage_limit)
        ).update({PromoCode.current_usage: PromoCode.current_usage + 1}, synchronize_session=False)
        if updated:
            logger.info("Promo code %s redeemed", promo.code)
        return updated == 1
