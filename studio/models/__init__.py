from studio.models.user import User
from studio.models.room import Room
from studio.models.promo_code import PromoCode
from studio.models.booking import Booking
from studio.models.blocked_slot import BlockedSlot

__all__ = ['User', 'Room', 'PromoCode', 'Booking', 'BlockedSlot']
