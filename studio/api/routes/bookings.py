from decimal import Decimal, InvalidOperation
from flask import Blueprint, request, jsonify, current_app
from studio.services.booking_service import BookingService
from studio.services.promo_service import PromoService
from studio.utils.decorators import token_required

bookings_bp = Blueprint('bookings', __name__)

def _required(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        return jsonify({'error': f"Missing fields: {', '.join(missing)}"}), 400
    return None

@bookings_bp.route('/', methods=['POST'])
@token_required
def create_booking(current_user):
    data = request.get_json() or {}
    error = _required(data, 'room_id', 'date', 'start_time', 'duration_hours', 'payment_reference')
    if error:
        return error

    booking = BookingService.create_booking(
        user=current_user,
        room_id=data['room_id'],
        date=data['date'],
        start_time=data['start_time'],
        duration_hours=data['duration_hours'],
        number_of_people=data.get('number_of_people', 1),
        contact_phone=data.get('contact_phone'),
        special_requests=data.get('special_requests'),
        payment_reference=data['payment_reference'],
        promo_code=data.get('promo_code')
    )
    if booking.credential_error:
        current_app.logger.warning(f"Booking {booking.id} confirmed without smart-lock access: {booking.credential_error}")
    return jsonify(BookingService.serialize(booking)), 201

@bookings_bp.route('/validate-promo-code', methods=['POST'])
@token_required
def validate_promo_code(current_user):
    data = request.get_json() or {}
    error = _required(data, 'code', 'booking_amount')
    if error:
        return error
    try:
        amount = Decimal(str(data['booking_amount']))
    except InvalidOperation:
        return jsonify({'error': 'booking_amount must be a number'}), 400
    if not amount.is_finite() or amount < 0:
        return jsonify({'error': 'booking_amount must be a number'}), 400

    promo = PromoService.validate(data['code'], amount)
    discount = PromoService.discount_for(promo, amount)
    return jsonify({
        'valid': True,
        'promo_code': promo.to_dict(),
        'discount_amount': str(discount),
        'final_amount': str(amount - discount)
    })

@bookings_bp.route('/<int:booking_id>', methods=['PUT'])
@token_required
def update_booking(current_user, booking_id):
    data = request.get_json() or {}
    error = _required(data, 'date', 'start_time', 'duration_hours')
    if error:
        return error

    booking = BookingService.edit_booking(
        booking_id=booking_id,
        actor=current_user,
        new_date=data['date'],
        new_start_time=data['start_time'],
        new_duration_hours=data['duration_hours']
    )
    return jsonify(BookingService.serialize(booking)), 200

@bookings_bp.route('/my_bookings', methods=['GET'])
@token_required
def get_my_bookings(current_user):
    bookings = BookingService.get_user_bookings(current_user.id)
    return jsonify([BookingService.serialize(b) for b in bookings])

@bookings_bp.route('/<int:booking_id>', methods=['GET'])
@token_required
def get_booking(current_user, booking_id):
    booking = BookingService.get_booking(booking_id, current_user)
    return jsonify(BookingService.serialize(booking))

@bookings_bp.route('/<int:booking_id>/cancel', methods=['PATCH'])
@token_required
def cancel_booking(current_user, booking_id):
    booking = BookingService.cancel_booking(booking_id, current_user)
    return jsonify({'message': 'Booking cancelled successfully.', 'booking': BookingService.serialize(booking)}), 200
