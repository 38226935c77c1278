from flask import Blueprint, request, jsonify, current_app
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from studio.utils.decorators import token_required, admin_required
from studio.models import Room, PromoCode
from studio.extensions import db
from studio.errors import InvalidRequest, LockGatewayError
from studio.services.admin_service import AdminService
from studio.services.access_log_service import AccessLogService
from studio.services.booking_service import BookingService
from studio.services.credential_service import CredentialService
from studio.utils.timeutils import studio_now

admin_bp = Blueprint('admin', __name__)

PRICING_MODES = ('flat', 'time_of_day')

def _whole_number(field, value, low, high, nullable=False):
    if value is None and nullable:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise InvalidRequest(f"{field} must be a whole number between {low} and {high}")
    return value

def _rate(field, value):
    if value is None:
        return None
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRequest(f"{field} must be a number")
    if not rate.is_finite() or rate < 0:
        raise InvalidRequest(f"{field} must be a positive amount")
    return rate

def _room_values(data):
    """Typed, range-checked copy of the room fields present in ``data``."""
    values = {}
    if 'name' in data:
        if not isinstance(data['name'], str) or not data['name'].strip():
            raise InvalidRequest("name must be a non-empty string")
        values['name'] = data['name'].strip()
    if 'description' in data:
        values['description'] = data['description']
    if 'equipment' in data:
        if not isinstance(data['equipment'], list) or not all(isinstance(e, str) for e in data['equipment']):
            raise InvalidRequest("equipment must be a list of strings")
        values['equipment'] = data['equipment']
    if 'is_active' in data:
        if not isinstance(data['is_active'], bool):
            raise InvalidRequest("is_active must be true or false")
        values['is_active'] = data['is_active']
    if 'pricing_mode' in data:
        if data['pricing_mode'] not in PRICING_MODES:
            raise InvalidRequest(f"pricing_mode must be one of {', '.join(PRICING_MODES)}")
        values['pricing_mode'] = data['pricing_mode']
    for field in ('hourly_rate', 'day_rate', 'evening_rate'):
        if field in data:
            values[field] = _rate(field, data[field])
    if 'max_capacity' in data:
        values['max_capacity'] = _whole_number('max_capacity', data['max_capacity'], 1, 1000)
    if 'day_start_hour' in data:
        values['day_start_hour'] = _whole_number('day_start_hour', data['day_start_hour'], 0, 23)
    if 'day_end_hour' in data:
        values['day_end_hour'] = _whole_number('day_end_hour', data['day_end_hour'], 1, 24)
    if 'evening_min_hours' in data:
        values['evening_min_hours'] = _whole_number(
            'evening_min_hours', data['evening_min_hours'], 1, current_app.config['MAX_BOOKING_HOURS'], nullable=True
        )
    if 'closed_weekdays' in data:
        days = data['closed_weekdays']
        if not isinstance(days, list):
            raise InvalidRequest("closed_weekdays must be a list of weekday numbers (Monday = 0)")
        values['closed_weekdays'] = sorted({_whole_number('closed_weekdays', d, 0, 6) for d in days})
    return values

def _apply_room_fields(room, data):
    for field, value in _room_values(data).items():
        setattr(room, field, value)
    if room.day_start_hour >= room.day_end_hour:
        raise InvalidRequest("day_start_hour must be before day_end_hour")
    # Fails loudly on a half-configured pricing mode
    try:
        room.pricing_policy
    except ValueError as e:
        raise InvalidRequest(str(e))
    if room.pricing_mode == 'flat' and room.hourly_rate is None:
        raise InvalidRequest("Flat pricing needs hourly_rate")
    if room.pricing_mode == 'time_of_day' and (room.day_rate is None or room.evening_rate is None):
        raise InvalidRequest("Time-of-day pricing needs day_rate and evening_rate")

# --- ROOMS MANAGEMENT ---

@admin_bp.route('/rooms', methods=['GET'])
@token_required
@admin_required
def get_rooms(current_user):
    rooms = Room.query.order_by(Room.id).all()
    return jsonify([r.to_dict() for r in rooms]), 200

@admin_bp.route('/rooms', methods=['POST'])
@token_required
@admin_required
def create_room(current_user):
    data = request.get_json() or {}
    if not data.get('name'):
        return jsonify({'message': 'Room name is required'}), 400
    if Room.query.filter_by(name=data.get('name')).first():
        return jsonify({'message': 'Room name already exists'}), 400

    new_room = Room(pricing_mode='flat', equipment=[], closed_weekdays=[], day_start_hour=9, day_end_hour=17)
    try:
        _apply_room_fields(new_room, data)
    except InvalidRequest:
        db.session.rollback()
        raise
    db.session.add(new_room)
    db.session.commit()
    return jsonify({'message': 'Room created', 'room': new_room.to_dict()}), 201

@admin_bp.route('/rooms/<int:room_id>', methods=['PUT'])
@token_required
@admin_required
def update_room(current_user, room_id):
    room = db.session.get(Room, room_id)
    if not room:
        return jsonify({'message': 'Room not found'}), 404

    try:
        _apply_room_fields(room, request.get_json() or {})
    except InvalidRequest:
        db.session.rollback()
        raise
    db.session.commit()
    return jsonify({'message': 'Room updated', 'room': room.to_dict()}), 200

@admin_bp.route('/rooms/<int:room_id>/lock', methods=['PATCH'])
@token_required
@admin_required
def configure_lock(current_user, room_id):
    data = request.get_json() or {}
    room, report = AdminService.configure_room_lock(room_id, data.get('lock_id'), data.get('lock_name'), current_user)
    return jsonify({'room': room.to_dict(), 'resync': report.to_dict()}), 200

@admin_bp.route('/rooms/<int:room_id>/lock', methods=['DELETE'])
@token_required
@admin_required
def remove_lock(current_user, room_id):
    room, failures = AdminService.remove_room_lock(room_id, current_user)
    return jsonify({'message': 'Lock configuration removed', 'revoke_failures': failures}), 200

@admin_bp.route('/rooms/<int:room_id>/lock/resync', methods=['POST'])
@token_required
@admin_required
def resync_lock(current_user, room_id):
    room = BookingService.get_room(room_id)
    if not room.lock_id:
        return jsonify({'message': 'No lock configured for this room'}), 400
    report = CredentialService.bulk_resync(room.lock_id, CredentialService.future_passcode_bookings(room_id=room.id))
    return jsonify(report.to_dict()), 200

@admin_bp.route('/locks/reconcile', methods=['POST'])
@token_required
@admin_required
def reconcile_locks(current_user):
    report = CredentialService.reconcile_pending()
    return jsonify(report.to_dict()), 200

# --- BOOKINGS ---

@admin_bp.route('/bookings', methods=['GET'])
@token_required
@admin_required
def get_bookings(current_user):
    bookings = BookingService.list_bookings(
        date=request.args.get('date'),
        room_id=request.args.get('room_id', type=int),
        status=request.args.get('status')
    )
    return jsonify([BookingService.serialize(b) for b in bookings]), 200

@admin_bp.route('/bookings/<int:booking_id>', methods=['PUT'])
@token_required
@admin_required
def edit_booking(current_user, booking_id):
    data = request.get_json() or {}
    booking = AdminService.admin_edit_booking(
        booking_id, current_user, data.get('date'), data.get('start_time'), data.get('duration_hours')
    )
    return jsonify(BookingService.serialize(booking)), 200

@admin_bp.route('/bookings/<int:booking_id>/cancel', methods=['PATCH'])
@token_required
@admin_required
def cancel_booking(current_user, booking_id):
    booking = AdminService.admin_cancel_booking(booking_id, current_user)
    return jsonify({'message': 'Booking cancelled successfully.', 'booking': BookingService.serialize(booking)}), 200

# --- BLOCKED SLOTS ---

@admin_bp.route('/blocked-slots', methods=['GET'])
@token_required
@admin_required
def get_blocked_slots(current_user):
    room_id = request.args.get('room_id', type=int)
    date_str = request.args.get('date')
    if not room_id or not date_str:
        return jsonify({'message': 'room_id and date are required'}), 400
    return jsonify([b.to_dict() for b in AdminService.list_blocks(room_id, date_str)]), 200

@admin_bp.route('/blocked-slots', methods=['POST'])
@token_required
@admin_required
def create_blocked_slot(current_user):
    data = request.get_json() or {}
    block = AdminService.block_slot(
        room_id=data.get('room_id'),
        date=data.get('date'),
        start_time=data.get('start_time'),
        end_time=data.get('end_time'),
        actor=current_user,
        reason=data.get('reason'),
        recurring=bool(data.get('recurring')),
        recurring_until=data.get('recurring_until')
    )
    return jsonify({'message': 'Slot blocked', 'blocked_slot': block.to_dict()}), 201

@admin_bp.route('/blocked-slots/<int:block_id>', methods=['DELETE'])
@token_required
@admin_required
def delete_blocked_slot(current_user, block_id):
    AdminService.unblock_slot(block_id, current_user)
    return jsonify({'message': 'Blocked slot removed'}), 200

# --- PROMO CODES ---

def _optional_datetime(field, value):
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{field} must be an ISO datetime")

def _apply_promo_fields(promo, data):
    if 'code' in data:
        if not isinstance(data['code'], str) or not data['code'].strip():
            raise InvalidRequest("code must be a non-empty string")
        promo.code = data['code'].strip().upper()
    if 'description' in data:
        promo.description = data['description']
    if 'discount_type' in data:
        if data['discount_type'] not in (PromoCode.TYPE_PERCENTAGE, PromoCode.TYPE_FIXED):
            raise InvalidRequest("discount_type must be percentage or fixed")
        promo.discount_type = data['discount_type']
    for field in ('discount_value', 'max_discount_amount', 'min_booking_amount'):
        if field in data:
            setattr(promo, field, _rate(field, data[field]))
    for field in ('valid_from', 'valid_to'):
        if field in data:
            setattr(promo, field, _optional_datetime(field, data[field]))
    if 'usage_limit' in data:
        promo.usage_limit = _whole_number('usage_limit', data['usage_limit'], 1, 10 ** 6, nullable=True)
    if 'is_active' in data:
        if not isinstance(data['is_active'], bool):
            raise InvalidRequest("is_active must be true or false")
        promo.is_active = data['is_active']

    if promo.discount_value is None:
        raise InvalidRequest("discount_value is required")
    if promo.discount_type == PromoCode.TYPE_PERCENTAGE and promo.discount_value > 100:
        raise InvalidRequest("A percentage discount cannot exceed 100")
    if promo.valid_from and promo.valid_to and promo.valid_from >= promo.valid_to:
        raise InvalidRequest("valid_from must be before valid_to")

@admin_bp.route('/promo-codes', methods=['GET'])
@token_required
@admin_required
def get_promo_codes(current_user):
    promos = PromoCode.query.order_by(PromoCode.created_at.desc(), PromoCode.id.desc()).all()
    return jsonify([p.to_dict() for p in promos]), 200

@admin_bp.route('/promo-codes', methods=['POST'])
@token_required
@admin_required
def create_promo_code(current_user):
    data = request.get_json() or {}
    if not data.get('code'):
        return jsonify({'message': 'Promo code is required'}), 400
    if PromoCode.query.filter_by(code=str(data['code']).strip().upper()).first():
        return jsonify({'message': 'Promo code already exists'}), 400

    promo = PromoCode(discount_type=PromoCode.TYPE_PERCENTAGE, current_usage=0, is_active=True)
    _apply_promo_fields(promo, data)
    db.session.add(promo)
    db.session.commit()
    current_app.logger.info(f"Promo code {promo.code} created by admin {current_user.id}")
    return jsonify({'message': 'Promo code created', 'promo_code': promo.to_dict()}), 201

@admin_bp.route('/promo-codes/<int:promo_id>', methods=['PATCH'])
@token_required
@admin_required
def update_promo_code(current_user, promo_id):
    promo = db.session.get(PromoCode, promo_id)
    if not promo:
        return jsonify({'message': 'Promo code not found'}), 404
    data = request.get_json() or {}
    if 'code' in data and PromoCode.query.filter(
            PromoCode.code == str(data['code']).strip().upper(), PromoCode.id != promo.id).first():
        return jsonify({'message': 'Promo code already exists'}), 400

    try:
        _apply_promo_fields(promo, data)
    except InvalidRequest:
        db.session.rollback()
        raise
    db.session.commit()
    return jsonify({'message': 'Promo code updated', 'promo_code': promo.to_dict()}), 200

# --- ACCESS LOG ---

@admin_bp.route('/access-log', methods=['GET'])
@token_required
@admin_required
def get_access_log(current_user):
    room_id = request.args.get('room_id', type=int)
    if not room_id:
        return jsonify({'message': 'room_id is required'}), 400
    room = BookingService.get_room(room_id)
    if not room.lock_id:
        return jsonify({'message': 'No lock configured for this room'}), 404

    now = studio_now(current_app.config['STUDIO_TIMEZONE'])
    try:
        start = datetime.fromisoformat(request.args['start']) if 'start' in request.args else now - timedelta(days=7)
        end = datetime.fromisoformat(request.args['end']) if 'end' in request.args else now
    except ValueError:
        return jsonify({'message': 'start and end must be ISO datetimes'}), 400

    try:
        log = AccessLogService.build_access_log(room.lock_id, start, end)
    except LockGatewayError as e:
        current_app.logger.warning(f"Access log unavailable for lock {room.lock_id}: {e}")
        return jsonify({'message': 'Failed to get access logs', 'error': str(e)}), 502
    if log is None:
        return jsonify({'message': 'Smart lock service not configured'}), 503
    return jsonify(log), 200
