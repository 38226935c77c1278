from flask import Blueprint, request, jsonify
from studio.models import Room
from studio.services.availability_service import AvailabilityService
from studio.services.booking_service import BookingService
from studio.utils.timeutils import parse_date

rooms_bp = Blueprint('rooms', __name__)

@rooms_bp.route('/', methods=['GET'])
def get_rooms():
    rooms = Room.query.filter_by(is_active=True).order_by(Room.id).all()
    return jsonify([r.to_dict() for r in rooms])

@rooms_bp.route('/<int:room_id>', methods=['GET'])
def get_room(room_id):
    room = BookingService.get_room(room_id)
    return jsonify(room.to_dict())

@rooms_bp.route('/<int:room_id>/availability', methods=['GET'])
def get_availability(room_id):
    date_str = request.args.get('date')
    if not date_str:
        return jsonify({'error': 'Date parameter is required'}), 400

    room = BookingService.get_room(room_id)
    day = parse_date(date_str)
    hours = AvailabilityService.business_hours(room, day)
    return jsonify({
        'room_id': room.id,
        'date': day.isoformat(),
        'closed': hours is None,
        'business_hours': hours.to_dict() if hours else None,
        'free_windows': [w.to_dict() for w in AvailabilityService.free_windows(room, day)],
        'busy': [b.to_dict() for b in AvailabilityService.busy_intervals(room, day)]
    })

@rooms_bp.route('/<int:room_id>/quote', methods=['GET'])
def get_quote(room_id):
    try:
        duration = int(request.args.get('duration', ''))
    except ValueError:
        return jsonify({'error': 'duration must be a whole number of hours'}), 400
    quote = BookingService.quote(
        room_id,
        request.args.get('date'),
        request.args.get('start_time'),
        duration,
        promo_code=request.args.get('promo_code')
    )
    return jsonify(quote)
