from flask import Blueprint, jsonify
from studio.extensions import db
from studio.models import Room
from studio.services.credential_service import CredentialService
from studio.utils.decorators import token_required, admin_required

smart_lock_bp = Blueprint('smart_lock', __name__)

@smart_lock_bp.route('/status', methods=['GET'])
@token_required
@admin_required
def lock_status(current_user):
    rooms = Room.query.filter(Room.lock_id.isnot(None)).order_by(Room.id).all()
    statuses = []
    for room in rooms:
        status = CredentialService.test_connection(room.lock_id)
        status.update({'room_id': room.id, 'room_name': room.name, 'lock_name': room.lock_name})
        statuses.append(status)
    return jsonify(statuses)

@smart_lock_bp.route('/test-connection/<int:room_id>', methods=['POST'])
@token_required
@admin_required
def test_connection(current_user, room_id):
    room = db.get_or_404(Room, room_id)
    result = CredentialService.test_connection(room.lock_id)
    if not result['configured']:
        return jsonify(dict(result, message='Smart lock API credentials not configured')), 503
    return jsonify(result)
