from functools import wraps
from flask import request, jsonify, current_app
import jwt
from studio.extensions import db
from studio.models.user import User

def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None
        if 'Authorization' in request.headers:
            # Bearer <token>
            auth_header = request.headers['Authorization']
            if auth_header.startswith("Bearer "):
                token = auth_header.split(" ")[1]

        if not token:
            return jsonify({'message': 'Token is missing!'}), 401

        try:
            data = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            return jsonify({'message': 'Token is invalid!', 'error': str(e)}), 401

        current_user = db.session.get(User, data.get('user_id'))
        if not current_user:
            return jsonify({'message': 'Token is invalid!', 'error': 'User not found'}), 401

        return f(current_user, *args, **kwargs)

    return decorated

def admin_required(f):
    # Stack under @token_required, which passes current_user first
    @wraps(f)
    def decorated(*args, **kwargs):
        current_user = args[0]
        if not current_user.is_admin:
            return jsonify({'message': 'Admin privilege required'}), 403
        return f(*args, **kwargs)
    return decorated
