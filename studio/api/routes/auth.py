from flask import Blueprint, request, jsonify, current_app
from studio.models import User
from studio.extensions import db
from studio.utils.decorators import token_required
from werkzeug.security import generate_password_hash, check_password_hash
import jwt
from datetime import datetime, timedelta

auth_bp = Blueprint('auth', __name__)


def issue_token(user):
    return jwt.encode({
        'user_id': user.id,
        'exp': datetime.utcnow() + timedelta(hours=24)
    }, current_app.config['SECRET_KEY'], algorithm="HS256")


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json() or {}
    for field in ('username', 'email', 'password'):
        if not data.get(field):
            return jsonify({'message': f'{field} is required'}), 400

    if User.query.filter_by(username=data['username']).first():
        return jsonify({'message': 'Username already exists'}), 400
    if User.query.filter_by(email=data['email']).first():
        return jsonify({'message': 'Email already exists'}), 400

    user = User(
        username=data['username'],
        email=data['email'],
        name=data.get('name'),
        phone=data.get('phone'),
        password_hash=generate_password_hash(data['password']),
        role='user'
    )
    db.session.add(user)
    db.session.commit()
    return jsonify({'token': issue_token(user), 'user': user.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json() or {}
    user = User.query.filter_by(username=data.get('username')).first()

    if not user or not user.password_hash or not check_password_hash(user.password_hash, data.get('password') or ''):
        return jsonify({'message': 'Invalid credentials'}), 401

    return jsonify({'token': issue_token(user), 'username': user.username, 'role': user.role})


@auth_bp.route('/me', methods=['GET'])
@token_required
def me(current_user):
    return jsonify(current_user.to_dict())
