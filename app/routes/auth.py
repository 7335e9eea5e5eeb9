"""Authentication routes for QuoteLedger"""
from datetime import datetime

from flask import Blueprint, g
from flask_jwt_extended import create_access_token

from config.database import db
from app.models import User
from app.services.activity_logger import log_activity, ActivityType, EntityType
from app.utils.security import jwt_required_with_user, rate_limit, sanitize_string
from app.utils.helpers import success_response, error_response, get_request_json, model_to_dict

auth_bp = Blueprint('auth', __name__)


def serialize_user(user):
    data = model_to_dict(user, exclude=['password_hash'])
    data['is_admin'] = user.is_admin
    return data


@auth_bp.route('/login', methods=['POST'])
@rate_limit(max_requests=20, window_seconds=300)  # 20 attempts per 5 minutes
def login():
    """User login by email or username"""
    data = get_request_json()

    login_id = sanitize_string(data.get('email') or data.get('username') or '')
    password = data.get('password')
    if not login_id or not password:
        return error_response('Email and password are required', status_code=400, code='validation_error')

    login_id = login_id.lower()
    user = User.query.filter(
        db.or_(db.func.lower(User.email) == login_id, db.func.lower(User.username) == login_id)
    ).first()

    if not user or not user.check_password(password):
        return error_response('Invalid email or password', status_code=401, code='invalid_credentials')

    if not user.is_active:
        return error_response('Account is deactivated', status_code=403, code='forbidden')

    user.last_login_at = datetime.utcnow()
    log_activity(ActivityType.LOGIN, f'{user.name} logged in', EntityType.USER, user.id, user=user)
    db.session.commit()

    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={'role': user.role, 'name': user.name}
    )

    return success_response({
        'access_token': access_token,
        'user': serialize_user(user)
    }, 'Login successful')


@auth_bp.route('/me', methods=['GET'])
@jwt_required_with_user()
def get_current_user():
    return success_response(serialize_user(g.current_user))
