"""Response and helper utilities for QuoteLedger"""
from datetime import date, datetime
from decimal import Decimal

from flask import jsonify, request


def success_response(data=None, message=None, status_code=200):
    response = {'success': True}
    if message:
        response['message'] = message
    if data is not None:
        response['data'] = data
    return jsonify(response), status_code


def error_response(message, errors=None, status_code=400, code=None):
    response = {'success': False, 'error': message}
    if code:
        response['code'] = code
    if errors:
        response['errors'] = errors
    return jsonify(response), status_code


def get_request_json():
    """Safely get the JSON object from request; anything else reads as empty"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def serialize_value(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def model_to_dict(model, exclude=None, include=None):
    """Convert SQLAlchemy model to dictionary"""
    exclude = exclude or []
    result = {}

    for column in model.__table__.columns:
        if column.name in exclude:
            continue
        if include and column.name not in include:
            continue
        result[column.name] = serialize_value(getattr(model, column.name))

    return result

