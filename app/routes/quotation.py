"""Quotation routes for QuoteLedger"""
from flask import Blueprint, g, request

from app.services import quotation_lifecycle as lifecycle
from app.services import followup_service
from app.utils.security import jwt_required_with_user
from app.utils.helpers import success_response, get_request_json

quotation_bp = Blueprint('quotation', __name__)


@quotation_bp.route('', methods=['GET'])
@jwt_required_with_user()
def list_quotations():
    """List quotations, newest first"""
    quotations = lifecycle.list_quotations(
        g.current_user,
        status=request.args.get('status') or None,
        validity_state=request.args.get('validity_state') or None
    )
    return success_response(quotations)


@quotation_bp.route('', methods=['POST'])
@jwt_required_with_user()
def create_quotation():
    result = lifecycle.create_quotation(get_request_json(), g.current_user)
    return success_response(result, 'Quotation created', 201)


@quotation_bp.route('/next', methods=['GET'])
@jwt_required_with_user()
def preview_next_number():
    """Number the next quotation would get; nothing is reserved"""
    return success_response(lifecycle.preview_next_quotation_number(g.current_user))


@quotation_bp.route('/<int:id>', methods=['GET'])
@jwt_required_with_user()
def get_quotation(id):
    return success_response(lifecycle.get_quotation(id, g.current_user))


@quotation_bp.route('/<int:id>', methods=['PUT'])
@jwt_required_with_user()
def update_quotation(id):
    quotation = lifecycle.update_quotation(id, get_request_json(), g.current_user)
    return success_response(quotation, f"Quotation updated to v{quotation['version']}")


@quotation_bp.route('/<int:id>', methods=['DELETE'])
@jwt_required_with_user()
def delete_quotation(id):
    return success_response(lifecycle.delete_quotation(id, g.current_user), 'Quotation deleted')


@quotation_bp.route('/<int:id>/submit', methods=['POST'])
@jwt_required_with_user()
def submit_quotation(id):
    return success_response(lifecycle.submit_quotation(id, g.current_user), 'Quotation submitted')


@quotation_bp.route('/<int:id>/won', methods=['POST'])
@jwt_required_with_user()
def mark_won(id):
    data = get_request_json()
    quotation = lifecycle.decide_quotation(id, 'won', data.get('comment'), g.current_user)
    return success_response(quotation, 'Quotation marked as Won')


@quotation_bp.route('/<int:id>/lost', methods=['POST'])
@jwt_required_with_user()
def mark_lost(id):
    data = get_request_json()
    quotation = lifecycle.decide_quotation(id, 'lost', data.get('comment'), g.current_user)
    return success_response(quotation, 'Quotation marked as Lost')


@quotation_bp.route('/<int:id>/decision', methods=['POST'])
@jwt_required_with_user()
def decide(id):
    """Record a decision: {"decision": "won" | "lost", "comment": "..."}"""
    data = get_request_json()
    quotation = lifecycle.decide_quotation(id, data.get('decision'), data.get('comment'), g.current_user)
    return success_response(quotation, f"Quotation marked as {quotation['status'].title()}")


@quotation_bp.route('/<int:id>/decisions', methods=['GET'])
@jwt_required_with_user()
def latest_decision(id):
    return success_response({'decision': lifecycle.get_latest_decision(id, g.current_user)})


@quotation_bp.route('/<int:id>/reissue', methods=['POST'])
@jwt_required_with_user()
def reissue_quotation(id):
    data = get_request_json()
    result = lifecycle.reissue_quotation(id, data.get('validity_days'), g.current_user)
    return success_response(result, 'Quotation re-issued', 201)


@quotation_bp.route('/<int:id>/validity', methods=['GET'])
@jwt_required_with_user()
def get_validity(id):
    return success_response(lifecycle.get_validity(id, g.current_user))


@quotation_bp.route('/<int:id>/versions', methods=['GET'])
@jwt_required_with_user()
def list_versions(id):
    return success_response(lifecycle.list_versions(id, g.current_user))


# ============ FOLLOW-UPS ============

@quotation_bp.route('/<int:id>/followups', methods=['GET'])
@jwt_required_with_user()
def list_followups(id):
    return success_response(followup_service.list_followups(id, g.current_user))


@quotation_bp.route('/<int:id>/followups', methods=['POST'])
@jwt_required_with_user()
def add_followup(id):
    followup = followup_service.add_followup(id, get_request_json(), g.current_user)
    return success_response(followup, 'Follow-up added', 201)


@quotation_bp.route('/followups/<int:followup_id>/complete', methods=['PUT'])
@jwt_required_with_user()
def complete_followup(followup_id):
    followup = followup_service.complete_followup(followup_id, g.current_user)
    return success_response(followup, 'Follow-up completed')
