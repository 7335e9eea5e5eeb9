"""Follow-up log for pending quotations."""
import logging
from datetime import datetime

from config.database import db
from app.models import QuotationFollowup
from app.services.activity_logger import log_activity, ActivityType, EntityType
from app.services.quotation_lifecycle import get_accessible_quotation, transaction, parse_date, can_access
from app.utils.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.utils.helpers import model_to_dict
from app.utils.security import sanitize_string

logger = logging.getLogger(__name__)

FOLLOWUP_TYPES = ('call', 'email', 'whatsapp', 'meeting', 'site_visit', 'other')


def add_followup(quotation_id, payload, actor):
    payload = payload or {}
    followup_date = parse_date(payload.get('followup_date'), 'followup_date')
    if not followup_date:
        raise ValidationError('followup_date is required', code='followup_date_required')
    note = sanitize_string(payload.get('note'))
    if not note:
        raise ValidationError('note is required', code='note_required')
    followup_type = str(payload.get('followup_type') or 'other').strip().lower()
    if followup_type not in FOLLOWUP_TYPES:
        raise ValidationError(f"followup_type must be one of {', '.join(FOLLOWUP_TYPES)}",
                              code='invalid_followup_type')
    next_followup_date = parse_date(payload.get('next_followup_date'), 'next_followup_date')

    with transaction():
        quotation = get_accessible_quotation(quotation_id, actor, lock=True)
        if quotation.status != 'pending':
            raise ConflictError('Follow-ups can only be added to pending quotations', code='not_pending')

        followup = QuotationFollowup(
            quotation_id=quotation.id,
            followup_date=followup_date,
            note=note,
            followup_type=followup_type,
            next_followup_date=next_followup_date,
            created_by=actor.id
        )
        db.session.add(followup)
        db.session.flush()
        log_activity(
            ActivityType.FOLLOWUP,
            f'Follow-up ({followup_type}) added to {quotation.quotation_no}',
            EntityType.QUOTATION_FOLLOWUP, followup.id, quotation.quotation_no,
            user=actor
        )

    logger.info('Follow-up %s added to quotation %s', followup.id, quotation_id)
    return model_to_dict(followup)


def list_followups(quotation_id, actor):
    """Newest first."""
    quotation = get_accessible_quotation(quotation_id, actor)
    followups = quotation.followups.order_by(
        QuotationFollowup.followup_date.desc(), QuotationFollowup.id.desc()
    ).all()
    return [model_to_dict(f) for f in followups]


def complete_followup(followup_id, actor):
    with transaction():
        followup = QuotationFollowup.query.filter_by(id=followup_id).with_for_update().first()
        if not followup or followup.quotation.is_deleted:
            raise NotFoundError('Follow-up', followup_id)
        if not can_access(followup.quotation, actor):
            raise ForbiddenError()

        followup.is_completed = True
        followup.completed_at = datetime.utcnow()
        followup.next_followup_date = None
        log_activity(
            ActivityType.FOLLOWUP_COMPLETE,
            f'Follow-up completed on {followup.quotation.quotation_no}',
            EntityType.QUOTATION_FOLLOWUP, followup.id, followup.quotation.quotation_no,
            user=actor
        )

    return model_to_dict(followup)
