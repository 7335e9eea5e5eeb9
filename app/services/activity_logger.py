"""Activity Logging Service for QuoteLedger"""
import logging

from flask import request, has_request_context

from config.database import db
from app.models.audit import ActivityLog

logger = logging.getLogger(__name__)


class ActivityType:
    """Activity type constants"""
    # Auth
    LOGIN = 'login'

    # CRUD operations
    CREATE = 'create'
    UPDATE = 'update'
    DELETE = 'delete'

    # Quotation lifecycle
    SUBMIT = 'submit'
    WON = 'won'
    LOST = 'lost'
    REISSUE = 'reissue'
    FOLLOWUP = 'followup'
    FOLLOWUP_COMPLETE = 'followup_complete'


class EntityType:
    """Entity type constants"""
    USER = 'user'
    QUOTATION = 'quotation'
    QUOTATION_FOLLOWUP = 'quotation_followup'


def get_client_info():
    """Extract client information from request"""
    if not has_request_context():
        return None, None

    ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
    if ip_address and ',' in ip_address:
        ip_address = ip_address.split(',')[0].strip()

    user_agent = request.headers.get('User-Agent', '')[:500]

    return ip_address, user_agent


def log_activity(
    activity_type: str,
    description: str,
    entity_type: str = None,
    entity_id: int = None,
    entity_number: str = None,
    extra_data: dict = None,
    user=None
):
    """
    Record a business activity in the current transaction.

    The entry is only added to the session; it is committed or rolled back
    together with the operation it describes.

    Args:
        activity_type: Type of activity (use ActivityType constants)
        description: Human-readable description of the activity
        entity_type: Type of entity being acted upon (use EntityType constants)
        entity_id: ID of the entity
        entity_number: Display number of the entity (e.g., quotation number)
        extra_data: Additional context data as dict
        user: Acting user, if any
    """
    ip_address, user_agent = get_client_info()

    log = ActivityLog(
        user_id=user.id if user else None,
        user_name=user.name if user else None,
        activity_type=activity_type,
        description=description[:500],
        entity_type=entity_type,
        entity_id=entity_id,
        entity_number=entity_number,
        extra_data=extra_data or {},
        ip_address=ip_address,
        user_agent=user_agent
    )
    db.session.add(log)
    logger.debug('Activity %s on %s %s', activity_type, entity_type, entity_number or entity_id)

    return log
