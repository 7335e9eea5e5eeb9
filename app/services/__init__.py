"""Services for QuoteLedger"""
from app.services.activity_logger import (
    log_activity,
    ActivityType,
    EntityType
)

__all__ = [
    'log_activity',
    'ActivityType',
    'EntityType'
]
