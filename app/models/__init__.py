from app.models.user import User
from app.models.customer import Customer, CustomerLocation, CustomerContact
from app.models.quotation import (
    Quotation, QuotationSequence, QuotationDecision, QuotationVersion,
    QuotationFollowup
)
from app.models.audit import ActivityLog

__all__ = [
    'User',
    'Customer', 'CustomerLocation', 'CustomerContact',
    'Quotation', 'QuotationSequence', 'QuotationDecision', 'QuotationVersion',
    'QuotationFollowup',
    'ActivityLog'
]
