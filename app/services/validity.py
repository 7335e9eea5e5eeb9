"""Quotation validity window.

Validity is derived from the quotation date, the validity window and the
current date on every read. It is never stored.
"""
from datetime import date, datetime, timedelta

DEFAULT_VALIDITY_DAYS = 30
MAX_VALIDITY_DAYS = 3650

VALID = 'valid'
DUE = 'due'
OVERDUE = 'overdue'
EXPIRED = 'expired'


def validity_state(remaining_days):
    if remaining_days is None:
        return None
    if remaining_days <= -1:
        return EXPIRED
    if remaining_days == 0:
        return OVERDUE
    if remaining_days <= 2:
        return DUE
    return VALID


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def evaluate_validity(quotation_date, validity_days=None, today=None):
    """Return ``valid_until``, ``remaining_days`` and ``validity_state``.

    ``remaining_days`` is negative once the window has passed.
    """
    quotation_date = _as_date(quotation_date)
    if validity_days is None:
        validity_days = DEFAULT_VALIDITY_DAYS
    today = _as_date(today) or date.today()

    if quotation_date is None:
        return {
            'quotation_date': None,
            'validity_days': validity_days,
            'valid_until': None,
            'remaining_days': None,
            'validity_state': None,
        }

    try:
        valid_until = quotation_date + timedelta(days=int(validity_days))
    except OverflowError:
        valid_until = date.max if int(validity_days) > 0 else date.min
    remaining_days = (valid_until - today).days

    return {
        'quotation_date': quotation_date,
        'validity_days': validity_days,
        'valid_until': valid_until,
        'remaining_days': remaining_days,
        'validity_state': validity_state(remaining_days),
    }


def quotation_validity(quotation, today=None):
    return evaluate_validity(quotation.quotation_date, quotation.validity_days, today)


def is_expired(quotation, today=None):
    return quotation_validity(quotation, today)['validity_state'] == EXPIRED
