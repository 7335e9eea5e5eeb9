"""Quotation numbering for QuoteLedger.

Numbers look like ``QT/2526/AB/007``: prefix, fiscal-year code, salesperson
initials and a running number per (fiscal year, initials) partition.

The running number lives in a ``quotation_sequences`` counter row. The row is
inserted on first use with an insert-ignore and then locked with
``SELECT ... FOR UPDATE`` for every allocation, so two requests racing for the
first number of a partition are serialized the same way as every later one.
Allocation happens inside the caller's transaction: rolling back releases the
lock and gives the number back.
"""
import logging
import re
from datetime import date, datetime

from flask import current_app
from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError

from config.database import db
from app.models import Quotation, QuotationSequence
from app.utils.exceptions import SequenceBusyError

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = 'QT'
MAX_INITIALS = 3

_SUFFIX_RE = re.compile(r'(\d+)\s*$')


def financial_year_code(on_date=None):
    """Four digit April-start fiscal year code.

    01-Apr-2025 -> ``2526``; 31-Mar-2025 -> ``2425``.
    """
    on_date = on_date or date.today()
    start_year = on_date.year if on_date.month >= 4 else on_date.year - 1
    return f'{start_year % 100:02d}{(start_year + 1) % 100:02d}'


def name_to_initials(name):
    """First letter of each word, uppercased, at most three letters."""
    if not name:
        return ''
    letters = [part[0] for part in str(name).split() if part[0].isalpha()]
    return ''.join(letters[:MAX_INITIALS]).upper()


def number_prefix():
    return current_app.config.get('QUOTATION_NUMBER_PREFIX') or DEFAULT_PREFIX


def partition_prefix(fy_code, initials):
    return f'{number_prefix()}/{fy_code}/{initials}/'


def format_quotation_no(fy_code, initials, sequence):
    return f'{partition_prefix(fy_code, initials)}{sequence:03d}'


def parse_sequence_suffix(quotation_no):
    """Trailing running number of a quotation number, or None."""
    if not quotation_no:
        return None
    match = _SUFFIX_RE.search(str(quotation_no).rsplit('/', 1)[-1])
    return int(match.group(1)) if match else None


def last_issued_suffix(fy_code, initials):
    """Running number of the newest quotation in the partition (0 if none)."""
    last_no = db.session.query(Quotation.quotation_no).filter(
        Quotation.quotation_no.like(f'{partition_prefix(fy_code, initials)}%')
    ).order_by(Quotation.id.desc()).limit(1).scalar()
    return parse_sequence_suffix(last_no) or 0


def _dialect_name():
    return db.engine.dialect.name


def _apply_lock_timeout():
    timeout_ms = int(current_app.config.get('QUOTATION_LOCK_TIMEOUT_MS') or 0)
    if timeout_ms <= 0:
        return
    dialect = _dialect_name()
    if dialect == 'postgresql':
        db.session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
    elif dialect in ('mysql', 'mariadb'):
        # MySQL has no transaction-scoped form; the value stays on the pooled
        # connection, which only ever receives this same setting.
        db.session.execute(text(f'SET SESSION innodb_lock_wait_timeout = {max(1, timeout_ms // 1000)}'))


def _insert_counter_if_missing(fy_code, initials):
    table = QuotationSequence.__table__
    values = {'fy_code': fy_code, 'initials': initials, 'current_number': 0}
    dialect = _dialect_name()

    if dialect == 'postgresql':
        stmt = postgresql.insert(table).values(**values).on_conflict_do_nothing(
            index_elements=['fy_code', 'initials']
        )
    elif dialect == 'sqlite':
        stmt = sqlite.insert(table).values(**values).on_conflict_do_nothing(
            index_elements=['fy_code', 'initials']
        )
    elif dialect in ('mysql', 'mariadb'):
        stmt = table.insert().values(**values).prefix_with('IGNORE')
    else:
        exists = db.session.query(QuotationSequence.id).filter_by(
            fy_code=fy_code, initials=initials
        ).first()
        if exists:
            return
        stmt = table.insert().values(**values)

    db.session.execute(stmt)


def _lock_counter(fy_code, initials):
    return QuotationSequence.query.filter_by(
        fy_code=fy_code, initials=initials
    ).with_for_update().populate_existing().first()


def allocate_sequence(fy_code, initials):
    """Reserve the next running number for ``(fy_code, initials)``.

    Must be called inside an open transaction; the counter row stays locked
    until the caller commits or rolls back. The result never goes below the
    newest number already issued in the partition, so rows written before the
    counter existed are respected.

    Raises:
        SequenceBusyError: the counter lock could not be acquired in time.
    """
    try:
        _apply_lock_timeout()
        counter = _lock_counter(fy_code, initials)
        if counter is None:
            _insert_counter_if_missing(fy_code, initials)
            counter = _lock_counter(fy_code, initials)

        next_number = max(counter.current_number or 0, last_issued_suffix(fy_code, initials)) + 1
        counter.current_number = next_number
        counter.last_generated_at = datetime.utcnow()
        db.session.flush()
    except OperationalError as exc:
        logger.warning('Sequence lock for %s/%s not acquired: %s', fy_code, initials, exc.orig)
        raise SequenceBusyError() from exc

    logger.debug('Allocated sequence %s for %s/%s', next_number, fy_code, initials)
    return next_number


def next_quotation_number(initials, on_date=None):
    """Allocate and format the next number for a salesperson on a date."""
    fy_code = financial_year_code(on_date)
    return format_quotation_no(fy_code, initials, allocate_sequence(fy_code, initials))
