"""
Quotation lifecycle service.

States: draft -> pending -> won | lost (terminal). Validity (valid, due,
overdue, expired) is derived from the quotation date on every read and gates
the transitions:

    submit     draft -> pending
    decide     draft | pending -> won | lost, refused once expired
    reissue    expired, undecided, never re-issued -> new pending quotation
    edit       draft | pending, not expired; snapshots the previous version

Each write runs in one transaction and either commits completely or rolls back
completely, including the sequence counter lock. Operations that issue a
quotation number are retried once if the number collides with a row the
counter did not know about.

Usage:
    from app.services.quotation_lifecycle import create_quotation, reissue_quotation

    result = create_quotation(payload, actor=g.current_user)
    reissued = reissue_quotation(result['id'], 30, actor=g.current_user)
"""
import copy
import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import IntegrityError

from config.database import db
from app.models import (
    Quotation, QuotationDecision, QuotationVersion, User,
    Customer, CustomerLocation, CustomerContact
)
from app.models.quotation import CLOSED_STATUSES, EDITABLE_STATUSES, QUOTATION_STATUSES
from app.services.activity_logger import log_activity, ActivityType, EntityType
from app.services.sequence import (
    financial_year_code, format_quotation_no, name_to_initials,
    allocate_sequence, next_quotation_number
)
from app.services.totals import calculate_totals
from app.services.validity import (
    DEFAULT_VALIDITY_DAYS, EXPIRED, MAX_VALIDITY_DAYS, is_expired, quotation_validity
)
from app.utils.exceptions import (
    ConflictError, ForbiddenError, NotFoundError, ValidationError
)
from app.utils.helpers import model_to_dict, serialize_value
from app.utils.security import sanitize_string

logger = logging.getLogger(__name__)

CREATE_STATUSES = ('draft', 'pending')
DECISIONS = ('won', 'lost')
INITIAL_VERSION = '0.1'
REISSUE_VERSION = '1.0'


# ── Input helpers ────────────────────────────────────────────────────────


def _today(today=None):
    return today or date.today()


def _default_validity_days():
    return current_app.config.get('QUOTATION_DEFAULT_VALIDITY_DAYS') or DEFAULT_VALIDITY_DAYS


def parse_date(value, field):
    """Accept a date, a datetime or an ISO ``YYYY-MM-DD`` string."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f'{field} must be a date (YYYY-MM-DD)', code='invalid_date',
                              details={field: 'invalid date'})


def _positive_int(value, field, default=None, max_value=None):
    if value in (None, ''):
        if default is None:
            raise ValidationError(f'{field} is required', code=f'{field}_required')
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a positive integer', code=f'invalid_{field}')
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ValidationError(f'{field} must be a positive integer', code=f'invalid_{field}')
    if number <= 0:
        raise ValidationError(f'{field} must be a positive integer', code=f'invalid_{field}')
    if max_value is not None and number > max_value:
        raise ValidationError(f'{field} cannot exceed {max_value}', code=f'invalid_{field}')
    return number


def _validity_days(value, default):
    return _positive_int(value, 'validity_days', default, max_value=MAX_VALIDITY_DAYS)


def _reference_id(payload, field):
    value = payload.get(field)
    if value in (None, '', 0):
        raise ValidationError(f'{field} is required', code=f'{field}_required',
                              details={field: 'required'})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer id', code=f'invalid_{field}',
                              details={field: 'invalid id'})


def _clean_text(value):
    if value is None:
        return None
    return sanitize_string(value) or None


def _items_from(value):
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError('items must be a list', code='invalid_items')
    return value


def parse_version(label):
    """``"0.3"`` -> ``(0, 3)``; anything unparsable counts as 0."""
    parts = str(label or '').split('.')
    major = int(parts[0]) if parts and parts[0].isdigit() else 0
    minor = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 0
    return major, minor


def bump_version(label):
    try:
        current = Decimal(str(label))
    except InvalidOperation:
        return INITIAL_VERSION
    if not current.is_finite():
        return INITIAL_VERSION
    return str((current + Decimal('0.1')).quantize(Decimal('0.1')))


# ── Transactions & access ────────────────────────────────────────────────


@contextmanager
def transaction():
    try:
        yield
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _is_quotation_no_collision(exc):
    return 'quotation_no' in str(getattr(exc, 'orig', exc))


def _run_numbered(operation, description):
    """Run ``operation`` in a transaction, retrying once on a number collision."""
    for attempt in (1, 2):
        try:
            result = operation()
            db.session.commit()
            return result
        except IntegrityError as exc:
            db.session.rollback()
            if not _is_quotation_no_collision(exc):
                raise
            if attempt == 2:
                logger.error('quotation_no collided twice during %s', description)
                raise ConflictError('Could not assign a unique quotation number, please retry',
                                    code='sequence_conflict') from exc
            logger.warning('quotation_no collision during %s, retrying allocation', description)
        except Exception:
            db.session.rollback()
            raise


def can_access(quotation, actor):
    return actor.is_admin or quotation.salesperson_id == actor.id


def get_accessible_quotation(quotation_id, actor, lock=False):
    query = Quotation.query.filter(
        Quotation.id == quotation_id,
        Quotation.is_deleted.is_(False)
    )
    if lock:
        query = query.with_for_update().populate_existing()
    quotation = query.first()
    if not quotation:
        raise NotFoundError('Quotation', quotation_id)
    if not can_access(quotation, actor):
        raise ForbiddenError()
    return quotation


def _salesperson_initials(user):
    initials = name_to_initials(user.name)
    if not initials:
        raise ValidationError('Salesperson name has no usable initials for numbering',
                              code='salesperson_initials_missing')
    return initials


def _assign_number(quotation, initials, on_date):
    quotation.quotation_no = next_quotation_number(initials, on_date)
    db.session.flush()


def build_customer_snapshot(customer, location, contact):
    """Point-in-time copy of the customer data printed on the quotation."""
    return {
        'company_name': customer.company_name if customer else None,
        'location_name': location.location_name if location else None,
        'gstin': (location.gstin or customer.gstin) if location else None,
        'address': location.address if location else None,
        'city': location.city if location else None,
        'state': location.state if location else None,
        'contact_name': contact.contact_name if contact else None,
        'phone': contact.phone if contact else None,
        'email': contact.email if contact else None,
    }


# ── Serialization ────────────────────────────────────────────────────────


def serialize_validity(quotation, today=None):
    return {key: serialize_value(value) for key, value in quotation_validity(quotation, today).items()}


def serialize_quotation(quotation, today=None):
    data = model_to_dict(quotation)
    data['items'] = quotation.items or []
    data['validity'] = serialize_validity(quotation, today)
    data['salesperson_name'] = quotation.salesperson.name if quotation.salesperson else None
    return data


def _serialize_decision(decision):
    return model_to_dict(decision) if decision else None


# ── Create / preview ─────────────────────────────────────────────────────


def create_quotation(payload, actor, today=None):
    """Create a quotation and issue its number.

    Returns ``{'id', 'quotation_no'}``.
    """
    payload = payload or {}
    today = _today(today)

    customer_id = _reference_id(payload, 'customer_id')
    location_id = _reference_id(payload, 'customer_location_id')
    contact_id = _reference_id(payload, 'customer_contact_id')

    status = str(payload.get('status') or 'draft').strip().lower()
    if status not in CREATE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(CREATE_STATUSES)}", code='invalid_status')

    quotation_date = parse_date(payload.get('quotation_date'), 'quotation_date') or today
    validity_days = _validity_days(payload.get('validity_days'), _default_validity_days())
    items = _items_from(payload.get('items'))

    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise ValidationError('Customer not found', code='customer_not_found')
    location = db.session.get(CustomerLocation, location_id)
    if not location or location.customer_id != customer.id:
        raise ValidationError('Location does not belong to this customer', code='customer_location_invalid')
    contact = db.session.get(CustomerContact, contact_id)
    if not contact or contact.location_id != location.id:
        raise ValidationError('Contact does not belong to this location', code='customer_contact_invalid')

    sent_snapshot = payload.get('customer_snapshot') if isinstance(payload.get('customer_snapshot'), dict) else {}
    customer_name = (
        _clean_text(payload.get('customer_name'))
        or _clean_text(sent_snapshot.get('company_name'))
        or customer.company_name
    )
    if not customer_name:
        raise ValidationError('customer_snapshot.company_name is required', code='customer_name_missing')

    salesperson_id = payload.get('salesperson_id') or actor.id
    try:
        salesperson = db.session.get(User, int(salesperson_id))
    except (TypeError, ValueError):
        salesperson = None
    if not salesperson or not salesperson.is_active:
        raise ValidationError('Salesperson not found', code='salesperson_not_found')
    initials = _salesperson_initials(salesperson)

    totals = calculate_totals(items)
    snapshot = build_customer_snapshot(customer, location, contact)
    values = {
        'customer_id': customer.id,
        'customer_location_id': location.id,
        'customer_contact_id': contact.id,
        'customer_name': customer_name,
        'customer_snapshot': snapshot,
        'salesperson_id': salesperson.id,
        'salesperson_phone': salesperson.phone,
        'salesperson_email': salesperson.email,
        'quotation_date': quotation_date,
        'validity_days': validity_days,
        'payment_terms': _clean_text(payload.get('payment_terms')),
        'terms': _clean_text(payload.get('terms')),
        'notes': _clean_text(payload.get('notes')),
        'status': status,
        'version': INITIAL_VERSION,
    }

    def _insert():
        quotation = Quotation(
            quotation_no=None,
            items=copy.deepcopy(totals['items']),
            subtotal=totals['subtotal'],
            total_discount=totals['total_discount'],
            tax_total=totals['tax_total'],
            total_value=totals['grand_total'],
            **copy.deepcopy(values)
        )
        db.session.add(quotation)
        db.session.flush()

        _assign_number(quotation, initials, quotation_date)
        log_activity(
            ActivityType.CREATE,
            f'Quotation {quotation.quotation_no} created',
            EntityType.QUOTATION, quotation.id, quotation.quotation_no,
            extra_data={'total_value': float(totals['grand_total']), 'status': status},
            user=actor
        )
        return {'id': quotation.id, 'quotation_no': quotation.quotation_no}

    result = _run_numbered(_insert, 'create')
    logger.info('Quotation %s created (id=%s)', result['quotation_no'], result['id'])
    return result


def preview_next_quotation_number(actor, today=None):
    """Number the actor's next quotation would get today. Nothing is reserved."""
    initials = _salesperson_initials(actor)
    fy_code = financial_year_code(_today(today))
    try:
        sequence = allocate_sequence(fy_code, initials)
        quotation_no = format_quotation_no(fy_code, initials, sequence)
    finally:
        db.session.rollback()
    return {'quotation_no': quotation_no}


# ── Transitions ──────────────────────────────────────────────────────────


def submit_quotation(quotation_id, actor, today=None):
    """draft -> pending"""
    today = _today(today)
    with transaction():
        quotation = get_accessible_quotation(quotation_id, actor, lock=True)
        if quotation.status != 'draft':
            raise ConflictError(f'Only draft quotations can be submitted (status is {quotation.status})',
                                code='invalid_transition')
        if is_expired(quotation, today):
            raise ConflictError('Quotation has expired and must be re-issued', code='expired')

        quotation.status = 'pending'
        log_activity(
            ActivityType.SUBMIT, f'Quotation {quotation.quotation_no} submitted',
            EntityType.QUOTATION, quotation.id, quotation.quotation_no, user=actor
        )

    logger.info('Quotation %s submitted', quotation.quotation_no)
    return serialize_quotation(quotation, today)


def decide_quotation(quotation_id, decision, comment, actor, today=None):
    """Record a won/lost decision and close the quotation."""
    decision = str(decision or '').strip().lower()
    if decision not in DECISIONS:
        raise ValidationError('decision must be won or lost', code='invalid_decision')
    comment = _clean_text(comment)
    if decision == 'lost' and not comment:
        raise ValidationError('Loss reason (comment) is mandatory', code='comment_required')
    today = _today(today)

    with transaction():
        quotation = get_accessible_quotation(quotation_id, actor, lock=True)
        if quotation.status in CLOSED_STATUSES:
            raise ConflictError(f'Quotation already marked as {quotation.status}', code='already_decided')
        if is_expired(quotation, today):
            raise ConflictError('Quotation has expired; re-issue it before recording a decision', code='expired')

        db.session.add(QuotationDecision(
            quotation_id=quotation.id,
            decision=decision,
            comment=comment,
            decided_by=actor.id,
            decided_by_name=actor.name,
            decided_at=datetime.utcnow()
        ))
        quotation.status = decision
        log_activity(
            ActivityType.WON if decision == 'won' else ActivityType.LOST,
            f'Quotation {quotation.quotation_no} marked as {decision.title()}',
            EntityType.QUOTATION, quotation.id, quotation.quotation_no,
            extra_data={'comment': comment} if comment else None,
            user=actor
        )

    logger.info('Quotation %s marked %s by user %s', quotation.quotation_no, decision, actor.id)
    return serialize_quotation(quotation, today)


def _has_successor(quotation_id):
    return db.session.query(Quotation.id).filter(
        Quotation.reissued_from_id == quotation_id
    ).first() is not None


def reissue_quotation(quotation_id, validity_days, actor, today=None):
    """Issue a new pending quotation that supersedes an expired one.

    The source row is locked and left unmodified; the new row points back at
    it through ``reissued_from_id``. Returns ``{'id', 'quotation_no',
    'reissued_from_id'}``.
    """
    validity_days = _validity_days(validity_days, _default_validity_days())
    today = _today(today)

    def _reissue():
        source = get_accessible_quotation(quotation_id, actor, lock=True)

        if source.reissued_from_id is not None or _has_successor(source.id):
            raise ConflictError('Quotation already re-issued', code='already_reissued')
        if not is_expired(source, today):
            raise ConflictError('Only expired quotations can be re-issued', code='not_expired')
        if source.status in CLOSED_STATUSES:
            raise ConflictError('Cannot re-issue a closed quotation', code='closed')

        salesperson = db.session.get(User, source.salesperson_id) if source.salesperson_id else None
        if not salesperson:
            raise ValidationError('Salesperson not found', code='salesperson_not_found')
        initials = _salesperson_initials(salesperson)

        items = copy.deepcopy(source.items or [])
        totals = calculate_totals(items)

        reissued = Quotation(
            quotation_no=None,
            customer_id=source.customer_id,
            customer_location_id=source.customer_location_id,
            customer_contact_id=source.customer_contact_id,
            customer_name=source.customer_name,
            customer_snapshot=copy.deepcopy(source.customer_snapshot),
            salesperson_id=source.salesperson_id,
            salesperson_phone=source.salesperson_phone,
            salesperson_email=source.salesperson_email,
            quotation_date=today,
            validity_days=validity_days,
            items=items,
            payment_terms=source.payment_terms,
            terms=source.terms,
            notes=source.notes,
            subtotal=totals['subtotal'],
            total_discount=totals['total_discount'],
            tax_total=totals['tax_total'],
            total_value=totals['grand_total'],
            status='pending',
            version=REISSUE_VERSION,
            reissued_from_id=source.id
        )
        db.session.add(reissued)
        try:
            db.session.flush()
        except IntegrityError as exc:
            if 'reissued_from_id' in str(exc.orig):
                raise ConflictError('Quotation already re-issued', code='already_reissued') from exc
            raise

        _assign_number(reissued, initials, today)
        log_activity(
            ActivityType.REISSUE,
            f'Quotation {source.quotation_no} re-issued as {reissued.quotation_no}',
            EntityType.QUOTATION, reissued.id, reissued.quotation_no,
            extra_data={'reissued_from_id': source.id, 'reissued_from_no': source.quotation_no},
            user=actor
        )
        return {
            'id': reissued.id,
            'quotation_no': reissued.quotation_no,
            'reissued_from_id': source.id,
        }

    result = _run_numbered(_reissue, 'reissue')
    logger.info('Quotation %s re-issued as %s', quotation_id, result['quotation_no'])
    return result


# ── Edit / delete ────────────────────────────────────────────────────────


UPDATABLE_TEXT_FIELDS = ('customer_name', 'payment_terms', 'terms', 'notes')


def update_quotation(quotation_id, payload, actor, today=None):
    """Edit a draft/pending quotation, keeping the previous content as a version."""
    payload = payload or {}
    today = _today(today)

    with transaction():
        quotation = get_accessible_quotation(quotation_id, actor, lock=True)
        if quotation.status not in EDITABLE_STATUSES:
            raise ConflictError('Quotation cannot be edited in this status', code='locked')
        if is_expired(quotation, today):
            raise ConflictError('Expired quotations cannot be edited; re-issue instead', code='expired')

        items = _items_from(payload['items']) if 'items' in payload else (quotation.items or [])
        totals = calculate_totals(items)

        major, minor = parse_version(quotation.version)
        db.session.add(QuotationVersion(
            quotation_id=quotation.id,
            version_major=major,
            version_minor=minor,
            version_label=quotation.version,
            items=copy.deepcopy(quotation.items or []),
            subtotal=quotation.subtotal,
            total_discount=quotation.total_discount,
            tax_total=quotation.tax_total,
            total_value=quotation.total_value,
            comment=_clean_text(payload.get('version_comment')),
            created_by=actor.id
        ))

        if 'quotation_date' in payload:
            quotation.quotation_date = parse_date(payload['quotation_date'], 'quotation_date') or quotation.quotation_date
        if 'validity_days' in payload:
            quotation.validity_days = _validity_days(payload['validity_days'], quotation.validity_days)
        for field in UPDATABLE_TEXT_FIELDS:
            if field in payload:
                setattr(quotation, field, _clean_text(payload[field]))
        if not quotation.customer_name:
            raise ValidationError('customer_name cannot be empty', code='customer_name_missing')

        previous_version = quotation.version
        quotation.items = totals['items']
        quotation.subtotal = totals['subtotal']
        quotation.total_discount = totals['total_discount']
        quotation.tax_total = totals['tax_total']
        quotation.total_value = totals['grand_total']
        quotation.version = bump_version(previous_version)

        log_activity(
            ActivityType.UPDATE,
            f'Quotation {quotation.quotation_no} updated to v{quotation.version}',
            EntityType.QUOTATION, quotation.id, quotation.quotation_no,
            extra_data={'from_version': previous_version, 'to_version': quotation.version},
            user=actor
        )

    logger.info('Quotation %s updated to version %s', quotation.quotation_no, quotation.version)
    return serialize_quotation(quotation, today)


def delete_quotation(quotation_id, actor):
    """Soft delete; the row and its number stay in the table."""
    with transaction():
        quotation = get_accessible_quotation(quotation_id, actor, lock=True)
        quotation.is_deleted = True
        quotation.deleted_at = datetime.utcnow()
        quotation.deleted_by = actor.id
        log_activity(
            ActivityType.DELETE, f'Quotation {quotation.quotation_no} deleted',
            EntityType.QUOTATION, quotation.id, quotation.quotation_no, user=actor
        )

    logger.info('Quotation %s soft-deleted by user %s', quotation_id, actor.id)
    return {'id': quotation_id}


# ── Reads ────────────────────────────────────────────────────────────────


def _latest_decision(quotation_id):
    return QuotationDecision.query.filter_by(quotation_id=quotation_id).order_by(
        QuotationDecision.decided_at.desc(), QuotationDecision.id.desc()
    ).first()


def get_quotation(quotation_id, actor, today=None):
    quotation = get_accessible_quotation(quotation_id, actor)
    data = serialize_quotation(quotation, today)
    state = data['validity']['validity_state']
    is_open = quotation.status not in CLOSED_STATUSES
    data['latest_decision'] = _serialize_decision(_latest_decision(quotation.id))
    data['can_edit'] = is_open and state != EXPIRED
    data['can_decide'] = is_open and state != EXPIRED
    data['can_reissue'] = (
        is_open and state == EXPIRED
        and quotation.reissued_from_id is None
        and not _has_successor(quotation.id)
    )
    return data


def list_quotations(actor, today=None, status=None, validity_state=None):
    """Newest first; non-admins only see their own quotations."""
    query = Quotation.query.filter(Quotation.is_deleted.is_(False))
    if not actor.is_admin:
        query = query.filter(Quotation.salesperson_id == actor.id)
    if status:
        if status not in QUOTATION_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(QUOTATION_STATUSES)}", code='invalid_status')
        query = query.filter(Quotation.status == status)
    query = query.order_by(Quotation.created_at.desc(), Quotation.id.desc())

    rows = [serialize_quotation(q, today) for q in query.all()]
    if validity_state:
        rows = [row for row in rows if row['validity']['validity_state'] == validity_state]
    return rows


def get_validity(quotation_id, actor, today=None):
    return serialize_validity(get_accessible_quotation(quotation_id, actor), today)


def get_latest_decision(quotation_id, actor):
    quotation = get_accessible_quotation(quotation_id, actor)
    return _serialize_decision(_latest_decision(quotation.id))


def list_versions(quotation_id, actor):
    """Current version first, then stored snapshots newest first."""
    quotation = get_accessible_quotation(quotation_id, actor)
    history = [{
        'id': None,
        'version': quotation.version,
        'is_current': True,
        'items': quotation.items or [],
        'totals': {
            'subtotal': serialize_value(quotation.subtotal),
            'total_discount': serialize_value(quotation.total_discount),
            'tax_total': serialize_value(quotation.tax_total),
            'grand_total': serialize_value(quotation.total_value),
        },
        'comment': None,
        'changed_at': serialize_value(quotation.updated_at),
    }]

    versions = quotation.versions.order_by(
        QuotationVersion.version_major.desc(), QuotationVersion.version_minor.desc()
    ).all()
    for version in versions:
        history.append({
            'id': version.id,
            'version': version.version_label,
            'is_current': False,
            'items': version.items or [],
            'totals': {
                'subtotal': serialize_value(version.subtotal),
                'total_discount': serialize_value(version.total_discount),
                'tax_total': serialize_value(version.tax_total),
                'grand_total': serialize_value(version.total_value),
            },
            'comment': version.comment,
            'changed_by': version.created_by,
            'changed_at': serialize_value(version.created_at),
        })
    return history
