from datetime import datetime
from config.database import db


QUOTATION_STATUSES = ('draft', 'pending', 'won', 'lost')
CLOSED_STATUSES = ('won', 'lost')
EDITABLE_STATUSES = ('draft', 'pending')


class Quotation(db.Model):
    """Quotation model"""
    __tablename__ = 'quotations'

    id = db.Column(db.Integer, primary_key=True)

    # Assigned once, after the row exists, inside the creating transaction
    quotation_no = db.Column(db.String(50), unique=True)

    # Customer
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False)
    customer_location_id = db.Column(db.Integer, db.ForeignKey('customer_locations.id'))
    customer_contact_id = db.Column(db.Integer, db.ForeignKey('customer_contacts.id'))
    customer_name = db.Column(db.String(255))  # Denormalized for quick access
    customer_snapshot = db.Column(db.JSON)

    # Sales Info
    salesperson_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    salesperson_phone = db.Column(db.String(50))
    salesperson_email = db.Column(db.String(255))

    # Validity
    quotation_date = db.Column(db.Date, nullable=False)
    validity_days = db.Column(db.Integer, default=30)

    # Commercial content
    items = db.Column(db.JSON, default=list)
    payment_terms = db.Column(db.Text)
    terms = db.Column(db.Text)
    notes = db.Column(db.Text)

    # Amounts
    subtotal = db.Column(db.Numeric(18, 2), default=0)
    total_discount = db.Column(db.Numeric(18, 2), default=0)
    tax_total = db.Column(db.Numeric(18, 2), default=0)
    total_value = db.Column(db.Numeric(18, 2), default=0)

    # Status
    status = db.Column(db.String(20), default='draft')  # draft, pending, won, lost
    version = db.Column(db.String(20), default='0.1')

    # Soft delete
    is_deleted = db.Column(db.Boolean, default=False, nullable=False)
    deleted_at = db.Column(db.DateTime)
    deleted_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    # Back-reference to the expired quotation this one supersedes
    reissued_from_id = db.Column(db.Integer, db.ForeignKey('quotations.id'), unique=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    salesperson = db.relationship('User', foreign_keys=[salesperson_id])
    decisions = db.relationship('QuotationDecision', backref='quotation', lazy='dynamic', cascade='all, delete-orphan')
    versions = db.relationship('QuotationVersion', backref='quotation', lazy='dynamic', cascade='all, delete-orphan')
    followups = db.relationship('QuotationFollowup', backref='quotation', lazy='dynamic', cascade='all, delete-orphan')

    __table_args__ = (
        db.Index('idx_quotation_salesperson', 'salesperson_id', 'is_deleted'),
        db.Index('idx_quotation_status', 'status'),
        db.Index('idx_quotation_customer', 'customer_id'),
    )

    def __repr__(self):
        return f'<Quotation {self.quotation_no}>'


class QuotationSequence(db.Model):
    """Running number per (fiscal year, salesperson initials) partition.

    The row is created on first use and then locked for every allocation, so
    the first quotation of a partition is serialized like every other one.
    """
    __tablename__ = 'quotation_sequences'

    id = db.Column(db.Integer, primary_key=True)
    fy_code = db.Column(db.String(4), nullable=False)
    initials = db.Column(db.String(10), nullable=False)
    current_number = db.Column(db.Integer, nullable=False, default=0)
    last_generated_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint('fy_code', 'initials', name='uq_quotation_sequence'),
    )

    def __repr__(self):
        return f'<QuotationSequence {self.fy_code}/{self.initials}: {self.current_number}>'


class QuotationDecision(db.Model):
    """Append-only won/lost record"""
    __tablename__ = 'quotation_decisions'

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey('quotations.id'), nullable=False)

    decision = db.Column(db.String(10), nullable=False)  # won, lost
    comment = db.Column(db.Text)

    decided_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    decided_by_name = db.Column(db.String(255))
    decided_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index('idx_qd_quotation', 'quotation_id'),
    )

    def __repr__(self):
        return f'<QuotationDecision {self.decision} on {self.quotation_id}>'


class QuotationVersion(db.Model):
    """Immutable snapshot of a quotation's content before an edit"""
    __tablename__ = 'quotation_versions'

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey('quotations.id'), nullable=False)

    version_major = db.Column(db.Integer, nullable=False)
    version_minor = db.Column(db.Integer, nullable=False)
    version_label = db.Column(db.String(32))

    items = db.Column(db.JSON)
    subtotal = db.Column(db.Numeric(18, 2))
    total_discount = db.Column(db.Numeric(18, 2))
    tax_total = db.Column(db.Numeric(18, 2))
    total_value = db.Column(db.Numeric(18, 2))

    comment = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('quotation_id', 'version_major', 'version_minor', name='uq_quotation_version'),
    )

    def __repr__(self):
        return f'<QuotationVersion {self.quotation_id} v{self.version_label}>'


class QuotationFollowup(db.Model):
    """Sales follow-up logged against a pending quotation"""
    __tablename__ = 'quotation_followups'

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey('quotations.id'), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    followup_date = db.Column(db.Date, nullable=False)
    note = db.Column(db.Text, nullable=False)
    followup_type = db.Column(db.String(20), nullable=False, default='other')
    # call, email, whatsapp, meeting, site_visit, other
    next_followup_date = db.Column(db.Date)

    is_completed = db.Column(db.Boolean, default=False)
    completed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('idx_qf_quotation', 'quotation_id'),
    )

    def __repr__(self):
        return f'<QuotationFollowup {self.followup_type} on {self.quotation_id}>'
