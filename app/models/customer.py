"""Customer master data for QuoteLedger

Quotations copy these rows into a snapshot when they are created, so later
edits here never change an issued quotation.
"""
from datetime import datetime
from config.database import db


class Customer(db.Model):
    """Customer/Client model"""
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(255), nullable=False)
    gstin = db.Column(db.String(15))

    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    locations = db.relationship('CustomerLocation', backref='customer', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Customer {self.company_name}>'


class CustomerLocation(db.Model):
    """Customer site / billing location"""
    __tablename__ = 'customer_locations'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False)

    location_name = db.Column(db.String(255), nullable=False)
    gstin = db.Column(db.String(15))
    address = db.Column(db.Text)
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))

    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    contacts = db.relationship('CustomerContact', backref='location', lazy='dynamic', cascade='all, delete-orphan')

    __table_args__ = (
        db.Index('idx_location_customer', 'customer_id'),
    )

    def __repr__(self):
        return f'<CustomerLocation {self.location_name}>'


class CustomerContact(db.Model):
    """Contact person at a customer location"""
    __tablename__ = 'customer_contacts'

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey('customer_locations.id'), nullable=False)

    contact_name = db.Column(db.String(255), nullable=False)
    designation = db.Column(db.String(100))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(255))

    is_primary = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('idx_contact_location', 'location_id'),
    )

    def __repr__(self):
        return f'<CustomerContact {self.contact_name}>'
