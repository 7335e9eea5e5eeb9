"""User models for QuoteLedger"""
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from config.database import db


class User(db.Model):
    """Application user; salespeople own quotations, admins see everything"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)

    # Authentication
    email = db.Column(db.String(120), nullable=False, unique=True)
    username = db.Column(db.String(100), unique=True)
    password_hash = db.Column(db.String(256), nullable=False)

    # Profile
    name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(20))
    position = db.Column(db.String(100))

    # Access
    role = db.Column(db.String(20), nullable=False, default='user')  # admin, user
    is_active = db.Column(db.Boolean, default=True)

    last_login_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return (self.role or '').lower() == 'admin'

    def __repr__(self):
        return f'<User {self.email}>'
