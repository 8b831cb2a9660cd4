import enum
from datetime import datetime
from flask_login import UserMixin
from foodshare import db, bcrypt


class Role(enum.Enum):
    DONOR = 'donor'
    RECEIVER = 'receiver'
    ADMIN = 'admin'


class Capability(enum.Enum):
    LIST_FOOD = 'list_food'
    REQUEST_FOOD = 'request_food'
    MANAGE_ANY_LISTING = 'manage_any_listing'
    VIEW_ANY_REQUEST = 'view_any_request'
    MANAGE_USERS = 'manage_users'


# Every role must appear here; can() raises KeyError for a role that doesn't
CAPABILITIES = {
    Role.DONOR: frozenset({Capability.LIST_FOOD}),
    Role.RECEIVER: frozenset({Capability.REQUEST_FOOD}),
    Role.ADMIN: frozenset(Capability),
}


def can(role, capability):
    return capability in CAPABILITIES[role]


class User(UserMixin, db.Model):
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(128), nullable=False)
    role = db.Column(db.Enum(Role, native_enum=False, length=16), nullable=False, default=Role.RECEIVER)
    phone = db.Column(db.String(20))
    avatar = db.Column(db.String(255), default='')
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    is_active_account = db.Column(db.Boolean, nullable=False, default=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    listings = db.relationship('FoodListing', backref='donor', lazy='dynamic',
                               foreign_keys='FoodListing.donor_id')

    @property
    def is_active(self):
        return self.is_active_account

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def can(self, capability):
        return can(self.role, capability)

    def public_profile(self):
        return {'id': self.id, 'name': self.name, 'avatar': self.avatar or ''}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role.value,
            'phone': self.phone,
            'avatar': self.avatar or '',
            'latitude': self.latitude,
            'longitude': self.longitude,
            'is_verified': bool(self.is_verified),
            'is_active': bool(self.is_active_account),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<User {self.email}>'
