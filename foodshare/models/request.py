from datetime import datetime
from foodshare import db

ACTIVE_STATUSES = ('pending', 'accepted')
TERMINAL_STATUSES = ('rejected', 'cancelled', 'completed')

_ACTIVE_CLAUSE = db.text("status IN ('pending', 'accepted')")


class FoodRequest(db.Model):
    __tablename__ = 'food_request'

    id = db.Column(db.Integer, primary_key=True)
    food_id = db.Column(db.Integer, db.ForeignKey('food_listing.id'), nullable=False)
    donor_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    receiver_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, accepted, rejected, cancelled, completed
    message = db.Column(db.String(500))

    requested_amount = db.Column(db.Integer, nullable=False)
    requested_unit = db.Column(db.String(20), nullable=False)

    preferred_time = db.Column(db.DateTime, nullable=False)
    alternative_time = db.Column(db.DateTime)
    special_instructions = db.Column(db.String(500))

    response_message = db.Column(db.String(500))
    responded_at = db.Column(db.DateTime)
    proposed_pickup_time = db.Column(db.DateTime)

    confirmed_pickup_time = db.Column(db.DateTime)
    confirmed_at = db.Column(db.DateTime)
    pickup_instructions = db.Column(db.String(500))

    picked_up_at = db.Column(db.DateTime)
    actual_amount = db.Column(db.Integer)
    actual_unit = db.Column(db.String(20))
    pickup_notes = db.Column(db.String(500))

    cancellation_reason = db.Column(db.String(500))
    cancelled_by = db.Column(db.String(10))  # donor, receiver, system
    cancelled_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # one active claim per receiver and listing
        db.Index('uq_food_request_active', 'food_id', 'receiver_id', unique=True,
                 sqlite_where=_ACTIVE_CLAUSE, postgresql_where=_ACTIVE_CLAUSE),
        db.Index('ix_food_request_donor_status', 'donor_id', 'status'),
        db.Index('ix_food_request_receiver_status', 'receiver_id', 'status'),
        db.CheckConstraint('requested_amount >= 1', name='ck_request_amount_positive'),
    )

    # Relationships
    donor = db.relationship('User', foreign_keys=[donor_id])
    receiver = db.relationship('User', foreign_keys=[receiver_id])

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def party_of(self, user):
        """Return 'donor', 'receiver' or None for the given user"""
        if user.id == self.donor_id:
            return 'donor'
        if user.id == self.receiver_id:
            return 'receiver'
        return None

    def to_dict(self):
        def iso(value):
            return value.isoformat() if value else None

        return {
            'id': self.id,
            'food_item': {
                'id': self.food.id,
                'title': self.food.title,
                'status': self.food.status,
                'address': self.food.address,
            } if self.food else None,
            'donor': self.donor.public_profile() if self.donor else None,
            'receiver': self.receiver.public_profile() if self.receiver else None,
            'status': self.status,
            'message': self.message,
            'requested_quantity': {'amount': self.requested_amount, 'unit': self.requested_unit},
            'pickup_details': {
                'preferred_time': iso(self.preferred_time),
                'alternative_time': iso(self.alternative_time),
                'special_instructions': self.special_instructions,
            },
            'donor_response': {
                'message': self.response_message,
                'responded_at': iso(self.responded_at),
                'proposed_pickup_time': iso(self.proposed_pickup_time),
            } if self.responded_at else None,
            'receiver_confirmation': {
                'confirmed_pickup_time': iso(self.confirmed_pickup_time),
                'confirmed_at': iso(self.confirmed_at),
                'pickup_instructions': self.pickup_instructions,
            } if self.confirmed_at else None,
            'actual_pickup': {
                'picked_up_at': iso(self.picked_up_at),
                'actual_quantity': {'amount': self.actual_amount, 'unit': self.actual_unit},
                'notes': self.pickup_notes,
            } if self.picked_up_at else None,
            'cancellation': {
                'reason': self.cancellation_reason,
                'cancelled_by': self.cancelled_by,
                'cancelled_at': iso(self.cancelled_at),
            } if self.cancelled_at else None,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f'<FoodRequest {self.id} {self.status}>'
