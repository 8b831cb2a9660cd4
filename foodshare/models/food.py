from datetime import datetime
from foodshare import db

QUANTITY_UNITS = ('servings', 'pieces', 'kg', 'grams', 'liters', 'packets', 'other')
FOOD_TYPES = ('vegetarian', 'non-vegetarian', 'vegan', 'gluten-free', 'dairy-free', 'other')
CATEGORIES = ('breakfast', 'lunch', 'dinner', 'snacks', 'desserts', 'beverages', 'other')


class FoodListing(db.Model):
    __tablename__ = 'food_listing'

    # Statuses that still accept new claim requests
    OPEN_STATUSES = ('available', 'requested')

    # Only these keys of an update payload are ever applied to a listing
    UPDATABLE_FIELDS = (
        'title', 'description', 'food_type', 'category', 'quantity_amount',
        'quantity_unit', 'address', 'pickup_instructions', 'pickup_start',
        'pickup_end', 'expiry_time', 'tags', 'image_url',
    )

    id = db.Column(db.Integer, primary_key=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    food_type = db.Column(db.String(20), nullable=False, default='other')
    category = db.Column(db.String(20), nullable=False, default='other')
    quantity_amount = db.Column(db.Integer, nullable=False)
    quantity_unit = db.Column(db.String(20), nullable=False, default='servings')
    reserved_amount = db.Column(db.Integer, nullable=False, default=0)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    address = db.Column(db.String(255))
    pickup_instructions = db.Column(db.String(255))
    pickup_start = db.Column(db.DateTime, nullable=False)
    pickup_end = db.Column(db.DateTime, nullable=False)
    expiry_time = db.Column(db.DateTime, nullable=False)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(20), nullable=False, default='available', index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    tags = db.Column(db.String(255), default='')
    image_url = db.Column(db.String(255))
    views = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_food_listing_coords', 'latitude', 'longitude'),
        db.CheckConstraint('reserved_amount >= 0', name='ck_food_reserved_non_negative'),
        db.CheckConstraint('reserved_amount <= quantity_amount', name='ck_food_reserved_within_quantity'),
        db.CheckConstraint('pickup_end > pickup_start', name='ck_food_pickup_window'),
    )

    # Relationships
    requests = db.relationship('FoodRequest', backref='food', lazy='dynamic')

    @property
    def remaining_amount(self):
        return self.quantity_amount - (self.reserved_amount or 0)

    def is_expired(self, now=None):
        return (now or datetime.utcnow()) >= self.expiry_time

    def in_pickup_window(self, now=None):
        now = now or datetime.utcnow()
        return self.pickup_start <= now <= self.pickup_end

    def is_open_for_requests(self, now=None):
        """Whether a new claim request may be placed right now"""
        now = now or datetime.utcnow()
        return (self.is_active
                and self.status in self.OPEN_STATUSES
                and self.in_pickup_window(now)
                and not self.is_expired(now))

    @property
    def tag_list(self):
        return [t for t in (self.tags or '').split(',') if t]

    def to_dict(self, distance_km=None):
        data = {
            'id': self.id,
            'donor': self.donor.public_profile() if self.donor else None,
            'title': self.title,
            'description': self.description,
            'food_type': self.food_type,
            'category': self.category,
            'quantity': {'amount': self.quantity_amount, 'unit': self.quantity_unit},
            'remaining_amount': self.remaining_amount,
            'location': {
                'latitude': self.latitude,
                'longitude': self.longitude,
                'address': self.address,
                'pickup_instructions': self.pickup_instructions,
            },
            'availability': {
                'pickup_start': self.pickup_start.isoformat(),
                'pickup_end': self.pickup_end.isoformat(),
                'expiry_time': self.expiry_time.isoformat(),
                'is_available': self.is_available,
            },
            'status': self.status,
            'is_active': self.is_active,
            'tags': self.tag_list,
            'image_url': self.image_url,
            'views': self.views,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if distance_km is not None:
            data['distance_km'] = round(distance_km, 2)
        return data

    def __repr__(self):
        return f'<FoodListing {self.id} {self.status}>'
