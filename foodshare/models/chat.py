from datetime import datetime
from foodshare import db

MESSAGE_TYPES = ('text', 'image', 'location', 'file')


def participant_key(*user_ids):
    """Order-independent identity of a participant set"""
    return ':'.join(str(uid) for uid in sorted(set(user_ids)))


class Chat(db.Model):
    __tablename__ = 'chat'

    id = db.Column(db.Integer, primary_key=True)
    food_id = db.Column(db.Integer, db.ForeignKey('food_listing.id'), nullable=False)
    participant_key = db.Column(db.String(64), nullable=False)

    last_message_sender_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    last_message_preview = db.Column(db.String(1000))
    last_message_type = db.Column(db.String(10))
    last_message_at = db.Column(db.DateTime)

    last_activity = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('food_id', 'participant_key', name='uq_chat_food_participants'),
    )

    # Relationships
    food = db.relationship('FoodListing')
    participants = db.relationship('ChatParticipant', backref='chat', lazy='selectin',
                                   cascade='all, delete-orphan')
    messages = db.relationship('Message', backref='chat', lazy='dynamic',
                               order_by='Message.id', cascade='all, delete-orphan')

    @property
    def participant_ids(self):
        return [p.user_id for p in self.participants]

    def is_participant(self, user_id):
        return user_id in self.participant_ids

    def unread_for(self, user_id):
        for p in self.participants:
            if p.user_id == user_id:
                return p.unread_count
        return 0

    def last_message(self):
        if self.last_message_at is None:
            return None
        return {
            'sender_id': self.last_message_sender_id,
            'content': self.last_message_preview,
            'message_type': self.last_message_type,
            'created_at': self.last_message_at.isoformat(),
        }

    def to_dict(self, viewer_id=None):
        data = {
            'id': self.id,
            'food_item': {'id': self.food.id, 'title': self.food.title} if self.food else None,
            'participants': [p.user.public_profile() for p in self.participants],
            'last_message': self.last_message(),
            'last_activity': self.last_activity.isoformat() if self.last_activity else None,
            'is_active': self.is_active,
        }
        if viewer_id is not None:
            data['unread_count'] = self.unread_for(viewer_id)
        return data

    def __repr__(self):
        return f'<Chat {self.id}>'


class ChatParticipant(db.Model):
    __tablename__ = 'chat_participant'

    id = db.Column(db.Integer, primary_key=True)
    chat_id = db.Column(db.Integer, db.ForeignKey('chat.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    unread_count = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('chat_id', 'user_id', name='uq_chat_participant'),
        db.CheckConstraint('unread_count >= 0', name='ck_unread_non_negative'),
    )

    user = db.relationship('User')


class Message(db.Model):
    __tablename__ = 'message'

    id = db.Column(db.Integer, primary_key=True)
    chat_id = db.Column(db.Integer, db.ForeignKey('chat.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    content = db.Column(db.Text, nullable=False, default='')
    message_type = db.Column(db.String(10), nullable=False, default='text')
    media_url = db.Column(db.String(255))
    media_caption = db.Column(db.String(255))
    location_latitude = db.Column(db.Float)
    location_longitude = db.Column(db.Float)
    location_address = db.Column(db.String(255))
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    sender = db.relationship('User', foreign_keys=[sender_id])

    def to_dict(self, viewer_id=None):
        data = {
            'id': self.id,
            'chat_id': self.chat_id,
            'sender': self.sender.public_profile() if self.sender else {'id': self.sender_id},
            'content': self.content,
            'message_type': self.message_type,
            'media_url': self.media_url,
            'media_caption': self.media_caption,
            'location': {
                'latitude': self.location_latitude,
                'longitude': self.location_longitude,
                'address': self.location_address,
            } if self.message_type == 'location' else None,
            'is_read': self.is_read,
            'read_at': self.read_at.isoformat() if self.read_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if viewer_id is not None:
            data['is_mine'] = self.sender_id == viewer_id
        return data

    def __repr__(self):
        return f'<Message {self.id}>'
