"""Chat sessions, message log and unread bookkeeping."""
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from foodshare import db
from foodshare.errors import Forbidden, InvalidState, NotFound, Unavailable, ValidationError
from foodshare.models.chat import MESSAGE_TYPES, Chat, ChatParticipant, Message, participant_key
from foodshare.models.food import FoodListing
from foodshare.models.user import User
from foodshare.utils.db import locked, transaction


def _check_participants(chat):
    ids = chat.participant_ids
    if len(ids) < 2 or len(set(ids)) != len(ids):
        raise InvalidState('A chat needs at least two distinct participants')


def is_participant(chat, user_id):
    return chat.is_participant(user_id)


def get_chat(chat_id):
    chat = db.session.get(Chat, chat_id)
    if chat is None:
        raise NotFound('Chat not found')
    return chat


def get_chat_for(chat_id, user_id):
    chat = get_chat(chat_id)
    if not chat.is_participant(user_id):
        raise Forbidden('Not a participant of this chat')
    return chat


def find_or_create(participant_a, participant_b, food_id):
    """Return the chat for this pair and listing, creating it on first use"""
    if participant_a == participant_b:
        raise InvalidState('A chat needs at least two distinct participants')
    food = db.session.get(FoodListing, food_id)
    if food is None:
        raise NotFound('Food item not found')
    if food.donor_id not in (participant_a, participant_b):
        raise Forbidden('Chats about a listing must include its donor')
    for user_id in (participant_a, participant_b):
        if db.session.get(User, user_id) is None:
            raise NotFound('User not found')

    key = participant_key(participant_a, participant_b)
    chat = Chat.query.filter_by(food_id=food_id, participant_key=key).first()
    if chat is not None:
        return chat

    chat = Chat(food_id=food_id, participant_key=key,
                participants=[ChatParticipant(user_id=participant_a, unread_count=0),
                              ChatParticipant(user_id=participant_b, unread_count=0)])
    _check_participants(chat)
    db.session.add(chat)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Chat creation failed: %s', e)
        raise Unavailable() from e
    else:
        current_app.logger.info('Chat %s created for listing %s', chat.id, food_id)
        return chat

    # lost the creation race: the other creator's chat is the chat
    chat = Chat.query.filter_by(food_id=food_id, participant_key=key).first()
    if chat is None:
        raise Unavailable()
    return chat


def _validate_message(content, message_type, media_url, location):
    max_length = current_app.config['MESSAGE_MAX_LENGTH']
    content = (content or '').strip()
    if message_type not in MESSAGE_TYPES:
        raise ValidationError('Invalid message type',
                              fields={'message_type': ['Must be one of ' + ', '.join(MESSAGE_TYPES)]})
    if message_type == 'text' and not content:
        raise ValidationError('Message content is required')
    if len(content) > max_length:
        raise ValidationError(f'Message cannot exceed {max_length} characters')
    if message_type in ('image', 'file') and not media_url:
        raise ValidationError(f'A media URL is required for {message_type} messages')
    if message_type == 'location':
        if not location or location.get('latitude') is None or location.get('longitude') is None:
            raise ValidationError('Location messages need latitude and longitude')
    return content


def append_message(chat_id, sender_id, content, message_type='text', media_url=None,
                   media_caption=None, location=None):
    content = _validate_message(content, message_type, media_url, location)
    location = location or {}
    now = datetime.utcnow()

    with transaction():
        # row lock serialises appends to one chat
        chat = locked(Chat, chat_id)
        if chat is None:
            raise NotFound('Chat not found')
        if not chat.is_participant(sender_id):
            raise Forbidden('Not a participant of this chat')
        if not chat.is_active:
            raise InvalidState('This chat is closed')
        _check_participants(chat)

        message = Message(
            chat_id=chat.id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            media_url=media_url,
            media_caption=media_caption,
            location_latitude=location.get('latitude'),
            location_longitude=location.get('longitude'),
            location_address=location.get('address'),
            created_at=now,
        )
        db.session.add(message)

        db.session.execute(
            db.update(ChatParticipant)
            .where(ChatParticipant.chat_id == chat.id, ChatParticipant.user_id != sender_id)
            .values(unread_count=ChatParticipant.unread_count + 1)
            .execution_options(synchronize_session=False)
        )
        chat.last_message_sender_id = sender_id
        chat.last_message_preview = content
        chat.last_message_type = message_type
        chat.last_message_at = now
        chat.last_activity = now

    return message


def mark_read(chat_id, user_id):
    """Mark everything the user has not read yet; returns how many were marked"""
    with transaction():
        chat = locked(Chat, chat_id)
        if chat is None:
            raise NotFound('Chat not found')
        if not chat.is_participant(user_id):
            raise Forbidden('Not a participant of this chat')
        _check_participants(chat)

        result = db.session.execute(
            db.update(Message)
            .where(Message.chat_id == chat.id,
                   Message.sender_id != user_id,
                   Message.is_read.is_(False))
            .values(is_read=True, read_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.execute(
            db.update(ChatParticipant)
            .where(ChatParticipant.chat_id == chat.id, ChatParticipant.user_id == user_id)
            .values(unread_count=0)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount


def unread_count(chat_id, user_id):
    chat = get_chat_for(chat_id, user_id)
    return chat.unread_for(user_id)


def get_messages(chat_id, user_id):
    chat = get_chat_for(chat_id, user_id)
    return chat.messages.all()


def _user_chats(user_id):
    return (
        Chat.query
        .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
        .filter(ChatParticipant.user_id == user_id, Chat.is_active.is_(True))
    )


def list_chats(user_id, food_id=None):
    query = _user_chats(user_id)
    if food_id is not None:
        query = query.filter(Chat.food_id == food_id)
    return query.order_by(Chat.last_activity.desc()).all()


def search_chats(user_id, term):
    term = (term or '').strip()
    if not term:
        raise ValidationError('Search term is required')
    return (
        _user_chats(user_id)
        .join(Message, Message.chat_id == Chat.id)
        .filter(Message.content.ilike(f'%{term}%'))
        .distinct()
        .order_by(Chat.last_activity.desc())
        .all()
    )


def close_chat(chat_id, user_id):
    """Close a chat for both sides; history stays readable, new messages are refused"""
    with transaction():
        chat = locked(Chat, chat_id)
        if chat is None:
            raise NotFound('Chat not found')
        if not chat.is_participant(user_id):
            raise Forbidden('Not a participant of this chat')
        if chat.is_active:
            chat.is_active = False
            current_app.logger.info('Chat %s closed by user %s', chat.id, user_id)
    return chat
