from functools import wraps

from flask import current_app, request
from flask_login import current_user, login_user
from flask_socketio import ConnectionRefusedError, emit, join_room, leave_room, rooms

from foodshare import db
from foodshare.auth.tokens import bearer_token, verify_token
from foodshare.errors import AuthenticationError, DomainError, NotFound, ValidationError
from foodshare.services import messaging


def user_room(user_id):
    return f'user_{user_id}'


def chat_room(chat_id):
    return f'chat_{chat_id}'


def _as_id(value, name='chatId'):
    if isinstance(value, dict):
        value = value.get(name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {name}')


def _preview(content):
    limit = current_app.config['NOTIFICATION_PREVIEW_LENGTH']
    return content[:limit] + ('...' if len(content) > limit else '')


def socket_handler(f):
    """Report any failure of a client event to that client only"""
    @wraps(f)
    def wrapped(*args):
        if not current_user.is_authenticated:
            emit('message-error', AuthenticationError().to_dict())
            return
        try:
            return f(*args)
        except DomainError as e:
            db.session.rollback()
            emit('message-error', e.to_dict())
        except Exception:
            db.session.rollback()
            current_app.logger.exception('Socket event %s failed for user %s', f.__name__, current_user.id)
            emit('message-error', {'kind': 'internal_error', 'message': 'Failed to send message'})
    return wrapped


def on_connect(auth=None):
    token = auth.get('token') if isinstance(auth, dict) else None
    token = token or bearer_token(request) or request.args.get('token')
    try:
        user = verify_token(token)
    except AuthenticationError as e:
        current_app.logger.info('Socket connection refused: %s', e.message)
        raise ConnectionRefusedError(e.to_dict())

    login_user(user)
    # Join user to their personal room
    join_room(user_room(user.id))
    current_app.logger.info('User connected: %s (%s)', user.name, user.id)


def on_disconnect(reason=None):
    if not current_user.is_authenticated:
        return
    current_app.logger.info('User disconnected: %s (%s)', current_user.name, current_user.id)
    emit('user-offline', {'userId': current_user.id, 'userName': current_user.name},
         broadcast=True, include_self=False)


@socket_handler
def on_join_chat(data):
    chat = messaging.get_chat_for(_as_id(data), current_user.id)
    join_room(chat_room(chat.id))
    current_app.logger.info('User %s joined chat %s', current_user.id, chat.id)


@socket_handler
def on_leave_chat(data):
    leave_room(chat_room(_as_id(data)))


@socket_handler
def on_send_message(data):
    if not isinstance(data, dict):
        raise ValidationError('Message payload must be an object')

    can_create = bool(data.get('receiverId') and data.get('foodItem'))
    chat = None
    if data.get('chatId'):
        try:
            chat = messaging.get_chat_for(_as_id(data['chatId']), current_user.id)
        except NotFound:
            # stale chat id from the client, start over from the listing
            if not can_create:
                raise
    elif not can_create:
        raise ValidationError('chatId, or receiverId and foodItem, are required')

    if chat is None:
        chat = messaging.find_or_create(current_user.id,
                                        _as_id(data['receiverId'], 'receiverId'),
                                        _as_id(data['foodItem'], 'foodItem'))

    message = messaging.append_message(
        chat.id,
        current_user.id,
        data.get('content'),
        message_type=data.get('messageType') or 'text',
        media_url=data.get('mediaUrl'),
        media_caption=data.get('mediaCaption'),
        location=data.get('location'),
    )

    # Broadcast the message to the chat room
    emit('new-message', {'chatId': chat.id, 'message': message.to_dict()}, room=chat_room(chat.id))

    # Send confirmation to sender
    emit('message-sent', {'chatId': chat.id, 'id': message.id,
                          'created_at': message.created_at.isoformat()})

    # Notify the other participants in their personal rooms
    notification = {
        'chatId': chat.id,
        'senderId': current_user.id,
        'sender': current_user.name,
        'preview': _preview(message.content),
        'timestamp': message.created_at.isoformat(),
    }
    for participant_id in chat.participant_ids:
        if participant_id != current_user.id:
            emit('message-notification', notification, room=user_room(participant_id))


@socket_handler
def on_typing_start(data):
    chat_id = _as_id(data)
    room = chat_room(chat_id)
    # only connections viewing the chat may signal typing into it
    if room not in rooms():
        return
    emit('user-typing', {'chatId': chat_id, 'userId': current_user.id, 'userName': current_user.name},
         room=room, include_self=False)


@socket_handler
def on_typing_stop(data):
    chat_id = _as_id(data)
    room = chat_room(chat_id)
    if room not in rooms():
        return
    emit('user-stop-typing', {'chatId': chat_id, 'userId': current_user.id},
         room=room, include_self=False)


@socket_handler
def on_set_online(*args):
    emit('user-online', {'userId': current_user.id, 'userName': current_user.name},
         broadcast=True, include_self=False)


EVENT_HANDLERS = (
    ('connect', on_connect),
    ('disconnect', on_disconnect),
    ('join-chat', on_join_chat),
    ('leave-chat', on_leave_chat),
    ('send-message', on_send_message),
    ('typing-start', on_typing_start),
    ('typing-stop', on_typing_stop),
    ('set-online', on_set_online),
)


def register_events(socketio):
    """Bind the chat handlers to the server created by the latest init_app"""
    for event, handler in EVENT_HANDLERS:
        socketio.on_event(event, handler)
