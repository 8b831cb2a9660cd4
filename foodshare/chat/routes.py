from flask import jsonify, request
from flask_login import current_user, login_required

from foodshare.chat import bp
from foodshare.chat.forms import MessageForm, StartChatForm
from foodshare.services import messaging
from foodshare.services.rate_limit import rate_limited
from foodshare.utils.forms import json_form


@bp.route('', methods=['GET'])
@login_required
def my_chats():
    food_id = request.args.get('foodItem', type=int)
    chats = messaging.list_chats(current_user.id, food_id=food_id)
    return jsonify({'success': True, 'data': [chat.to_dict(viewer_id=current_user.id) for chat in chats]})


@bp.route('', methods=['POST'])
@login_required
def start_chat():
    form = json_form(StartChatForm)
    chat = messaging.find_or_create(current_user.id, form.participantId.data, form.foodItem.data)
    return jsonify({'success': True, 'data': chat.to_dict(viewer_id=current_user.id)})


@bp.route('/search', methods=['GET'])
@login_required
def search_chats():
    chats = messaging.search_chats(current_user.id, request.args.get('q'))
    return jsonify({'success': True, 'data': [chat.to_dict(viewer_id=current_user.id) for chat in chats]})


@bp.route('/<int:chat_id>/messages', methods=['GET'])
@login_required
def get_messages(chat_id):
    messages = messaging.get_messages(chat_id, current_user.id)
    return jsonify({'success': True, 'data': [m.to_dict(viewer_id=current_user.id) for m in messages]})


@bp.route('/<int:chat_id>/messages', methods=['POST'])
@login_required
@rate_limited('send-message', 'RATE_LIMIT_MESSAGES')
def post_message(chat_id):
    # existence and membership come before body validation (404/403 over 400)
    messaging.get_chat_for(chat_id, current_user.id)
    form = json_form(MessageForm)
    message = messaging.append_message(
        chat_id,
        current_user.id,
        form.content.data,
        message_type=form.messageType.data,
        media_url=form.mediaUrl.data or None,
        media_caption=form.mediaCaption.data or None,
        location=form.location_data(),
    )
    return jsonify({'success': True, 'data': message.to_dict(viewer_id=current_user.id)}), 201


@bp.route('/<int:chat_id>/read', methods=['PUT'])
@login_required
def mark_read(chat_id):
    marked = messaging.mark_read(chat_id, current_user.id)
    return jsonify({'success': True, 'data': {'marked': marked, 'unread_count': 0}})


@bp.route('/<int:chat_id>/unread', methods=['GET'])
@login_required
def unread_count(chat_id):
    return jsonify({'success': True, 'data': {'unread_count': messaging.unread_count(chat_id, current_user.id)}})


@bp.route('/<int:chat_id>/close', methods=['PUT'])
@login_required
def close_chat(chat_id):
    chat = messaging.close_chat(chat_id, current_user.id)
    return jsonify({'success': True, 'data': chat.to_dict(viewer_id=current_user.id)})
