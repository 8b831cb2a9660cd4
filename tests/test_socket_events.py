import pytest

from config import TestConfig
from conftest import new_user
from foodshare import create_app, db, socketio
from foodshare.auth.tokens import generate_token
from foodshare.models import Role


def _events(client, name):
    return [event['args'][0] for event in client.get_received() if event['name'] == name]


def _received(client):
    return client.get_received()


@pytest.fixture()
def chat(client, donor, receiver, make_food):
    food_id = make_food(donor.id)
    rv = client.post('/chat', json={'participantId': donor.id, 'foodItem': food_id}, headers=receiver.headers)
    data = rv.get_json()['data']
    return data['id'], food_id


def test_connection_requires_valid_token(socket_client, receiver):
    assert not socket_client(token='').is_connected()
    assert not socket_client(token='not-a-token').is_connected()
    assert socket_client(receiver).is_connected()


def test_send_message_reaches_room_and_recipient(socket_client, donor, receiver, chat):
    chat_id, _ = chat
    donor_ws = socket_client(donor)
    receiver_ws = socket_client(receiver)
    donor_ws.emit('join-chat', chat_id)
    receiver_ws.emit('join-chat', chat_id)
    donor_ws.get_received()
    receiver_ws.get_received()

    receiver_ws.emit('send-message', {'chatId': chat_id, 'content': 'On my way!'})

    donor_events = {e['name']: e['args'][0] for e in _received(donor_ws)}
    new_message = donor_events['new-message']
    assert new_message['chatId'] == chat_id
    assert new_message['message']['content'] == 'On my way!'
    assert new_message['message']['sender'] == {'id': receiver.id, 'name': receiver.name, 'avatar': ''}
    notification = donor_events['message-notification']
    assert notification['senderId'] == receiver.id
    assert notification['sender'] == receiver.name
    assert notification['preview'] == 'On my way!'

    receiver_events = {e['name']: e['args'][0] for e in _received(receiver_ws)}
    assert receiver_events['new-message']['message']['id'] == receiver_events['message-sent']['id']
    assert 'message-notification' not in receiver_events


def test_notification_preview_is_truncated(socket_client, donor, receiver, chat):
    chat_id, _ = chat
    donor_ws = socket_client(donor)
    receiver_ws = socket_client(receiver)
    donor_ws.get_received()

    receiver_ws.emit('send-message', {'chatId': chat_id, 'content': 'a' * 80})
    [notification] = _events(donor_ws, 'message-notification')
    assert notification['preview'] == 'a' * 50 + '...'


def test_send_message_creates_chat_on_first_use(client, socket_client, donor, receiver, make_food):
    food_id = make_food(donor.id)
    donor_ws = socket_client(donor)
    receiver_ws = socket_client(receiver)

    receiver_ws.emit('send-message', {'receiverId': donor.id, 'foodItem': food_id, 'content': 'Hello'})
    [sent] = _events(receiver_ws, 'message-sent')
    [notification] = _events(donor_ws, 'message-notification')
    assert notification['chatId'] == sent['chatId']

    chats = client.get('/chat', headers=donor.headers).get_json()['data']
    assert [c['id'] for c in chats] == [sent['chatId']]
    assert chats[0]['unread_count'] == 1


def test_errors_go_to_sender_only(socket_client, donor, receiver, make_account, chat):
    chat_id, _ = chat
    outsider = make_account()
    donor_ws = socket_client(donor)
    outsider_ws = socket_client(outsider)
    donor_ws.emit('join-chat', chat_id)
    donor_ws.get_received()

    outsider_ws.emit('send-message', {'chatId': chat_id, 'content': 'let me in'})
    [error] = _events(outsider_ws, 'message-error')
    assert error['kind'] == 'forbidden'
    assert donor_ws.get_received() == []

    donor_ws.emit('send-message', {'chatId': chat_id, 'content': 'x' * 1001})
    [error] = _events(donor_ws, 'message-error')
    assert error['kind'] == 'validation_error'

    donor_ws.emit('send-message', {'content': 'nowhere'})
    [error] = _events(donor_ws, 'message-error')
    assert error['kind'] == 'validation_error'


def test_outsider_cannot_join_chat(socket_client, donor, make_account, chat):
    chat_id, _ = chat
    outsider_ws = socket_client(make_account())
    donor_ws = socket_client(donor)
    donor_ws.emit('join-chat', chat_id)
    donor_ws.get_received()

    outsider_ws.emit('join-chat', chat_id)
    [error] = _events(outsider_ws, 'message-error')
    assert error['kind'] == 'forbidden'

    # not in the room, so typing is not relayed either
    outsider_ws.emit('typing-start', chat_id)
    assert donor_ws.get_received() == []


def test_typing_is_relayed_to_others_in_room(socket_client, donor, receiver, chat):
    chat_id, _ = chat
    donor_ws = socket_client(donor)
    receiver_ws = socket_client(receiver)
    donor_ws.emit('join-chat', chat_id)
    receiver_ws.emit('join-chat', chat_id)
    donor_ws.get_received()
    receiver_ws.get_received()

    receiver_ws.emit('typing-start', chat_id)
    [typing] = _events(donor_ws, 'user-typing')
    assert typing == {'chatId': chat_id, 'userId': receiver.id, 'userName': receiver.name}
    assert receiver_ws.get_received() == []

    receiver_ws.emit('typing-stop', {'chatId': chat_id})
    [stopped] = _events(donor_ws, 'user-stop-typing')
    assert stopped['userId'] == receiver.id

    receiver_ws.emit('leave-chat', chat_id)
    receiver_ws.emit('leave-chat', chat_id)
    receiver_ws.emit('typing-start', chat_id)
    assert donor_ws.get_received() == []


def test_presence_broadcasts(socket_client, donor, make_account):
    donor_ws = socket_client(donor)
    other = make_account(Role.RECEIVER)
    other_ws = socket_client(other)
    donor_ws.get_received()

    other_ws.emit('set-online')
    [online] = _events(donor_ws, 'user-online')
    assert online['userId'] == other.id
    assert other_ws.get_received() == []

    other_ws.disconnect()
    [offline] = _events(donor_ws, 'user-offline')
    assert offline['userId'] == other.id


def test_stale_chat_id_falls_back_to_listing(socket_client, donor, receiver, chat):
    chat_id, food_id = chat
    receiver_ws = socket_client(receiver)

    receiver_ws.emit('send-message', {'chatId': 9999, 'receiverId': donor.id, 'foodItem': food_id,
                                      'content': 'Still there?'})
    [sent] = _events(receiver_ws, 'message-sent')
    assert sent['chatId'] == chat_id

    receiver_ws.emit('send-message', {'chatId': 9999, 'content': 'Still there?'})
    [error] = _events(receiver_ws, 'message-error')
    assert error['kind'] == 'not_found'


def test_every_app_gets_the_chat_handlers(app):
    other = create_app(TestConfig)
    try:
        with other.app_context():
            token = generate_token(new_user())
        assert not socketio.test_client(other, auth={'token': ''}).is_connected()
        other_ws = socketio.test_client(other, auth={'token': token})
        assert other_ws.is_connected()
        other_ws.emit('join-chat', 12345)
        [error] = _events(other_ws, 'message-error')
        assert error['kind'] == 'not_found'
        other_ws.disconnect()
    finally:
        with other.app_context():
            db.session.remove()
            db.drop_all()
