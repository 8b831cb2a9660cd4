import itertools
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from config import TestConfig
from foodshare import create_app, db, socketio
from foodshare.auth.tokens import generate_token
from foodshare.models import FoodListing, Role, User

_seq = itertools.count(1)


def future(**kwargs):
    return datetime.utcnow() + timedelta(**kwargs)


def new_user(role=Role.RECEIVER, name=None):
    n = next(_seq)
    user = User(name=name or f'{role.value.title()} {n}', email=f'user{n}@example.com', role=role)
    user.set_password('secret123')
    db.session.add(user)
    db.session.commit()
    return user


def new_listing(donor_id, **overrides):
    now = datetime.utcnow()
    fields = dict(
        donor_id=donor_id,
        title='Vegetable curry',
        description='Two trays of freshly cooked curry',
        food_type='vegetarian',
        category='dinner',
        quantity_amount=5,
        quantity_unit='servings',
        latitude=52.5200,
        longitude=13.4050,
        address='Alexanderplatz 1',
        pickup_start=now - timedelta(hours=1),
        pickup_end=now + timedelta(hours=6),
        expiry_time=now + timedelta(hours=12),
    )
    fields.update(overrides)
    food = FoodListing(**fields)
    db.session.add(food)
    db.session.commit()
    return food


@pytest.fixture()
def app():
    flask_app = create_app(TestConfig)
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    """App context for tests that drive the service layer directly"""
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture()
def make_user(ctx):
    return new_user


@pytest.fixture()
def make_listing(ctx):
    return new_listing


# HTTP and socket tests must not hold an app context across requests, so these
# factories create rows in a context of their own and hand back plain values.

@pytest.fixture()
def make_account(app):
    def _make_account(role=Role.RECEIVER, name=None):
        with app.app_context():
            user = new_user(role, name)
            token = generate_token(user)
            return SimpleNamespace(id=user.id, name=user.name, token=token,
                                   headers={'Authorization': f'Bearer {token}'})
    return _make_account


@pytest.fixture()
def make_food(app):
    def _make_food(donor_id, **overrides):
        with app.app_context():
            return new_listing(donor_id, **overrides).id
    return _make_food


@pytest.fixture()
def donor(make_account):
    return make_account(Role.DONOR, 'Dana Donor')


@pytest.fixture()
def receiver(make_account):
    return make_account(Role.RECEIVER, 'Rita Receiver')


@pytest.fixture()
def socket_client(app):
    clients = []

    def _connect(account=None, token=None):
        auth = {'token': token if token is not None else account.token}
        client = socketio.test_client(app, auth=auth)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        if client.is_connected():
            client.disconnect()


def request_payload(food_id, amount=1, unit='servings', **overrides):
    payload = {
        'foodItem': food_id,
        'message': 'Could I pick this up tonight?',
        'requestedQuantity': {'amount': amount, 'unit': unit},
        'pickupDetails': {'preferredTime': future(hours=2).isoformat()},
    }
    payload.update(overrides)
    return payload
