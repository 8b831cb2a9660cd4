import threading
from datetime import datetime, timedelta

import pytest

from config import TestConfig
from conftest import future, new_listing, new_user
from foodshare import create_app, db
from foodshare.errors import Conflict, Forbidden, InvalidState, ListingUnavailable, NotFound, ValidationError
from foodshare.models import FoodListing, FoodRequest, Role, User
from foodshare.services import lifecycle


def _request(receiver, food, amount=1, **kwargs):
    return lifecycle.create_request(receiver, food.id, amount, food.quantity_unit, future(hours=2), **kwargs)


@pytest.fixture()
def cast(make_user, make_listing):
    donor = make_user(Role.DONOR)
    r1 = make_user()
    r2 = make_user()
    food = make_listing(donor.id)
    return donor, r1, r2, food


def test_create_request_reserves_quantity(cast):
    donor, r1, _, food = cast
    fr = _request(r1, food, amount=2, message='Can pick up at six')

    assert fr.status == 'pending'
    assert fr.donor_id == donor.id
    assert food.status == 'requested'
    assert food.is_available is True
    assert food.reserved_amount == 2
    assert food.remaining_amount == 3


def test_second_receiver_may_request_while_quantity_remains(cast):
    _, r1, r2, food = cast
    _request(r1, food)
    _request(r2, food)

    assert food.status == 'requested'
    assert food.requests.filter_by(status='pending').count() == 2


def test_only_one_request_can_be_accepted(cast):
    donor, r1, r2, food = cast
    fr1 = _request(r1, food)
    fr2 = _request(r2, food)

    lifecycle.accept(fr1.id, donor, 'See you at six')
    assert fr1.status == 'accepted'
    assert fr1.response_message == 'See you at six'
    assert food.status == 'claimed'
    assert food.is_available is False

    with pytest.raises(Conflict):
        lifecycle.accept(fr2.id, donor)
    assert db.session.get(FoodRequest, fr2.id).status == 'pending'
    assert FoodRequest.query.filter_by(food_id=food.id, status='accepted').count() == 1


def test_rejecting_every_pending_request_reopens_listing(cast):
    donor, r1, r2, food = cast
    fr1 = _request(r1, food)
    fr2 = _request(r2, food)

    lifecycle.reject(fr1.id, donor, 'Sorry')
    assert food.status == 'requested'

    lifecycle.reject(fr2.id, donor)
    assert fr2.status == 'rejected'
    assert fr2.response_message == 'Request rejected'
    assert food.status == 'available'
    assert food.is_available is True
    assert food.reserved_amount == 0


def test_rejecting_remaining_request_keeps_claim(cast):
    donor, r1, r2, food = cast
    fr1 = _request(r1, food)
    fr2 = _request(r2, food)
    lifecycle.accept(fr1.id, donor)

    lifecycle.reject(fr2.id, donor)
    assert food.status == 'claimed'
    assert food.is_available is False


def test_cancelling_accepted_request_falls_back_to_pending_claims(cast):
    donor, r1, r2, food = cast
    fr1 = _request(r1, food)
    _request(r2, food)
    lifecycle.accept(fr1.id, donor)

    lifecycle.cancel(fr1.id, r1, 'Plans changed')
    assert fr1.status == 'cancelled'
    assert fr1.cancelled_by == 'receiver'
    assert fr1.cancellation_reason == 'Plans changed'
    assert food.status == 'requested'
    assert food.reserved_amount == 1


def test_donor_can_cancel_and_listing_reopens(cast):
    donor, r1, _, food = cast
    fr = _request(r1, food)
    lifecycle.cancel(fr.id, donor)
    assert fr.cancelled_by == 'donor'
    assert food.status == 'available'


def test_complete_records_actual_pickup(cast):
    donor, r1, _, food = cast
    fr = _request(r1, food, amount=3)
    lifecycle.accept(fr.id, donor)

    lifecycle.complete(fr.id, donor, notes='All good')
    assert fr.status == 'completed'
    assert fr.actual_amount == 3
    assert fr.actual_unit == 'servings'
    assert fr.pickup_notes == 'All good'
    assert fr.picked_up_at is not None
    assert food.status == 'claimed'


def test_confirm_pickup_by_receiver(cast):
    donor, r1, _, food = cast
    fr = _request(r1, food)
    when = future(hours=3)
    lifecycle.accept(fr.id, donor, proposed_pickup_time=when)

    with pytest.raises(Forbidden):
        lifecycle.confirm_pickup(fr.id, donor)
    lifecycle.confirm_pickup(fr.id, r1, pickup_instructions='Ring twice')
    assert fr.confirmed_pickup_time == when
    assert fr.pickup_instructions == 'Ring twice'
    assert fr.status == 'accepted'


def test_only_donor_may_respond(cast):
    _, r1, r2, food = cast
    fr = _request(r1, food)
    for action in (lifecycle.accept, lifecycle.reject, lifecycle.complete):
        with pytest.raises(Forbidden):
            action(fr.id, r1)
    with pytest.raises(Forbidden):
        lifecycle.cancel(fr.id, r2)


def test_transitions_from_wrong_state(cast):
    donor, r1, _, food = cast
    fr = _request(r1, food)
    with pytest.raises(InvalidState):
        lifecycle.complete(fr.id, donor)

    lifecycle.reject(fr.id, donor)
    with pytest.raises(InvalidState):
        lifecycle.accept(fr.id, donor)
    with pytest.raises(InvalidState):
        lifecycle.cancel(fr.id, r1)


def test_update_status_dispatch(cast):
    donor, r1, _, food = cast
    fr = _request(r1, food)
    with pytest.raises(ValidationError):
        lifecycle.update_status(fr.id, donor, 'pending')
    lifecycle.update_status(fr.id, donor, 'accepted', message='Ok')
    assert fr.status == 'accepted'


def test_create_request_errors(cast, make_listing):
    donor, r1, _, food = cast
    with pytest.raises(NotFound):
        lifecycle.create_request(r1, 9999, 1, 'servings', future(hours=1))
    with pytest.raises(Forbidden):
        _request(donor, food)
    with pytest.raises(ValidationError):
        lifecycle.create_request(r1, food.id, 1, 'kg', future(hours=1))
    with pytest.raises(ValidationError):
        lifecycle.create_request(r1, food.id, 0, 'servings', future(hours=1))
    with pytest.raises(ValidationError):
        lifecycle.create_request(r1, food.id, 1, 'servings', datetime.utcnow() - timedelta(minutes=5))
    with pytest.raises(Conflict):
        _request(r1, food, amount=6)

    later = make_listing(donor.id, pickup_start=future(hours=2), pickup_end=future(hours=4))
    with pytest.raises(ListingUnavailable):
        _request(r1, later)


def test_duplicate_active_request_conflicts(cast):
    _, r1, _, food = cast
    _request(r1, food)
    with pytest.raises(Conflict):
        _request(r1, food)


def test_receiver_may_request_again_after_rejection(cast):
    donor, r1, _, food = cast
    fr = _request(r1, food)
    lifecycle.reject(fr.id, donor)
    again = _request(r1, food)
    assert again.status == 'pending'


def test_claimed_listing_is_unavailable(cast, make_user):
    donor, r1, r2, food = cast
    fr = _request(r1, food)
    lifecycle.accept(fr.id, donor)
    with pytest.raises(ListingUnavailable) as exc:
        _request(r2, food)
    assert exc.value.status_code == 400
    assert exc.value.kind == 'invalid_state'


def test_expired_listing_is_flagged_on_request(make_user, make_listing):
    donor = make_user(Role.DONOR)
    receiver = make_user()
    food = make_listing(donor.id, expiry_time=datetime.utcnow() - timedelta(minutes=1))

    with pytest.raises(ListingUnavailable):
        _request(receiver, food)
    assert db.session.get(FoodListing, food.id).status == 'expired'
    assert food.is_available is False


def test_expire_listings_cancels_pending_requests(cast):
    _, r1, _, food = cast
    fr = _request(r1, food)

    count = lifecycle.expire_listings(now=food.expiry_time + timedelta(seconds=1))
    assert count == 1
    assert food.status == 'expired'
    assert fr.status == 'cancelled'
    assert fr.cancelled_by == 'system'


def test_withdraw_listing(cast, make_user):
    donor, r1, _, food = cast
    fr = _request(r1, food)

    with pytest.raises(Forbidden):
        lifecycle.withdraw_listing(food.id, r1)
    lifecycle.withdraw_listing(food.id, donor)
    assert food.is_active is False
    assert food.status == 'cancelled'
    assert fr.status == 'cancelled'

    admin = make_user(Role.ADMIN)
    lifecycle.withdraw_listing(food.id, admin)


def test_list_for_user_is_role_scoped(cast, make_user):
    donor, r1, r2, food = cast
    _request(r1, food)
    fr2 = _request(r2, food)
    lifecycle.reject(fr2.id, donor)

    assert len(lifecycle.list_for_user(donor)) == 2
    assert [r.id for r in lifecycle.list_for_user(r2)] == [fr2.id]
    assert len(lifecycle.list_for_user(donor, status='pending')) == 1
    assert len(lifecycle.list_for_user(make_user(Role.ADMIN))) == 2

    with pytest.raises(Forbidden):
        lifecycle.get_for_user(fr2.id, r1)
    assert lifecycle.get_for_user(fr2.id, donor) is fr2


def test_concurrent_claims_on_last_portion(tmp_path):
    class RaceConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{tmp_path / "race.db"}'

    app = create_app(RaceConfig)
    with app.app_context():
        donor = new_user(Role.DONOR)
        food_id = new_listing(donor.id, quantity_amount=1).id
        receiver_ids = [new_user().id, new_user().id]

    barrier = threading.Barrier(len(receiver_ids))
    outcomes = []

    def claim(receiver_id):
        with app.app_context():
            receiver = db.session.get(User, receiver_id)
            barrier.wait()
            try:
                lifecycle.create_request(receiver, food_id, 1, 'servings', future(hours=2))
                outcomes.append('created')
            except Conflict:
                outcomes.append('conflict')
            finally:
                db.session.remove()

    threads = [threading.Thread(target=claim, args=(rid,)) for rid in receiver_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(outcomes) == ['conflict', 'created']
    with app.app_context():
        food = db.session.get(FoodListing, food_id)
        assert food.reserved_amount == 1
        assert food.status == 'requested'
        assert FoodRequest.query.filter_by(food_id=food_id).count() == 1
        db.drop_all()
        db.engine.dispose()
