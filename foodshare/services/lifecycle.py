"""Claim request state machine.

pending -> accepted | rejected | cancelled
accepted -> completed | cancelled

Listing status only ever changes through this module: reservations and claims
are conditional UPDATEs, and every terminal transition ends in
settle_listing().
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from foodshare import db
from foodshare.errors import (Conflict, Forbidden, InvalidState, ListingUnavailable,
                              NotFound, ValidationError)
from foodshare.models.food import FoodListing
from foodshare.models.request import ACTIVE_STATUSES, FoodRequest
from foodshare.models.user import Capability
from foodshare.services.notifications import notify_new_request, notify_status_change
from foodshare.utils.db import locked, transaction


def _get_request(request_id):
    food_request = db.session.get(FoodRequest, request_id)
    if food_request is None:
        raise NotFound('Request not found')
    return food_request


def _transition(food_request, from_statuses, to_status, **fields):
    """Move a request between states only if nobody else moved it first"""
    result = db.session.execute(
        db.update(FoodRequest)
        .where(FoodRequest.id == food_request.id, FoodRequest.status.in_(from_statuses))
        .values(status=to_status, updated_at=datetime.utcnow(), **fields)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise Conflict('The request was updated concurrently, reload and retry')
    db.session.refresh(food_request)


def _release(food_request):
    db.session.execute(
        db.update(FoodListing)
        .where(FoodListing.id == food_request.food_id,
               FoodListing.reserved_amount >= food_request.requested_amount)
        .values(reserved_amount=FoodListing.reserved_amount - food_request.requested_amount)
        .execution_options(synchronize_session=False)
    )


def settle_listing(food_id, now=None):
    """Derive a listing's status from its requests.

    Any accepted or completed request keeps it claimed, a pending one keeps it
    requested, and with no claim in flight it is re-opened (or expired).
    """
    now = now or datetime.utcnow()
    food = locked(FoodListing, food_id)
    if food is None:
        raise NotFound('Food item not found')
    if not food.is_active or food.status in ('expired', 'cancelled'):
        return food

    counts = dict(db.session.execute(
        db.select(FoodRequest.status, func.count(FoodRequest.id))
        .where(FoodRequest.food_id == food_id,
               FoodRequest.status.in_(ACTIVE_STATUSES + ('completed',)))
        .group_by(FoodRequest.status)
    ).all())

    if counts.get('accepted') or counts.get('completed'):
        status = 'claimed'
    elif counts.get('pending'):
        status = 'requested'
    elif food.is_expired(now):
        status = 'expired'
    else:
        status = 'available'

    if status != food.status:
        current_app.logger.info('Listing %s: %s -> %s', food.id, food.status, status)
    food.status = status
    food.is_available = status in FoodListing.OPEN_STATUSES
    return food


def create_request(receiver, food_id, requested_amount, requested_unit, preferred_time,
                   message=None, alternative_time=None, special_instructions=None, now=None):
    now = now or datetime.utcnow()
    if not receiver.can(Capability.REQUEST_FOOD):
        raise Forbidden('Only receivers can request food')

    food = db.session.get(FoodListing, food_id)
    if food is None:
        raise NotFound('Food item not found')
    if food.donor_id == receiver.id:
        raise Forbidden('You cannot request your own listing')

    if requested_amount is None or requested_amount < 1:
        raise ValidationError('Requested quantity amount must be at least 1')
    if requested_unit != food.quantity_unit:
        raise ValidationError(f'Requested unit must match the listing unit ({food.quantity_unit})')
    if preferred_time is None or preferred_time <= now:
        raise ValidationError('Pickup time must be in the future')

    if food.is_active and food.status in FoodListing.OPEN_STATUSES and food.is_expired(now):
        with transaction():
            expire_listing(food, now)
        raise ListingUnavailable('Food item has expired')
    if not food.is_open_for_requests(now):
        raise ListingUnavailable()

    existing = FoodRequest.query.filter(
        FoodRequest.food_id == food.id,
        FoodRequest.receiver_id == receiver.id,
        FoodRequest.status.in_(ACTIVE_STATUSES),
    ).first()
    if existing:
        raise Conflict('You already have an active request for this item')
    if requested_amount > food.remaining_amount:
        raise Conflict('Not enough quantity left on this listing')

    with transaction():
        # test-and-set: only one concurrent claimant can take the last portions
        result = db.session.execute(
            db.update(FoodListing)
            .where(FoodListing.id == food.id,
                   FoodListing.is_active.is_(True),
                   FoodListing.status.in_(FoodListing.OPEN_STATUSES),
                   FoodListing.reserved_amount + requested_amount <= FoodListing.quantity_amount)
            .values(status='requested', is_available=True,
                    reserved_amount=FoodListing.reserved_amount + requested_amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current_app.logger.info('Receiver %s lost the claim race on listing %s', receiver.id, food.id)
            raise Conflict('This food item was just claimed by someone else')

        food_request = FoodRequest(
            food_id=food.id,
            donor_id=food.donor_id,
            receiver_id=receiver.id,
            message=message,
            requested_amount=requested_amount,
            requested_unit=requested_unit,
            preferred_time=preferred_time,
            alternative_time=alternative_time,
            special_instructions=special_instructions,
        )
        db.session.add(food_request)
        try:
            db.session.flush()
        except IntegrityError as e:
            raise Conflict('You already have an active request for this item') from e

    db.session.refresh(food)
    current_app.logger.info('Request %s created on listing %s by receiver %s',
                            food_request.id, food.id, receiver.id)
    notify_new_request(food_request)
    return food_request


def accept(request_id, actor, message=None, proposed_pickup_time=None):
    food_request = _get_request(request_id)
    if actor.id != food_request.donor_id:
        raise Forbidden('Only the donor can accept')
    if food_request.status != 'pending':
        raise InvalidState(f'Cannot accept a request that is {food_request.status}')

    with transaction():
        result = db.session.execute(
            db.update(FoodListing)
            .where(FoodListing.id == food_request.food_id,
                   FoodListing.is_active.is_(True),
                   FoodListing.status == 'requested')
            .values(status='claimed', is_available=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            food = locked(FoodListing, food_request.food_id)
            if food is not None and food.status == 'claimed':
                raise Conflict('Another request on this item has already been accepted')
            raise InvalidState('Food item is no longer available')

        now = datetime.utcnow()
        _transition(food_request, ('pending',), 'accepted',
                    response_message=message or 'Request accepted',
                    responded_at=now,
                    proposed_pickup_time=proposed_pickup_time or food_request.preferred_time)

    current_app.logger.info('Request %s accepted', food_request.id)
    notify_status_change(food_request, actor)
    return food_request


def reject(request_id, actor, message=None):
    food_request = _get_request(request_id)
    if actor.id != food_request.donor_id:
        raise Forbidden('Only the donor can reject')
    if food_request.status != 'pending':
        raise InvalidState(f'Cannot reject a request that is {food_request.status}')

    with transaction():
        locked(FoodListing, food_request.food_id)
        _transition(food_request, ('pending',), 'rejected',
                    response_message=message or 'Request rejected',
                    responded_at=datetime.utcnow())
        _release(food_request)
        settle_listing(food_request.food_id)

    current_app.logger.info('Request %s rejected', food_request.id)
    notify_status_change(food_request, actor)
    return food_request


def cancel(request_id, actor, reason=None):
    food_request = _get_request(request_id)
    party = food_request.party_of(actor)
    if party is None:
        raise Forbidden('Not authorized to cancel')
    if food_request.is_terminal:
        raise InvalidState(f'Cannot cancel a request that is {food_request.status}')

    with transaction():
        locked(FoodListing, food_request.food_id)
        _transition(food_request, ACTIVE_STATUSES, 'cancelled',
                    cancellation_reason=reason or 'Request cancelled',
                    cancelled_by=party,
                    cancelled_at=datetime.utcnow())
        _release(food_request)
        settle_listing(food_request.food_id)

    current_app.logger.info('Request %s cancelled by %s', food_request.id, party)
    notify_status_change(food_request, actor)
    return food_request


def complete(request_id, actor, actual_amount=None, actual_unit=None, notes=None):
    food_request = _get_request(request_id)
    if actor.id != food_request.donor_id:
        raise Forbidden('Only the donor can complete')
    if food_request.status != 'accepted':
        raise InvalidState(f'Cannot complete a request that is {food_request.status}')
    if actual_amount is not None and actual_amount < 0:
        raise ValidationError('Actual quantity cannot be negative')

    with transaction():
        locked(FoodListing, food_request.food_id)
        _transition(food_request, ('accepted',), 'completed',
                    picked_up_at=datetime.utcnow(),
                    actual_amount=food_request.requested_amount if actual_amount is None else actual_amount,
                    actual_unit=actual_unit or food_request.requested_unit,
                    pickup_notes=notes or '')
        settle_listing(food_request.food_id)

    current_app.logger.info('Request %s completed', food_request.id)
    notify_status_change(food_request, actor)
    return food_request


def confirm_pickup(request_id, actor, confirmed_pickup_time=None, pickup_instructions=None):
    """Receiver confirms the pickup arrangement of an accepted request"""
    food_request = _get_request(request_id)
    if actor.id != food_request.receiver_id:
        raise Forbidden('Only the receiver can confirm the pickup')
    if food_request.status != 'accepted':
        raise InvalidState(f'Cannot confirm pickup of a request that is {food_request.status}')

    with transaction():
        _transition(food_request, ('accepted',), 'accepted',
                    confirmed_pickup_time=(confirmed_pickup_time
                                           or food_request.proposed_pickup_time
                                           or food_request.preferred_time),
                    confirmed_at=datetime.utcnow(),
                    pickup_instructions=pickup_instructions or '')
    return food_request


STATUS_ACTIONS = {
    'accepted': lambda rid, actor, body: accept(rid, actor, body.get('message'),
                                                body.get('proposed_pickup_time')),
    'rejected': lambda rid, actor, body: reject(rid, actor, body.get('message')),
    'cancelled': lambda rid, actor, body: cancel(rid, actor, body.get('message')),
    'completed': lambda rid, actor, body: complete(rid, actor, body.get('actual_amount'),
                                                   body.get('actual_unit'), body.get('notes')),
}


def update_status(request_id, actor, status, **body):
    action = STATUS_ACTIONS.get(status)
    if action is None:
        raise ValidationError('Invalid status', fields={'status': ['Must be one of ' + ', '.join(STATUS_ACTIONS)]})
    return action(request_id, actor, body)


def _close_listing(food, status, reason, now):
    food.status = status
    food.is_available = False
    food.reserved_amount = 0
    pending = FoodRequest.query.filter_by(food_id=food.id, status='pending').all()
    for food_request in pending:
        food_request.status = 'cancelled'
        food_request.cancelled_by = 'system'
        food_request.cancellation_reason = reason
        food_request.cancelled_at = now
    return len(pending)


def expire_listing(food, now=None):
    """Flag a listing expired and cancel its pending requests (system)"""
    return _close_listing(food, 'expired', 'Food item expired', now or datetime.utcnow())


def withdraw_listing(food_id, actor):
    """Soft-delete a listing: inactive, cancelled, pending claims cancelled"""
    with transaction():
        food = locked(FoodListing, food_id)
        if food is None:
            raise NotFound('Food item not found')
        if food.donor_id != actor.id and not actor.can(Capability.MANAGE_ANY_LISTING):
            raise Forbidden('Not authorized')
        if not food.is_active:
            return food
        food.is_active = False
        if food.status != 'claimed':
            _close_listing(food, 'cancelled', 'Listing removed by donor', datetime.utcnow())
    current_app.logger.info('Listing %s withdrawn by user %s', food.id, actor.id)
    return food


def expire_listings(now=None):
    now = now or datetime.utcnow()
    with transaction():
        expired = FoodListing.query.filter(
            FoodListing.is_active.is_(True),
            FoodListing.status.in_(FoodListing.OPEN_STATUSES),
            FoodListing.expiry_time <= now,
        ).all()
        for food in expired:
            expire_listing(food, now)
    return len(expired)


def list_for_user(user, status=None):
    query = FoodRequest.query
    if not user.can(Capability.VIEW_ANY_REQUEST):
        if user.can(Capability.LIST_FOOD):
            query = query.filter(FoodRequest.donor_id == user.id)
        else:
            query = query.filter(FoodRequest.receiver_id == user.id)
    if status:
        query = query.filter(FoodRequest.status == status)
    return query.order_by(FoodRequest.created_at.desc(), FoodRequest.id.desc()).all()


def get_for_user(request_id, user):
    food_request = _get_request(request_id)
    if food_request.party_of(user) is None and not user.can(Capability.VIEW_ANY_REQUEST):
        raise Forbidden('Not authorized')
    return food_request
