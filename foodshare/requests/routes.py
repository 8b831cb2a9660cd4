from flask import jsonify, request
from flask_login import current_user, login_required

from foodshare.errors import ValidationError
from foodshare.requests import bp
from foodshare.requests.forms import REQUEST_STATUSES, ConfirmPickupForm, CreateRequestForm, StatusForm
from foodshare.services import lifecycle
from foodshare.services.rate_limit import rate_limited
from foodshare.utils.forms import json_form


@bp.route('', methods=['POST'])
@login_required
@rate_limited('create-request', 'RATE_LIMIT_REQUESTS')
def create_request():
    form = json_form(CreateRequestForm)
    quantity = form.requestedQuantity.form
    pickup = form.pickupDetails.form
    food_request = lifecycle.create_request(
        current_user,
        form.foodItem.data,
        requested_amount=quantity.amount.data,
        requested_unit=quantity.unit.data,
        preferred_time=pickup.preferredTime.data,
        message=(form.message.data or '').strip() or None,
        alternative_time=pickup.alternativeTime.data,
        special_instructions=pickup.specialInstructions.data or None,
    )
    return jsonify({'success': True, 'data': food_request.to_dict()}), 201


@bp.route('', methods=['GET'])
@login_required
def my_requests():
    status = request.args.get('status')
    if status and status not in ('pending',) + REQUEST_STATUSES:
        raise ValidationError('Invalid status filter')
    requests = lifecycle.list_for_user(current_user, status=status)
    return jsonify({'success': True, 'data': [r.to_dict() for r in requests]})


@bp.route('/<int:request_id>', methods=['GET'])
@login_required
def get_request(request_id):
    food_request = lifecycle.get_for_user(request_id, current_user)
    return jsonify({'success': True, 'data': food_request.to_dict()})


@bp.route('/<int:request_id>/status', methods=['PUT'])
@login_required
def update_status(request_id):
    form = json_form(StatusForm)
    actual = form.actualQuantity.form
    food_request = lifecycle.update_status(
        request_id,
        current_user,
        form.status.data,
        message=(form.message.data or '').strip() or None,
        proposed_pickup_time=form.proposedPickupTime.data,
        actual_amount=actual.amount.data,
        actual_unit=actual.unit.data,
        notes=form.notes.data or None,
    )
    return jsonify({'success': True, 'data': food_request.to_dict()})


@bp.route('/<int:request_id>/confirm', methods=['PUT'])
@login_required
def confirm_pickup(request_id):
    form = json_form(ConfirmPickupForm)
    food_request = lifecycle.confirm_pickup(
        request_id,
        current_user,
        confirmed_pickup_time=form.confirmedPickupTime.data,
        pickup_instructions=form.pickupInstructions.data or None,
    )
    return jsonify({'success': True, 'data': food_request.to_dict()})
