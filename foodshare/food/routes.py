from datetime import datetime

from flask import current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_

from foodshare import db
from foodshare.errors import Forbidden, NotFound, ValidationError
from foodshare.food import bp
from foodshare.food.forms import FoodForm, FoodUpdateForm
from foodshare.models.food import FoodListing
from foodshare.models.user import Capability
from foodshare.services.lifecycle import withdraw_listing
from foodshare.utils.db import locked, transaction
from foodshare.utils.distance import bounding_box, calculate_distance
from foodshare.utils.forms import json_form

# (form path, model attribute); the attribute must also be in FoodListing.UPDATABLE_FIELDS
UPDATE_FIELD_MAP = (
    ('title', 'title'),
    ('description', 'description'),
    ('foodType', 'food_type'),
    ('category', 'category'),
    ('quantity.amount', 'quantity_amount'),
    ('quantity.unit', 'quantity_unit'),
    ('location.address', 'address'),
    ('location.pickupInstructions', 'pickup_instructions'),
    ('availability.pickupStart', 'pickup_start'),
    ('availability.pickupEnd', 'pickup_end'),
    ('availability.expiryTime', 'expiry_time'),
    ('tags', 'tags'),
    ('imageUrl', 'image_url'),
)


def _open_listings(now):
    return FoodListing.query.filter(
        FoodListing.is_active.is_(True),
        FoodListing.status.in_(FoodListing.OPEN_STATUSES),
        FoodListing.is_available.is_(True),
        FoodListing.quantity_amount > FoodListing.reserved_amount,
        FoodListing.pickup_end > now,
        FoodListing.expiry_time > now,
    )


def _apply_filters(query):
    food_type = request.args.get('foodType') or request.args.get('food_type')
    category = request.args.get('category')
    donor_id = request.args.get('donorId', type=int) or request.args.get('donor_id', type=int)
    if food_type:
        query = query.filter(FoodListing.food_type == food_type)
    if category:
        query = query.filter(FoodListing.category == category)
    if donor_id:
        query = query.filter(FoodListing.donor_id == donor_id)
    return query


def _get_listing(food_id):
    food = db.session.get(FoodListing, food_id)
    if food is None:
        raise NotFound('Food not found')
    return food


def _payload_has(payload, path):
    node = payload
    for part in path.split('.'):
        if not isinstance(node, dict) or part not in node:
            return False
        node = node[part]
    return True


def _form_value(form, path):
    parts = path.split('.')
    field = form[parts[0]]
    for part in parts[1:]:
        field = field.form[part]
    return field.data


@bp.route('', methods=['GET'])
def list_food():
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 12, type=int), 1), current_app.config['MAX_PAGE_SIZE'])
    query = _apply_filters(FoodListing.query.filter(FoodListing.is_active.is_(True)))
    total = query.count()
    foods = (query.order_by(FoodListing.created_at.desc(), FoodListing.id.desc())
             .offset((page - 1) * limit).limit(limit).all())
    return jsonify({
        'success': True,
        'data': [food.to_dict() for food in foods],
        'pagination': {'page': page, 'limit': limit, 'total': total},
    })


@bp.route('/nearby', methods=['GET'])
def nearby_food():
    lat = request.args.get('lat', type=float)
    lng = request.args.get('lng', type=float)
    radius = request.args.get('radius', type=float) or current_app.config['DEFAULT_SEARCH_RADIUS_KM']
    if lat is None or lng is None or not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        raise ValidationError('Valid coordinates are required (lat, lng)')
    if radius <= 0:
        raise ValidationError('Radius must be positive')

    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius)
    candidates = _apply_filters(_open_listings(datetime.utcnow())).filter(
        FoodListing.latitude.between(min_lat, max_lat),
        FoodListing.longitude.between(min_lng, max_lng),
    ).all()

    results = []
    for food in candidates:
        distance = calculate_distance(lat, lng, food.latitude, food.longitude)
        if distance <= radius:
            results.append((distance, food))
    results.sort(key=lambda pair: pair[0])
    return jsonify({'success': True, 'data': [food.to_dict(distance_km=d) for d, food in results]})


@bp.route('/search', methods=['GET'])
def search_food():
    term = (request.args.get('q') or '').strip()
    if not term:
        raise ValidationError('Search term is required')
    pattern = f'%{term}%'
    foods = _apply_filters(_open_listings(datetime.utcnow())).filter(or_(
        FoodListing.title.ilike(pattern),
        FoodListing.description.ilike(pattern),
        FoodListing.tags.ilike(pattern),
    )).order_by(FoodListing.created_at.desc()).all()
    return jsonify({'success': True, 'data': [food.to_dict() for food in foods]})


@bp.route('/<int:food_id>', methods=['GET'])
def get_food(food_id):
    food = _get_listing(food_id)
    with transaction():
        db.session.execute(
            db.update(FoodListing).where(FoodListing.id == food.id)
            .values(views=FoodListing.views + 1, updated_at=FoodListing.updated_at)
            .execution_options(synchronize_session=False)
        )
    db.session.refresh(food)
    return jsonify({'success': True, 'data': food.to_dict()})


@bp.route('', methods=['POST'])
@login_required
def create_food():
    if not current_user.can(Capability.LIST_FOOD):
        raise Forbidden('Only donors can list food')
    form = json_form(FoodForm)
    availability = form.availability.form
    location = form.location.form
    food = FoodListing(
        donor_id=current_user.id,
        title=form.title.data.strip(),
        description=form.description.data.strip(),
        food_type=form.foodType.data,
        category=form.category.data,
        quantity_amount=form.quantity.form.amount.data,
        quantity_unit=form.quantity.form.unit.data,
        latitude=location.latitude.data,
        longitude=location.longitude.data,
        address=location.address.data or None,
        pickup_instructions=location.pickupInstructions.data or None,
        pickup_start=availability.pickupStart.data,
        pickup_end=availability.pickupEnd.data,
        expiry_time=availability.expiryTime.data,
        tags=','.join(t.strip().lower() for t in form.tags.data if t and t.strip()),
        image_url=form.imageUrl.data or None,
    )
    with transaction():
        db.session.add(food)
    current_app.logger.info('Listing %s created by donor %s', food.id, current_user.id)
    return jsonify({'success': True, 'data': food.to_dict()}), 201


@bp.route('/<int:food_id>', methods=['PUT'])
@login_required
def update_food(food_id):
    food = _get_listing(food_id)
    if food.donor_id != current_user.id and not current_user.can(Capability.MANAGE_ANY_LISTING):
        raise Forbidden('Not authorized')

    payload = request.get_json(silent=True)
    form = json_form(FoodUpdateForm, payload)
    changes = {}
    for path, attr in UPDATE_FIELD_MAP:
        if attr not in FoodListing.UPDATABLE_FIELDS or not _payload_has(payload, path):
            continue
        value = _form_value(form, path)
        if attr == 'tags':
            value = ','.join(t.strip().lower() for t in value if t and t.strip())
        changes[attr] = value

    with transaction():
        food = locked(FoodListing, food.id)
        pickup_start = changes.get('pickup_start', food.pickup_start)
        pickup_end = changes.get('pickup_end', food.pickup_end)
        if pickup_end <= pickup_start:
            raise ValidationError('Pickup end must be after pickup start')
        if 'quantity_unit' in changes and changes['quantity_unit'] != food.quantity_unit and food.reserved_amount:
            raise ValidationError('Unit cannot change while requests are active')

        if changes:
            # reservations are taken by conditional UPDATE too, so guard in the WHERE clause
            stmt = db.update(FoodListing).where(FoodListing.id == food.id)
            if 'quantity_amount' in changes:
                stmt = stmt.where(FoodListing.reserved_amount <= changes['quantity_amount'])
            if changes.get('quantity_unit', food.quantity_unit) != food.quantity_unit:
                stmt = stmt.where(FoodListing.reserved_amount == 0)
            result = db.session.execute(stmt.values(**changes).execution_options(synchronize_session=False))
            if result.rowcount == 0:
                raise ValidationError('Quantity cannot drop below the amount already requested')
    db.session.refresh(food)
    return jsonify({'success': True, 'data': food.to_dict()})


@bp.route('/<int:food_id>', methods=['DELETE'])
@login_required
def delete_food(food_id):
    withdraw_listing(food_id, current_user)
    return jsonify({'success': True, 'message': 'Listing removed'})
