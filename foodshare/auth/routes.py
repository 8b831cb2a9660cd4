from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from foodshare import db
from foodshare.auth import bp
from foodshare.auth.forms import LoginForm, PasswordForm, ProfileForm, RegisterForm
from foodshare.auth.tokens import generate_token
from foodshare.errors import AuthenticationError, Conflict, Forbidden, InvalidState, NotFound, ValidationError
from foodshare.models.user import Capability, Role, User
from foodshare.utils.db import transaction
from foodshare.utils.forms import json_form


@bp.route('/register', methods=['POST'])
def register():
    form = json_form(RegisterForm)
    email = form.email.data.strip().lower()
    if User.query.filter_by(email=email).first():
        raise Conflict('Email is already registered')

    user = User(
        name=form.name.data.strip(),
        email=email,
        role=Role(form.role.data),
        phone=form.phone.data or None,
        latitude=form.latitude.data,
        longitude=form.longitude.data,
    )
    user.set_password(form.password.data)
    with transaction():
        db.session.add(user)
    return jsonify({'success': True, 'data': {'token': generate_token(user), 'user': user.to_dict()}}), 201


@bp.route('/login', methods=['POST'])
def login():
    form = json_form(LoginForm)
    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if not user or not user.check_password(form.password.data):
        raise AuthenticationError('Invalid credentials')
    if not user.is_active:
        raise AuthenticationError('User account is deactivated')
    return jsonify({'success': True, 'data': {'token': generate_token(user), 'user': user.to_dict()}})


@bp.route('/me')
@login_required
def me():
    return jsonify({'success': True, 'data': current_user.to_dict()})


@bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    form = json_form(ProfileForm)
    with transaction():
        for field in (form.name, form.phone, form.avatar, form.latitude, form.longitude):
            value = field.data.strip() if isinstance(field.data, str) else field.data
            if field.raw_data and value not in (None, ''):
                setattr(current_user, field.name, value)
    return jsonify({'success': True, 'data': current_user.to_dict()})


@bp.route('/password', methods=['PUT'])
@login_required
def update_password():
    form = json_form(PasswordForm)
    if not current_user.check_password(form.currentPassword.data):
        raise AuthenticationError('Current password is incorrect')
    if form.newPassword.data == form.currentPassword.data:
        raise ValidationError('New password must differ from the current one',
                              fields={'newPassword': ['Must differ from the current password']})
    with transaction():
        current_user.set_password(form.newPassword.data)
    current_app.logger.info('Password changed for user %s', current_user.id)
    return jsonify({'success': True, 'message': 'Password updated successfully'})


def _require_user_admin():
    if not current_user.can(Capability.MANAGE_USERS):
        raise Forbidden('Admin access required')


def _get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound('User not found')
    return user


@bp.route('/users')
@login_required
def list_users():
    _require_user_admin()
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 10, type=int), 1), current_app.config['MAX_PAGE_SIZE'])

    query = User.query.filter(User.is_active_account.is_(True))
    role = request.args.get('role')
    if role:
        try:
            query = query.filter(User.role == Role(role))
        except ValueError:
            raise ValidationError('Invalid role', fields={'role': [f'Unknown role {role}']})
    search = (request.args.get('search') or '').strip()
    if search:
        query = query.filter(db.or_(User.name.ilike(f'%{search}%'), User.email.ilike(f'%{search}%')))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        'success': True,
        'data': [u.to_dict() for u in users],
        'pagination': {'page': page, 'limit': limit, 'total': total},
    })


@bp.route('/users/<int:user_id>/verify', methods=['PUT'])
@login_required
def verify_user(user_id):
    _require_user_admin()
    user = _get_user(user_id)
    with transaction():
        user.is_verified = True
    return jsonify({'success': True, 'message': 'User verified successfully', 'data': user.to_dict()})


@bp.route('/users/<int:user_id>/deactivate', methods=['PUT'])
@login_required
def deactivate_user(user_id):
    _require_user_admin()
    user = _get_user(user_id)
    if user.id == current_user.id:
        raise InvalidState('Admins cannot deactivate their own account')
    with transaction():
        user.is_active_account = False
    current_app.logger.info('User %s deactivated by admin %s', user.id, current_user.id)
    return jsonify({'success': True, 'message': 'User deactivated successfully', 'data': user.to_dict()})
