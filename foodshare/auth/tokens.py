from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from foodshare import db, login_manager
from foodshare.errors import AuthenticationError
from foodshare.models.user import User

TOKEN_SALT = 'auth-token'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def generate_token(user):
    return _serializer().dumps({'id': user.id})


def verify_token(token):
    """Return the active user a token was issued to, or raise AuthenticationError"""
    if not token:
        raise AuthenticationError('Authentication error: No token provided')
    try:
        data = _serializer().loads(token, max_age=current_app.config['TOKEN_MAX_AGE'])
    except SignatureExpired:
        raise AuthenticationError('Authentication error: Token expired')
    except BadSignature:
        raise AuthenticationError('Authentication error: Invalid token')
    user = db.session.get(User, data.get('id'))
    if user is None:
        raise AuthenticationError('Authentication error: User not found')
    if not user.is_active:
        raise AuthenticationError('User account is deactivated')
    return user


def bearer_token(request):
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header.split(' ', 1)[1].strip()
    return None


@login_manager.user_loader
def load_user(id):
    return db.session.get(User, int(id))


@login_manager.request_loader
def load_user_from_request(request):
    token = bearer_token(request)
    if not token:
        return None
    try:
        return verify_token(token)
    except AuthenticationError:
        return None


@login_manager.unauthorized_handler
def unauthorized():
    raise AuthenticationError('Not authorized, no valid token provided')
