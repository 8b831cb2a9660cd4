from flask import Blueprint

bp = Blueprint('auth', __name__)

from foodshare.auth import tokens, routes  # noqa: E402,F401
