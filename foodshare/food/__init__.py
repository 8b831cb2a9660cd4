from flask import Blueprint

bp = Blueprint('food', __name__)

from foodshare.food import routes  # noqa: E402,F401
