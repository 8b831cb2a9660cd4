from flask import Blueprint

bp = Blueprint('chat', __name__)

from foodshare.chat import routes  # noqa: E402,F401
