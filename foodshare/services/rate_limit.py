from datetime import datetime, timedelta
from functools import wraps

from flask import current_app
from flask_login import current_user
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from foodshare import db
from foodshare.errors import RateLimited, Unavailable
from foodshare.models.rate_limit import RateLimitCounter


def hit(key, limit, window_seconds, now=None):
    """Count one hit for key and return the count in the current window.

    Raises RateLimited once the count exceeds limit.
    """
    now = now or datetime.utcnow()
    window_floor = now - timedelta(seconds=window_seconds)
    table = RateLimitCounter.__table__
    try:
        result = db.session.execute(
            table.update()
            .where(table.c.key == key, table.c.window_start > window_floor)
            .values(count=table.c.count + 1)
        )
        if result.rowcount == 0:
            # window expired or first hit: restart it
            result = db.session.execute(
                table.update()
                .where(table.c.key == key, table.c.window_start <= window_floor)
                .values(count=1, window_start=now)
            )
            if result.rowcount == 0:
                db.session.add(RateLimitCounter(key=key, window_start=now, count=1))
                db.session.flush()
        count = db.session.execute(
            db.select(table.c.count).where(table.c.key == key)
        ).scalar_one()
        db.session.commit()
    except IntegrityError:
        # another process created the row first
        db.session.rollback()
        return hit(key, limit, window_seconds, now)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Rate limit store failed: %s', e)
        raise Unavailable() from e

    if count > limit:
        raise RateLimited()
    return count


def rate_limited(scope, config_key):
    """Route decorator limiting calls per authenticated user"""
    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            limit, window = current_app.config[config_key]
            hit(f'{scope}:{current_user.id}', limit, window)
            return f(*args, **kwargs)
        return wrapped
    return decorator
