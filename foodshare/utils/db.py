from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from foodshare import db
from foodshare.errors import DomainError, Unavailable


@contextmanager
def transaction():
    """Commit on success; roll back everything on any failure.

    Storage failures surface as the retryable Unavailable error.
    """
    try:
        yield db.session
        db.session.commit()
    except DomainError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Persistence failure, transaction rolled back: %s', e)
        raise Unavailable() from e


def locked(model, ident):
    """Load a row with a write lock where the backend supports one"""
    stmt = (
        db.select(model)
        .where(model.id == ident)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar_one_or_none()
