import click
from flask import current_app
from flask.cli import with_appcontext

from foodshare import db
from foodshare.services.lifecycle import expire_listings


@click.command('init-db')
@with_appcontext
def init_db_cmd():
    uri = current_app.config.get('SQLALCHEMY_DATABASE_URI', '')
    click.echo(f'Creating tables on DB: {uri}')
    db.create_all()
    click.echo('Tables created.')


@click.command('expire-listings')
@with_appcontext
def expire_listings_cmd():
    """Flag listings past their expiry time and cancel their pending requests."""
    count = expire_listings()
    current_app.logger.info('Expired %s listings', count)
    click.echo(f'Expired {count} listings.')
