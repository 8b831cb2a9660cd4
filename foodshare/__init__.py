from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_mail import Mail
from flask_bcrypt import Bcrypt
from flask_socketio import SocketIO
from config import Config

# Initialize Flask extensions
db = SQLAlchemy()
login_manager = LoginManager()
mail = Mail()
bcrypt = Bcrypt()
socketio = SocketIO()


def _engine_options(app):
    timeout = app.config['DB_TIMEOUT_SECONDS']
    opts = dict(app.config.get('SQLALCHEMY_ENGINE_OPTIONS', {}))
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:'):
        connect_args = dict(opts.get('connect_args', {}))
        connect_args.setdefault('check_same_thread', False)
        connect_args.setdefault('timeout', timeout)
        opts['connect_args'] = connect_args
    else:
        opts.setdefault('pool_timeout', timeout)
        opts.setdefault('pool_pre_ping', True)
    return opts


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = _engine_options(app)
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    mail.init_app(app)
    bcrypt.init_app(app)
    socketio.init_app(app, cors_allowed_origins=app.config['CORS_ALLOWED_ORIGINS'])

    from foodshare.errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from foodshare.auth import bp as auth_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')

    from foodshare.food import bp as food_bp
    app.register_blueprint(food_bp, url_prefix='/food')

    from foodshare.requests import bp as requests_bp
    app.register_blueprint(requests_bp, url_prefix='/requests')

    from foodshare.chat import bp as chat_bp
    app.register_blueprint(chat_bp, url_prefix='/chat')

    # Socket handlers bind to the server init_app just built
    from foodshare.chat.events import register_events
    register_events(socketio)

    from foodshare.cli import init_db_cmd, expire_listings_cmd
    app.cli.add_command(init_db_cmd)
    app.cli.add_command(expire_listings_cmd)

    @app.teardown_request
    def _teardown_request(exc):
        if exc is not None:
            db.session.rollback()

    with app.app_context():
        db.create_all()

    return app
