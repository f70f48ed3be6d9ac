from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = list(flask_app.config.get('CORS_ORIGINS') or [])

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from bullscows.errors import register_error_handlers
    register_error_handlers(flask_app)

    # Binds the bearer-token request loader to login_manager
    from bullscows import auth  # noqa: F401

    from bullscows.main import main
    flask_app.register_blueprint(main)

    from bullscows.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from bullscows.api.watch import watch
    flask_app.register_blueprint(watch, url_prefix='/api/watch')

    from bullscows.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from bullscows.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates every table."""
        from bullscows import models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            click.echo('Database has been reset!')

    @click.command('purge-expired-rooms')
    def purge_expired_rooms_command():
        """Deletes rooms past their TTL and all their rounds, chat and events."""
        from bullscows.services.rooms.lifecycle import purge_expired_rooms
        with flask_app.app_context():
            removed = purge_expired_rooms()
            click.echo(f'Purged {removed} expired room(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(purge_expired_rooms_command)

    return flask_app
