from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from types import SimpleNamespace
import click
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, hub=None):
    """Build the Flask app.

    The broadcast hub is owned by the app: pass one in (tests do) or a fresh
    one is created. Request handlers reach it through ``app.extensions``.
    """
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS', [])

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from buzzmaster.realtime.hub import BroadcastHub
    from buzzmaster.realtime.publisher import Publisher
    if hub is None:
        hub = BroadcastHub(logger=flask_app.logger)
    flask_app.extensions['buzzmaster'] = SimpleNamespace(
        hub=hub,
        publisher=Publisher(hub, logger=flask_app.logger),
    )

    from buzzmaster.errors import register_error_handlers
    register_error_handlers(flask_app, db)

    from buzzmaster import auth
    auth.init_auth(login_manager)

    # Import and register blueprints here
    from buzzmaster.routes import main
    flask_app.register_blueprint(main)

    from buzzmaster.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api')

    from buzzmaster.api.rounds import rounds
    flask_app.register_blueprint(rounds, url_prefix='/api')

    from buzzmaster.api.category_game import category_game
    flask_app.register_blueprint(category_game, url_prefix='/api/category-game')

    from buzzmaster.api.challenges import challenges
    flask_app.register_blueprint(challenges, url_prefix='/api/challenges')

    from buzzmaster.api.thumb_game import thumb_game
    flask_app.register_blueprint(thumb_game, url_prefix='/api/thumb-game')

    from buzzmaster.api.rewards import rewards
    flask_app.register_blueprint(rewards, url_prefix='/api/rewards')

    from buzzmaster.api.questions import questions
    flask_app.register_blueprint(questions, url_prefix='/api/questions')

    from buzzmaster.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from buzzmaster.models import Trophy
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed a few trophies so rounds can be played for something
            for name in ['Golden Buzzer', 'Category King', 'Brick Breaker']:
                db.session.add(Trophy(name=name))

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('listen-events')
    @click.argument('url')
    def listen_events_command(url):
        """Connects to a running server and prints every broadcast event."""
        from buzzmaster.listener import EventListener, ReconnectBackoff
        cfg = flask_app.config
        backoff = ReconnectBackoff(
            base_delay=cfg['WS_RECONNECT_BASE_SEC'],
            max_delay=cfg['WS_RECONNECT_MAX_SEC'],
            max_attempts=cfg['WS_RECONNECT_MAX_ATTEMPTS'],
        )
        listener = EventListener(
            url,
            on_event=lambda envelope: click.echo(envelope),
            on_resync=lambda: click.echo('[resync] reconnected, refetch state over HTTP'),
            backoff=backoff,
            logger=flask_app.logger,
        )
        listener.run_forever()

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(listen_events_command)

    return flask_app
