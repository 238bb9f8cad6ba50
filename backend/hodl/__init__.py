from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    origins = flask_app.config.get('CORS_ORIGINS') or []
    CORS(
        flask_app,
        origins=origins,
        methods=['GET', 'POST', 'OPTIONS'],
        allow_headers=['Content-Type', 'x-api-secret'],
    )

    socketio.init_app(flask_app, cors_allowed_origins=origins)

    # Registers the request loader on login_manager
    from hodl import auth  # noqa: F401

    from hodl.main import main
    flask_app.register_blueprint(main)

    from hodl.api.players import players
    flask_app.register_blueprint(players, url_prefix='/players')

    from hodl.api.guesses import guesses
    flask_app.register_blueprint(guesses, url_prefix='/guesses')

    from hodl.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @flask_app.errorhandler(SQLAlchemyError)
    def handle_db_error(exc):
        db.session.rollback()
        flask_app.logger.exception(f"[db-error] {exc.__class__.__name__}")
        return jsonify({'error': 'Internal server error'}), 500

    @flask_app.errorhandler(HTTPException)
    def handle_http_error(exc):
        message = 'Not found' if exc.code == 404 else exc.description
        return jsonify({'error': message}), exc.code

    @click.command('init-db')
    def init_db_command():
        """Creates tables and the empty price slot (use migrations in production)."""
        from hodl.models import PriceFeed
        with flask_app.app_context():
            db.create_all()
            asset = flask_app.config.get('PRICE_ASSET', 'btc')
            if db.session.get(PriceFeed, asset) is None:
                db.session.add(PriceFeed(k=asset, usd=0, ts=None))
                db.session.commit()
            print('Database initialised!')

    @click.command('fetch-prices')
    @click.option('--iterations', type=int, default=None, help='Override PRICE_FETCH_ITERATIONS.')
    @click.option('--interval', type=float, default=None, help='Override PRICE_FETCH_INTERVAL_SEC.')
    def fetch_prices_command(iterations, interval):
        """Runs one price fetch cycle; schedule this from cron."""
        from hodl.services.prices.fetcher import run_fetch_cycle
        summary = run_fetch_cycle(flask_app, iterations=iterations, interval=interval)
        click.echo(f"fetched {summary.ok}/{summary.iterations} (last={summary.last_price})")

    flask_app.cli.add_command(init_db_command)
    flask_app.cli.add_command(fetch_prices_command)

    return flask_app
