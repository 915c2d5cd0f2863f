from flask import Flask, jsonify
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
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins,
                      async_mode=flask_app.config.get('SOCKETIO_ASYNC_MODE'))

    # One set of in-memory match services per app (presence, join codes, judge)
    from codeduel.services import init_services
    services = init_services(flask_app)

    from codeduel.errors import MatchError

    @flask_app.errorhandler(MatchError)
    def handle_match_error(exc):
        return jsonify(exc.to_dict()), exc.status

    from codeduel.main import main
    flask_app.register_blueprint(main)

    from codeduel.api.matches import matches
    flask_app.register_blueprint(matches)

    from codeduel.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from codeduel import auth  # noqa: F401  (binds Flask-Login loaders)

    if not flask_app.config.get('TESTING') or flask_app.config.get('ENABLE_SWEEPER_IN_TESTS'):
        from codeduel.services.matches.sweeper import start_join_code_sweeper
        start_join_code_sweeper(flask_app, services.join_codes)

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with sample questions."""
        from codeduel.seed import seed_questions
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            count = seed_questions()
            print(f'Database has been reset and seeded with {count} questions!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
