from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import atexit
import logging
import os

from .config.limits import MAX_ATTACHMENTS, MAX_ATTACHMENT_BYTES
from .errors import ComplaintDeskError, StorageError

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _configure_logging(app: Flask):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format='[%(asctime)s] %(levelname)s %(name)s: %(message)s')
    logging.getLogger('complaint_desk').setLevel(level)
    app.logger.setLevel(level)


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    # browsers cannot set headers on EventSource, so the stream accepts ?token=
    app.config['JWT_TOKEN_LOCATION'] = ['headers', 'query_string']
    app.config['JWT_QUERY_STRING_NAME'] = 'token'
    app.config['UPLOAD_FOLDER'] = os.getenv('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads', 'complaints'))
    app.config['MAX_CONTENT_LENGTH'] = MAX_ATTACHMENTS * MAX_ATTACHMENT_BYTES + 1024 * 1024
    app.config['STRICT_STATUS_TRANSITIONS'] = _env_flag('STRICT_STATUS_TRANSITIONS', True)
    app.config['REALTIME_HEARTBEAT_SECONDS'] = float(os.getenv('REALTIME_HEARTBEAT_SECONDS', '30'))
    app.config['REALTIME_QUEUE_SIZE'] = int(os.getenv('REALTIME_QUEUE_SIZE', '100'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    _configure_logging(app)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    @app.teardown_appcontext
    def remove_session(exc):  # type: ignore
        # one session per app context; a long-lived session would serve stale rows
        if SessionLocal is not None:
            SessionLocal.remove()

    jwt.init_app(app)

    # Collaborators owned by this process
    from .services.storage import LocalFileStorage
    from .realtime.broadcaster import Broadcaster
    storage = LocalFileStorage(app.config['UPLOAD_FOLDER'])
    broadcaster = Broadcaster(heartbeat_interval=app.config['REALTIME_HEARTBEAT_SECONDS'])
    app.extensions['complaint_storage'] = storage
    app.extensions['broadcaster'] = broadcaster
    broadcaster.start()
    atexit.register(broadcaster.stop)

    from .routes.complaints import complaints_bp  # complaint lifecycle
    from .routes.realtime import realtime_bp  # dashboard event stream
    app.register_blueprint(complaints_bp, url_prefix='/complaints')
    app.register_blueprint(realtime_bp, url_prefix='/realtime')

    @app.route('/healthz')
    def health():
        return {'status': 'ok', 'realtime_subscribers': broadcaster.connected_count}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, ComplaintDeskError):
            if isinstance(e, StorageError):
                app.logger.error('Storage failure: %s', e.internal_detail)
            return e.to_payload(), e.status_code
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception (persistence failures on the primary write land here)
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Operation failed, please try again'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
