from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging

from .config.settings import load_settings

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config.update(load_settings())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('pos_rbac').setLevel(app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

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

    jwt.init_app(app)

    from .routes.iam import iam_bp
    from .routes.roles import roles_bp
    from .routes.permissions import perms_bp
    from .routes.menu import menu_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(roles_bp, url_prefix='/roles')
    app.register_blueprint(perms_bp, url_prefix='/permissions')
    app.register_blueprint(menu_bp, url_prefix='/menu')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .errors import RBACError, ValidationError

    @app.errorhandler(RBACError)
    def handle_domain_error(e):  # type: ignore
        payload = {
            'error': {
                'status': e.status_code,
                'title': e.title,
                'detail': e.message,
            }
        }
        if isinstance(e, ValidationError):
            payload['error']['errors'] = e.errors
        return payload, e.status_code

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
