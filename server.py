import argparse
import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config
from chat_server.routes.chat import chat_bp
from chat_server.notification.worker import get_outbound_worker, start_outbound_worker
from chat_server.repository.mongo_helper import MongoRepositorySingleton
from chat_server.security.authentication import AuthSecurity
from chat_server.utils.helpers import respond_success
from chat_server.websocket.hub import init_websocket_hub

socketio = SocketIO(async_mode='threading')


def configure_logging():
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT, datefmt=config.LOG_DATE_FORMAT)


def configure_auth():
    """Configure AuthSecurity from config (JWT_SECRET is required)."""
    if not config.JWT_SECRET:
        # Fail fast; for local dev set it in config.local.yaml or the environment.
        raise RuntimeError('JWT_SECRET is required')
    AuthSecurity.configure_from_config()


def create_app() -> Flask:
    """Application factory.

    Registers the chat blueprint, CORS, Socket.IO and the WebSocket hub, and
    starts the outbound worker when OUTBOUND_WORKER_ENABLED is set. With the
    worker disabled, events and notifications are sent inline.
    Auth/JWT is configured separately via configure_auth().
    """
    config.validate_required()
    app = Flask(__name__)
    CORS(app, origins=config.CORS_ORIGINS_LIST)
    app.register_blueprint(chat_bp)

    @app.route('/health')
    def health():
        return respond_success({'app': config.APP_NAME, 'version': config.APP_VERSION, 'env': config.ENV})

    socketio.init_app(app, cors_allowed_origins=config.CORS_ORIGINS_LIST if config.CORS_ORIGINS != '*' else '*')
    init_websocket_hub(app, socketio)
    start_outbound_worker()
    return app


def parse_args():
    """Parse simple CLI arguments for running the server.

    Supports overriding host/port and disabling the outbound worker thread
    in environments where it is managed separately.
    """
    parser = argparse.ArgumentParser(description='Run the chat server')
    parser.add_argument('--host', default=config.HOST, help='Address to bind (default: config HOST)')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: config PORT)')
    parser.add_argument('--no-worker', action='store_true', help='Send events inline instead of on the outbound worker thread')
    parser.add_argument('--skip-indexes', action='store_true', help='Do not create MongoDB indexes on startup')
    return parser.parse_args()


configure_logging()
configure_auth()
app = create_app()


if __name__ == "__main__":
    args = parse_args()
    if not args.skip_indexes:
        MongoRepositorySingleton.get_instance().ensure_indexes()
    if args.no_worker:
        get_outbound_worker().run_inline()
    logging.info('Starting chat server with Socket.IO on %s:%s', args.host, args.port)
    socketio.run(app, host=args.host, port=args.port, debug=config.DEBUG, allow_unsafe_werkzeug=True)
