import os
import atexit
import logging
from datetime import timedelta
from flask import Flask
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_socketio import SocketIO
import redis

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode='threading', logger=False, engineio_logger=False)
redis_client = None

logger = logging.getLogger(__name__)


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


def create_app(test_config=None, notifier=None):
    app = Flask(__name__)

    # Configuration
    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///queuedesk.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'dev-secret')
    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'jwt-secret-key')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=1)
    app.config['REDIS_URL'] = os.getenv('REDIS_URL')

    # Queue engine
    app.config['QUEUE_SWEEP_INTERVAL_SECONDS'] = float(os.getenv('QUEUE_SWEEP_INTERVAL_SECONDS', '10'))
    app.config['QUEUE_AVG_HANDLE_MINUTES'] = int(os.getenv('QUEUE_AVG_HANDLE_MINUTES', '5'))
    app.config['QUEUE_DUPLICATE_JOIN_POLICY'] = os.getenv('QUEUE_DUPLICATE_JOIN_POLICY', 'reject')
    app.config['QUEUE_MATCH_UNTIL_EXHAUSTED'] = _env_flag('QUEUE_MATCH_UNTIL_EXHAUSTED', False)
    app.config['QUEUE_RANKING'] = os.getenv('QUEUE_RANKING', 'fifo')
    app.config['QUEUE_AGENT_SELECTION'] = os.getenv('QUEUE_AGENT_SELECTION', 'first_available')
    app.config['QUEUE_SWEEP_ENABLED'] = _env_flag('QUEUE_SWEEP_ENABLED', True)
    app.config['QUEUE_NOTIFY_ASYNC'] = _env_flag('QUEUE_NOTIFY_ASYNC', True)
    # Defaults until an admin saves queue settings
    app.config['QUEUE_MAX_SIZE'] = int(os.getenv('QUEUE_MAX_SIZE', '50'))
    app.config['QUEUE_AUTO_ASSIGNMENT'] = _env_flag('QUEUE_AUTO_ASSIGNMENT', True)

    if test_config:
        app.config.update(test_config)

    # Socket handlers go on the deferred list so every app built here gets them
    from queuedesk import services  # noqa: F401

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    CORS(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)
    socketio.init_app(app,
                      cors_allowed_origins="*",
                      async_mode='threading',
                      ping_timeout=60,
                      ping_interval=25)

    # Redis is optional; without it the service runs as a single worker
    global redis_client
    redis_client = None
    if app.config['REDIS_URL']:
        from redis.connection import ConnectionPool

        pool = ConnectionPool.from_url(
            app.config['REDIS_URL'],
            decode_responses=True,
            socket_timeout=10,
            socket_connect_timeout=10,
            socket_keepalive=True,
            retry_on_timeout=True,
            health_check_interval=30,
            max_connections=50
        )
        redis_client = redis.Redis(connection_pool=pool)

        try:
            redis_client.ping()
            app.logger.info("Redis connected successfully")
        except redis.RedisError as e:
            app.logger.warning(f"Initial Redis connection failed: {str(e)} - will retry on demand")

    # Register blueprints
    from queuedesk.api import queues_bp, calls_bp, admin_bp
    app.register_blueprint(queues_bp, url_prefix='/api/queue')
    app.register_blueprint(calls_bp, url_prefix='/api/calls')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    with app.app_context():
        from queuedesk import models  # noqa: F401
        db.create_all()

        from queuedesk.services import callcenter_socketio

        from queuedesk.services.queue_service import build_queue_service
        from queuedesk.services.scheduler import SweepScheduler

        service = build_queue_service(app, notifier or callcenter_socketio.SocketIONotifier())
        scheduler = SweepScheduler(app, service, app.config['QUEUE_SWEEP_INTERVAL_SECONDS'])
        service.add_capacity_listener(scheduler.trigger)

        app.extensions['queue_service'] = service
        app.extensions['sweep_scheduler'] = scheduler

    if app.config['QUEUE_NOTIFY_ASYNC']:
        service.dispatcher.start()
        atexit.register(service.dispatcher.stop)

    if app.config['QUEUE_SWEEP_ENABLED']:
        scheduler.start()
        atexit.register(scheduler.stop)

    # Health check route
    @app.route('/health')
    def health():
        return {'status': 'healthy'}

    return app
