"""Flask application factory."""
from flask import Flask, request, jsonify
import logging
import os


def create_app(config_object='config.Config', backend=None):
    """
    Create and configure the Flask application.

    ``backend`` replaces the HTTP backend client (tests pass an in-memory one).
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Sentry error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from pos_engine.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Backend collaborator
    from pos_engine.services.backend_client import BackendClient
    if backend is None:
        backend = BackendClient.from_config(app.config)
    app.extensions['pos_backend'] = backend

    # Customer screen publisher
    from pos_engine.services.customer_screen_service import init_customer_screen
    publisher = init_customer_screen(app, backend)

    # In-memory cart sessions
    from pos_engine.services.cart_service import CartRegistry, CartSession, EngineSettings
    settings = EngineSettings.from_config(app.config)
    app.extensions['pos_settings'] = settings
    app.extensions['pos_carts'] = CartRegistry(
        lambda cart_id: CartSession(backend, settings, publisher=publisher, cart_id=cart_id)
    )

    # Error Handlers
    from pos_engine.exceptions import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Handle engine rejections raised outside the session facade."""
        app.logger.warning(f"PosError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception on {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from pos_engine.blueprints.cart import cart_bp
    from pos_engine.blueprints.metrics import metrics_bp

    app.register_blueprint(cart_bp)
    app.register_blueprint(metrics_bp)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'carts': len(app.extensions['pos_carts'])})

    return app
