"""Flask application factory."""
from flask import Flask, jsonify
from capital_ledger.database import init_db
import logging
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    
    if not app.debug:
        app.logger.setLevel(logging.INFO)
    
    # Initialize Sentry for error tracking in production
    if app.config.get('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        
        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )
    
    # Setup Prometheus metrics instrumentation
    from capital_ledger.utils.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)
    
    # Initialize database
    init_db(app)
    
    # Register blueprints
    from capital_ledger.blueprints.payables import payables_bp
    from capital_ledger.blueprints.metrics import metrics_bp
    app.register_blueprint(payables_bp)
    app.register_blueprint(metrics_bp)
    
    # Error Handlers
    from capital_ledger.exceptions import LedgerError

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error):
        """Handle custom application exceptions."""
        app.logger.error(f"LedgerError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500
    
    # Register CLI commands
    from capital_ledger.cli_commands import init_cli_commands
    init_cli_commands(app)
    
    return app
