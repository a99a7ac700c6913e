"""Flask application factory and shared utilities."""

from typing import Optional

from flask import Flask, jsonify, request

from wealthledger.db.connection import init_db
from wealthledger.exceptions import (
    GoalAssignmentError,
    JobAlreadyRunningError,
    NotFoundError,
    WealthLedgerError,
)
from wealthledger.models import parse_date


def owner_arg() -> Optional[int]:
    """owner_id from the query string or JSON body, if given."""
    value = request.args.get('owner_id')
    if value is None and request.is_json:
        value = (request.get_json(silent=True) or {}).get('owner_id')
    return int(value) if value not in (None, '') else None


def date_arg(data: dict, key: str):
    """Parse a date field; raises ValueError when present but invalid."""
    value = data.get(key)
    if value in (None, ''):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date for '{key}': {value!r}")
    return parsed


def register_error_handlers(app: Flask):
    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return jsonify({'error': str(e)}), 404

    @app.errorhandler(GoalAssignmentError)
    def handle_goal_assignment(e):
        return jsonify({'error': str(e), 'goal_id': e.goal_id}), 400

    @app.errorhandler(JobAlreadyRunningError)
    def handle_job_running(e):
        return jsonify({
            'error': 'already_running',
            'message': 'A snapshot generation job is already in progress.',
        }), 409

    @app.errorhandler(ValueError)
    def handle_value_error(e):
        return jsonify({'error': str(e)}), 400

    @app.errorhandler(WealthLedgerError)
    def handle_domain_error(e):
        return jsonify({'error': str(e)}), 400


def create_app(job=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    init_db()

    from wealthledger.jobs import snapshot_job
    app.config['SNAPSHOT_JOB'] = job if job is not None else snapshot_job

    register_error_handlers(app)

    # Register all blueprints
    from wealthledger.webapp.routes.investments import investments_bp
    from wealthledger.webapp.routes.snapshots import snapshots_bp
    from wealthledger.webapp.routes.goals import goals_bp
    from wealthledger.webapp.routes.tax import tax_bp

    app.register_blueprint(investments_bp)
    app.register_blueprint(snapshots_bp)
    app.register_blueprint(goals_bp)
    app.register_blueprint(tax_bp)

    return app
