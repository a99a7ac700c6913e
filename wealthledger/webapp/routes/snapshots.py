import logging

from flask import Blueprint, current_app, jsonify, request

from wealthledger.models import InvestmentType
from wealthledger.snapshots import (
    calculate_monthly_snapshots,
    calculate_net_worth_snapshot,
    clear_snapshots,
    get_net_worth_history,
    get_snapshot_detail,
    get_snapshot_list,
    get_type_history,
)
from wealthledger.webapp.routes import owner_arg

logger = logging.getLogger(__name__)

snapshots_bp = Blueprint('snapshots', __name__)


def _require_owner():
    owner_id = owner_arg()
    if owner_id is None:
        raise ValueError("owner_id is required")
    return owner_id


@snapshots_bp.route('/api/snapshots/calculate', methods=['POST'])
def api_calculate_snapshots():
    """Snapshot current values for this month (or the given year_month)."""
    data = request.get_json(silent=True) or {}
    owner_id = _require_owner()
    year_month = data.get('year_month')
    count = calculate_monthly_snapshots(year_month, owner_id=owner_id)
    snapshot = calculate_net_worth_snapshot(owner_id, year_month)
    return jsonify({'monthly_snapshots': count, 'net_worth': snapshot.to_dict()})


@snapshots_bp.route('/api/snapshots/generate', methods=['POST'])
def api_generate_historical():
    """Start historical reconstruction in the background; poll job-status."""
    owner_id = _require_owner()
    job = current_app.config['SNAPSHOT_JOB']
    job.run_in_thread(owner_id)
    logger.info(f"Historical snapshot job started for owner {owner_id}")
    return jsonify({'status': 'started'}), 202


@snapshots_bp.route('/api/snapshots/job-status', methods=['GET'])
def api_job_status():
    """Status of the last snapshot job; null when none has run."""
    status = current_app.config['SNAPSHOT_JOB'].status()
    return jsonify(status.to_dict() if status is not None else None)


@snapshots_bp.route('/api/snapshots/history', methods=['GET'])
def api_net_worth_history():
    """Net worth per month, oldest first; ?type= narrows to one asset class."""
    owner_id = _require_owner()
    inv_type = request.args.get('type')
    if inv_type:
        return jsonify(get_type_history(owner_id, InvestmentType(inv_type)))
    return jsonify(get_net_worth_history(owner_id))


@snapshots_bp.route('/api/snapshots/list', methods=['GET'])
def api_snapshot_list():
    return jsonify(get_snapshot_list(_require_owner()))


@snapshots_bp.route('/api/snapshots/detail/<year_month>', methods=['GET'])
def api_snapshot_detail(year_month):
    """Per-investment rows of one month."""
    return jsonify(get_snapshot_detail(_require_owner(), year_month))


@snapshots_bp.route('/api/snapshots', methods=['DELETE'])
def api_clear_snapshots():
    removed = clear_snapshots(owner_arg())
    return jsonify({'success': True, 'removed': removed})
