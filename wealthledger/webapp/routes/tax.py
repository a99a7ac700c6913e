from flask import Blueprint, jsonify, request

from wealthledger.tax import calculate_capital_gains, current_fy_dates
from wealthledger.webapp.routes import date_arg, owner_arg

tax_bp = Blueprint('tax', __name__)


@tax_bp.route('/api/tax/capital-gains', methods=['GET'])
def api_capital_gains():
    """Capital gains summary; defaults to the current financial year."""
    fy_start, fy_end = current_fy_dates()
    summary = calculate_capital_gains(
        date_arg(request.args, 'fy_start') or fy_start,
        date_arg(request.args, 'fy_end') or fy_end,
        owner_id=owner_arg(),
    )
    return jsonify(summary.to_dict())
