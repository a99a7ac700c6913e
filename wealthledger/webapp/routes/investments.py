from flask import Blueprint, jsonify, request

from wealthledger import db
from wealthledger.exceptions import InvestmentNotFoundError
from wealthledger.models import InvestmentType
from wealthledger.valuation import (
    calculate_type_xirr,
    get_dashboard_stats,
    get_enriched_investment,
    get_enriched_investments,
    get_investment_breakdown,
)
from wealthledger.webapp.routes import date_arg, owner_arg

investments_bp = Blueprint('investments', __name__)


@investments_bp.route('/api/investments', methods=['GET'])
def api_get_investments():
    """Enriched investments, optionally for one owner and type."""
    inv_type = request.args.get('type')
    investments = get_enriched_investments(
        owner_arg(),
        investment_type=InvestmentType(inv_type) if inv_type else None,
    )
    return jsonify([inv.to_dict() for inv in investments])


@investments_bp.route('/api/investments/<int:investment_id>', methods=['GET'])
def api_get_investment(investment_id):
    """Get a single investment with value, invested amount, gain and XIRR."""
    return jsonify(get_enriched_investment(investment_id).to_dict())


@investments_bp.route('/api/investments/<int:investment_id>/sell', methods=['POST'])
def api_sell(investment_id):
    """Record a sell and allocate it to lots FIFO."""
    data = request.get_json(silent=True) or {}

    investment = db.get_investment(investment_id)
    if investment is None:
        raise InvestmentNotFoundError(f"Investment {investment_id} not found")

    sell_date = date_arg(data, 'date')
    units = float(data.get('units') or 0)
    price = data.get('price_per_unit_paise')
    if sell_date is None:
        return jsonify({'error': 'date is required'}), 400
    if units <= 0:
        return jsonify({'error': 'units must be positive'}), 400
    if price is None:
        return jsonify({'error': 'price_per_unit_paise is required'}), 400

    result = db.execute_sell(
        investment_id,
        investment.owner_id,
        sell_date,
        units,
        int(price),
        fees_paise=int(data.get('fees_paise') or 0),
        notes=data.get('notes'),
    )
    return jsonify(result.to_dict()), 201


@investments_bp.route('/api/xirr/<investment_type>', methods=['GET'])
def api_type_xirr(investment_type):
    """Pooled XIRR for one asset class."""
    inv_type = InvestmentType(investment_type)
    return jsonify({'investment_type': inv_type.value, 'xirr': calculate_type_xirr(inv_type, owner_arg())})


@investments_bp.route('/api/dashboard', methods=['GET'])
def api_dashboard():
    """Portfolio totals and per-class breakdown."""
    owner_id = owner_arg()
    return jsonify({
        'stats': get_dashboard_stats(owner_id),
        'breakdown': get_investment_breakdown(owner_id),
    })
