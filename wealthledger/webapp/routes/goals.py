from flask import Blueprint, jsonify, request

from wealthledger.goals import (
    assign_investment,
    get_goal,
    get_goal_history,
    remove_investment,
    simulate_goal,
)

goals_bp = Blueprint('goals', __name__)


@goals_bp.route('/api/goals/<int:goal_id>', methods=['GET'])
def api_get_goal(goal_id):
    """Get a goal with its linked investments valued."""
    return jsonify(get_goal(goal_id).to_dict())


@goals_bp.route('/api/goals/<int:goal_id>/simulate', methods=['POST'])
def api_simulate_goal(goal_id):
    """What-if projection with a hypothetical monthly SIP."""
    data = request.get_json(silent=True) or {}
    simulation = simulate_goal(
        goal_id,
        int(data.get('monthly_sip_paise') or 0),
        float(data.get('expected_return_percent') or 0),
    )
    return jsonify(simulation.to_dict())


@goals_bp.route('/api/goals/<int:goal_id>/history', methods=['GET'])
def api_goal_history(goal_id):
    """Actual, projected and ideal monthly paths."""
    return jsonify(get_goal_history(goal_id).to_dict())


@goals_bp.route('/api/goals/<int:goal_id>/investments', methods=['POST'])
def api_assign_investment(goal_id):
    """Link an investment to a goal at an allocation percent."""
    data = request.get_json(silent=True) or {}
    investment_id = data.get('investment_id')

    if not investment_id:
        return jsonify({'error': 'investment_id is required'}), 400

    assign_investment(goal_id, int(investment_id), float(data.get('allocation_percent', 100)))
    return jsonify({'success': True})


@goals_bp.route('/api/goals/<int:goal_id>/investments/<int:investment_id>', methods=['DELETE'])
def api_remove_investment(goal_id, investment_id):
    """Unlink an investment from a goal."""
    return jsonify({'success': remove_investment(goal_id, investment_id)})
