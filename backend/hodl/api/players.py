from flask import Blueprint, jsonify, request
from flask_login import login_required

from hodl.errors import AtCapacity
from hodl.services.rounds.ledger import recent_guesses
from hodl.services.rounds.registry import admit_or_refresh, touch, validate_player_id

players = Blueprint('players', __name__)

MAX_HISTORY = 50


@players.route('', methods=['POST'])
@login_required
def admit_player():
    """Start or resume a session; capacity-gated."""
    data = request.get_json(silent=True) or {}
    try:
        player_id = validate_player_id(data.get('id'))
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    try:
        view = admit_or_refresh(player_id)
    except AtCapacity as exc:
        return jsonify({
            'error': 'Game is at capacity',
            'full': True,
            'activeUsers': exc.active_users,
            'maxUsers': exc.max_users,
        }), 503
    return jsonify(view.to_dict())


@players.route('/<string:player_id>', methods=['GET'])
@login_required
def get_player(player_id):
    try:
        player_id = validate_player_id(player_id)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    return jsonify(touch(player_id).to_dict())


@players.route('/<string:player_id>/guesses', methods=['GET'])
@login_required
def list_guesses(player_id):
    limit = request.args.get('limit', 20, type=int)
    limit = max(1, min(limit, MAX_HISTORY))
    return jsonify([g.to_dict() for g in recent_guesses(player_id, limit)])
