from flask import Blueprint, jsonify, request
from flask_login import login_required

from hodl.errors import GuessInProgress, GuessNotFound, PriceUnavailable
from hodl.models import isoformat_z, price_out
from hodl.services.rounds.ledger import submit_guess
from hodl.services.rounds.registry import validate_player_id
from hodl.services.rounds.resolution import try_resolve

guesses = Blueprint('guesses', __name__)


@guesses.route('', methods=['POST'])
@login_required
def create_guess():
    data = request.get_json(silent=True) or {}
    try:
        player_id = validate_player_id(data.get('playerId'))
        guess = submit_guess(player_id, data.get('direction'))
    except ValueError as exc:
        return jsonify({'error': 'Invalid request body', 'detail': str(exc)}), 400
    except GuessInProgress as exc:
        return jsonify({'error': 'Guess already in progress', 'existingGuessId': exc.existing_guess_id}), 409
    except PriceUnavailable:
        return jsonify({'error': 'Price unavailable, try again shortly'}), 503

    return jsonify({
        'id': guess.id,
        'priceAtGuess': price_out(guess.price_at_guess),
        'guessedAt': isoformat_z(guess.guessed_at),
    }), 201


@guesses.route('/<string:guess_id>', methods=['GET'])
@login_required
def get_guess_status(guess_id):
    """Poll a round; resolves it as a side effect once both conditions hold."""
    try:
        view = try_resolve(guess_id)
    except GuessNotFound:
        return jsonify({'error': 'Guess not found'}), 404
    return jsonify(view.to_dict())
