from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from buzzmaster.auth import admin_required
from buzzmaster.realtime import get_publisher
from buzzmaster.services import challenges as svc


challenges = Blueprint('challenges', __name__)


@challenges.route('/start', methods=['POST'])
@admin_required
def start():
    data = request.get_json(silent=True) or {}
    challenge = svc.start_challenge(
        get_publisher(),
        room_id=data.get('room_id'),
        round_id=data.get('round_id'),
        type=data.get('type') or 'arkanoid',
        config=data.get('config'),
    )
    return jsonify({'success': True, 'challenge': challenge.to_dict()}), 201


@challenges.route('/bet', methods=['POST'])
@login_required
def bet():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.place_bet(get_publisher(), current_user, bool(data.get('all_in'))))


@challenges.route('/eliminate', methods=['POST'])
@login_required
def eliminate():
    data = request.get_json(silent=True) or {}
    result = svc.eliminate(
        get_publisher(),
        current_user,
        bricks=data.get('bricks', 0),
        score=data.get('score', 0),
        elapsed_ms=data.get('elapsed_ms', 0),
        challenge_id=data.get('challenge_id'),
    )
    return jsonify(result)


@challenges.route('/status', methods=['GET'])
def status():
    return jsonify(svc.challenge_status(request.args.get('room_id', type=int)))
