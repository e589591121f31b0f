from flask import Blueprint, jsonify, request
from buzzmaster.auth import admin_required
from buzzmaster.errors import ValidationError
from buzzmaster.realtime import get_publisher
from buzzmaster.services import category_game as svc
from buzzmaster.services.rewards import parse_reward


category_game = Blueprint('category_game', __name__)


@category_game.route('/start', methods=['POST'])
@admin_required
def start():
    data = request.get_json(silent=True) or {}
    game = svc.start_category_game(
        get_publisher(),
        competition_id=data.get('competition_id'),
        category_name=data.get('category_name'),
        time_per_player=data.get('time_per_player'),
        winner_points=data.get('winner_points'),
        reward=parse_reward(data.get('trophy_id')),
    )
    return jsonify({'success': True, 'game': game.to_dict()}), 201


@category_game.route('/next-player', methods=['POST'])
@admin_required
def next_player():
    data = request.get_json(silent=True) or {}
    eliminate = data.get('eliminate_current_player', True)
    if not isinstance(eliminate, bool):
        raise ValidationError('eliminate_current_player must be true or false')
    result = svc.next_player(get_publisher(), data.get('game_id'), eliminate_current_player=eliminate)
    return jsonify({'success': True, **result})


@category_game.route('/pause', methods=['POST'])
@admin_required
def pause():
    data = request.get_json(silent=True) or {}
    game = svc.pause(get_publisher(), data.get('game_id'))
    return jsonify({'success': True, 'game': game.to_dict()})


@category_game.route('/resume', methods=['POST'])
@admin_required
def resume():
    data = request.get_json(silent=True) or {}
    game = svc.resume(get_publisher(), data.get('game_id'))
    return jsonify({'success': True, 'game': game.to_dict()})


@category_game.route('/status', methods=['GET'])
def status():
    game = svc.game_status(
        game_id=request.args.get('game_id', type=int),
        competition_id=request.args.get('competition_id', type=int),
    )
    return jsonify({'game': game.to_dict() if game else None})
