from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from buzzmaster import db
from buzzmaster.auth import admin_required
from buzzmaster.errors import NotFoundError
from buzzmaster.models import Round
from buzzmaster.realtime import get_publisher
from buzzmaster.services import rounds as svc
from buzzmaster.services.rewards import parse_reward


rounds = Blueprint('rounds', __name__)


@rounds.route('/round/start', methods=['POST'])
@admin_required
def start_round():
    data = request.get_json(silent=True) or {}
    rnd = svc.start_round(
        get_publisher(),
        competition_id=data.get('competition_id'),
        timer_enabled=bool(data.get('timer_enabled')),
        timer_duration=data.get('timer_duration'),
        reward=parse_reward(data.get('trophy_id')),
    )
    return jsonify({'round': rnd.to_dict()}), 201


@rounds.route('/round/enable-buttons', methods=['POST'])
@admin_required
def enable_buttons():
    data = request.get_json(silent=True) or {}
    kwargs = {}
    if 'trophy_id' in data:
        kwargs['reward'] = parse_reward(data.get('trophy_id'))
    rnd = svc.enable_buttons(get_publisher(), competition_id=data.get('competition_id'), **kwargs)
    return jsonify({'round': rnd.to_dict()})


@rounds.route('/round/disable-buttons', methods=['POST'])
@admin_required
def disable_buttons():
    data = request.get_json(silent=True) or {}
    rnd = svc.disable_buttons(get_publisher(), competition_id=data.get('competition_id'))
    return jsonify({'round': rnd.to_dict()})


@rounds.route('/round/evaluate', methods=['POST'])
@admin_required
def evaluate():
    data = request.get_json(silent=True) or {}
    result = svc.evaluate_press(get_publisher(), data.get('press_id'), data.get('is_correct'), data.get('points'))
    return jsonify(result)


@rounds.route('/round/give-to-next', methods=['POST'])
@admin_required
def give_to_next():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.give_to_next(get_publisher(), data.get('press_id')))


@rounds.route('/round/end', methods=['POST'])
@admin_required
def end_round():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.end_round(get_publisher(), competition_id=data.get('competition_id')))


@rounds.route('/round/current', methods=['GET'])
def current_round():
    competition_id = request.args.get('competition_id', type=int)
    rnd = svc.current_round(competition_id)
    if not rnd:
        return jsonify({'round': None, 'presses': []})
    return jsonify({
        'round': rnd.to_dict(),
        'presses': [p.to_dict() for p in svc.press_queue(rnd.id)],
    })


@rounds.route('/round/<int:round_id>/presses', methods=['GET'])
def round_presses(round_id):
    rnd = db.session.get(Round, round_id)
    if not rnd:
        raise NotFoundError('Round not found')
    return jsonify({'presses': [p.to_dict() for p in svc.press_queue(rnd.id)]})


@rounds.route('/press', methods=['POST'])
@login_required
def press():
    new_press = svc.press(get_publisher(), current_user)
    return jsonify({'press': new_press.to_dict()}), 201
