from flask import Blueprint, jsonify, request
from buzzmaster import db
from buzzmaster.auth import admin_required
from buzzmaster.errors import ValidationError, NotFoundError
from buzzmaster.models import User
from buzzmaster.realtime import get_publisher
from buzzmaster.services.rewards import parse_reward, ensure_reward_exists, award_reward_once


rewards = Blueprint('rewards', __name__)


@rewards.route('/award', methods=['POST'])
@admin_required
def award():
    """Hand a trophy or player card to a user outside of any game."""
    data = request.get_json(silent=True) or {}
    reward = parse_reward(data.get('trophy_id'))
    if reward is None or not data.get('user_id'):
        raise ValidationError('user_id and trophy_id are required')
    user = db.session.get(User, data['user_id'])
    if not user:
        raise NotFoundError('User not found')
    ensure_reward_exists(reward)

    awarded = award_reward_once(get_publisher(), user, reward, 'manual', room_id=data.get('room_id'))
    return jsonify({'success': True, 'awarded': awarded})
