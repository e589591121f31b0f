from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from buzzmaster.realtime import get_publisher
from buzzmaster.services import thumb_war as svc


thumb_game = Blueprint('thumb_game', __name__)


@thumb_game.route('/start', methods=['POST'])
@login_required
def start():
    return jsonify(svc.start_thumb_game(get_publisher(), current_user))


@thumb_game.route('/respond', methods=['POST'])
@login_required
def respond():
    return jsonify(svc.respond(get_publisher(), current_user))


@thumb_game.route('/status', methods=['GET'])
def status():
    user = current_user if current_user.is_authenticated else None
    return jsonify(svc.thumb_game_status(user))
