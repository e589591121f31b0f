from flask import Blueprint, jsonify
from buzzmaster.models import utcnow
from buzzmaster.realtime import get_hub

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the BuzzMaster game server!'})


@main.route('/health')
def health():
    return jsonify({
        'status': 'ok',
        'websocketClients': get_hub().client_count,
        'timestamp': utcnow().isoformat() + 'Z',
    })
