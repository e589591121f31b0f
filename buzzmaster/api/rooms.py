from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import IntegrityError
from buzzmaster import db
from buzzmaster.auth import admin_required, caller_subject
from buzzmaster.errors import ValidationError, AuthError, NotFoundError, ConflictError
from buzzmaster.models import Room, RoomMembership, Competition, User, utcnow
from buzzmaster.realtime import get_publisher
from buzzmaster.services.scoring import adjust_score


rooms = Blueprint('rooms', __name__)


def _room_by_code_or_id(data):
    code = (data.get('code') or '').strip().upper()
    if code:
        room = Room.query.filter_by(code=code).first()
    elif data.get('room_id'):
        room = db.session.get(Room, data['room_id'])
    else:
        raise ValidationError('Room code is required')
    if not room:
        raise NotFoundError('Room not found')
    return room


@rooms.route('/rooms/create', methods=['POST'])
@admin_required
def create_room():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Room name is required')
    room = Room(name=name)
    db.session.add(room)
    db.session.commit()
    current_app.logger.info(f"[room] created room={room.id} code={room.code}")
    get_publisher().publish('room:created', room.to_dict(include_members=False))
    return jsonify({'room': room.to_dict()}), 201


@rooms.route('/rooms/join', methods=['POST'])
@login_required
def join_room():
    data = request.get_json(silent=True) or {}
    room = _room_by_code_or_id(data)
    if room.status != 'waiting':
        raise ValidationError('Room is not accepting new players')
    if RoomMembership.query.filter_by(room_id=room.id, user_id=current_user.id).first():
        raise ConflictError('Already in room')

    db.session.add(RoomMembership(room_id=room.id, user_id=current_user.id))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Already in room')
    current_app.logger.info(f"[room] user={current_user.id} joined room={room.id}")
    get_publisher().publish_to_room(room.id, 'room:memberJoined', {'user': current_user.to_dict()})
    return jsonify({'room': room.to_dict()})


@rooms.route('/rooms/leave', methods=['POST'])
@login_required
def leave_room():
    data = request.get_json(silent=True) or {}
    room = _room_by_code_or_id(data)
    membership = RoomMembership.query.filter_by(room_id=room.id, user_id=current_user.id).first()
    if not membership:
        raise NotFoundError('Not a member of this room')
    db.session.delete(membership)
    db.session.commit()
    current_app.logger.info(f"[room] user={current_user.id} left room={room.id}")
    get_publisher().publish_to_room(room.id, 'room:memberLeft', {'user_id': current_user.id})
    return jsonify({'success': True})


@rooms.route('/rooms/kick', methods=['POST'])
@admin_required
def kick_member():
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    room_id = data.get('room_id')
    if not user_id or not room_id:
        raise ValidationError('user_id and room_id are required')
    membership = RoomMembership.query.filter_by(room_id=room_id, user_id=user_id).first()
    if not membership:
        raise NotFoundError('User not found in this room')
    room = membership.room
    db.session.delete(membership)
    db.session.commit()
    current_app.logger.info(f"[room] user={user_id} kicked from room={room.id}")
    get_publisher().publish_to_room(room.id, 'room:memberKicked', {
        'room': room.to_dict(),
        'kicked_user_id': user_id,
    })
    return jsonify({'success': True, 'room': room.to_dict()})


@rooms.route('/rooms/list', methods=['GET'])
def list_rooms():
    all_rooms = Room.query.order_by(Room.created_at.desc(), Room.id.desc()).all()
    return jsonify({'rooms': [r.to_dict() for r in all_rooms]})


@rooms.route('/rooms/<int:room_id>/activate', methods=['POST'])
@admin_required
def activate_room(room_id):
    room = db.session.get(Room, room_id)
    if not room:
        raise NotFoundError('Room not found')
    room.status = 'active'
    db.session.commit()
    return jsonify({'room': room.to_dict()})


@rooms.route('/competition', methods=['POST'])
@admin_required
def create_competition():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name or not data.get('room_id'):
        raise ValidationError('name and room_id are required')
    room = db.session.get(Room, data['room_id'])
    if not room:
        raise NotFoundError('Room not found')

    # One active competition per room
    Competition.query.filter_by(room_id=room.id, status='active').update(
        {Competition.status: 'ended'}, synchronize_session=False
    )
    competition = Competition(name=name, room_id=room.id, status='active', created_at=utcnow())
    db.session.add(competition)
    db.session.commit()
    current_app.logger.info(f"[competition] created competition={competition.id} room={room.id}")
    get_publisher().publish_to_room(room.id, 'competition:created', competition.to_dict())
    return jsonify({'competition': competition.to_dict()}), 201


@rooms.route('/room/competition', methods=['GET'])
def room_competition():
    room_id = request.args.get('room_id', type=int)
    if not room_id:
        raise ValidationError('room_id is required')
    competition = (
        Competition.query.filter_by(room_id=room_id, status='active')
        .order_by(Competition.created_at.desc(), Competition.id.desc())
        .first()
    )
    return jsonify({'competition': competition.to_dict() if competition else None})


@rooms.route('/scoreboard', methods=['GET'])
def scoreboard():
    room_id = request.args.get('room_id', type=int)
    query = User.query
    if room_id:
        query = query.join(RoomMembership, RoomMembership.user_id == User.id).filter(RoomMembership.room_id == room_id)
    users = query.order_by(User.score.desc(), User.username.asc()).all()
    return jsonify({'players': [u.to_dict() for u in users]})


@rooms.route('/users/update-score', methods=['POST'])
@admin_required
def update_score():
    """Manual score correction by the host; ``score_change`` may be negative."""
    data = request.get_json(silent=True) or {}
    change = data.get('score_change')
    if not data.get('user_id') or isinstance(change, bool) or not isinstance(change, int):
        raise ValidationError('user_id and an integer score_change are required')
    user = db.session.get(User, data['user_id'])
    if not user:
        raise NotFoundError('User not found')
    adjust_score(user.id, change)
    db.session.commit()
    current_app.logger.info(f"[score] manual change user={user.id} delta={change}")
    get_publisher().publish('scores:updated', {})
    return jsonify({'user': user.to_dict()})


@rooms.route('/profile', methods=['POST'])
def save_profile():
    """Create or update the caller's profile. The caller may not exist yet, so no login_required."""
    subject = caller_subject()
    if not subject:
        raise AuthError('Unauthorized')
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(external_id=subject).first()
    created = user is None
    if created:
        username = (data.get('username') or '').strip()
        if not username:
            raise ValidationError('username is required')
        user = User(external_id=subject, username=username, score=0)
        db.session.add(user)
    elif data.get('username'):
        user.username = data['username'].strip()
    # Email only ever comes from the identity provider header
    email = request.headers.get(current_app.config.get('USER_EMAIL_HEADER', 'X-User-Email'))
    if email:
        user.email = email
    if 'avatar_key' in data:
        user.avatar_key = data.get('avatar_key')
    db.session.commit()
    return jsonify({'user': user.to_dict()}), 201 if created else 200
