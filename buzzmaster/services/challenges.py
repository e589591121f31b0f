"""Arkanoid-style challenges with elimination and all-in betting.

Everyone in the room at start is a participant. Participants report their
own elimination; the challenge ends when one player is left standing, or in
chill mode once everybody has finished. Bets and eliminations are
read-modify-write on the challenge row and always run under a row lock.
"""
import json
import time

from flask import current_app

from buzzmaster import db
from buzzmaster.errors import ValidationError, NotFoundError, ConflictError
from buzzmaster.models import Challenge, Room, RoomMembership, User, utcnow
from buzzmaster.services.scoring import rank_challenge, settle_challenge, apply_score_changes


def _user_room_ids(user):
    return [m.room_id for m in RoomMembership.query.filter_by(user_id=user.id).all()]


def _active_challenge_for(user, lock=False):
    query = (
        Challenge.query
        .filter(Challenge.status == 'active', Challenge.room_id.in_(_user_room_ids(user)))
        .order_by(Challenge.started_at.desc(), Challenge.id.desc())
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def start_challenge(publisher, room_id, round_id=None, type='arkanoid', config=None) -> Challenge:
    if not room_id:
        raise ValidationError('room_id is required')
    if config is not None and not isinstance(config, dict):
        raise ValidationError('config must be an object')
    room = db.session.get(Room, room_id)
    if not room:
        raise NotFoundError('Room not found')

    now = utcnow()
    superseded = (
        Challenge.query
        .filter(Challenge.room_id == room.id, Challenge.status == 'active')
        .update({Challenge.status: 'ended', Challenge.ended_at: now}, synchronize_session=False)
    )
    members = [u.id for u in room.members]
    challenge = Challenge(
        room_id=room.id,
        round_id=round_id,
        type=type or 'arkanoid',
        status='active',
        participants=json.dumps(members),
        alive=json.dumps(members),
        results='{}',
        bets='{}',
        config=json.dumps(config or {}),
        started_at=now,
    )
    db.session.add(challenge)
    db.session.commit()
    current_app.logger.info(
        f"[challenge-start] challenge={challenge.id} room={room.id} type={challenge.type} "
        f"alive={members} superseded={superseded}"
    )

    publisher.publish_to_room(room.id, 'challenge:started', {
        'id': challenge.id,
        'type': challenge.type,
        'config': challenge.config_map,
        'alive': members,
        'started_at': challenge.to_dict()['started_at'],
    })
    return challenge


def place_bet(publisher, user, all_in) -> dict:
    challenge = _active_challenge_for(user, lock=True)
    if not challenge:
        raise ValidationError('No active challenge')

    # Re-read the score inside the locked transaction
    current_score = db.session.query(User.score).filter(User.id == user.id).scalar() or 0
    bets = challenge.bets_map
    bets[str(user.id)] = {'all_in': bool(all_in), 'current_score': current_score}
    challenge.bets = json.dumps(bets)
    db.session.commit()
    current_app.logger.info(
        f"[challenge-bet] challenge={challenge.id} user={user.id} all_in={bool(all_in)} score={current_score}"
    )

    publisher.publish_to_room(challenge.room_id, 'challenge:betPlaced', {
        'id': challenge.id,
        'user_id': user.id,
        'all_in': bool(all_in),
    })
    return {'success': True, 'bet': bets[str(user.id)]}


def _number(value, name):
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f'{name} must be a number')
    return value


def eliminate(publisher, user, bricks=0, score=0, elapsed_ms=0, challenge_id=None) -> dict:
    bricks = _number(bricks, 'bricks')
    score = _number(score, 'score')
    elapsed_ms = _number(elapsed_ms, 'elapsed_ms')

    if challenge_id:
        challenge = Challenge.query.filter_by(id=challenge_id).with_for_update().first()
        if not challenge:
            raise NotFoundError('Challenge not found')
    else:
        challenge = _active_challenge_for(user, lock=True)
    if not challenge or challenge.status != 'active':
        # Usually the last report arriving after another one ended it
        db.session.rollback()
        return {'success': True, 'already_ended': True}

    key = str(user.id)
    results = challenge.results_map
    if key in results:
        db.session.rollback()
        return {'success': True, 'ignored': True}
    alive = challenge.alive_ids
    if user.id not in alive:
        raise ConflictError('User not alive in challenge')

    results[key] = {
        'eliminated_at': int(time.time() * 1000),
        'bricks': bricks,
        'score': score,
        'elapsed_ms': elapsed_ms,
    }
    alive = [uid for uid in alive if uid != user.id]
    challenge.results = json.dumps(results)
    challenge.alive = json.dumps(alive)

    threshold = 0 if challenge.chill_mode else 1
    ended = len(alive) <= threshold
    ranking = None
    if ended:
        ranking = _finish(challenge, results, alive)
    db.session.commit()
    current_app.logger.info(
        f"[challenge-eliminate] challenge={challenge.id} user={user.id} alive={len(alive)} ended={ended}"
    )

    publisher.publish_to_room(challenge.room_id, 'challenge:playerEliminated', {
        'id': challenge.id,
        'user_id': user.id,
        'alive_count': len(alive),
    })
    if ended:
        publisher.publish_to_room(challenge.room_id, 'challenge:ended', {
            'id': challenge.id,
            'winner_id': ranking[0]['user_id'] if ranking else None,
            'ranking': ranking,
        })
        publisher.publish('scores:updated', {})
    return {'success': True, 'ended': ended, 'alive_count': len(alive), 'ranking': ranking}


def _finish(challenge, results, alive):
    """Rank, settle bets and close the challenge. Caller holds the row lock and commits."""
    survivor_id = alive[0] if len(alive) == 1 else None
    config = current_app.config
    ranking = rank_challenge(
        challenge.participant_ids, results, survivor_id,
        config.get('CHALLENGE_PLACE_POINTS', [10, 6, 4, 2]),
        config.get('CHALLENGE_FALLBACK_POINTS', 1),
    )
    changes = settle_challenge(ranking, challenge.bets_map)
    apply_score_changes(changes)

    users = {u.id: u for u in User.query.filter(User.id.in_([r['user_id'] for r in ranking])).all()}
    settled = {uid: (kind, value) for uid, kind, value in changes}
    for entry in ranking:
        user = users.get(entry['user_id'])
        entry['username'] = user.username if user else None
        entry['avatar_key'] = user.avatar_key if user else None
        entry['settlement'] = settled[entry['user_id']][0]

    challenge.ranking = json.dumps(ranking)
    challenge.status = 'ended'
    challenge.ended_at = utcnow()
    return ranking


def challenge_status(room_id) -> dict:
    if not room_id:
        raise ValidationError('room_id is required')
    challenge = (
        Challenge.query.filter_by(room_id=room_id, status='active')
        .order_by(Challenge.started_at.desc(), Challenge.id.desc())
        .first()
    )
    if not challenge:
        return {'active': False}
    return {'active': True, **challenge.to_dict()}
