"""Buzzer rounds and the per-round press queue.

A round is "current" while ``ended_at`` is null; the most recently started
one wins if several competitions have one open. The first press in
``pressed_at`` order holds the buzzer; later presses queue behind it.
Timers are advisory deadlines stored for the clients, nothing here fires
when they lapse.
"""
from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from buzzmaster import db
from buzzmaster.errors import ValidationError, NotFoundError, ConflictError
from buzzmaster.models import Round, Press, Competition, RoomMembership, utcnow
from buzzmaster.services.scoring import adjust_score
from buzzmaster.services.rewards import (
    ensure_reward_exists, reward_columns, reward_from_columns, grant_reward_once, announce_reward,
)

_UNSET = object()


def current_round(competition_id=None) -> Optional[Round]:
    query = Round.query.filter(Round.ended_at.is_(None))
    if competition_id is not None:
        query = query.filter(Round.competition_id == competition_id)
    return query.order_by(Round.started_at.desc(), Round.id.desc()).first()


def current_round_for_user(user, lock=False) -> Optional[Round]:
    """The open round of a competition in one of the user's rooms."""
    query = (
        Round.query
        .join(Competition, Competition.id == Round.competition_id)
        .join(RoomMembership, RoomMembership.room_id == Competition.room_id)
        .filter(RoomMembership.user_id == user.id, Round.ended_at.is_(None))
        .order_by(Round.started_at.desc(), Round.id.desc())
    )
    if lock:
        query = query.with_for_update(of=Round)
    return query.first()


def _require_current_round(competition_id=None) -> Round:
    rnd = current_round(competition_id)
    if not rnd:
        raise ValidationError('No active round found')
    return rnd


def press_queue(round_id):
    return Press.query.filter_by(round_id=round_id).order_by(Press.pressed_at.asc(), Press.id.asc()).all()


def _active_competition(competition_id=None) -> Competition:
    query = Competition.query.filter_by(status='active')
    if competition_id is not None:
        query = query.filter_by(id=competition_id)
    competition = query.order_by(Competition.created_at.desc(), Competition.id.desc()).first()
    if not competition:
        raise ValidationError('No active competition found')
    return competition


def _timer_deadline(rnd: Round):
    if rnd.has_timer and rnd.timer_duration:
        return utcnow() + timedelta(seconds=rnd.timer_duration)
    return None


def start_round(publisher, competition_id=None, timer_enabled=False, timer_duration=None, reward=None) -> Round:
    competition = _active_competition(competition_id)
    if timer_enabled:
        if not isinstance(timer_duration, (int, float)) or isinstance(timer_duration, bool) or timer_duration <= 0:
            raise ValidationError('timer_duration must be a positive number of seconds')
        timer_duration = int(timer_duration)
    ensure_reward_exists(reward)

    now = utcnow()
    # One open round per competition: an unfinished one is superseded
    superseded = (
        Round.query
        .filter(Round.competition_id == competition.id, Round.ended_at.is_(None))
        .update({Round.ended_at: now}, synchronize_session=False)
    )
    trophy_id, player_trophy_id = reward_columns(reward)
    rnd = Round(
        competition_id=competition.id,
        started_at=now,
        buttons_enabled=False,
        has_timer=bool(timer_enabled),
        timer_duration=timer_duration if timer_enabled else None,
        timer_ends_at=now + timedelta(seconds=timer_duration) if timer_enabled else None,
        trophy_id=trophy_id,
        player_trophy_id=player_trophy_id,
    )
    db.session.add(rnd)
    db.session.commit()
    current_app.logger.info(
        f"[round-start] round={rnd.id} competition={competition.id} timer={rnd.timer_duration} superseded={superseded}"
    )
    publisher.publish_to_room(competition.room_id, 'round:started', rnd.to_dict())
    return rnd


def enable_buttons(publisher, competition_id=None, reward=_UNSET) -> Round:
    """Open the buzzers. Passing ``reward`` (``None`` included) rebinds the round's reward."""
    rnd = _require_current_round(competition_id)
    rnd.buttons_enabled = True
    if reward is not _UNSET:
        ensure_reward_exists(reward)
        rnd.trophy_id, rnd.player_trophy_id = reward_columns(reward)
    db.session.commit()
    current_app.logger.info(f"[buttons] enabled round={rnd.id}")
    publisher.publish_to_room(rnd.room_id, 'buttons:enabled', {'round': rnd.to_dict()})
    return rnd


def disable_buttons(publisher, competition_id=None) -> Round:
    """Close the buzzers and throw away the queue so the next opening starts fresh."""
    rnd = _require_current_round(competition_id)
    rnd.buttons_enabled = False
    rnd.trophy_id = None
    rnd.player_trophy_id = None
    cleared = Press.query.filter_by(round_id=rnd.id).delete(synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f"[buttons] disabled round={rnd.id} cleared={cleared}")
    publisher.publish_to_room(rnd.room_id, 'buttons:disabled', {'round': rnd.to_dict()})
    publisher.publish_to_room(rnd.room_id, 'presses:cleared', {'round_id': rnd.id})
    return rnd


def press(publisher, user) -> Press:
    rnd = current_round_for_user(user)
    if not rnd:
        raise ValidationError('No active round found')
    if not rnd.buttons_enabled:
        raise ConflictError('Buttons are not enabled')

    if Press.query.filter_by(round_id=rnd.id, user_id=user.id).first():
        raise ConflictError('Already pressed in this round')

    is_first = Press.query.filter_by(round_id=rnd.id).first() is None
    new_press = Press(
        round_id=rnd.id,
        user_id=user.id,
        pressed_at=utcnow(),
        timer_expires_at=_timer_deadline(rnd) if is_first else None,
    )
    db.session.add(new_press)
    if is_first:
        rnd.winner_user_id = user.id
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Already pressed in this round')

    if is_first:
        # Another user may have committed a first press at the same moment;
        # the queue order decides who really holds the buzzer.
        head = press_queue(rnd.id)[0]
        if head.id != new_press.id:
            new_press.timer_expires_at = None
            rnd.winner_user_id = head.user_id
            db.session.commit()
            is_first = False

    current_app.logger.info(f"[press] round={rnd.id} user={user.id} first={is_first}")
    if is_first:
        publisher.publish_to_room(rnd.room_id, 'round:started', rnd.to_dict())
    publisher.publish_to_room(rnd.room_id, 'press:new', new_press.to_dict())
    return new_press


def evaluate_press(publisher, press_id, is_correct, points) -> dict:
    if not press_id or not isinstance(is_correct, bool) or not isinstance(points, (int, float)) \
            or isinstance(points, bool):
        raise ValidationError('Invalid request data')

    current = db.session.get(Press, press_id)
    if not current:
        raise NotFoundError('Press not found')

    rnd = current.round
    user = current.user
    adjust_score(user.id, int(points))

    award = None
    if is_correct:
        Press.query.filter_by(round_id=rnd.id).delete(synchronize_session=False)
        reward = reward_from_columns(rnd.trophy_id, rnd.player_trophy_id)
        rnd.buttons_enabled = False
        # Clearing the binding before awarding makes a retried evaluation a no-op
        rnd.trophy_id = None
        rnd.player_trophy_id = None
        if reward is not None:
            award = grant_reward_once(user, reward, 'round', rnd.id)
    db.session.commit()
    current_app.logger.info(
        f"[evaluate] press={press_id} round={rnd.id} user={user.id} correct={is_correct} points={points}"
    )

    if is_correct:
        announce_reward(publisher, award, rnd.room_id)
        publisher.publish_to_room(rnd.room_id, 'buttons:disabled', {'round': rnd.to_dict()})
        publisher.publish_to_room(rnd.room_id, 'presses:cleared', {'round_id': rnd.id})
    publisher.publish('scores:updated', {})
    publisher.publish_to_room(rnd.room_id, 'press:evaluated', {
        'press_id': press_id,
        'is_correct': is_correct,
        'points': points,
        'user_id': user.id,
        'username': user.username,
    })
    return {'success': True, 'user': user.to_dict(), 'disabled_buttons': is_correct}


def give_to_next(publisher, press_id) -> dict:
    """Hand the buzzer to the next user in the queue; the outgoing holder loses a point."""
    if not press_id:
        raise ValidationError('press_id is required')
    current = db.session.get(Press, press_id)
    if not current:
        raise NotFoundError('Press not found')
    rnd = current.round
    if not rnd:
        raise NotFoundError('Round not found')

    waiting = [p for p in press_queue(rnd.id) if p.user_id != current.user_id]
    if not waiting:
        raise NotFoundError('No one else in queue')
    nxt = waiting[0]

    outgoing_user_id = current.user_id
    db.session.delete(current)
    rnd.winner_user_id = nxt.user_id
    deadline = _timer_deadline(rnd)
    if deadline:
        nxt.timer_expires_at = deadline
    adjust_score(outgoing_user_id, -current_app.config.get('GIVE_TO_NEXT_PENALTY', 1))
    db.session.commit()
    current_app.logger.info(f"[give-to-next] round={rnd.id} from={outgoing_user_id} to={nxt.user_id}")

    publisher.publish_to_room(rnd.room_id, 'round:started', rnd.to_dict())
    publisher.publish('scores:updated', {})
    return {'success': True, 'next_user_id': nxt.user_id, 'press': nxt.to_dict(), 'round': rnd.to_dict()}


def end_round(publisher, competition_id=None) -> dict:
    rnd = _require_current_round(competition_id)
    queue = press_queue(rnd.id)
    winner = queue[0].user if queue else None

    rnd.ended_at = utcnow()
    rnd.winner_user_id = winner.id if winner else None
    if winner:
        adjust_score(winner.id, current_app.config.get('ROUND_WIN_POINTS', 1))
    db.session.commit()
    current_app.logger.info(f"[round-end] round={rnd.id} winner={rnd.winner_user_id}")

    winner_data = winner.to_dict() if winner else None
    publisher.publish_to_room(rnd.room_id, 'round:ended', {'round': rnd.to_dict(), 'winner': winner_data})
    publisher.publish('scores:updated', {})
    return {'round': rnd.to_dict(), 'winner': winner_data}
