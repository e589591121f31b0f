"""Thumb war: one player puts a thumb on the table, everyone races to follow.

The last room member to respond loses ``THUMB_GAME_PENALTY`` points. Each
player may start the game once per round.
"""
import json

from flask import current_app

from buzzmaster import db
from buzzmaster.errors import ValidationError
from buzzmaster.services.rounds import current_round, current_round_for_user
from buzzmaster.services.scoring import adjust_score


def _penalty():
    return current_app.config.get('THUMB_GAME_PENALTY', 5)


def _end_game(publisher, rnd, loser, responders) -> None:
    adjust_score(loser.id, -_penalty())
    rnd.thumb_game_active = False
    rnd.thumb_game_responders = '[]'
    db.session.commit()
    current_app.logger.info(f"[thumb-game] round={rnd.id} loser={loser.id} responders={responders}")

    publisher.publish_to_room(rnd.room_id, 'thumb-game:ended', {
        'round_id': rnd.id,
        'loser_id': loser.id,
        'loser_username': loser.username,
        'responders': responders,
    })
    publisher.publish('scores:updated', {})


def start_thumb_game(publisher, user) -> dict:
    rnd = current_round_for_user(user, lock=True)
    if not rnd:
        raise ValidationError('No active round found')
    if rnd.thumb_game_active:
        raise ValidationError('Thumb game is already active')
    used_by = rnd.used_by
    if user.id in used_by:
        raise ValidationError('You have already started the thumb game this round')

    members = rnd.competition.room.members
    rnd.thumb_game_active = True
    rnd.thumb_game_starter_id = user.id
    rnd.thumb_game_responders = json.dumps([user.id])
    rnd.thumb_game_used_by = json.dumps(used_by + [user.id])

    if len(members) == 2:
        # Nobody else to race: the other player loses straight away
        loser = next(m for m in members if m.id != user.id)
        _end_game(publisher, rnd, loser, [])
        return {'success': True, 'round': rnd.to_dict(), 'auto_ended': True}

    db.session.commit()
    current_app.logger.info(f"[thumb-game] round={rnd.id} started by user={user.id}")
    publisher.publish_to_room(rnd.room_id, 'thumb-game:started', {
        'round_id': rnd.id,
        'starter_id': user.id,
        'responders': [user.id],
    })
    return {'success': True, 'round': rnd.to_dict(), 'auto_ended': False}


def respond(publisher, user) -> dict:
    rnd = current_round_for_user(user, lock=True)
    if not rnd:
        raise ValidationError('No active round found')
    if not rnd.thumb_game_active:
        raise ValidationError('No thumb game is currently active')
    responders = rnd.responders
    if user.id in responders:
        raise ValidationError('You have already responded')

    responders.append(user.id)
    members = rnd.competition.room.members
    remaining = [m for m in members if m.id not in responders]
    if len(responders) >= len(members) - 1 and remaining:
        _end_game(publisher, rnd, remaining[0], responders)
        return {'success': True, 'round': rnd.to_dict(), 'game_is_over': True}

    rnd.thumb_game_responders = json.dumps(responders)
    db.session.commit()
    publisher.publish_to_room(rnd.room_id, 'thumb-game:updated', {
        'round_id': rnd.id,
        'responders': responders,
    })
    return {'success': True, 'round': rnd.to_dict(), 'game_is_over': False}


def thumb_game_status(user=None) -> dict:
    rnd = current_round_for_user(user) if user is not None else current_round()
    if not rnd:
        return {'thumb_game_active': False, 'responders': [], 'starter_id': None, 'used_by': []}
    return {
        'round_id': rnd.id,
        'thumb_game_active': rnd.thumb_game_active,
        'responders': rnd.responders,
        'starter_id': rnd.thumb_game_starter_id,
        'used_by': rnd.used_by,
    }
