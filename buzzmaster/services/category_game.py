"""Category elimination game.

Players take turns naming something in a category; whoever fails is
eliminated. ``turn_order`` is fixed when the game starts and never shrinks:
eliminated players are skipped when the turn moves on, so positions stay
stable for the whole game.
"""
import json
import random

from flask import current_app

from buzzmaster import db
from buzzmaster.errors import ValidationError, NotFoundError, ConflictError
from buzzmaster.models import CategoryGame, Competition, User, utcnow
from buzzmaster.services.scoring import adjust_score
from buzzmaster.services.rewards import (
    ensure_reward_exists, reward_columns, reward_from_columns, grant_reward_once, announce_reward,
)


def next_active_player(turn_order, eliminated, current_id):
    """First non-eliminated player after ``current_id``, wrapping around ``turn_order``."""
    out = set(eliminated)
    start = turn_order.index(current_id) if current_id in turn_order else -1
    for step in range(1, len(turn_order) + 1):
        candidate = turn_order[(start + step) % len(turn_order)]
        if candidate not in out:
            return candidate
    return None


def _player_info(user_id):
    user = db.session.get(User, user_id) if user_id is not None else None
    return user.to_dict() if user else None


def _positive_int(value, field):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f'{field} must be a positive whole number')
    if (isinstance(value, float) and not value.is_integer()) or value <= 0:
        raise ValidationError(f'{field} must be a positive whole number')
    return int(value)


def _locked_game(game_id) -> CategoryGame:
    if not game_id:
        raise ValidationError('Game ID required')
    game = CategoryGame.query.filter_by(id=game_id).with_for_update().first()
    if not game:
        raise NotFoundError('Game not found')
    return game


def start_category_game(publisher, competition_id, category_name, time_per_player, winner_points,
                        reward=None, rng=random) -> CategoryGame:
    if not competition_id or not category_name or not time_per_player or not winner_points:
        raise ValidationError('Missing required fields')
    time_per_player = _positive_int(time_per_player, 'time_per_player')
    winner_points = _positive_int(winner_points, 'winner_points')
    competition = db.session.get(Competition, competition_id)
    if not competition:
        raise NotFoundError('Competition not found')
    ensure_reward_exists(reward)

    players = competition.room.members
    if not players:
        raise ValidationError('Room has no members')
    turn_order = [u.id for u in players]
    rng.shuffle(turn_order)

    now = utcnow()
    trophy_id, player_trophy_id = reward_columns(reward)
    game = CategoryGame(
        competition_id=competition.id,
        category_name=category_name,
        time_per_player=time_per_player,
        winner_points=winner_points,
        turn_order=json.dumps(turn_order),
        eliminated_players='[]',
        current_turn_index=0,
        current_player_id=turn_order[0],
        status='active',
        is_paused=False,
        timer_started_at=now,
        started_at=now,
        trophy_id=trophy_id,
        player_trophy_id=player_trophy_id,
    )
    db.session.add(game)
    db.session.commit()
    current_app.logger.info(f"[category-start] game={game.id} competition={competition.id} order={turn_order}")

    publisher.publish_to_room(competition.room_id, 'category-game:started', {
        **game.to_dict(),
        'current_player_info': _player_info(game.current_player_id),
    })
    return game


def next_player(publisher, game_id, eliminate_current_player=True) -> dict:
    game = _locked_game(game_id)
    if game.status != 'active':
        raise ConflictError('Game already completed')

    room_id = game.competition.room_id
    turn_order = game.order
    eliminated = game.eliminated
    if eliminate_current_player and game.current_player_id is not None \
            and game.current_player_id not in eliminated:
        eliminated.append(game.current_player_id)
    game.eliminated_players = json.dumps(eliminated)
    active = [uid for uid in turn_order if uid not in set(eliminated)]

    # Settle the single-survivor case before any turn arithmetic
    if len(active) <= 1:
        winner_id = active[0] if active else None
        award = None
        if winner_id is not None:
            adjust_score(winner_id, game.winner_points)
            reward = reward_from_columns(game.trophy_id, game.player_trophy_id)
            if reward is not None:
                award = grant_reward_once(db.session.get(User, winner_id), reward, 'category', game.id)
        game.status = 'completed'
        game.winner_id = winner_id
        game.completed_at = utcnow()
        game.is_paused = True
        db.session.commit()
        current_app.logger.info(f"[category-complete] game={game.id} winner={winner_id}")

        announce_reward(publisher, award, room_id)
        publisher.publish_to_room(room_id, 'category-game:completed', {
            'id': game.id,
            'winner_id': winner_id,
            'winner_info': _player_info(winner_id),
            'winner_points': game.winner_points,
            'eliminated_players': eliminated,
            'status': game.status,
        })
        publisher.publish('scores:updated', {})
        return {'game': game.to_dict(), 'winner': winner_id}

    next_id = next_active_player(turn_order, eliminated, game.current_player_id)
    game.current_player_id = next_id
    game.current_turn_index = turn_order.index(next_id)
    game.timer_started_at = utcnow()
    game.timer_paused_at = None
    game.is_paused = False
    game.paused_time_elapsed = 0
    db.session.commit()
    current_app.logger.info(f"[category-next] game={game.id} current={next_id} remaining={len(active)}")

    publisher.publish_to_room(room_id, 'category-game:next-player', {
        'id': game.id,
        'current_player_id': next_id,
        'current_player_info': _player_info(next_id),
        'timer_started_at': game.to_dict()['timer_started_at'],
        'eliminated_players': eliminated,
        'remaining_players': len(active),
    })
    return {'game': game.to_dict()}


def pause(publisher, game_id) -> CategoryGame:
    game = _locked_game(game_id)
    if game.status != 'active':
        raise ConflictError('Game already completed')
    if game.is_paused:
        raise ConflictError('Game is already paused')

    now = utcnow()
    elapsed = int((now - game.timer_started_at).total_seconds()) if game.timer_started_at else 0
    game.paused_time_elapsed = (game.paused_time_elapsed or 0) + max(0, elapsed)
    game.is_paused = True
    game.timer_paused_at = now
    db.session.commit()

    publisher.publish_to_room(game.competition.room_id, 'category-game:paused', {
        'id': game.id,
        'is_paused': True,
        'paused_time_elapsed': game.paused_time_elapsed,
    })
    return game


def resume(publisher, game_id) -> CategoryGame:
    game = _locked_game(game_id)
    if game.status != 'active':
        raise ConflictError('Game already completed')
    if not game.is_paused:
        raise ConflictError('Game is not paused')

    game.is_paused = False
    game.timer_started_at = utcnow()
    game.timer_paused_at = None
    db.session.commit()

    publisher.publish_to_room(game.competition.room_id, 'category-game:resumed', {
        'id': game.id,
        'is_paused': False,
        'timer_started_at': game.to_dict()['timer_started_at'],
        'paused_time_elapsed': game.paused_time_elapsed,
    })
    return game


def game_status(game_id=None, competition_id=None):
    if game_id:
        game = db.session.get(CategoryGame, game_id)
        if not game:
            raise NotFoundError('Game not found')
        return game
    if competition_id:
        return (
            CategoryGame.query.filter_by(competition_id=competition_id)
            .order_by(CategoryGame.started_at.desc(), CategoryGame.id.desc())
            .first()
        )
    raise ValidationError('game_id or competition_id required')
