"""Rewards handed out when a round, category game or challenge is won.

A reward is either a trophy or a player card. Clients address player cards
with a ``player_<id>`` token; that token is resolved here, once, and the
rest of the code only sees the two reward types.
"""
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from flask import current_app
from sqlalchemy.exc import IntegrityError

from buzzmaster import db
from buzzmaster.errors import ValidationError
from buzzmaster.models import Trophy, TrophyWin, RewardPlayer, UserPlayer

PLAYER_PREFIX = 'player_'
# Player types whose card is face up as soon as it is won
REVEALED_ON_AWARD = {'ACTOR'}


@dataclass(frozen=True)
class TrophyReward:
    trophy_id: int


@dataclass(frozen=True)
class PlayerReward:
    player_id: int

    @property
    def token(self):
        return f"{PLAYER_PREFIX}{self.player_id}"


Reward = Union[TrophyReward, PlayerReward]


def parse_reward(token) -> Optional[Reward]:
    if token is None or token == '':
        return None
    try:
        if isinstance(token, str) and token.startswith(PLAYER_PREFIX):
            return PlayerReward(int(token[len(PLAYER_PREFIX):]))
        return TrophyReward(int(token))
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid reward id: {token}')


def reward_columns(reward: Optional[Reward]) -> Tuple[Optional[int], Optional[int]]:
    """(trophy_id, player_trophy_id) for storing a reward binding on a row."""
    if isinstance(reward, TrophyReward):
        return reward.trophy_id, None
    if isinstance(reward, PlayerReward):
        return None, reward.player_id
    return None, None


def reward_from_columns(trophy_id, player_trophy_id) -> Optional[Reward]:
    if trophy_id:
        return TrophyReward(trophy_id)
    if player_trophy_id:
        return PlayerReward(player_trophy_id)
    return None


def ensure_reward_exists(reward: Optional[Reward]) -> None:
    if isinstance(reward, TrophyReward) and not db.session.get(Trophy, reward.trophy_id):
        raise ValidationError('Trophy not found')
    if isinstance(reward, PlayerReward) and not db.session.get(RewardPlayer, reward.player_id):
        raise ValidationError('Player not found')


def grant_reward_once(user, reward: Reward, source: str, source_id=None) -> Optional[dict]:
    """Add ``reward`` to the user's collection unless it is already there.

    Runs inside the caller's transaction. Returns the ``trophy:won`` payload
    when the reward was new, ``None`` otherwise. The caller publishes the
    payload after committing.
    """
    if isinstance(reward, TrophyReward):
        item = db.session.get(Trophy, reward.trophy_id)
        if item is None:
            current_app.logger.warning(f"[reward] trophy {reward.trophy_id} missing, nothing awarded")
            return None
        if TrophyWin.query.filter_by(user_id=user.id, trophy_id=item.id).first():
            return None
        row = TrophyWin(user_id=user.id, trophy_id=item.id, source=source, source_id=source_id)
        reward_info = {'kind': 'trophy', **item.to_dict()}
    else:
        item = db.session.get(RewardPlayer, reward.player_id)
        if item is None:
            current_app.logger.warning(f"[reward] player {reward.player_id} missing, nothing awarded")
            return None
        if UserPlayer.query.filter_by(user_id=user.id, player_id=item.id).first():
            return None
        row = UserPlayer(user_id=user.id, player_id=item.id, revealed=item.type in REVEALED_ON_AWARD)
        reward_info = {'kind': 'player', 'token': reward.token, **item.to_dict()}

    try:
        with db.session.begin_nested():
            db.session.add(row)
    except IntegrityError:
        # A concurrent request got there first
        return None

    current_app.logger.info(f"[reward] {reward_info['kind']} {item.id} -> user={user.id} source={source}:{source_id}")
    return {
        'user_id': user.id,
        'username': user.username,
        'trophy': reward_info,
        'source': source,
        'source_id': source_id,
    }


def announce_reward(publisher, payload: Optional[dict], room_id=None) -> None:
    if not payload:
        return
    if room_id is not None:
        publisher.publish_to_room(room_id, 'trophy:won', payload)
    else:
        publisher.publish('trophy:won', payload)


def award_reward_once(publisher, user, reward: Reward, source: str, source_id=None, room_id=None) -> bool:
    """Grant, commit and announce in one go. Returns whether anything was awarded."""
    payload = grant_reward_once(user, reward, source, source_id)
    db.session.commit()
    announce_reward(publisher, payload, room_id)
    return payload is not None
