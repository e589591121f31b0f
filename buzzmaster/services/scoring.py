from buzzmaster import db
from buzzmaster.models import User
from typing import Dict, List, Optional, Sequence
import sqlalchemy as sa


def adjust_score(user_id: int, delta: int) -> None:
    """Atomically add ``delta`` (may be negative) to a user's score."""
    db.session.execute(
        sa.update(User).where(User.id == user_id).values(score=User.score + delta)
    )


def set_score(user_id: int, value: int) -> None:
    db.session.execute(sa.update(User).where(User.id == user_id).values(score=value))


def place_points(place: int, table: Sequence[int], fallback: int = 1) -> int:
    return table[place - 1] if 0 < place <= len(table) else fallback


def rank_challenge(participants: List[int], results: Dict[str, dict], survivor_id: Optional[int],
                   table: Sequence[int], fallback: int = 1) -> List[dict]:
    """Rank everyone who started a challenge.

    The survivor never got eliminated and ranks first. Everyone else ranks by
    elimination time (later is better), then bricks, then score. Results for
    users outside ``participants`` are ignored.
    """
    entries = []
    for user_id in participants:
        result = results.get(str(user_id)) or {}
        if user_id == survivor_id:
            eliminated_at = float('inf')
        else:
            eliminated_at = result.get('eliminated_at') or 0
        entries.append({
            'user_id': user_id,
            'eliminated_at': eliminated_at,
            'bricks': result.get('bricks') or 0,
            'score': result.get('score') or 0,
        })
    entries.sort(key=lambda e: (-e['eliminated_at'], -e['bricks'], -e['score']))
    ranking = []
    for idx, entry in enumerate(entries):
        place = idx + 1
        ranking.append({
            'user_id': entry['user_id'],
            'place': place,
            'points': place_points(place, table, fallback),
            'bricks': entry['bricks'],
            'score': entry['score'],
            'survivor': entry['user_id'] == survivor_id,
        })
    return ranking


def settle_challenge(ranking: List[dict], bets: Dict[str, dict]) -> List[tuple]:
    """Work out the score change for each ranked player.

    Returns ``(user_id, 'set' | 'add', value)`` triples. An all-in winner gets
    twice their declared score plus the place points, an all-in loser drops to
    zero, everyone else just adds their place points.
    """
    changes = []
    for entry in ranking:
        bet = bets.get(str(entry['user_id'])) or {}
        if bet.get('all_in'):
            if entry['place'] == 1:
                changes.append((entry['user_id'], 'set', 2 * int(bet.get('current_score') or 0) + entry['points']))
            else:
                changes.append((entry['user_id'], 'set', 0))
        else:
            changes.append((entry['user_id'], 'add', entry['points']))
    return changes


def apply_score_changes(changes: List[tuple]) -> None:
    for user_id, kind, value in changes:
        if kind == 'set':
            set_score(user_id, value)
        else:
            adjust_score(user_id, value)
