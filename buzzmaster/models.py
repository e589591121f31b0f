from buzzmaster import db
from flask_login import UserMixin
from datetime import datetime, timezone
import json
import string
import random


def utcnow():
    """Naive UTC timestamp; SQLite drops tzinfo so we never store it."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def load_json(text, default):
    if not text:
        return default
    try:
        return json.loads(text)
    except ValueError:
        return default


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(128), unique=True, nullable=False, index=True)
    username = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    avatar_key = db.Column(db.String(16), nullable=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'external_id': self.external_id,
            'username': self.username,
            'avatar_key': self.avatar_key,
            'score': self.score,
        }


def generate_room_code(length=6):
    """Generate a unique, short room code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Room.query.filter_by(code=code).first():
            return code


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(6), unique=True, index=True)
    status = db.Column(db.String(16), default='waiting', nullable=False)  # waiting, active
    created_at = db.Column(db.DateTime, default=utcnow)
    memberships = db.relationship('RoomMembership', back_populates='room', cascade='all, delete-orphan',
                                  order_by='RoomMembership.id')

    def __init__(self, **kwargs):
        super(Room, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_room_code()

    @property
    def members(self):
        return [m.user for m in self.memberships]

    def to_dict(self, include_members=True):
        data = {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }
        if include_members:
            data['members'] = [u.to_dict() for u in self.members]
        return data


class RoomMembership(db.Model):
    __tablename__ = 'room_membership'
    __table_args__ = (db.UniqueConstraint('room_id', 'user_id', name='uq_room_membership_room_user'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    joined_at = db.Column(db.DateTime, default=utcnow)
    room = db.relationship('Room', back_populates='memberships')
    user = db.relationship('User')


class Competition(db.Model):
    __tablename__ = 'competition'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    status = db.Column(db.String(16), default='active', nullable=False)  # active, ended
    created_at = db.Column(db.DateTime, default=utcnow)
    room = db.relationship('Room')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'room_id': self.room_id,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }


class Trophy(db.Model):
    __tablename__ = 'trophy'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_key = db.Column(db.String(64), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'image_key': self.image_key,
        }


class RewardPlayer(db.Model):
    """A footballer, festival artist, film or actor handed out as a reward."""
    __tablename__ = 'reward_player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(16), default='FOOTBALLER', nullable=False)  # FOOTBALLER, FESTIVAL, FILM, ACTOR
    image_key = db.Column(db.String(64), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'image_key': self.image_key,
        }


class TrophyWin(db.Model):
    __tablename__ = 'trophy_win'
    __table_args__ = (db.UniqueConstraint('user_id', 'trophy_id', name='uq_trophy_win_user_trophy'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    trophy_id = db.Column(db.Integer, db.ForeignKey('trophy.id'), nullable=False)
    source = db.Column(db.String(32), nullable=False)  # round, category, question, manual
    source_id = db.Column(db.Integer, nullable=True)
    won_at = db.Column(db.DateTime, default=utcnow)


class UserPlayer(db.Model):
    __tablename__ = 'user_player'
    __table_args__ = (db.UniqueConstraint('user_id', 'player_id', name='uq_user_player_user_player'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('reward_player.id'), nullable=False)
    revealed = db.Column(db.Boolean, default=False, nullable=False)
    acquired_at = db.Column(db.DateTime, default=utcnow)


class Round(db.Model):
    __tablename__ = 'round'
    id = db.Column(db.Integer, primary_key=True)
    competition_id = db.Column(db.Integer, db.ForeignKey('competition.id'), nullable=False, index=True)
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    ended_at = db.Column(db.DateTime, nullable=True)
    buttons_enabled = db.Column(db.Boolean, default=False, nullable=False)
    has_timer = db.Column(db.Boolean, default=False, nullable=False)
    timer_duration = db.Column(db.Integer, nullable=True)  # seconds
    timer_ends_at = db.Column(db.DateTime, nullable=True)
    winner_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    trophy_id = db.Column(db.Integer, db.ForeignKey('trophy.id'), nullable=True)
    player_trophy_id = db.Column(db.Integer, db.ForeignKey('reward_player.id'), nullable=True)
    # Thumb war
    thumb_game_active = db.Column(db.Boolean, default=False, nullable=False)
    thumb_game_starter_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    thumb_game_responders = db.Column(db.Text, nullable=True)  # JSON-encoded list of user ids, in response order
    thumb_game_used_by = db.Column(db.Text, nullable=True)  # JSON-encoded list of user ids
    competition = db.relationship('Competition')
    trophy = db.relationship('Trophy')
    player_trophy = db.relationship('RewardPlayer')

    @property
    def room_id(self):
        return self.competition.room_id if self.competition else None

    @property
    def responders(self):
        return load_json(self.thumb_game_responders, [])

    @property
    def used_by(self):
        return load_json(self.thumb_game_used_by, [])

    def to_dict(self):
        reward = None
        if self.trophy:
            reward = {'kind': 'trophy', **self.trophy.to_dict()}
        elif self.player_trophy:
            reward = {'kind': 'player', **self.player_trophy.to_dict()}
        return {
            'id': self.id,
            'competition_id': self.competition_id,
            'started_at': _iso(self.started_at),
            'ended_at': _iso(self.ended_at),
            'buttons_enabled': self.buttons_enabled,
            'has_timer': self.has_timer,
            'timer_duration': self.timer_duration,
            'timer_ends_at': _iso(self.timer_ends_at),
            'winner_user_id': self.winner_user_id,
            'trophy_id': self.trophy_id,
            'player_trophy_id': self.player_trophy_id,
            'reward': reward,
            'thumb_game_active': self.thumb_game_active,
            'thumb_game_starter_id': self.thumb_game_starter_id,
            'thumb_game_responders': self.responders,
            'thumb_game_used_by': self.used_by,
        }


class Press(db.Model):
    __tablename__ = 'press'
    __table_args__ = (db.UniqueConstraint('round_id', 'user_id', name='uq_press_round_user'),)
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    pressed_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    timer_expires_at = db.Column(db.DateTime, nullable=True)
    round = db.relationship('Round')
    user = db.relationship('User')

    @property
    def timer_expired(self):
        return bool(self.timer_expires_at and self.timer_expires_at <= utcnow())

    def to_dict(self):
        return {
            'id': self.id,
            'round_id': self.round_id,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'pressed_at': _iso(self.pressed_at),
            'timer_expires_at': _iso(self.timer_expires_at),
            'timer_expired': self.timer_expired,
        }


class CategoryGame(db.Model):
    __tablename__ = 'category_game'
    id = db.Column(db.Integer, primary_key=True)
    competition_id = db.Column(db.Integer, db.ForeignKey('competition.id'), nullable=False, index=True)
    category_name = db.Column(db.String(100), nullable=False)
    time_per_player = db.Column(db.Integer, nullable=False)  # seconds
    winner_points = db.Column(db.Integer, nullable=False)
    turn_order = db.Column(db.Text, nullable=False)  # JSON-encoded list of user ids, fixed at start
    eliminated_players = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list, append-only
    current_player_id = db.Column(db.Integer, nullable=True)
    current_turn_index = db.Column(db.Integer, default=0, nullable=False)
    status = db.Column(db.String(16), default='active', nullable=False)  # active, completed
    is_paused = db.Column(db.Boolean, default=False, nullable=False)
    timer_started_at = db.Column(db.DateTime, nullable=True)
    timer_paused_at = db.Column(db.DateTime, nullable=True)
    paused_time_elapsed = db.Column(db.Integer, default=0, nullable=False)  # seconds
    winner_id = db.Column(db.Integer, nullable=True)
    trophy_id = db.Column(db.Integer, db.ForeignKey('trophy.id'), nullable=True)
    player_trophy_id = db.Column(db.Integer, db.ForeignKey('reward_player.id'), nullable=True)
    started_at = db.Column(db.DateTime, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    competition = db.relationship('Competition')

    @property
    def order(self):
        return load_json(self.turn_order, [])

    @property
    def eliminated(self):
        return load_json(self.eliminated_players, [])

    @property
    def active_players(self):
        eliminated = set(self.eliminated)
        return [uid for uid in self.order if uid not in eliminated]

    def to_dict(self):
        return {
            'id': self.id,
            'competition_id': self.competition_id,
            'category_name': self.category_name,
            'time_per_player': self.time_per_player,
            'winner_points': self.winner_points,
            'turn_order': self.order,
            'eliminated_players': self.eliminated,
            'current_player_id': self.current_player_id,
            'current_turn_index': self.current_turn_index,
            'status': self.status,
            'is_paused': self.is_paused,
            'timer_started_at': _iso(self.timer_started_at),
            'timer_paused_at': _iso(self.timer_paused_at),
            'paused_time_elapsed': self.paused_time_elapsed,
            'winner_id': self.winner_id,
            'trophy_id': self.trophy_id,
            'player_trophy_id': self.player_trophy_id,
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
        }


class Challenge(db.Model):
    __tablename__ = 'challenge'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=True)
    type = db.Column(db.String(32), default='arkanoid', nullable=False)
    status = db.Column(db.String(16), default='active', nullable=False)  # active, ended
    participants = db.Column(db.Text, nullable=False, default='[]')  # JSON list: room members at start
    alive = db.Column(db.Text, nullable=False, default='[]')  # JSON list, shrinks monotonically
    results = db.Column(db.Text, nullable=False, default='{}')  # JSON map user id -> result
    bets = db.Column(db.Text, nullable=False, default='{}')  # JSON map user id -> bet
    config = db.Column(db.Text, nullable=False, default='{}')
    ranking = db.Column(db.Text, nullable=True)  # JSON list, set when ended
    started_at = db.Column(db.DateTime, default=utcnow)
    ended_at = db.Column(db.DateTime, nullable=True)

    @property
    def participant_ids(self):
        return load_json(self.participants, [])

    @property
    def alive_ids(self):
        return load_json(self.alive, [])

    @property
    def results_map(self):
        return load_json(self.results, {})

    @property
    def bets_map(self):
        return load_json(self.bets, {})

    @property
    def config_map(self):
        return load_json(self.config, {})

    @property
    def chill_mode(self):
        return bool(self.config_map.get('chill_mode') or self.config_map.get('chillMode'))

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'round_id': self.round_id,
            'type': self.type,
            'status': self.status,
            'participants': self.participant_ids,
            'alive': self.alive_ids,
            'results': self.results_map,
            'bets': self.bets_map,
            'config': self.config_map,
            'ranking': load_json(self.ranking, None),
            'started_at': _iso(self.started_at),
            'ended_at': _iso(self.ended_at),
        }


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(16), default='freetext', nullable=False)  # multiple_choice, freetext
    image_url = db.Column(db.String(255), nullable=True)
    options = db.Column(db.Text, nullable=True)  # JSON-encoded list, multiple choice only
    correct_answer = db.Column(db.Text, nullable=False)
    points = db.Column(db.Integer, default=1, nullable=False)
    scoring_type = db.Column(db.String(16), default='all_equal', nullable=False)  # first_only, descending, all_equal
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def choices(self):
        return load_json(self.options, None)

    def to_dict(self, include_answer=True):
        data = {
            'id': self.id,
            'text': self.text,
            'type': self.type,
            'image_url': self.image_url,
            'options': self.choices,
            'points': self.points,
            'scoring_type': self.scoring_type,
            'created_at': _iso(self.created_at),
        }
        if include_answer:
            data['correct_answer'] = self.correct_answer
        return data


class QuestionUsage(db.Model):
    """A question sent to one competition. Answers hang off the usage."""
    __tablename__ = 'question_usage'
    __table_args__ = (
        db.UniqueConstraint('question_id', 'competition_id', name='uq_question_usage_question_competition'),
    )
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False, index=True)
    competition_id = db.Column(db.Integer, db.ForeignKey('competition.id'), nullable=False, index=True)
    status = db.Column(db.String(16), default='active', nullable=False)  # active, completed
    sent_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    trophy_id = db.Column(db.Integer, db.ForeignKey('trophy.id'), nullable=True)
    player_trophy_id = db.Column(db.Integer, db.ForeignKey('reward_player.id'), nullable=True)
    question = db.relationship('Question')
    competition = db.relationship('Competition')

    @property
    def room_id(self):
        return self.competition.room_id if self.competition else None

    def to_dict(self):
        return {
            'id': self.id,
            'question_id': self.question_id,
            'competition_id': self.competition_id,
            'status': self.status,
            'sent_at': _iso(self.sent_at),
            'completed_at': _iso(self.completed_at),
            'trophy_id': self.trophy_id,
            'player_trophy_id': self.player_trophy_id,
        }


class Answer(db.Model):
    __tablename__ = 'answer'
    __table_args__ = (db.UniqueConstraint('usage_id', 'user_id', name='uq_answer_usage_user'),)
    id = db.Column(db.Integer, primary_key=True)
    usage_id = db.Column(db.Integer, db.ForeignKey('question_usage.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    text = db.Column(db.Text, nullable=False)
    normalized = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    points = db.Column(db.Integer, default=0, nullable=False)
    reviewed = db.Column(db.Boolean, default=False, nullable=False)
    answered_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    usage = db.relationship('QuestionUsage')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'usage_id': self.usage_id,
            'question_id': self.usage.question_id if self.usage else None,
            'competition_id': self.usage.competition_id if self.usage else None,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'avatar_key': self.user.avatar_key if self.user else None,
            'text': self.text,
            'is_correct': self.is_correct,
            'points': self.points,
            'reviewed': self.reviewed,
            'answered_at': _iso(self.answered_at),
            'reviewed_at': _iso(self.reviewed_at),
        }
