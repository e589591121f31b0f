"""Quiz questions sent to a competition.

Multiple choice answers are checked the moment they arrive but only scored
when the host evaluates the question. Free text answers wait for the host to
grade them one by one. Either way the earliest correct answer takes the
reward bound to the question.
"""
import json

from flask import current_app
from sqlalchemy.exc import IntegrityError

from buzzmaster import db
from buzzmaster.errors import ValidationError, ForbiddenError, NotFoundError, ConflictError
from buzzmaster.models import Answer, Competition, Question, QuestionUsage, RoomMembership, utcnow
from buzzmaster.services.scoring import adjust_score
from buzzmaster.services.rewards import (
    ensure_reward_exists, reward_columns, reward_from_columns, grant_reward_once, announce_reward,
)

QUESTION_TYPES = ('multiple_choice', 'freetext')
SCORING_TYPES = ('first_only', 'descending', 'all_equal')


def normalize_answer(text):
    return ' '.join(str(text).split()).lower()


def question_points(scoring_type, base_points, position):
    """Points for the correct answer at ``position`` (0 is the earliest)."""
    if scoring_type == 'first_only':
        return base_points if position == 0 else 0
    if scoring_type == 'descending':
        return max(1, base_points - position)
    return base_points


def _whole_number(value, field, minimum):
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValidationError(f'{field} must be a whole number of at least {minimum}')
    return value


def create_question(text, type='freetext', correct_answer=None, options=None, points=None,
                    scoring_type=None, image_url=None) -> Question:
    text = (text or '').strip() if isinstance(text, str) else ''
    correct_answer = (correct_answer or '').strip() if isinstance(correct_answer, str) else ''
    if not text or not type or not correct_answer:
        raise ValidationError('Missing required fields')
    if type not in QUESTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(QUESTION_TYPES)}")
    scoring_type = scoring_type or 'all_equal'
    if scoring_type not in SCORING_TYPES:
        raise ValidationError(f"scoring_type must be one of: {', '.join(SCORING_TYPES)}")
    points = 1 if points is None else _whole_number(points, 'points', 1)

    if type == 'multiple_choice':
        if not isinstance(options, list) or len(options) < 2:
            raise ValidationError('Multiple choice questions must have at least 2 options')
        options = [str(o).strip() for o in options]
        if normalize_answer(correct_answer) not in {normalize_answer(o) for o in options}:
            raise ValidationError('correct_answer must be one of the options')
    else:
        options = None

    question = Question(
        text=text,
        type=type,
        image_url=image_url or None,
        options=json.dumps(options) if options else None,
        correct_answer=correct_answer,
        points=points,
        scoring_type=scoring_type,
    )
    db.session.add(question)
    db.session.commit()
    current_app.logger.info(f"[question] created question={question.id} type={type} scoring={scoring_type}")
    return question


def send_question(publisher, question_id, competition_id, reward=None) -> QuestionUsage:
    if not question_id or not competition_id:
        raise ValidationError('question_id and competition_id are required')
    question = db.session.get(Question, question_id)
    if not question:
        raise NotFoundError('Question not found')
    competition = db.session.get(Competition, competition_id)
    if not competition:
        raise NotFoundError('Competition not found')
    ensure_reward_exists(reward)
    if QuestionUsage.query.filter_by(question_id=question.id, competition_id=competition.id).first():
        raise ConflictError('Question already sent to this competition')

    trophy_id, player_trophy_id = reward_columns(reward)
    usage = QuestionUsage(
        question_id=question.id,
        competition_id=competition.id,
        status='active',
        sent_at=utcnow(),
        trophy_id=trophy_id,
        player_trophy_id=player_trophy_id,
    )
    db.session.add(usage)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Question already sent to this competition')
    current_app.logger.info(f"[question-send] question={question.id} competition={competition.id} usage={usage.id}")

    publisher.publish_to_room(competition.room_id, 'question:sent', {
        'question': question.to_dict(include_answer=False),
        'competition_id': competition.id,
        'usage_id': usage.id,
    })
    return usage


def submit_answer(publisher, user, question_id, competition_id, text) -> Answer:
    text = text.strip() if isinstance(text, str) else ''
    if not question_id or not competition_id or not text:
        raise ValidationError('question_id, competition_id and answer are required')
    question = db.session.get(Question, question_id)
    if not question:
        raise NotFoundError('Question not found')
    usage = QuestionUsage.query.filter_by(question_id=question.id, competition_id=competition_id).first()
    if not usage:
        raise NotFoundError('Question not sent to this competition')
    if usage.status != 'active':
        raise ValidationError('Question is not active')
    room_id = usage.room_id
    if not RoomMembership.query.filter_by(room_id=room_id, user_id=user.id).first():
        raise ForbiddenError('Not a member of this room')
    if Answer.query.filter_by(usage_id=usage.id, user_id=user.id).first():
        raise ConflictError('Already answered this question')

    normalized = normalize_answer(text)
    answer = Answer(
        usage_id=usage.id,
        user_id=user.id,
        text=text,
        normalized=normalized,
        is_correct=question.type == 'multiple_choice' and normalized == normalize_answer(question.correct_answer),
        answered_at=utcnow(),
    )
    db.session.add(answer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Already answered this question')
    current_app.logger.info(f"[answer] usage={usage.id} user={user.id} correct={answer.is_correct}")

    publisher.publish_to_room(room_id, 'question:answered', {
        'question_id': question.id,
        'competition_id': usage.competition_id,
        'user_id': user.id,
        'username': user.username,
        'answered_at': answer.to_dict()['answered_at'],
    })
    return answer


def grade_answer(publisher, answer_id, is_correct, points=None) -> Answer:
    """Host's verdict on a free text answer. An answer is graded at most once."""
    if not answer_id or not isinstance(is_correct, bool):
        raise ValidationError('answer_id and is_correct (true or false) are required')
    answer = Answer.query.filter_by(id=answer_id).with_for_update().first()
    if not answer:
        raise NotFoundError('Answer not found')
    question = answer.usage.question
    if question.type == 'multiple_choice':
        raise ValidationError('Multiple choice answers are scored when the question is evaluated')
    if answer.reviewed:
        raise ConflictError('Answer already graded')

    if not is_correct:
        awarded = 0
    elif points is None:
        awarded = question.points
    else:
        awarded = _whole_number(points, 'points', 0)

    answer.is_correct = is_correct
    answer.points = awarded
    answer.reviewed = True
    answer.reviewed_at = utcnow()
    if awarded:
        adjust_score(answer.user_id, awarded)
    db.session.commit()
    current_app.logger.info(f"[grade] answer={answer.id} correct={is_correct} points={awarded}")

    if awarded:
        publisher.publish('scores:updated', {})
    return answer


def evaluate_question(publisher, question_id, competition_id=None) -> dict:
    """Close a question: score multiple choice answers and hand out the reward."""
    if not question_id:
        raise ValidationError('question_id is required')
    query = QuestionUsage.query.filter_by(question_id=question_id, status='active')
    if competition_id:
        query = query.filter_by(competition_id=competition_id)
    usage = query.order_by(QuestionUsage.sent_at.desc(), QuestionUsage.id.desc()).with_for_update().first()
    if not usage:
        raise NotFoundError('Question is not active in any competition')
    question = usage.question

    answers = (
        Answer.query.filter_by(usage_id=usage.id)
        .order_by(Answer.answered_at.asc(), Answer.id.asc())
        .all()
    )
    now = utcnow()
    if question.type == 'multiple_choice':
        position = 0
        for answer in answers:
            answer.points = 0
            if answer.is_correct:
                answer.points = question_points(question.scoring_type, question.points, position)
                position += 1
                if answer.points:
                    adjust_score(answer.user_id, answer.points)
            answer.reviewed = True
            answer.reviewed_at = now
    else:
        # Nobody graded these in time
        for answer in answers:
            if not answer.reviewed:
                answer.is_correct = False
                answer.points = 0
                answer.reviewed = True
                answer.reviewed_at = now

    first_correct = next((a for a in answers if a.is_correct), None)
    award = None
    reward = reward_from_columns(usage.trophy_id, usage.player_trophy_id)
    if first_correct is not None and reward is not None:
        award = grant_reward_once(first_correct.user, reward, 'question', usage.id)
    usage.status = 'completed'
    usage.completed_at = now
    db.session.commit()
    winner_id = first_correct.user_id if first_correct else None
    current_app.logger.info(
        f"[question-evaluate] usage={usage.id} answers={len(answers)} winner={winner_id}"
    )

    room_id = usage.room_id
    announce_reward(publisher, award, room_id)
    publisher.publish_to_room(room_id, 'question:completed', {
        'question_id': question.id,
        'competition_id': usage.competition_id,
        'winner_id': winner_id,
    })
    publisher.publish('scores:updated', {})
    return {
        'usage': usage.to_dict(),
        'answers': [a.to_dict() for a in answers],
        'winner_id': winner_id,
    }


def list_questions(competition_id=None):
    questions = Question.query.order_by(Question.created_at.desc(), Question.id.desc()).all()
    if not competition_id:
        counts = dict(
            db.session.query(QuestionUsage.question_id, db.func.count(QuestionUsage.id))
            .group_by(QuestionUsage.question_id)
            .all()
        )
        return [{**q.to_dict(), 'usage_count': counts.get(q.id, 0)} for q in questions]

    usages = {u.question_id: u for u in QuestionUsage.query.filter_by(competition_id=competition_id)}
    listed = []
    for q in questions:
        usage = usages.get(q.id)
        answers = []
        if usage:
            answers = (
                Answer.query.filter_by(usage_id=usage.id)
                .order_by(Answer.answered_at.asc(), Answer.id.asc())
                .all()
            )
        listed.append({
            **q.to_dict(),
            'status': usage.status if usage else 'draft',
            'sent_at': usage.to_dict()['sent_at'] if usage else None,
            'completed_at': usage.to_dict()['completed_at'] if usage else None,
            'answers': [a.to_dict() for a in answers],
        })
    return listed
