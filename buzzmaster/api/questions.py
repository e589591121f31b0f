from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from buzzmaster.auth import admin_required
from buzzmaster.realtime import get_publisher
from buzzmaster.services import questions as svc
from buzzmaster.services.rewards import parse_reward


questions = Blueprint('questions', __name__)


@questions.route('/create', methods=['POST'])
@admin_required
def create():
    data = request.get_json(silent=True) or {}
    question = svc.create_question(
        text=data.get('text'),
        type=data.get('type') or 'freetext',
        correct_answer=data.get('correct_answer'),
        options=data.get('options'),
        points=data.get('points'),
        scoring_type=data.get('scoring_type'),
        image_url=data.get('image_url'),
    )
    return jsonify({'question': question.to_dict()}), 201


@questions.route('/send', methods=['POST'])
@admin_required
def send():
    data = request.get_json(silent=True) or {}
    usage = svc.send_question(
        get_publisher(),
        data.get('question_id'),
        data.get('competition_id'),
        reward=parse_reward(data.get('trophy_id')),
    )
    return jsonify({'question': usage.question.to_dict(), 'usage': usage.to_dict()})


@questions.route('/answer', methods=['POST'])
@login_required
def answer():
    data = request.get_json(silent=True) or {}
    submitted = svc.submit_answer(
        get_publisher(),
        current_user,
        data.get('question_id'),
        data.get('competition_id'),
        data.get('answer'),
    )
    return jsonify({'answer': submitted.to_dict()}), 201


@questions.route('/grade', methods=['POST'])
@admin_required
def grade():
    data = request.get_json(silent=True) or {}
    graded = svc.grade_answer(get_publisher(), data.get('answer_id'), data.get('is_correct'), data.get('points'))
    return jsonify({'answer': graded.to_dict()})


@questions.route('/evaluate', methods=['POST'])
@admin_required
def evaluate():
    data = request.get_json(silent=True) or {}
    result = svc.evaluate_question(get_publisher(), data.get('question_id'), data.get('competition_id'))
    return jsonify({'success': True, **result})


@questions.route('/list', methods=['GET'])
@admin_required
def list_questions():
    listed = svc.list_questions(competition_id=request.args.get('competition_id', type=int))
    return jsonify({'questions': listed})
