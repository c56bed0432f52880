# tests/test_grading.py
from datetime import datetime, timedelta
from types import SimpleNamespace

from lms.quizzes.grading import grade_answers, NO_ANSWER, NO_CORRECT_ANSWER

def _question(question_id, points=1):
    return SimpleNamespace(id=question_id, question_text=f"Q{question_id}", points=points)

def _choice(choice_id, text, is_correct=False):
    return SimpleNamespace(id=choice_id, choice_text=text, is_correct=is_correct)

QUESTIONS = [_question(1), _question(2)]
CHOICES = {
    1: [_choice(10, "Paris", True), _choice(11, "Rome")],
    2: [_choice(20, "4", True), _choice(21, "5")],
}

def test_all_correct_passes():
    result = grade_answers(
        QUESTIONS, CHOICES,
        [{"question_id": 1, "choice_id": 10}, {"question_id": 2, "choice_id": 20}],
        passing_score=70
    )

    assert result.score == 100
    assert result.passed is True
    assert result.correct_answers == 2
    assert result.earned_points == 2
    assert result.total_points == 2

def test_half_correct_fails_at_seventy():
    result = grade_answers(
        QUESTIONS, CHOICES,
        [{"question_id": 1, "choice_id": 10}, {"question_id": 2, "choice_id": 21}],
        passing_score=70
    )

    assert result.score == 50
    assert result.passed is False
    assert result.question_results[1].selected_choice_text == "5"
    assert result.question_results[1].correct_choice_text == "4"

def test_score_exactly_at_passing_score_passes():
    questions = [_question(i) for i in range(1, 11)]
    choices = {i: [_choice(i * 10, "right", True), _choice(i * 10 + 1, "wrong")] for i in range(1, 11)}
    answers = [{"question_id": i, "choice_id": i * 10 if i <= 7 else i * 10 + 1} for i in range(1, 11)]

    result = grade_answers(questions, choices, answers, passing_score=70)

    assert result.score == 70
    assert result.passed is True

def test_unanswered_question_counts_as_incorrect():
    result = grade_answers(QUESTIONS, CHOICES, [{"question_id": 1, "choice_id": 10}], passing_score=70)

    assert result.correct_answers == 1
    assert result.question_results[1].selected_choice_id is None
    assert result.question_results[1].selected_choice_text == NO_ANSWER
    assert result.question_results[1].is_correct is False

def test_first_answer_for_a_question_wins():
    result = grade_answers(
        QUESTIONS, CHOICES,
        [
            {"question_id": 1, "choice_id": 11},
            {"question_id": 1, "choice_id": 10},
            {"question_id": 2, "choice_id": 20},
        ],
        passing_score=70
    )

    assert result.question_results[0].selected_choice_id == 11
    assert result.question_results[0].is_correct is False
    assert result.score == 50

def test_choice_from_another_question_is_ignored():
    result = grade_answers(QUESTIONS, CHOICES, [{"question_id": 1, "choice_id": 20}], passing_score=70)

    assert result.question_results[0].selected_choice_id is None
    assert result.question_results[0].is_correct is False

def test_question_without_correct_choice_can_not_be_earned():
    choices = {1: [_choice(10, "a"), _choice(11, "b")], 2: CHOICES[2]}

    result = grade_answers(
        QUESTIONS, choices,
        [{"question_id": 1, "choice_id": 10}, {"question_id": 2, "choice_id": 20}],
        passing_score=50
    )

    assert result.question_results[0].correct_choice_text == NO_CORRECT_ANSWER
    assert result.earned_points == 1
    assert result.passed is True

def test_points_weight_the_score():
    questions = [_question(1, points=3), _question(2, points=1)]

    result = grade_answers(
        questions, CHOICES,
        [{"question_id": 1, "choice_id": 10}, {"question_id": 2, "choice_id": 21}],
        passing_score=70
    )

    assert result.score == 75
    assert result.passed is True

def test_score_is_rounded_but_pass_uses_exact_value():
    questions = [_question(i) for i in range(1, 4)]
    choices = {i: [_choice(i * 10, "right", True)] for i in range(1, 4)}
    answers = [{"question_id": 1, "choice_id": 10}, {"question_id": 2, "choice_id": 20}]

    result = grade_answers(questions, choices, answers, passing_score=67)

    assert result.score == 66.67
    assert result.passed is False

def test_quiz_without_points_scores_zero():
    result = grade_answers([], {}, [], passing_score=70)

    assert result.score == 0
    assert result.passed is False
    assert result.total_questions == 0

def test_duration_from_timestamps():
    started = datetime(2024, 1, 1, 10, 0, 0)
    result = grade_answers(QUESTIONS, CHOICES, [], 70, started, started + timedelta(seconds=95))

    assert result.duration_seconds == 95
