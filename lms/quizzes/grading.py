# lms/quizzes/grading.py
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from lms.quizzes.schemas import QuestionResult, QuizResult

NO_ANSWER = "No answer"
NO_CORRECT_ANSWER = "No correct answer"

def _first_answers(answers: Iterable[dict]) -> Dict[int, Optional[int]]:
    """Map question id to the first submitted choice id; later duplicates are ignored"""
    selected = {}
    for answer in answers or []:
        question_id = answer.get("question_id")
        if question_id is None or question_id in selected:
            continue
        selected[question_id] = answer.get("choice_id")
    return selected

def grade_answers(
    questions: List,
    choices_by_question: Dict[int, List],
    answers: Iterable[dict],
    passing_score: int,
    started_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None
) -> QuizResult:
    """Score a set of answers against the stored correct choices.

    `questions` and the choice lists must already be in display order. Each
    question has at most one correct choice; the first one by order is used.
    Unanswered questions count as incorrect.
    """
    selected = _first_answers(answers)

    total_points = 0
    earned_points = 0
    correct_answers = 0
    question_results = []

    for question in questions:
        choices = choices_by_question.get(question.id, [])
        points = question.points or 0
        total_points += points

        correct_choice = next((choice for choice in choices if choice.is_correct), None)
        selected_id = selected.get(question.id)
        selected_choice = next((choice for choice in choices if choice.id == selected_id), None)

        is_correct = (
            correct_choice is not None
            and selected_choice is not None
            and selected_choice.id == correct_choice.id
        )
        if is_correct:
            earned_points += points
            correct_answers += 1

        question_results.append(QuestionResult(
            question_id=question.id,
            question_text=question.question_text,
            selected_choice_id=selected_choice.id if selected_choice else None,
            correct_choice_id=correct_choice.id if correct_choice else None,
            selected_choice_text=selected_choice.choice_text if selected_choice else NO_ANSWER,
            correct_choice_text=correct_choice.choice_text if correct_choice else NO_CORRECT_ANSWER,
            is_correct=is_correct,
            points=points
        ))

    score = earned_points / total_points * 100 if total_points > 0 else 0.0
    # Pass/fail is decided on the exact score, the stored score is rounded
    passed = score >= passing_score

    duration = 0.0
    if started_at and completed_at:
        duration = max((completed_at - started_at).total_seconds(), 0.0)

    return QuizResult(
        score=round(score, 2),
        passed=passed,
        total_questions=len(questions),
        correct_answers=correct_answers,
        total_points=total_points,
        earned_points=earned_points,
        duration_seconds=duration,
        question_results=question_results
    )
