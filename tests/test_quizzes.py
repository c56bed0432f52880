# tests/test_quizzes.py
import pytest

from lms.quizzes.service import QuizService
from lms.quizzes.schemas import QuizAnswer, QuestionCreate, AnswerChoiceCreate, AnswerChoiceUpdate
from lms.exceptions import AccessDeniedError, InvalidStateError, NotFoundError

async def _answers(db, quiz, correct: int):
    """Answer the first `correct` questions right and the rest wrong"""
    questions = await QuizService.get_quiz_questions(db, quiz.id)
    choices = await QuizService.get_choices_by_question(db, [question.id for question in questions])
    answers = []
    for index, question in enumerate(questions):
        want_correct = index < correct
        choice = next(c for c in choices[question.id] if c.is_correct == want_correct)
        answers.append(QuizAnswer(question_id=question.id, choice_id=choice.id))
    return answers

async def _setup(factory, **quiz_kwargs):
    user = await factory.user()
    course = await factory.course()
    module = await factory.module(course, 1)
    first = await factory.lesson(module, 1)
    second = await factory.lesson(module, 2)
    enrollment = await factory.enrollment(user, course)
    quiz = await factory.quiz(first, **quiz_kwargs)
    return user, enrollment, first, second, quiz

async def test_attempts_are_numbered_sequentially(db, factory):
    user, _, _, _, quiz = await _setup(factory)

    first = await QuizService.start_attempt(db, user.id, quiz.id)
    second = await QuizService.start_attempt(db, user.id, quiz.id)

    assert first.attempt_number == 1
    assert second.attempt_number == 2
    assert await QuizService.get_remaining_attempts(db, user.id, quiz.id) == 1

async def test_attempt_limit_is_enforced(db, factory):
    user, _, _, _, quiz = await _setup(factory, max_attempts=1)
    await QuizService.start_attempt(db, user.id, quiz.id)

    with pytest.raises(InvalidStateError):
        await QuizService.start_attempt(db, user.id, quiz.id)
    assert await QuizService.can_user_take_quiz(db, user.id, quiz.id) is False

async def test_inactive_quiz_can_not_be_started(db, factory):
    user, _, _, _, quiz = await _setup(factory, is_active=False)

    with pytest.raises(InvalidStateError):
        await QuizService.start_attempt(db, user.id, quiz.id)

async def test_locked_lesson_quiz_is_denied(db, factory):
    user, _, _, second, _ = await _setup(factory)
    locked_quiz = await factory.quiz(second)

    with pytest.raises(AccessDeniedError) as exc_info:
        await QuizService.start_attempt(db, user.id, locked_quiz.id)
    assert exc_info.value.reason == "previous_lesson_incomplete"

async def test_submit_grades_and_records_attempt(db, factory):
    user, _, _, _, quiz = await _setup(factory, questions=4)
    attempt = await QuizService.start_attempt(db, user.id, quiz.id)

    result = await QuizService.submit_attempt(db, attempt.id, await _answers(db, quiz, 3), user_id=user.id)

    assert result.score == 75
    assert result.passed is True
    assert result.attempt_id == attempt.id
    stored = await QuizService.get_attempt(db, attempt.id)
    assert stored.completed_at is not None
    assert stored.score == 75
    assert len(stored.user_answers) == 4
    assert await QuizService.is_quiz_passed(db, user.id, quiz.id) is True

async def test_latest_attempt_is_the_newest(db, factory):
    user, _, _, _, quiz = await _setup(factory)
    assert await QuizService.get_latest_attempt(db, user.id, quiz.id) is None

    await QuizService.start_attempt(db, user.id, quiz.id)
    second = await QuizService.start_attempt(db, user.id, quiz.id)

    latest = await QuizService.get_latest_attempt(db, user.id, quiz.id)
    assert latest.id == second.id
    assert latest.attempt_number == 2

async def test_double_submit_is_rejected(db, factory):
    user, _, _, _, quiz = await _setup(factory)
    attempt = await QuizService.start_attempt(db, user.id, quiz.id)
    await QuizService.submit_attempt(db, attempt.id, await _answers(db, quiz, 2))

    with pytest.raises(InvalidStateError):
        await QuizService.submit_attempt(db, attempt.id, await _answers(db, quiz, 0))

    stored = await QuizService.get_attempt(db, attempt.id)
    assert stored.score == 100

async def test_other_users_attempt_is_hidden(db, factory):
    user, _, _, _, quiz = await _setup(factory)
    other = await factory.user()
    attempt = await QuizService.start_attempt(db, user.id, quiz.id)

    with pytest.raises(NotFoundError):
        await QuizService.submit_attempt(db, attempt.id, [], user_id=other.id)

async def test_failing_then_passing_unlocks_next_lesson(db, factory):
    from lms.courses.prerequisites import PrerequisiteService, AccessReason

    user, enrollment, first, second, quiz = await _setup(factory, questions=10, passing_score=70)
    await factory.completed(enrollment, first)

    attempt = await QuizService.start_attempt(db, user.id, quiz.id)
    failed = await QuizService.submit_attempt(db, attempt.id, await _answers(db, quiz, 5))
    assert failed.score == 50
    assert failed.passed is False
    access = await PrerequisiteService.check_lesson_access(db, user.id, second.id)
    assert access.can_access is False
    assert access.reason == AccessReason.REQUIRED_QUIZ_NOT_PASSED

    attempt = await QuizService.start_attempt(db, user.id, quiz.id)
    passed = await QuizService.submit_attempt(db, attempt.id, await _answers(db, quiz, 8))
    assert passed.score == 80
    assert passed.passed is True
    access = await PrerequisiteService.check_lesson_access(db, user.id, second.id)
    assert access.can_access is True
    assert access.reason == AccessReason.ALLOWED

async def test_regrading_stored_answers_matches_submission(db, factory):
    user, _, _, _, quiz = await _setup(factory, questions=3)
    attempt = await QuizService.start_attempt(db, user.id, quiz.id)
    submitted = await QuizService.submit_attempt(db, attempt.id, await _answers(db, quiz, 2))

    regraded = await QuizService.calculate_quiz_score(db, attempt.id)

    assert regraded.score == submitted.score
    assert regraded.correct_answers == 2

async def test_take_view_hides_correct_flags(db, factory):
    user, _, _, _, quiz = await _setup(factory)

    view = await QuizService.get_quiz_for_taking(db, quiz.id, user.id)

    assert view.remaining_attempts == 3
    assert len(view.questions) == 2
    assert "is_correct" not in view.questions[0].choices[0].model_dump()

async def test_question_may_have_only_one_correct_choice(db, factory):
    quiz = await factory.quiz(None, questions=0)

    with pytest.raises(InvalidStateError):
        await QuizService.create_question(db, quiz.id, QuestionCreate(
            question_text="Pick one",
            choices=[
                AnswerChoiceCreate(choice_text="a", is_correct=True),
                AnswerChoiceCreate(choice_text="b", is_correct=True),
            ]
        ))

    question = await QuizService.create_question(db, quiz.id, QuestionCreate(
        question_text="Pick one",
        choices=[
            AnswerChoiceCreate(choice_text="a", is_correct=True, order=1),
            AnswerChoiceCreate(choice_text="b", order=2),
        ]
    ))
    choices = await QuizService.get_choices_by_question(db, [question.id])
    wrong = next(c for c in choices[question.id] if not c.is_correct)

    with pytest.raises(InvalidStateError):
        await QuizService.update_choice(db, wrong.id, AnswerChoiceUpdate(is_correct=True))

async def test_create_quiz_rejects_second_quiz_on_lesson(db, factory):
    from lms.quizzes.schemas import QuizCreate

    _, _, first, _, _ = await _setup(factory)

    with pytest.raises(InvalidStateError):
        await QuizService.create_quiz(db, QuizCreate(title="Another", lesson_id=first.id))
