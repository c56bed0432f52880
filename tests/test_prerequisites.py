# tests/test_prerequisites.py
from lms.accounts.models import UserRole
from lms.courses.models import EnrollmentStatus
from lms.courses.schemas import AccessReason
from lms.courses.prerequisites import PrerequisiteService
from lms.quizzes.models import QuizAttempt

async def _two_module_course(factory):
    course = await factory.course()
    m1 = await factory.module(course, 1)
    m2 = await factory.module(course, 2)
    lessons = {
        "1.1": await factory.lesson(m1, 1),
        "1.2": await factory.lesson(m1, 2),
        "2.1": await factory.lesson(m2, 1),
        "2.2": await factory.lesson(m2, 2),
    }
    return course, m1, m2, lessons

async def _attempt(db, user, quiz, score, number=1):
    attempt = QuizAttempt(
        user_id=user.id,
        quiz_id=quiz.id,
        attempt_number=number,
        score=score,
        passed=score >= quiz.passing_score
    )
    db.add(attempt)
    await db.commit()
    return attempt

async def test_missing_lesson_is_not_found(db, factory):
    user = await factory.user()

    result = await PrerequisiteService.check_lesson_access(db, user.id, 999)

    assert result.can_access is False
    assert result.reason == AccessReason.NOT_FOUND

async def test_not_enrolled_is_denied(db, factory):
    user = await factory.user()
    _, _, _, lessons = await _two_module_course(factory)

    result = await PrerequisiteService.check_lesson_access(db, user.id, lessons["1.1"].id)

    assert result.can_access is False
    assert result.reason == AccessReason.NOT_ENROLLED

async def test_pending_payment_is_denied(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    await factory.enrollment(user, course, status=EnrollmentStatus.PENDING_PAYMENT)

    result = await PrerequisiteService.check_lesson_access(db, user.id, lessons["1.1"].id)

    assert result.can_access is False
    assert result.reason == AccessReason.PAYMENT_PENDING

async def test_admin_bypasses_every_rule(db, factory):
    admin = await factory.user(role=UserRole.ADMIN)
    _, _, _, lessons = await _two_module_course(factory)

    result = await PrerequisiteService.check_lesson_access(db, admin.id, lessons["2.2"].id)

    assert result.can_access is True
    assert result.reason == AccessReason.ADMIN_OVERRIDE

async def test_first_lesson_of_first_module_is_open(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    await factory.enrollment(user, course)

    result = await PrerequisiteService.check_lesson_access(db, user.id, lessons["1.1"].id)

    assert result.can_access is True
    assert result.reason == AccessReason.ALLOWED

async def test_previous_lesson_must_be_completed(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    enrollment = await factory.enrollment(user, course)

    denied = await PrerequisiteService.check_lesson_access(db, user.id, lessons["1.2"].id)
    assert denied.can_access is False
    assert denied.reason == AccessReason.PREVIOUS_LESSON_INCOMPLETE
    assert denied.blocking_lesson_id == lessons["1.1"].id

    await factory.completed(enrollment, lessons["1.1"])

    allowed = await PrerequisiteService.check_lesson_access(db, user.id, lessons["1.2"].id)
    assert allowed.can_access is True

async def test_previous_module_must_be_completed(db, factory):
    user = await factory.user()
    course, _, m2, lessons = await _two_module_course(factory)
    enrollment = await factory.enrollment(user, course)
    await factory.completed(enrollment, lessons["1.1"])

    result = await PrerequisiteService.check_lesson_access(db, user.id, lessons["2.1"].id)

    assert result.can_access is False
    assert result.reason == AccessReason.PREVIOUS_MODULE_INCOMPLETE
    assert result.blocking_lesson_id == lessons["1.2"].id
    assert await PrerequisiteService.can_access_module(db, user.id, m2.id) is False

    await factory.completed(enrollment, lessons["1.2"])

    assert await PrerequisiteService.can_access_lesson(db, user.id, lessons["2.1"].id) is True
    assert await PrerequisiteService.can_access_module(db, user.id, m2.id) is True

async def test_required_quiz_gates_next_lesson(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    enrollment = await factory.enrollment(user, course)
    quiz = await factory.quiz(lessons["1.1"], required_to_unlock=True, passing_score=70)
    await factory.completed(enrollment, lessons["1.1"])

    no_attempt = await PrerequisiteService.check_lesson_access(db, user.id, lessons["1.2"].id)
    assert no_attempt.reason == AccessReason.REQUIRED_QUIZ_NOT_PASSED

    await _attempt(db, user, quiz, 50, number=1)
    failed = await PrerequisiteService.check_lesson_access(db, user.id, lessons["1.2"].id)
    assert failed.can_access is False
    assert failed.reason == AccessReason.REQUIRED_QUIZ_NOT_PASSED

    await _attempt(db, user, quiz, 80, number=2)
    passed = await PrerequisiteService.check_lesson_access(db, user.id, lessons["1.2"].id)
    assert passed.can_access is True

async def test_optional_quiz_does_not_gate(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    enrollment = await factory.enrollment(user, course)
    await factory.quiz(lessons["1.1"], required_to_unlock=False)
    await factory.completed(enrollment, lessons["1.1"])

    assert await PrerequisiteService.can_access_lesson(db, user.id, lessons["1.2"].id) is True

async def test_inactive_required_quiz_does_not_gate(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    enrollment = await factory.enrollment(user, course)
    await factory.quiz(lessons["1.1"], required_to_unlock=True, is_active=False)
    await factory.completed(enrollment, lessons["1.1"])

    assert await PrerequisiteService.can_access_lesson(db, user.id, lessons["1.2"].id) is True

async def test_order_gaps_use_nearest_lower_lesson(db, factory):
    user = await factory.user()
    course = await factory.course()
    module = await factory.module(course, 1)
    first = await factory.lesson(module, 1)
    third = await factory.lesson(module, 3)
    enrollment = await factory.enrollment(user, course)

    denied = await PrerequisiteService.check_lesson_access(db, user.id, third.id)
    assert denied.blocking_lesson_id == first.id

    await factory.completed(enrollment, first)
    assert await PrerequisiteService.can_access_lesson(db, user.id, third.id) is True

async def test_completed_enrollment_keeps_access(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    await factory.enrollment(user, course, status=EnrollmentStatus.COMPLETED)

    assert await PrerequisiteService.can_access_course(db, user.id, course.id) is True
    assert await PrerequisiteService.can_access_lesson(db, user.id, lessons["1.1"].id) is True

async def test_next_unlocked_lesson_walks_course_order(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    enrollment = await factory.enrollment(user, course)

    first = await PrerequisiteService.get_next_unlocked_lesson(db, user.id, course.id)
    assert first.id == lessons["1.1"].id

    await factory.completed(enrollment, lessons["1.1"])
    await factory.completed(enrollment, lessons["1.2"])

    nxt = await PrerequisiteService.get_next_unlocked_lesson(db, user.id, course.id)
    assert nxt.id == lessons["2.1"].id

async def test_next_unlocked_lesson_is_none_when_blocked_by_quiz(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    enrollment = await factory.enrollment(user, course)
    await factory.quiz(lessons["1.1"], required_to_unlock=True)
    await factory.completed(enrollment, lessons["1.1"])

    assert await PrerequisiteService.get_next_unlocked_lesson(db, user.id, course.id) is None

async def test_is_next_unit_unlocked_crosses_modules(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    enrollment = await factory.enrollment(user, course)
    await factory.completed(enrollment, lessons["1.1"])

    assert await PrerequisiteService.is_next_unit_unlocked(db, user.id, lessons["1.1"].id) is True
    assert await PrerequisiteService.is_next_unit_unlocked(db, user.id, lessons["1.2"].id) is False

    await factory.completed(enrollment, lessons["1.2"])
    assert await PrerequisiteService.is_next_unit_unlocked(db, user.id, lessons["1.2"].id) is True

async def test_accessible_lessons_and_missing_prerequisites(db, factory):
    user = await factory.user()
    course, m1, _, lessons = await _two_module_course(factory)
    await factory.enrollment(user, course)

    accessible = await PrerequisiteService.get_accessible_lessons(db, user.id, m1.id)
    missing = await PrerequisiteService.get_missing_prerequisites(db, user.id, lessons["1.2"].id)

    assert [lesson.id for lesson in accessible] == [lessons["1.1"].id]
    assert [lesson.id for lesson in missing] == [lessons["1.1"].id]

async def test_quiz_and_assignment_gates(db, factory):
    user = await factory.user()
    course, _, _, lessons = await _two_module_course(factory)
    await factory.enrollment(user, course)
    open_quiz = await factory.quiz(lessons["1.1"], required_to_unlock=False)
    locked_assignment = await factory.assignment(lessons["1.2"])
    loose_quiz = await factory.quiz(None, required_to_unlock=False)
    inactive_assignment = await factory.assignment(None, is_active=False)

    assert await PrerequisiteService.can_take_quiz(db, user.id, open_quiz.id) is True
    assert await PrerequisiteService.can_take_quiz(db, user.id, loose_quiz.id) is True
    assert await PrerequisiteService.can_take_quiz(db, user.id, 999) is False
    assert await PrerequisiteService.can_submit_assignment(db, user.id, locked_assignment.id) is False
    assert await PrerequisiteService.can_submit_assignment(db, user.id, inactive_assignment.id) is False

async def test_enrollment_status(db, factory):
    user = await factory.user()
    course = await factory.course()

    assert await PrerequisiteService.get_enrollment_status(db, user.id, course.id) is None

    await factory.enrollment(user, course, status=EnrollmentStatus.PENDING_PAYMENT)
    assert await PrerequisiteService.get_enrollment_status(db, user.id, course.id) == EnrollmentStatus.PENDING_PAYMENT
