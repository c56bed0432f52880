# tests/test_certificates.py
import pytest
from sqlalchemy import select, func

from lms.courses.models import EnrollmentStatus
from lms.certificates.models import Certificate
from lms.certificates.service import CertificateService
from lms.assignments.models import AssignmentSubmission, SubmissionStatus
from lms.quizzes.models import QuizAttempt
from lms.exceptions import InvalidStateError

async def _finished_course(factory, lessons=2):
    """Student who has completed every lesson of a course"""
    user = await factory.user(full_name="Aye Aye")
    course = await factory.course(title_en="Data Science")
    module = await factory.module(course, 1)
    enrollment = await factory.enrollment(user, course, status=EnrollmentStatus.COMPLETED)
    created = []
    for order in range(1, lessons + 1):
        lesson = await factory.lesson(module, order)
        await factory.completed(enrollment, lesson)
        created.append(lesson)
    return user, course, created

async def _count(db, user, course):
    result = await db.execute(
        select(func.count(Certificate.id)).where(
            Certificate.user_id == user.id,
            Certificate.course_id == course.id
        )
    )
    return result.scalar()

async def test_generate_certificate_is_idempotent(db, factory):
    user, course, _ = await _finished_course(factory)

    first = await CertificateService.generate_certificate(db, user.id, course.id)
    second = await CertificateService.generate_certificate(db, user.id, course.id)

    assert first.id == second.id
    assert first.certificate_code.startswith("CERT-")
    assert len(first.certificate_code.split("-")[-1]) == 8
    assert await _count(db, user, course) == 1

async def test_final_grade_without_quizzes_is_full(db, factory):
    user, course, _ = await _finished_course(factory)

    certificate = await CertificateService.generate_certificate(db, user.id, course.id)

    assert certificate.final_grade == 100

async def test_final_grade_blends_best_quiz_scores(db, factory):
    user, course, lessons = await _finished_course(factory)
    quiz = await factory.quiz(lessons[0], required_to_unlock=False)
    db.add_all([
        QuizAttempt(user_id=user.id, quiz_id=quiz.id, attempt_number=1, score=70, passed=True),
        QuizAttempt(user_id=user.id, quiz_id=quiz.id, attempt_number=2, score=90, passed=True),
    ])
    await db.commit()

    grade = await CertificateService.calculate_final_grade(db, user.id, course.id)

    # 100 * 0.7 + 90 * 0.3
    assert grade == 97

async def test_incomplete_course_is_not_eligible(db, factory):
    user = await factory.user()
    course = await factory.course()
    module = await factory.module(course, 1)
    await factory.lesson(module, 1)
    await factory.enrollment(user, course)

    assert await CertificateService.is_eligible_for_certificate(db, user.id, course.id) is False
    with pytest.raises(InvalidStateError):
        await CertificateService.generate_certificate(db, user.id, course.id)

async def test_required_quiz_must_be_passed(db, factory):
    user, course, lessons = await _finished_course(factory)
    quiz = await factory.quiz(lessons[0], required_to_unlock=True)

    assert await CertificateService.is_eligible_for_certificate(db, user.id, course.id) is False

    db.add(QuizAttempt(user_id=user.id, quiz_id=quiz.id, attempt_number=1, score=100, passed=True))
    await db.commit()

    assert await CertificateService.is_eligible_for_certificate(db, user.id, course.id) is True

async def test_required_assignment_must_be_passed(db, factory):
    user, course, lessons = await _finished_course(factory)
    assignment = await factory.assignment(lessons[1])
    submission = AssignmentSubmission(
        assignment_id=assignment.id,
        user_id=user.id,
        file_url="/static/uploads/assignments/work.pdf",
        status=SubmissionStatus.PENDING
    )
    db.add(submission)
    await db.commit()

    assert await CertificateService.is_eligible_for_certificate(db, user.id, course.id) is False

    submission.status = SubmissionStatus.PASSED
    await db.commit()

    assert await CertificateService.is_eligible_for_certificate(db, user.id, course.id) is True

async def test_code_collision_is_retried(db, factory, monkeypatch):
    user, course, _ = await _finished_course(factory)
    other_user, other_course, _ = await _finished_course(factory)
    taken = await CertificateService.generate_certificate(db, other_user.id, other_course.id)

    codes = iter([taken.certificate_code, "CERT-20240101-ABCDEF12"])
    monkeypatch.setattr(CertificateService, "generate_certificate_code", staticmethod(lambda now=None: next(codes)))

    certificate = await CertificateService.generate_certificate(db, user.id, course.id)

    assert certificate.certificate_code == "CERT-20240101-ABCDEF12"

async def test_code_collisions_give_up_after_retries(db, factory, monkeypatch):
    user, course, _ = await _finished_course(factory)
    other_user, other_course, _ = await _finished_course(factory)
    taken = await CertificateService.generate_certificate(db, other_user.id, other_course.id)
    taken_code = taken.certificate_code

    monkeypatch.setattr(CertificateService, "generate_certificate_code", staticmethod(lambda now=None: taken_code))

    with pytest.raises(InvalidStateError):
        await CertificateService.generate_certificate(db, user.id, course.id)

async def test_verify_certificate(db, factory):
    user, course, _ = await _finished_course(factory)
    certificate = await CertificateService.generate_certificate(db, user.id, course.id)

    valid = await CertificateService.verify_certificate(db, certificate.certificate_code)
    invalid = await CertificateService.verify_certificate(db, "CERT-00000000-00000000")

    assert valid.valid is True
    assert valid.student_name == "Aye Aye"
    assert valid.course_title == "Data Science"
    assert invalid.valid is False

async def test_eligibility_summary(db, factory):
    user, course, _ = await _finished_course(factory)

    before = await CertificateService.get_eligibility(db, user.id, course.id)
    await CertificateService.generate_certificate(db, user.id, course.id)
    after = await CertificateService.get_eligibility(db, user.id, course.id)

    assert before.eligible is True
    assert before.has_certificate is False
    assert before.progress_percentage == 100
    assert after.has_certificate is True

async def test_render_pdf(db, factory):
    user, course, _ = await _finished_course(factory)
    certificate = await CertificateService.generate_certificate(db, user.id, course.id)

    pdf = await CertificateService.render_pdf(db, certificate)

    assert pdf.startswith(b"%PDF")
