# lms/admin/router.py
from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from lms.database import get_db
from lms.deps import get_admin_user
from lms.accounts.models import User
from lms.accounts.service import UserService
from lms.accounts.schemas import UserBrief, RoleChange, StandardResponse
from lms.admin.service import AdminService
from lms.admin.schemas import AdminDashboard
from lms.courses.service import CourseService
from lms.courses.schemas import (
    Course, CourseCreate, CourseUpdate, Module, ModuleCreate, ModuleUpdate,
    Lesson, LessonCreate, LessonUpdate, Enrollment, EnrollmentStatus
)
from lms.quizzes.service import QuizService
from lms.quizzes.schemas import (
    Quiz, QuizCreate, QuizUpdate, Question, QuestionCreate, QuestionUpdate, QuestionWithChoices,
    AnswerChoice, AnswerChoiceCreate, AnswerChoiceUpdate
)
from lms.assignments.service import AssignmentService
from lms.assignments.schemas import (
    Assignment, AssignmentCreate, AssignmentUpdate, Submission, SubmissionReview
)
from lms.certificates.service import CertificateService
from lms.certificates.schemas import Certificate
from lms.payments.service import PaymentService
from lms.payments.schemas import Payment
from lms.utils.file_upload import save_course_thumbnail

router = APIRouter(dependencies=[Depends(get_admin_user)])

@router.get("/dashboard", response_model=AdminDashboard)
async def get_dashboard(db: AsyncSession = Depends(get_db)):
    return await AdminService.get_dashboard(db)

# =============================================================================
# USERS AND ENROLLMENTS
# =============================================================================

@router.get("/users", response_model=List[UserBrief])
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    return await UserService.list_users(db, skip=skip, limit=limit, search=search)

@router.put("/users/{user_id}/role", response_model=UserBrief)
async def change_user_role(
    user_id: int,
    role_data: RoleChange,
    db: AsyncSession = Depends(get_db)
):
    return await UserService.change_role(db, user_id, role_data.role.value)

@router.get("/enrollments", response_model=List[Enrollment])
async def list_enrollments(
    course_id: Optional[int] = None,
    status: Optional[EnrollmentStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    return await CourseService.list_enrollments(
        db,
        course_id=course_id,
        status=status.value if status else None,
        skip=skip,
        limit=limit
    )

@router.post("/enrollments/{enrollment_id}/approve", response_model=Enrollment)
async def approve_enrollment(
    enrollment_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Approve a pending enrollment without a gateway payment"""
    return await PaymentService.approve_enrollment(db, enrollment_id)

# =============================================================================
# COURSE CONTENT
# =============================================================================

@router.post("/courses", response_model=Course, status_code=201)
async def create_course(
    course_data: CourseCreate,
    db: AsyncSession = Depends(get_db)
):
    return await CourseService.create_course(db, course_data)

@router.put("/courses/{course_id}", response_model=Course)
async def update_course(
    course_id: int,
    course_data: CourseUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await CourseService.update_course(db, course_id, course_data)

@router.delete("/courses/{course_id}", response_model=StandardResponse)
async def delete_course(
    course_id: int,
    db: AsyncSession = Depends(get_db)
):
    await CourseService.delete_course(db, course_id)
    return StandardResponse(message="Course deleted")

@router.post("/courses/{course_id}/thumbnail", response_model=StandardResponse)
async def upload_course_thumbnail(
    course_id: int,
    thumbnail: UploadFile = File(...),
    db: AsyncSession = Depends(get_db)
):
    await CourseService.get_course(db, course_id)
    thumbnail_url = await save_course_thumbnail(thumbnail)
    await CourseService.update_course(db, course_id, CourseUpdate(thumbnail_url=thumbnail_url))

    return StandardResponse(
        message="Thumbnail uploaded successfully",
        data={"thumbnail_url": thumbnail_url}
    )

@router.post("/courses/{course_id}/modules", response_model=Module, status_code=201)
async def create_module(
    course_id: int,
    module_data: ModuleCreate,
    db: AsyncSession = Depends(get_db)
):
    return await CourseService.create_module(db, course_id, module_data)

@router.put("/modules/{module_id}", response_model=Module)
async def update_module(
    module_id: int,
    module_data: ModuleUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await CourseService.update_module(db, module_id, module_data)

@router.delete("/modules/{module_id}", response_model=StandardResponse)
async def delete_module(
    module_id: int,
    db: AsyncSession = Depends(get_db)
):
    await CourseService.delete_module(db, module_id)
    return StandardResponse(message="Module deleted")

@router.get("/modules/{module_id}/lessons", response_model=List[Lesson])
async def get_module_lessons(
    module_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Full lesson records, content included"""
    await CourseService.get_module(db, module_id)
    return await CourseService.get_module_lessons(db, module_id)

@router.post("/modules/{module_id}/lessons", response_model=Lesson, status_code=201)
async def create_lesson(
    module_id: int,
    lesson_data: LessonCreate,
    db: AsyncSession = Depends(get_db)
):
    return await CourseService.create_lesson(db, module_id, lesson_data)

@router.put("/lessons/{lesson_id}", response_model=Lesson)
async def update_lesson(
    lesson_id: int,
    lesson_data: LessonUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await CourseService.update_lesson(db, lesson_id, lesson_data)

@router.delete("/lessons/{lesson_id}", response_model=StandardResponse)
async def delete_lesson(
    lesson_id: int,
    db: AsyncSession = Depends(get_db)
):
    await CourseService.delete_lesson(db, lesson_id)
    return StandardResponse(message="Lesson deleted")

# =============================================================================
# QUIZZES
# =============================================================================

@router.post("/quizzes", response_model=Quiz, status_code=201)
async def create_quiz(
    quiz_data: QuizCreate,
    db: AsyncSession = Depends(get_db)
):
    return await QuizService.create_quiz(db, quiz_data)

@router.put("/quizzes/{quiz_id}", response_model=Quiz)
async def update_quiz(
    quiz_id: int,
    quiz_data: QuizUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await QuizService.update_quiz(db, quiz_id, quiz_data)

@router.delete("/quizzes/{quiz_id}", response_model=StandardResponse)
async def delete_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db)
):
    await QuizService.delete_quiz(db, quiz_id)
    return StandardResponse(message="Quiz deleted")

@router.get("/quizzes/{quiz_id}/questions", response_model=List[QuestionWithChoices])
async def get_quiz_questions(
    quiz_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Questions with their choices, correct answers included"""
    await QuizService.get_quiz(db, quiz_id)
    questions = await QuizService.get_quiz_questions(db, quiz_id)
    choices = await QuizService.get_choices_by_question(db, [question.id for question in questions])

    return [
        QuestionWithChoices(
            id=question.id,
            quiz_id=question.quiz_id,
            question_text=question.question_text,
            order=question.order,
            points=question.points,
            choices=[AnswerChoice.model_validate(choice) for choice in choices[question.id]]
        )
        for question in questions
    ]

@router.post("/quizzes/{quiz_id}/questions", response_model=Question, status_code=201)
async def create_question(
    quiz_id: int,
    question_data: QuestionCreate,
    db: AsyncSession = Depends(get_db)
):
    return await QuizService.create_question(db, quiz_id, question_data)

@router.put("/questions/{question_id}", response_model=Question)
async def update_question(
    question_id: int,
    question_data: QuestionUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await QuizService.update_question(db, question_id, question_data)

@router.delete("/questions/{question_id}", response_model=StandardResponse)
async def delete_question(
    question_id: int,
    db: AsyncSession = Depends(get_db)
):
    await QuizService.delete_question(db, question_id)
    return StandardResponse(message="Question deleted")

@router.post("/questions/{question_id}/choices", response_model=AnswerChoice, status_code=201)
async def create_choice(
    question_id: int,
    choice_data: AnswerChoiceCreate,
    db: AsyncSession = Depends(get_db)
):
    return await QuizService.create_choice(db, question_id, choice_data)

@router.put("/choices/{choice_id}", response_model=AnswerChoice)
async def update_choice(
    choice_id: int,
    choice_data: AnswerChoiceUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await QuizService.update_choice(db, choice_id, choice_data)

@router.delete("/choices/{choice_id}", response_model=StandardResponse)
async def delete_choice(
    choice_id: int,
    db: AsyncSession = Depends(get_db)
):
    await QuizService.delete_choice(db, choice_id)
    return StandardResponse(message="Answer choice deleted")

# =============================================================================
# ASSIGNMENTS
# =============================================================================

@router.post("/assignments", response_model=Assignment, status_code=201)
async def create_assignment(
    assignment_data: AssignmentCreate,
    db: AsyncSession = Depends(get_db)
):
    return await AssignmentService.create_assignment(db, assignment_data)

@router.put("/assignments/{assignment_id}", response_model=Assignment)
async def update_assignment(
    assignment_id: int,
    assignment_data: AssignmentUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await AssignmentService.update_assignment(db, assignment_id, assignment_data)

@router.delete("/assignments/{assignment_id}", response_model=StandardResponse)
async def delete_assignment(
    assignment_id: int,
    db: AsyncSession = Depends(get_db)
):
    await AssignmentService.delete_assignment(db, assignment_id)
    return StandardResponse(message="Assignment deleted")

@router.get("/assignments/{assignment_id}/submissions", response_model=List[Submission])
async def get_assignment_submissions(
    assignment_id: int,
    db: AsyncSession = Depends(get_db)
):
    await AssignmentService.get_assignment(db, assignment_id)
    return await AssignmentService.get_assignment_submissions(db, assignment_id)

@router.get("/submissions/pending", response_model=List[Submission])
async def get_pending_submissions(db: AsyncSession = Depends(get_db)):
    return await AssignmentService.get_pending_submissions(db)

@router.post("/submissions/{submission_id}/review", response_model=Submission)
async def review_submission(
    submission_id: int,
    review: SubmissionReview,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_admin_user)
):
    return await AssignmentService.review_submission(
        db,
        submission_id,
        status=review.status.value,
        feedback=review.feedback,
        reviewer_id=current_user.id,
        grade=review.grade
    )

# =============================================================================
# CERTIFICATES AND PAYMENTS
# =============================================================================

@router.get("/courses/{course_id}/certificates", response_model=List[Certificate])
async def get_course_certificates(
    course_id: int,
    db: AsyncSession = Depends(get_db)
):
    await CourseService.get_course(db, course_id)
    return await CertificateService.get_course_certificates(db, course_id)

@router.get("/courses/{course_id}/payments", response_model=List[Payment])
async def get_course_payments(
    course_id: int,
    db: AsyncSession = Depends(get_db)
):
    await CourseService.get_course(db, course_id)
    return await PaymentService.get_course_payments(db, course_id)
