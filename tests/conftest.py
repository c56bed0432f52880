# tests/conftest.py
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lms.database import create_tables, get_db
from lms.main import app
from lms.accounts.models import User, UserRole
from lms.courses.models import Course, Module, Lesson, Enrollment, LessonProgress, EnrollmentStatus, LessonType
from lms.quizzes.models import Quiz, Question, AnswerChoice
from lms.assignments.models import Assignment
from lms.utils.security import get_password_hash, create_access_token

PASSWORD = "password123"

class Factory:
    """Inserts rows directly so tests can arrange state without the API"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._counter = 0

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def user(self, role: str = UserRole.STUDENT, email: str = None, **kwargs) -> User:
        self._counter += 1
        return await self._save(User(
            email=email or f"user{self._counter}@example.com",
            full_name=kwargs.pop("full_name", f"User {self._counter}"),
            hashed_password=get_password_hash(PASSWORD),
            role=role,
            **kwargs
        ))

    async def course(self, price: Decimal = Decimal("10000"), is_published: bool = True, **kwargs) -> Course:
        return await self._save(Course(
            title_en=kwargs.pop("title_en", "Python Basics"),
            price=price,
            is_published=is_published,
            **kwargs
        ))

    async def module(self, course: Course, order: int, **kwargs) -> Module:
        return await self._save(Module(
            course_id=course.id,
            title_en=kwargs.pop("title_en", f"Module {order}"),
            order=order,
            **kwargs
        ))

    async def lesson(self, module: Module, order: int, lesson_type: str = LessonType.TEXT, **kwargs) -> Lesson:
        return await self._save(Lesson(
            module_id=module.id,
            title_en=kwargs.pop("title_en", f"Lesson {module.order}.{order}"),
            order=order,
            lesson_type=lesson_type,
            **kwargs
        ))

    async def enrollment(self, user: User, course: Course, status: str = EnrollmentStatus.APPROVED) -> Enrollment:
        return await self._save(Enrollment(user_id=user.id, course_id=course.id, status=status))

    async def completed(self, enrollment: Enrollment, lesson: Lesson) -> LessonProgress:
        return await self._save(LessonProgress(
            enrollment_id=enrollment.id,
            lesson_id=lesson.id,
            is_completed=True
        ))

    async def quiz(
        self,
        lesson: Lesson = None,
        questions: int = 2,
        required_to_unlock: bool = True,
        passing_score: int = 70,
        max_attempts: int = 3,
        **kwargs
    ) -> Quiz:
        """Quiz whose questions each have a correct first choice and a wrong second one"""
        quiz = await self._save(Quiz(
            lesson_id=lesson.id if lesson else None,
            title=kwargs.pop("title", "Checkpoint"),
            required_to_unlock=required_to_unlock,
            passing_score=passing_score,
            max_attempts=max_attempts,
            **kwargs
        ))
        for index in range(questions):
            question = await self._save(Question(
                quiz_id=quiz.id,
                question_text=f"Question {index + 1}",
                order=index + 1,
                points=1
            ))
            self.db.add_all([
                AnswerChoice(question_id=question.id, choice_text="Right", is_correct=True, order=1),
                AnswerChoice(question_id=question.id, choice_text="Wrong", is_correct=False, order=2),
            ])
            await self.db.commit()
        return quiz

    async def assignment(self, lesson: Lesson = None, **kwargs) -> Assignment:
        return await self._save(Assignment(
            lesson_id=lesson.id if lesson else None,
            title=kwargs.pop("title", "Homework"),
            **kwargs
        ))

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    await create_tables(bind=engine)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session

@pytest.fixture
def factory(db):
    return Factory(db)

@pytest_asyncio.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

@pytest.fixture
def auth():
    def _headers(user: User) -> dict:
        token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})
        return {"Authorization": f"Bearer {token}"}
    return _headers
