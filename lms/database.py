# lms/database.py
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from lms.config import settings

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    future=True
)

# Create session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
class Base(DeclarativeBase):
    pass

# Database dependency
async def get_db():
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()

def import_models():
    """Import all models so they are registered on Base.metadata"""
    from lms.accounts.models import User
    from lms.courses.models import Course, Module, Lesson, Enrollment, LessonProgress
    from lms.payments.models import Payment
    from lms.quizzes.models import Quiz, Question, AnswerChoice, QuizAttempt
    from lms.assignments.models import Assignment, AssignmentSubmission
    from lms.certificates.models import Certificate

# Create tables
async def create_tables(bind=None):
    import_models()
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
