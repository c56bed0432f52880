# lms/quizzes/models.py
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Float, ForeignKey, UniqueConstraint, JSON
)
from datetime import datetime
import uuid as uuid_lib

from lms.database import Base

class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    # One quiz per lesson; unattached quizzes leave this empty
    lesson_id = Column(Integer, ForeignKey("lessons.id", ondelete="SET NULL"), nullable=True, unique=True)

    title = Column(String, nullable=False)
    instructions = Column(Text, nullable=True)

    required_to_unlock = Column(Boolean, default=False)
    passing_score = Column(Integer, default=70)  # percentage
    max_attempts = Column(Integer, default=3)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)

    question_text = Column(Text, nullable=False)
    order = Column(Integer, default=0)
    points = Column(Integer, default=1)

class AnswerChoice(Base):
    __tablename__ = "answer_choices"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)

    choice_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, default=False)
    order = Column(Integer, default=0)

class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        UniqueConstraint("user_id", "quiz_id", "attempt_number", name="uq_attempt_user_quiz_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)

    attempt_number = Column(Integer, nullable=False)
    score = Column(Float, nullable=True)
    passed = Column(Boolean, default=False)

    # [{"question_id": 1, "choice_id": 3}, ...]
    user_answers = Column(JSON, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None
