# lms/quizzes/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime

# Answer Choice Schemas
class AnswerChoiceBase(BaseModel):
    choice_text: str = Field(..., min_length=1)
    is_correct: bool = False
    order: int = 0

class AnswerChoiceCreate(AnswerChoiceBase):
    pass

class AnswerChoiceUpdate(BaseModel):
    choice_text: Optional[str] = Field(None, min_length=1)
    is_correct: Optional[bool] = None
    order: Optional[int] = None

class AnswerChoice(AnswerChoiceBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question_id: int

# Question Schemas
class QuestionBase(BaseModel):
    question_text: str = Field(..., min_length=1)
    order: int = 0
    points: int = Field(1, ge=0)

class QuestionCreate(QuestionBase):
    choices: List[AnswerChoiceCreate] = []

class QuestionUpdate(BaseModel):
    question_text: Optional[str] = Field(None, min_length=1)
    order: Optional[int] = None
    points: Optional[int] = Field(None, ge=0)

class Question(QuestionBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quiz_id: int

class QuestionWithChoices(Question):
    choices: List[AnswerChoice] = []

# Quiz Schemas
class QuizBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    instructions: Optional[str] = None
    required_to_unlock: bool = False
    passing_score: int = Field(70, ge=0, le=100)
    max_attempts: int = Field(3, ge=1)
    is_active: bool = True

class QuizCreate(QuizBase):
    lesson_id: Optional[int] = None

class QuizUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    instructions: Optional[str] = None
    required_to_unlock: Optional[bool] = None
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    max_attempts: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None

class Quiz(QuizBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    lesson_id: Optional[int] = None
    created_at: datetime

# Quiz taking: choices are sent without the correctness flag
class ChoiceForTaking(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    choice_text: str
    order: int

class QuestionForTaking(BaseModel):
    id: int
    question_text: str
    order: int
    points: int
    choices: List[ChoiceForTaking] = []

class QuizForTaking(BaseModel):
    id: int
    title: str
    instructions: Optional[str] = None
    passing_score: int
    max_attempts: int
    remaining_attempts: int
    questions: List[QuestionForTaking] = []

# Attempt Schemas
class QuizAnswer(BaseModel):
    question_id: int
    choice_id: Optional[int] = None

class QuizSubmission(BaseModel):
    answers: List[QuizAnswer] = []

class QuizAttempt(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    user_id: int
    quiz_id: int
    attempt_number: int
    score: Optional[float] = None
    passed: bool = False
    started_at: datetime
    completed_at: Optional[datetime] = None

class QuestionResult(BaseModel):
    question_id: int
    question_text: str
    selected_choice_id: Optional[int] = None
    correct_choice_id: Optional[int] = None
    selected_choice_text: str
    correct_choice_text: str
    is_correct: bool
    points: int

class QuizResult(BaseModel):
    attempt_id: Optional[int] = None
    score: float
    passed: bool
    total_questions: int
    correct_answers: int
    total_points: int
    earned_points: int
    duration_seconds: float = 0
    question_results: List[QuestionResult] = []
