"""Pydantic schemas for question content, answer submissions and reports.

Questions are supplied by the content loader and never persisted by the
backend. Which answers are correct is modelled as a tagged variant
(`SingleAnswer` or `MultipleAnswer`) chosen by its `kind` field, so a
question always carries exactly one meaningful correctness shape.
"""

from datetime import datetime
from typing import Annotated, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class SingleAnswer(BaseModel):
    """Exactly one answer index is correct."""
    kind: Literal["single"] = "single"
    index: int = Field(ge=0)

    def grade(self, selection: Union[int, FrozenSet[int]]) -> bool:
        if isinstance(selection, int):
            return selection == self.index
        return set(selection) == {self.index}

    def max_index(self) -> int:
        return self.index


class MultipleAnswer(BaseModel):
    """A set of answer indices must be selected exactly."""
    kind: Literal["multiple"] = "multiple"
    indices: FrozenSet[int] = Field(min_length=1)

    def grade(self, selection: Union[int, FrozenSet[int]]) -> bool:
        if isinstance(selection, int):
            return {selection} == set(self.indices)
        return set(selection) == set(self.indices)

    def max_index(self) -> int:
        return max(self.indices)


Correctness = Annotated[Union[SingleAnswer, MultipleAnswer], Field(discriminator="kind")]


class QuestionImage(BaseModel):
    url: str
    alt: str
    caption: Optional[str] = None


class Question(BaseModel):
    """A multiple-choice question from the question bank."""
    model_config = {"frozen": True}

    id: str
    question: str
    answers: List[str] = Field(min_length=1)
    correctness: Correctness
    explanation: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[Literal["easy", "medium", "hard"]] = None
    tags: List[str] = Field(default_factory=list)
    image: Optional[QuestionImage] = None

    @model_validator(mode="after")
    def _indices_in_range(self):
        if self.correctness.max_index() >= len(self.answers):
            raise ValueError(f"correct answer index out of range for question {self.id}")
        return self

    @property
    def multiple_answers(self) -> bool:
        return isinstance(self.correctness, MultipleAnswer)

    def is_correct(self, selection: Union[int, FrozenSet[int]]) -> bool:
        """Grade a single index or a set of indices against this question."""
        return self.correctness.grade(selection)


class ContentMetadata(BaseModel):
    title: str = ""
    description: str = ""
    categories: Optional[List[str]] = None
    author: Optional[str] = None
    last_updated: Optional[str] = None


class RevisionContent(BaseModel):
    """A loaded question bank with its metadata."""
    version: str = "1"
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)
    questions: List[Question] = Field(default_factory=list)


class AnswerSubmission(BaseModel):
    """Payload the presentation layer submits for one answered question.

    Exactly one of `selected_answer_index` / `selected_answer_indices`
    must be given. When `is_correct` is omitted the backend grades the
    selection against the question.
    """
    question_id: str
    selected_answer_index: Optional[int] = Field(default=None, ge=0)
    selected_answer_indices: Optional[List[int]] = None
    is_correct: Optional[bool] = None
    timestamp: Optional[datetime] = None
    time_spent_ms: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _one_selection(self):
        has_single = self.selected_answer_index is not None
        has_multi = self.selected_answer_indices is not None
        if has_single == has_multi:
            raise ValueError("provide exactly one of selected_answer_index or selected_answer_indices")
        if has_multi and any(i < 0 for i in self.selected_answer_indices):
            raise ValueError("selected_answer_indices must be non-negative")
        return self

    @property
    def selection(self) -> Union[int, FrozenSet[int]]:
        if self.selected_answer_index is not None:
            return self.selected_answer_index
        return frozenset(self.selected_answer_indices)


class CategoryStat(BaseModel):
    """Correct/total tally for one category."""
    correct: int = 0
    total: int = 0
    rate: float = 0.0


class SessionOverview(BaseModel):
    """Totals across the most recent sessions."""
    sessions: int = 0
    total_questions: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    overall_rate: float = 0.0


class SessionTally(BaseModel):
    """In-memory score for the current session."""
    session_id: str
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    score_percentage: float


class AnswerResult(BaseModel):
    """Response returned after an answer submission."""
    question_id: str
    is_correct: bool
    explanation: Optional[str] = None
    tally: SessionTally
