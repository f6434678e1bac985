"""Data model for attempts, question decks and results, plus the HTTP wire schemas."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidChoice


LETTERS = "ABCD"
ALL_SOURCES = "all"


def to_letter(index: int) -> str:
	return LETTERS[index]


class DocumentReference(BaseModel):
	"""A configured reference document and its logical source key."""

	model_config = ConfigDict(frozen=True)

	key: str
	url: str


class ExtractedText(BaseModel):
	title: str
	text: str
	key: Optional[str] = None


class PublicQuestion(BaseModel):
	"""Candidate-safe projection of a question: the correct index is withheld."""

	id: str
	prompt: str
	options: List[str]


class QuestionRecord(BaseModel):
	id: str
	prompt: str
	options: List[str]
	correct_index: int
	source: Optional[str] = None

	def public(self) -> PublicQuestion:
		return PublicQuestion(id=self.id, prompt=self.prompt, options=list(self.options))


class Answer(BaseModel):
	model_config = ConfigDict(frozen=True)

	question_id: str
	choice_index: int
	choice_letter: str

	@classmethod
	def from_letter(cls, question_id: str, letter: object) -> "Answer":
		normalized = str(letter or "").strip().upper()
		if len(normalized) != 1 or normalized not in LETTERS:
			raise InvalidChoice("Answer with A, B, C or D.")
		index = LETTERS.index(normalized)
		return cls(question_id=question_id, choice_index=index, choice_letter=to_letter(index))


class ResultQuestion(BaseModel):
	model_config = ConfigDict(frozen=True)

	prompt: str
	options: List[str]
	selected_answer: str
	correct_answer: str
	selected_letter: str
	correct_letter: str
	is_correct: bool
	source: Optional[str] = None


class ResultPayload(BaseModel):
	"""Scored projection of a finished attempt, as sent to the result collector."""

	model_config = ConfigDict(frozen=True)

	action: Literal["final"] = "final"
	candidate_name: str
	candidate_id: str
	attempt_id: str
	score: str
	score_value: int
	percent: int
	total: int
	source_title: str
	sources: List[str]
	started_at: datetime
	finished_at: datetime
	duration_seconds: float
	questions: List[ResultQuestion]


class DeliveryStatus(BaseModel):
	status: Literal["disabled", "scheduled", "sent", "failed", "skipped"]
	detail: Optional[str] = None


@dataclass
class Attempt:
	"""One candidate's session. Owned by the attempt store for the process lifetime."""

	attempt_id: str
	candidate_id: str
	candidate_name: str
	source_refs: List[DocumentReference]
	title: str
	started_at: datetime
	deck: List[QuestionRecord]
	answers: Dict[str, Answer] = field(default_factory=dict)
	finished_at: Optional[datetime] = None
	result: Optional[ResultPayload] = None

	@property
	def state(self) -> str:
		return "finished" if self.result is not None else "answering"

	def question(self, question_id: str) -> Optional[QuestionRecord]:
		for q in self.deck:
			if q.id == question_id:
				return q
		return None


@dataclass
class StartResult:
	attempt_id: str
	source_title: str
	questions: List[PublicQuestion]

	@property
	def question_count(self) -> int:
		return len(self.questions)


@dataclass
class FinishResult:
	result_for_student: Dict[str, str]
	final: ResultPayload
	delivery: DeliveryStatus


# ---- HTTP wire schemas ----

class _WireModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True)


class StartRequest(_WireModel):
	candidate_name: str = Field(default="", alias="candidateName")
	candidate_id: str = Field(default="", alias="dni")
	start_command: str = Field(default="", alias="startCommand")
	source: str = ALL_SOURCES
	role: str = ""


class StartResponse(_WireModel):
	attempt_id: str = Field(alias="attemptId")
	source_title: str = Field(alias="sourceTitle")
	question_count: int = Field(alias="questionCount")
	questions: List[PublicQuestion]


class AnswerRequest(_WireModel):
	attempt_id: str = Field(alias="attemptId")
	question_id: str = Field(alias="questionId")
	choice: str = ""


class FinishRequest(_WireModel):
	attempt_id: str = Field(alias="attemptId")


class FinishResponse(_WireModel):
	result_for_student: Dict[str, str] = Field(alias="resultForStudent")
	final_json: ResultPayload = Field(alias="finalJson")
	delivery: DeliveryStatus


class SourceInfo(BaseModel):
	key: str
	url: str


__all__ = [
	"ALL_SOURCES",
	"LETTERS",
	"Answer",
	"Attempt",
	"AnswerRequest",
	"DeliveryStatus",
	"DocumentReference",
	"ExtractedText",
	"FinishRequest",
	"FinishResponse",
	"FinishResult",
	"PublicQuestion",
	"QuestionRecord",
	"ResultPayload",
	"ResultQuestion",
	"SourceInfo",
	"StartRequest",
	"StartResponse",
	"StartResult",
	"to_letter",
]
