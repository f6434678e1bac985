"""Attempt lifecycle: start -> answering -> finished.

``AssessmentService`` is the only writer of attempt state. ``start`` is atomic
from the caller's point of view: the attempt is stored only once a complete,
validated deck exists. ``record_answer`` is first-answer-wins. ``finish``
requires every question to be answered, scores the attempt and hands the
result to the dispatcher without letting delivery affect the response.
"""
from __future__ import annotations

import asyncio
import logging
import random
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .allocation import allocate_counts, build_combined_deck
from .dispatch import ResultDispatcher
from .errors import AttemptNotFound, IncompleteAttempt, QuestionNotFound, ValidationError
from .extract import MultiExtraction, TextExtractor
from .models import (
	ALL_SOURCES,
	Answer,
	Attempt,
	DeliveryStatus,
	DocumentReference,
	FinishResult,
	QuestionRecord,
	ResultPayload,
	ResultQuestion,
	StartResult,
	to_letter,
)
from .question_bank import QuestionBankGenerator
from .settings import Settings
from .store import AttemptStore


logger = logging.getLogger(__name__)

CANDIDATE_ID_RE = re.compile(r"^[A-Za-z0-9\-]{5,}$")
MIN_NAME_LENGTH = 3


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def percent_of(score: int, total: int) -> int:
	"""``100 * score / total`` rounded half up."""
	if total <= 0:
		return 0
	return (200 * score + total) // (2 * total)


def _lettered(q: QuestionRecord, index: int) -> str:
	return f"{to_letter(index)}) {q.options[index]}"


def build_result(attempt: Attempt, finished_at: datetime) -> ResultPayload:
	questions: List[ResultQuestion] = []
	score = 0
	for q in attempt.deck:
		answer = attempt.answers[q.id]
		is_correct = answer.choice_index == q.correct_index
		score += int(is_correct)
		questions.append(
			ResultQuestion(
				prompt=q.prompt,
				options=[_lettered(q, i) for i in range(len(q.options))],
				selected_answer=_lettered(q, answer.choice_index),
				correct_answer=_lettered(q, q.correct_index),
				selected_letter=answer.choice_letter,
				correct_letter=to_letter(q.correct_index),
				is_correct=is_correct,
				source=q.source,
			)
		)
	total = len(attempt.deck)
	percent = percent_of(score, total)
	return ResultPayload(
		candidate_name=attempt.candidate_name,
		candidate_id=attempt.candidate_id,
		attempt_id=attempt.attempt_id,
		score=f"{score}/{total} ({percent}%)",
		score_value=score,
		percent=percent,
		total=total,
		source_title=attempt.title,
		sources=[ref.url for ref in attempt.source_refs],
		started_at=attempt.started_at,
		finished_at=finished_at,
		duration_seconds=(finished_at - attempt.started_at).total_seconds(),
		questions=questions,
	)


def student_summary(result: ResultPayload) -> Dict[str, str]:
	return {"score": f"{result.score_value}/{result.total}", "percent": f"{result.percent}%"}


class AssessmentService:
	def __init__(
		self,
		settings: Settings,
		store: AttemptStore,
		extractor: TextExtractor,
		generator: QuestionBankGenerator,
		dispatcher: ResultDispatcher,
		*,
		rng: Optional[random.Random] = None,
		clock: Optional[Callable[[], datetime]] = None,
	) -> None:
		self.settings = settings
		self.store = store
		self.extractor = extractor
		self.generator = generator
		self.dispatcher = dispatcher
		self.rng = rng or random.Random()
		self.clock = clock or _utcnow

	# ---- start ----

	def document_references(self) -> List[DocumentReference]:
		return [DocumentReference(key=key, url=url) for key, url in self.settings.sources.items()]

	def resolve_sources(self, selector: Optional[str]) -> List[DocumentReference]:
		key = (selector or ALL_SOURCES).strip()
		refs = self.document_references()
		if key == ALL_SOURCES:
			return refs
		for ref in refs:
			if ref.key == key:
				return [ref]
		raise ValidationError(f"Unknown source '{key}'; expected one of {[r.key for r in refs] + [ALL_SOURCES]}")

	def validate_start(
		self,
		candidate_name: Optional[str],
		candidate_id: Optional[str],
		confirmation_phrase: Optional[str],
		source: Optional[str] = ALL_SOURCES,
	) -> Tuple[str, str, List[DocumentReference]]:
		"""Check start input without touching the network."""
		name = str(candidate_name or "").strip()
		if len(name) < MIN_NAME_LENGTH:
			raise ValidationError("Invalid candidate name")
		cid = str(candidate_id or "").strip()
		if not CANDIDATE_ID_RE.match(cid):
			raise ValidationError("Invalid candidate identifier")
		if confirmation_phrase != self.settings.start_phrase:
			raise ValidationError(f"You must type exactly: {self.settings.start_phrase}")
		return name, cid, self.resolve_sources(source)

	async def start(
		self,
		candidate_name: Optional[str],
		candidate_id: Optional[str],
		confirmation_phrase: Optional[str],
		source: Optional[str] = ALL_SOURCES,
		role: str = "",
	) -> StartResult:
		t0 = time.monotonic()
		name, cid, refs = self.validate_start(candidate_name, candidate_id, confirmation_phrase, source)
		logger.info("start: sources %s", [ref.url for ref in refs])

		total = self.settings.question_count
		if len(refs) == 1:
			extracted = await self.extractor.extract(refs[0])
			bank = await self.generator.generate(extracted.text, total, role)
			deck = [q.model_copy(update={"source": refs[0].key}) for q in bank]
			title = extracted.title
			used_refs = refs
		else:
			multi = await self.extractor.extract_many(refs)
			counts = allocate_counts(total, list(multi.texts))
			logger.info("start: allocation %s", counts)
			banks = await self._generate_banks(multi, counts, role)
			deck = build_combined_deck(banks, counts, self.rng)
			title = multi.title
			used_refs = [ref for ref in refs if ref.key in multi.texts]

		attempt = Attempt(
			attempt_id=str(uuid.uuid4()),
			candidate_id=cid,
			candidate_name=name,
			source_refs=used_refs,
			title=title,
			started_at=self.clock(),
			deck=deck,
		)
		self.store.create(attempt)
		logger.info(
			"start: attempt %s created with %d questions in %dms",
			attempt.attempt_id,
			len(deck),
			int((time.monotonic() - t0) * 1000),
		)
		return StartResult(
			attempt_id=attempt.attempt_id,
			source_title=title,
			questions=[q.public() for q in deck],
		)

	async def _generate_banks(
		self, multi: MultiExtraction, counts: Dict[str, int], role: str
	) -> Dict[str, Sequence[QuestionRecord]]:
		keys = [key for key, count in counts.items() if count > 0]
		outcomes = await asyncio.gather(
			*(self.generator.generate(multi.texts[key].text, counts[key], role) for key in keys),
			return_exceptions=True,
		)
		for outcome in outcomes:
			if isinstance(outcome, BaseException):
				raise outcome
		return dict(zip(keys, outcomes))

	# ---- answer ----

	def _attempt(self, attempt_id: str) -> Attempt:
		attempt = self.store.get(attempt_id)
		if attempt is None:
			raise AttemptNotFound("Attempt not found")
		return attempt

	def get_attempt(self, attempt_id: str) -> Attempt:
		return self._attempt(attempt_id)

	def record_answer(self, attempt_id: str, question_id: str, choice_letter: Optional[str]) -> bool:
		"""Record the first answer given for a question; later submissions are ignored."""
		attempt = self._attempt(attempt_id)
		if attempt.question(question_id) is None:
			raise QuestionNotFound("Invalid question")
		answer = Answer.from_letter(question_id, choice_letter)
		return self.store.record_answer(attempt_id, answer)

	# ---- finish ----

	async def finish(self, attempt_id: str) -> FinishResult:
		attempt = self._attempt(attempt_id)
		if attempt.result is not None:
			# already scored: same result, no second delivery
			return FinishResult(
				result_for_student=student_summary(attempt.result),
				final=attempt.result,
				delivery=DeliveryStatus(status="skipped"),
			)

		missing = len(attempt.deck) - len(attempt.answers)
		if missing != 0:
			raise IncompleteAttempt(f"{missing} questions are still unanswered")

		finished_at = self.clock()
		result = build_result(attempt, finished_at)
		self.store.mark_finished(attempt_id, result, finished_at)
		logger.info("finish: attempt %s scored %s", attempt_id, result.score)

		return FinishResult(
			result_for_student=student_summary(result),
			final=result,
			delivery=await self._dispatch(result),
		)

	async def _dispatch(self, result: ResultPayload) -> DeliveryStatus:
		try:
			return await self.dispatcher.dispatch(result)
		except Exception as exc:
			# delivery must never fail the finish call
			logger.exception("result dispatch raised for attempt %s", result.attempt_id)
			return DeliveryStatus(status="failed", detail=str(exc))


__all__ = [
	"AssessmentService",
	"build_result",
	"percent_of",
	"student_summary",
]
