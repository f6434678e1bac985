"""Attempt store: keyed session state for the lifetime of the process."""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

from .models import Answer, Attempt, ResultPayload


class AttemptStore(ABC):
	"""Create/read/append/close operations over attempts."""

	@abstractmethod
	def create(self, attempt: Attempt) -> None:
		"""Register a freshly started attempt."""

	@abstractmethod
	def get(self, attempt_id: str) -> Optional[Attempt]:
		"""Return the attempt, or ``None`` when the id is unknown."""

	@abstractmethod
	def record_answer(self, attempt_id: str, answer: Answer) -> bool:
		"""Store ``answer`` unless one already exists for its question; return whether it was stored."""

	@abstractmethod
	def mark_finished(self, attempt_id: str, result: ResultPayload, finished_at: datetime) -> None:
		"""Attach the scored result to the attempt."""


class InMemoryAttemptStore(AttemptStore):
	"""Process-local store. Attempts are never evicted."""

	def __init__(self) -> None:
		self._attempts: Dict[str, Attempt] = {}
		self._lock = threading.Lock()

	def __len__(self) -> int:
		return len(self._attempts)

	def create(self, attempt: Attempt) -> None:
		with self._lock:
			if attempt.attempt_id in self._attempts:
				raise KeyError(f"Attempt {attempt.attempt_id} already exists")
			self._attempts[attempt.attempt_id] = attempt

	def get(self, attempt_id: str) -> Optional[Attempt]:
		return self._attempts.get(attempt_id)

	def record_answer(self, attempt_id: str, answer: Answer) -> bool:
		with self._lock:
			attempt = self._attempts[attempt_id]
			if answer.question_id in attempt.answers:
				return False
			attempt.answers[answer.question_id] = answer
			return True

	def mark_finished(self, attempt_id: str, result: ResultPayload, finished_at: datetime) -> None:
		with self._lock:
			attempt = self._attempts[attempt_id]
			attempt.result = result
			attempt.finished_at = finished_at


__all__ = ["AttemptStore", "InMemoryAttemptStore"]
