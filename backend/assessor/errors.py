"""Error taxonomy shared by the acquisition, generation and session layers."""
from __future__ import annotations

from typing import Any, Dict, Optional


class AssessmentError(Exception):
	"""Base error carrying an operator-facing message and the underlying cause."""

	status_code: int = 500

	def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
		super().__init__(message)
		self.message = message
		self.cause = cause

	def to_detail(self) -> Dict[str, Any]:
		detail: Dict[str, Any] = {"error": self.message}
		if self.cause is not None:
			detail["detail"] = str(self.cause) or type(self.cause).__name__
		return detail


class ValidationError(AssessmentError):
	status_code = 400


# Acquisition layer

class SourceUnreachable(AssessmentError):
	status_code = 502


class ExtractionEmpty(AssessmentError):
	status_code = 502


class ExtractionInsufficient(AssessmentError):
	status_code = 502


class AllSourcesFailed(AssessmentError):
	status_code = 502


# Generation layer

class GenerationUnavailable(AssessmentError):
	status_code = 502


class GenerationMalformed(AssessmentError):
	status_code = 502


class GenerationInsufficient(AssessmentError):
	status_code = 502


class QuestionInvalid(AssessmentError):
	status_code = 502


# Session protocol

class AttemptNotFound(AssessmentError):
	status_code = 404


class QuestionNotFound(AssessmentError):
	status_code = 400


class InvalidChoice(AssessmentError):
	status_code = 400


class IncompleteAttempt(AssessmentError):
	status_code = 400


class DeliveryFailure(AssessmentError):
	"""Result delivery failed. Logged only, never surfaced to the caller."""


__all__ = [
	"AssessmentError",
	"ValidationError",
	"SourceUnreachable",
	"ExtractionEmpty",
	"ExtractionInsufficient",
	"AllSourcesFailed",
	"GenerationUnavailable",
	"GenerationMalformed",
	"GenerationInsufficient",
	"QuestionInvalid",
	"AttemptNotFound",
	"QuestionNotFound",
	"InvalidChoice",
	"IncompleteAttempt",
	"DeliveryFailure",
]
