"""Question bank generation: prompt, output schema, parsing and structural validation."""
from __future__ import annotations

import json
import logging
import random
import re
from typing import Any, Dict, List, Optional, Protocol

from .errors import GenerationInsufficient, GenerationMalformed, GenerationUnavailable, QuestionInvalid
from .models import QuestionRecord


logger = logging.getLogger(__name__)

# "A) ", "(b) ", "a- ", "C: ", "1. ", "(12) "; numeric labels need text after them so "10 - 12" and "3: 1" survive
_LABEL_RE = re.compile(r"^\s*(?:\(?[A-Da-d](?:\)|[.:\-](?=\s))|\(?[0-9]{1,2}[.)](?=\s+\D))\s*")

SYSTEM_INSTRUCTION = (
	"You are an assessor writing staff-training exams.\n"
	"Write single-best-answer multiple-choice questions (A-D) of medium/hard difficulty that remain approachable.\n"
	"Use ONLY the supplied text; never rely on outside knowledge.\n"
	"Each question: a clear prompt, exactly 4 plausible options, exactly one correct option.\n"
	"Do not prefix prompts or options with letters or numbers. Write in the language of the supplied text."
)


class StructuredClient(Protocol):
	async def generate_json(self, system: str, prompt: str, schema: Dict[str, Any]) -> str: ...


def strip_label(text: str) -> str:
	"""Remove one leading enumeration label such as ``A)`` or ``1.``."""
	return _LABEL_RE.sub("", text, count=1).strip()


def clean_text(text: str) -> str:
	"""Strip enumeration labels until none is left, so ``"A) b) 1. x"`` becomes ``"x"``."""
	cleaned = strip_label(text)
	while cleaned != text:
		text, cleaned = cleaned, strip_label(cleaned)
	return cleaned


def build_schema(min_items: int, max_items: int) -> Dict[str, Any]:
	return {
		"type": "object",
		"properties": {
			"questions": {
				"type": "array",
				"minItems": min_items,
				"maxItems": max_items,
				"items": {
					"type": "object",
					"properties": {
						"id": {"type": "string"},
						"prompt": {"type": "string"},
						"options": {
							"type": "array",
							"minItems": 4,
							"maxItems": 4,
							"items": {"type": "string"},
						},
						"correctIndex": {"type": "integer", "minimum": 0, "maximum": 3},
					},
					"required": ["id", "prompt", "options", "correctIndex"],
					"additionalProperties": False,
				},
			},
		},
		"required": ["questions"],
		"additionalProperties": False,
	}


def build_prompt(text: str, role: str, budget: int) -> str:
	return (
		f'Role (free text): "{role or ""}"\n\n'
		"Source text (may be truncated):\n"
		f'"""{(text or "")[:budget]}"""'
	)


def parse_items(raw: str) -> List[Dict[str, Any]]:
	try:
		data = json.loads(raw)
	except (TypeError, ValueError) as exc:
		raise GenerationMalformed("The model did not return valid JSON", cause=exc) from exc
	if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
		raise GenerationMalformed("The model response has no 'questions' array")
	items = data["questions"]
	if not all(isinstance(item, dict) for item in items):
		raise GenerationMalformed("Every entry in 'questions' must be an object")
	return items


def validate_item(item: Dict[str, Any], position: int) -> QuestionRecord:
	qid = item.get("id")
	prompt = item.get("prompt")
	options = item.get("options")
	correct = item.get("correctIndex")
	if not isinstance(qid, str) or not qid.strip() or not isinstance(prompt, str) or not prompt.strip():
		raise QuestionInvalid(f"Invalid question at position {position}")
	if not isinstance(options, list) or len(options) != 4:
		raise QuestionInvalid(f"Invalid question at position {position}: expected 4 options")
	if not all(isinstance(o, str) and o.strip() for o in options):
		raise QuestionInvalid(f"Invalid question at position {position}: empty option")
	if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct <= 3:
		raise QuestionInvalid(f"Invalid correct index in question {qid} (position {position})")
	return QuestionRecord(
		id=qid.strip(),
		prompt=clean_text(prompt),
		options=[clean_text(o) for o in options],
		correct_index=correct,
	)


class QuestionBankGenerator:
	def __init__(
		self,
		client: Optional[StructuredClient],
		*,
		rng: Optional[random.Random] = None,
		text_budget: int = 30000,
		min_items: int = 8,
		oversample: int = 4,
	) -> None:
		self.client = client
		self.rng = rng or random.Random()
		self.text_budget = text_budget
		self.min_items = min_items
		self.oversample = oversample

	async def generate(self, text: str, count: int, role: str = "") -> List[QuestionRecord]:
		"""Ask the model for an oversampled bank and keep ``count`` validated questions."""
		if self.client is None:
			raise GenerationUnavailable("No question generation backend is configured")

		min_items = max(count, self.min_items)
		schema = build_schema(min_items, min_items + self.oversample)
		raw = await self.client.generate_json(SYSTEM_INSTRUCTION, build_prompt(text, role, self.text_budget), schema)

		items = parse_items(raw)
		if len(items) < count:
			raise GenerationInsufficient(f"The model returned {len(items)} questions, {count} needed")
		logger.info("generated %d candidate questions, keeping %d", len(items), count)

		selected = self.rng.sample(items, count)
		questions = [validate_item(item, i) for i, item in enumerate(selected)]
		seen = set()
		for i, q in enumerate(questions):
			if q.id in seen:
				raise QuestionInvalid(f"Duplicate question id {q.id} at position {i}")
			seen.add(q.id)
		return questions


__all__ = [
	"SYSTEM_INSTRUCTION",
	"QuestionBankGenerator",
	"build_prompt",
	"build_schema",
	"clean_text",
	"parse_items",
	"strip_label",
	"validate_item",
]
