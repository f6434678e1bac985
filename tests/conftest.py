from __future__ import annotations

import json
import random

import httpx
import pytest

from assessor.dispatch import ResultDispatcher
from assessor.errors import AllSourcesFailed, AssessmentError, ExtractionInsufficient
from assessor.extract import MultiExtraction
from assessor.models import DocumentReference, ExtractedText, QuestionRecord
from assessor.question_bank import QuestionBankGenerator
from assessor.session import AssessmentService
from assessor.settings import Settings
from assessor.store import InMemoryAttemptStore


SOURCES = {
    "procedimiento": "https://docs.example/manuales/procedimiento.pdf",
    "maridaje": "https://docs.example/manuales/maridaje.pdf",
    "recetario": "https://docs.example/manuales/recetario.pdf",
}
START_PHRASE = "Realizar Test"


def make_items(n: int, *, prefix: str = "q") -> list[dict]:
    """Raw model items as they come back from the generation call."""

    return [
        {
            "id": f"{prefix}{i}",
            "prompt": f"Question {i} about the manual?",
            "options": [f"Option {i}.{j}" for j in range(4)],
            "correctIndex": i % 4,
        }
        for i in range(n)
    ]


def build_bank(n: int, *, prefix: str = "q") -> list[QuestionRecord]:
    return [
        QuestionRecord(
            id=f"{prefix}{i}",
            prompt=f"Question {i}?",
            options=["a", "b", "c", "d"],
            correct_index=i % 4,
        )
        for i in range(n)
    ]


class FakeStructuredClient:
    """Returns as many valid items as the schema's minItems asks for."""

    def __init__(self, raw: str | None = None) -> None:
        self.raw = raw
        self.calls: list[dict] = []

    async def generate_json(self, system: str, prompt: str, schema: dict) -> str:
        self.calls.append({"system": system, "prompt": prompt, "schema": schema})
        if self.raw is not None:
            return self.raw
        n = schema["properties"]["questions"]["minItems"]
        return json.dumps({"questions": make_items(n, prefix=f"c{len(self.calls)}-")})


class FakeExtractor:
    """Stands in for TextExtractor; records which sources were fetched."""

    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self.failing = set(failing)
        self.calls: list[str] = []

    async def extract(self, ref: DocumentReference) -> ExtractedText:
        self.calls.append(ref.key)
        if ref.key in self.failing:
            raise ExtractionInsufficient(f"{ref.key} too short")
        return ExtractedText(title=f"{ref.key}.pdf", text=f"{ref.key} " * 60, key=ref.key)

    async def extract_many(self, refs: list[DocumentReference]) -> MultiExtraction:
        result = MultiExtraction()
        for ref in refs:
            try:
                result.texts[ref.key] = await self.extract(ref)
            except AssessmentError as exc:
                result.failures[ref.key] = exc
        if not result.texts:
            raise AllSourcesFailed("nothing", cause=next(iter(result.failures.values())))
        return result


def make_settings(**overrides) -> Settings:
    values = {
        "question_count": 9,
        "sources": dict(SOURCES),
        "start_phrase": START_PHRASE,
        "results_webhook_url": None,
        "delivery_mode": "await",
    }
    values.update(overrides)
    return Settings(**values)


def make_service(
    *,
    client=None,
    failing: tuple[str, ...] = (),
    transport: httpx.MockTransport | None = None,
    **settings_overrides,
) -> AssessmentService:
    cfg = make_settings(**settings_overrides)
    http_client = httpx.AsyncClient(transport=transport) if transport is not None else None
    dispatcher = ResultDispatcher(
        cfg.results_webhook_url,
        client=http_client,
        timeout_seconds=cfg.results_timeout_seconds,
        mode=cfg.delivery_mode,
    )
    generator = QuestionBankGenerator(client or FakeStructuredClient(), rng=random.Random(7))
    return AssessmentService(
        cfg,
        InMemoryAttemptStore(),
        FakeExtractor(failing),
        generator,
        dispatcher,
        rng=random.Random(11),
    )


@pytest.fixture
def service() -> AssessmentService:
    return make_service()
