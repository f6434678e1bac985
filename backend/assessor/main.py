import logging
import random

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .dispatch import ResultDispatcher
from .extract import TextExtractor
from .gemini_client import GeminiClient
from .question_bank import QuestionBankGenerator
from .session import AssessmentService
from .settings import Settings, settings
from .sources import RetryPolicy, SourceFetcher
from .store import InMemoryAttemptStore
from .routers import health
from .routers import assessment

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Assessment Session API")
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origins,
	allow_methods=["*"],
	allow_headers=["*"],
	allow_credentials=False,
)
app.include_router(health.router)
app.include_router(assessment.router)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"sources": list(settings.sources),
		"question_count": settings.question_count,
		"delivery": settings.delivery_mode if settings.results_webhook_url else "disabled",
	}


def build_service(cfg: Settings) -> AssessmentService:
	rng = random.Random()
	fetcher = SourceFetcher(
		policy=RetryPolicy(max_attempts=cfg.fetch_attempts, backoff_seconds=cfg.fetch_backoff_seconds),
		timeout_seconds=cfg.fetch_timeout_seconds,
	)
	try:
		client = GeminiClient()
	except ValueError:
		# Keep serving; start-test reports the missing backend per request
		logger.warning("GEMINI_API_KEY is not configured; question generation is unavailable")
		client = None
	generator = QuestionBankGenerator(
		client,
		rng=rng,
		text_budget=cfg.source_text_budget,
		min_items=cfg.bank_min_items,
		oversample=cfg.bank_oversample,
	)
	dispatcher = ResultDispatcher(
		cfg.results_webhook_url,
		timeout_seconds=cfg.results_timeout_seconds,
		mode=cfg.delivery_mode,
	)
	return AssessmentService(
		cfg,
		InMemoryAttemptStore(),
		TextExtractor(fetcher, min_chars=cfg.min_text_chars),
		generator,
		dispatcher,
		rng=rng,
	)


async def close_service(service: AssessmentService) -> None:
	await service.dispatcher.aclose()
	await service.extractor.fetcher.aclose()
	if service.generator.client is not None:
		await service.generator.client.aclose()


@app.on_event("startup")
async def startup_event():
	app.state.assessment_service = build_service(settings)
	logger.info("sources configured: %s", ", ".join(settings.sources))


@app.on_event("shutdown")
async def shutdown_event():
	service = getattr(app.state, "assessment_service", None)
	if service is not None:
		await close_service(service)
