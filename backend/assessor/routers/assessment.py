from __future__ import annotations
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from ..errors import AssessmentError
from ..models import (
	AnswerRequest,
	FinishRequest,
	FinishResponse,
	SourceInfo,
	StartRequest,
	StartResponse,
)
from ..session import AssessmentService


router = APIRouter(prefix="/api", tags=["assessment"])
logger = logging.getLogger(__name__)


def get_service(request: Request) -> AssessmentService:
	return request.app.state.assessment_service


def _http_error(exc: AssessmentError, action: str) -> HTTPException:
	logger.warning("[%s] %s: %s", action, type(exc).__name__, exc.to_detail())
	return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


@router.get("/sources", response_model=List[SourceInfo])
def list_sources(service: AssessmentService = Depends(get_service)):
	return [SourceInfo(key=ref.key, url=ref.url) for ref in service.document_references()]


@router.post("/start-test", response_model=StartResponse)
async def start_test(req: StartRequest, service: AssessmentService = Depends(get_service)):
	try:
		result = await service.start(
			req.candidate_name,
			req.candidate_id,
			req.start_command,
			source=req.source,
			role=req.role,
		)
	except AssessmentError as e:
		raise _http_error(e, "start-test")
	except Exception as e:
		logger.exception("[start-test] unexpected error")
		raise HTTPException(status_code=500, detail={"error": "Could not start the test", "detail": str(e)})
	return StartResponse(
		attempt_id=result.attempt_id,
		source_title=result.source_title,
		question_count=result.question_count,
		questions=result.questions,
	)


@router.post("/answer")
def answer(req: AnswerRequest, service: AssessmentService = Depends(get_service)):
	try:
		service.record_answer(req.attempt_id, req.question_id, req.choice)
	except AssessmentError as e:
		raise _http_error(e, "answer")
	return {"ok": True}


@router.post("/finish", response_model=FinishResponse)
async def finish(req: FinishRequest, service: AssessmentService = Depends(get_service)):
	try:
		result = await service.finish(req.attempt_id)
	except AssessmentError as e:
		raise _http_error(e, "finish")
	return FinishResponse(
		result_for_student=result.result_for_student,
		final_json=result.final,
		delivery=result.delivery,
	)
