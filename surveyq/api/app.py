"""FastAPI application for the survey question quality engine.

Endpoints mirror the survey-builder wizard: survey config extraction,
variable model proposal, question generation with evaluation and
regeneration, stand-alone evaluation, and the chat assistant.

Handlers never let a model or embedding outage fail a request; those
degrade to defaults further down. An unexpected exception returns the
fixed fallback payload with status 500.

Usage:
    uvicorn surveyq.api.app:app --reload          # Development
    uvicorn surveyq.api.app:app --host 0.0.0.0    # Production (behind reverse proxy)
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from surveyq.agents.chat_assistant import (
    UNAVAILABLE_REPLY,
    chat_reply,
    regenerate_from_feedback,
    regeneration_reply,
)
from surveyq.agents.question_writer import add_questions
from surveyq.agents.survey_config_extractor import extract_survey_config
from surveyq.agents.variable_modeler import generate_variable_model
from surveyq.api.chat_sessions import ChatSessionStore, RequestSuperseded
from surveyq.api.dependencies import (
    ModelCallerFactory,
    get_app_settings,
    get_chat_sessions,
    get_embeddings,
    get_model_caller_factory,
    init_dependencies,
)
from surveyq.api.schemas import (
    AddQuestionsRequest,
    AddQuestionsResponse,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    EvaluateQuestionsRequest,
    EvaluateQuestionsResponse,
    ExtractSurveyConfigRequest,
    GenerateQuestionsRequest,
    GenerateQuestionsResponse,
    HealthResponse,
    VariableModelResponse,
)
from surveyq.config import get_agent_settings, get_settings
from surveyq.evaluation.embeddings import EmbeddingProvider, get_embedding_provider
from surveyq.evaluation.evaluator import evaluate_questions
from surveyq.graphs.regeneration_loop import run_regeneration_loop
from surveyq.logging_config import bind_request_context, setup_logging
from surveyq.schemas.presets import (
    FALLBACK_VARIABLE_MODEL,
    HEALTHCARE_EXAMPLE_SURVEY,
    fallback_questions,
)
from surveyq.schemas.questions import SurveyConfig

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# App lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup, clean up on shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)

    chat_sessions = ChatSessionStore()
    init_dependencies(settings, chat_sessions)

    # Load the sentence-transformers model before the first request needs it
    embeddings_ready = await asyncio.to_thread(get_embedding_provider().initialize)
    logger.info(
        "api_started",
        model_credentials=settings.has_model_credentials,
        embeddings_enabled=get_agent_settings().embedding.enabled,
        embeddings_ready=embeddings_ready,
    )

    yield

    await chat_sessions.gate.cancel_all()
    logger.info("api_shutdown")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Survey Question Quality API",
    description=(
        "Generates survey questions from a survey draft and variable model, "
        "scores them for clarity, bias, redundancy and structural validity, "
        "and regenerates them until they pass or the attempt budget runs out."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

# CORS, configurable via SURVEYQ_CORS_ORIGINS env var
cors_origins = [o.strip() for o in get_settings().surveyq_cors_origins.split(",") if o.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_context(request: Request, call_next):
    bind_request_context(request_id=uuid.uuid4().hex[:12], path=request.url.path)
    return await call_next(request)


def _fallback_generation_payload() -> dict:
    return {
        "questions": [q.to_wire() for q in fallback_questions()],
        "evaluations": None,
        "regenerated": False,
        "attemptsMade": 0,
        "fallbackUsed": True,
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.post(
    "/api/evaluate-questions",
    response_model=EvaluateQuestionsResponse,
    responses={500: {"model": EvaluateQuestionsResponse}},
)
async def evaluate_questions_endpoint(
    body: EvaluateQuestionsRequest,
    callers: ModelCallerFactory = Depends(get_model_caller_factory),
    provider: EmbeddingProvider = Depends(get_embeddings),
):
    """Score a question set without generating anything."""
    try:
        records = await evaluate_questions(
            body.topic or "general survey",
            body.questions,
            call_model=callers("quality_judge"),
            provider=provider,
        )
    except Exception:
        logger.error("evaluate_questions_failed", exc_info=True)
        return JSONResponse(status_code=500, content={"evaluations": []})
    return {"evaluations": [r.to_wire() for r in records]}


@app.post(
    "/api/generate-questions",
    response_model=GenerateQuestionsResponse,
    responses={500: {"model": GenerateQuestionsResponse}},
)
async def generate_questions_endpoint(
    body: GenerateQuestionsRequest,
    callers: ModelCallerFactory = Depends(get_model_caller_factory),
    provider: EmbeddingProvider = Depends(get_embeddings),
):
    """Generate questions, evaluate them, and regenerate while they fail."""
    try:
        result = await run_regeneration_loop(
            body.survey_draft,
            body.variable_model,
            rejected_questions=body.previous_questions,
            writer_model=callers("question_writer"),
            judge_model=callers("quality_judge"),
            provider=provider,
        )
    except Exception:
        logger.error("generate_questions_failed", exc_info=True)
        return JSONResponse(status_code=500, content=_fallback_generation_payload())
    return result.to_wire()


@app.post(
    "/api/add-questions",
    response_model=AddQuestionsResponse,
    responses={500: {"model": AddQuestionsResponse}},
)
async def add_questions_endpoint(
    body: AddQuestionsRequest,
    callers: ModelCallerFactory = Depends(get_model_caller_factory),
):
    """Generate supplementary questions numbered after the existing set."""
    try:
        questions = await add_questions(
            body.survey_draft,
            body.variable_model,
            body.existing_questions,
            body.count,
            call_model=callers("question_writer"),
        )
    except Exception:
        logger.error("add_questions_failed", exc_info=True)
        return JSONResponse(status_code=500, content={"questions": []})
    return {"questions": [q.to_wire() for q in questions]}


@app.post(
    "/api/variable-model",
    response_model=VariableModelResponse,
    responses={500: {"model": VariableModelResponse}},
)
async def variable_model_endpoint(
    body: SurveyConfig,
    callers: ModelCallerFactory = Depends(get_model_caller_factory),
):
    """Propose a variable model for a survey draft."""
    try:
        model = await generate_variable_model(body, call_model=callers("variable_modeler"))
    except Exception:
        logger.error("variable_model_failed", exc_info=True)
        return JSONResponse(status_code=500, content=FALLBACK_VARIABLE_MODEL.model_dump())
    return model.model_dump()


@app.post(
    "/api/extract-survey-config",
    responses={500: {"description": "Example survey returned as fallback"}},
)
async def extract_survey_config_endpoint(
    body: ExtractSurveyConfigRequest,
    callers: ModelCallerFactory = Depends(get_model_caller_factory),
):
    """Extract a survey draft from a free-text description."""
    try:
        survey = await extract_survey_config(
            body.content, call_model=callers("survey_config_extractor")
        )
    except Exception:
        logger.error("extract_survey_config_failed", exc_info=True)
        return JSONResponse(
            status_code=500, content=HEALTHCARE_EXAMPLE_SURVEY.model_dump(by_alias=True)
        )
    return survey.model_dump(by_alias=True)


@app.post(
    "/api/chat",
    response_model=ChatResponse,
    responses={409: {"model": ErrorResponse}},
)
async def chat_endpoint(
    body: ChatRequest,
    callers: ModelCallerFactory = Depends(get_model_caller_factory),
    provider: EmbeddingProvider = Depends(get_embeddings),
    sessions: ChatSessionStore = Depends(get_chat_sessions),
):
    """Chat with the survey assistant, or regenerate questions from feedback.

    A newer request on the same ``sessionId`` cancels this one; the
    superseded request gets a 409 and its result is not recorded.
    """
    session = sessions.get(body.session_id)
    context = body.context
    history = (
        [turn.model_dump() for turn in body.conversation_history]
        if body.conversation_history is not None
        else list(session.history)
    )

    async def _work() -> dict:
        if body.action == "regenerate_questions":
            result = await regenerate_from_feedback(
                body.message,
                survey=context.survey_draft or SurveyConfig(),
                variable_model=context.variable_model,
                questions=context.questions,
                evaluations=context.evaluations,
                writer_model=callers("question_writer"),
                judge_model=callers("quality_judge"),
                provider=provider,
            )
            return {
                "message": regeneration_reply(result),
                "action": "regenerate_questions",
                "regeneratedQuestions": [q.to_wire() for q in result.questions],
                "evaluations": (
                    [r.to_wire() for r in result.evaluations]
                    if result.evaluations is not None
                    else None
                ),
            }

        reply = await chat_reply(
            body.message,
            history=history,
            survey=context.survey_draft,
            variable_model=context.variable_model,
            current_step=context.current_step,
            call_model=callers("chat_assistant"),
        )
        return {"message": reply, "action": "chat"}

    try:
        payload = await sessions.gate.run(body.session_id, _work())
    except RequestSuperseded:
        return JSONResponse(
            status_code=409,
            content={"detail": "Superseded by a newer request in this chat session."},
        )
    except Exception:
        logger.error("chat_failed", action=body.action, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"message": UNAVAILABLE_REPLY, "action": body.action},
        )

    session.commit(body.message, payload["message"])
    return payload


@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    settings = get_app_settings()
    return HealthResponse(
        status="healthy",
        model_credentials=settings.has_model_credentials,
        embeddings_enabled=get_agent_settings().embedding.enabled,
    )
