"""OpenAI-compatible ``/v1`` endpoints."""

import json
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from llm_openai_bridge.catalog import NoModelsDiscovered, discover_models
from llm_openai_bridge.errors import BridgeError, InvalidRequestShape
from llm_openai_bridge.formatter import error_response
from llm_openai_bridge.metrics import MetricsExporter
from llm_openai_bridge.models import ModelList, parse_chat_request, parse_responses_request
from llm_openai_bridge.streaming import SSE_HEADERS, SSE_MEDIA_TYPE
from llm_openai_bridge.utils import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/v1", tags=["openai"])


async def _read_json(request: Request) -> Any:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidRequestShape("Request body must be valid JSON") from e
    logger.debug("request.body", path=request.url.path, body=body)
    return body


def _failure(endpoint: str, error: Exception) -> JSONResponse:
    """Convert an exception into the error envelope.

    Must be called from inside the ``except`` block so the traceback is logged.
    """
    if isinstance(error, BridgeError):
        status_code = error.status_code
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if status_code >= 500:
        logger.exception("request.failed", endpoint=endpoint, error=str(error))
    else:
        logger.warning("request.rejected", endpoint=endpoint, status=status_code, error=str(error))

    MetricsExporter.record_error(endpoint, status_code)
    return JSONResponse(status_code=status_code, content=error_response(error))


def _sse(frames) -> StreamingResponse:
    return StreamingResponse(frames, media_type=SSE_MEDIA_TYPE, headers=dict(SSE_HEADERS))


@router.get("/models")
async def list_models(request: Request) -> JSONResponse:
    """List upstream models plus preset aliases."""
    logger.info("models.request")
    settings = request.app.state.settings
    try:
        data = await discover_models(request.app.state.provider, settings.discovery_vendors)
    except Exception as e:
        if isinstance(e, NoModelsDiscovered):
            logger.warning("models.none_available")
        else:
            logger.exception("models.failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response(RuntimeError("Error fetching available models"), "internal_server_error"),
        )
    return JSONResponse(content=ModelList(data=data).model_dump())


@router.post("/chat/completions", response_model=None)
async def chat_completions(request: Request) -> JSONResponse | StreamingResponse:
    """Chat completions endpoint."""
    orchestrator = request.app.state.chat_orchestrator
    try:
        chat_request = parse_chat_request(await _read_json(request))
        logger.info(
            "chat.request",
            model=chat_request.model,
            messages=len(chat_request.messages),
            stream=chat_request.stream,
        )
        if chat_request.stream:
            return _sse(await orchestrator.open_stream(chat_request))
        return JSONResponse(content=await orchestrator.complete(chat_request))
    except Exception as e:
        return _failure(orchestrator.endpoint, e)


@router.post("/responses", response_model=None)
@router.post("/messages", response_model=None)
async def responses(request: Request) -> JSONResponse | StreamingResponse:
    """Responses API endpoint (``/v1/messages`` is an alias)."""
    orchestrator = request.app.state.responses_orchestrator
    try:
        responses_request = parse_responses_request(await _read_json(request))
        stream = responses_request.wants_stream(request.headers)
        logger.info(
            "responses.request",
            model=responses_request.model,
            stream=stream,
            tools=len(responses_request.tools or []),
        )
        if stream:
            return _sse(await orchestrator.open_stream(responses_request))
        return JSONResponse(content=await orchestrator.complete(responses_request))
    except Exception as e:
        return _failure(orchestrator.endpoint, e)
