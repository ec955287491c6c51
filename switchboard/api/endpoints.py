import logging
import time
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response

from switchboard.api.models import ChatMessageRequest, ModelSelectRequest, ProviderConfigUpdate
from switchboard.api.runtime_access import get_runtime
from switchboard.api.services.error_handling import ErrorResponseBuilder, error_body
from switchboard.api.services.streaming import sse_event, streaming_response
from switchboard.core.errors import NoRouteError, ProviderError, UnknownProviderError, user_message
from switchboard.runtime import Runtime

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    stats = runtime.registry.get_stats()
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy" if stats["configured"] else "degraded",
            "timestamp": time.time(),
            "providers": {
                "registered": stats["registered"],
                "initialized": stats["initialized"],
                "configured": stats["configured"],
            },
            "default_provider": stats["default_provider"],
        },
    )


@router.get("/v1/status")
async def system_status(runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    return JSONResponse(status_code=200, content=runtime.get_system_status())


@router.get("/v1/providers")
async def list_providers(runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    health = runtime.registry.health_map()
    providers = [
        {**provider, "health": health.get(provider["id"])}
        for provider in runtime.registry.get_registered_providers()
    ]
    return JSONResponse(
        status_code=200,
        content={"providers": providers, "default_provider": runtime.manager.default_provider},
    )


@router.put("/v1/providers/{provider_id}/config")
async def update_provider_config(
    provider_id: str, body: ProviderConfigUpdate, runtime: Runtime = Depends(get_runtime)
) -> JSONResponse:
    try:
        config = await runtime.manager.configure_provider(provider_id, body.overrides())
    except ProviderError as e:
        return ErrorResponseBuilder.from_provider_error(e)
    return JSONResponse(status_code=200, content={"provider_id": provider_id, "config": config})


@router.post("/v1/providers/{provider_id}/default")
async def set_default_provider(provider_id: str, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    try:
        runtime.manager.switch_provider(provider_id)
    except ProviderError as e:
        return ErrorResponseBuilder.from_provider_error(e)
    return JSONResponse(status_code=200, content={"default_provider": provider_id})


@router.post("/v1/providers/{provider_id}/test")
async def test_provider_connection(provider_id: str, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    if not runtime.registry.is_registered(provider_id):
        return ErrorResponseBuilder.from_provider_error(UnknownProviderError(provider_id))
    client = runtime.registry.get_client(provider_id)
    if client is None:
        return ErrorResponseBuilder.from_provider_error(
            NoRouteError(f"Provider '{provider_id}' is not initialized", provider_id=provider_id)
        )

    result = await client.test_connection()
    runtime.registry.record_health(provider_id, result.connected, result.error)
    return JSONResponse(
        status_code=200,
        content={
            "provider_id": provider_id,
            "connected": result.connected,
            "latency_ms": round(result.latency_ms, 1),
            "status_code": result.status_code,
            "error": result.error,
        },
    )


@router.get("/v1/models")
async def list_models(
    provider: str | None = Query(None, description="Only list models of this provider"),
    refresh: bool = Query(False, description="Re-fetch model lists from the providers"),
    runtime: Runtime = Depends(get_runtime),
) -> JSONResponse:
    try:
        if refresh:
            await runtime.manager.refresh_models(provider)
        models = (
            runtime.manager.get_models(provider) if provider else runtime.manager.available_models
        )
    except ProviderError as e:
        return ErrorResponseBuilder.from_provider_error(e)
    return JSONResponse(
        status_code=200,
        content={
            "models": [model.to_dict() for model in models],
            "selected_model": runtime.orchestrator.get_status()["selected_model"],
        },
    )


@router.post("/v1/models/select")
async def select_model(body: ModelSelectRequest, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    try:
        model = runtime.select_model(body.model)
    except ProviderError as e:
        return ErrorResponseBuilder.from_provider_error(e)
    return JSONResponse(status_code=200, content={"selected_model": model.to_dict()})


@router.post("/v1/chats/{chat_id}/messages")
async def send_message(
    chat_id: str,
    body: ChatMessageRequest,
    wait: bool = Query(True, description="Wait for the completion instead of returning 202"),
    runtime: Runtime = Depends(get_runtime),
) -> JSONResponse:
    try:
        request_id = await runtime.submit(chat_id, body.message, body.to_options(streaming=False))
    except ProviderError as e:
        return ErrorResponseBuilder.from_provider_error(e)

    if not wait:
        return JSONResponse(status_code=202, content={"request_id": request_id, "chat_id": chat_id})

    try:
        result = await runtime.orchestrator.result(request_id)
    except ProviderError as e:
        return ErrorResponseBuilder.from_provider_error(e)
    return JSONResponse(
        status_code=200,
        content={"request_id": request_id, "chat_id": chat_id, **result.to_dict()},
    )


@router.post("/v1/chats/{chat_id}/messages/stream")
async def stream_message(
    chat_id: str, body: ChatMessageRequest, runtime: Runtime = Depends(get_runtime)
) -> Response:
    try:
        request_id = await runtime.submit(chat_id, body.message, body.to_options(streaming=True))
    except ProviderError as e:
        return ErrorResponseBuilder.from_provider_error(e)

    async def events() -> AsyncGenerator[str, None]:
        yield sse_event("request", {"request_id": request_id, "chat_id": chat_id})
        try:
            async for chunk in runtime.orchestrator.stream(request_id):
                yield sse_event("chunk", chunk.to_dict())
        except ProviderError as e:
            yield sse_event("error", error_body(e.error_type.value, user_message(e)))
            return
        yield sse_event("done", {"request_id": request_id})

    return streaming_response(stream=events())


@router.get("/v1/requests/{request_id}")
async def get_request_status(request_id: str, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    pending = runtime.orchestrator.get_request(request_id)
    if pending is not None:
        return JSONResponse(
            status_code=200,
            content={
                "request_id": request_id,
                "state": pending.state.value,
                "attempts": pending.attempts,
                "provider_id": pending.provider_id,
            },
        )
    record = runtime.orchestrator.find_record(request_id)
    if record is None:
        return ErrorResponseBuilder.not_found("Request", request_id)
    state = "completed" if record.success else "failed"
    return JSONResponse(status_code=200, content={"state": state, **record.to_dict()})


@router.get("/v1/chats/{chat_id}/history")
async def get_history(chat_id: str, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    messages = runtime.orchestrator.get_conversation(chat_id)
    return JSONResponse(
        status_code=200,
        content={"chat_id": chat_id, "messages": [message.to_dict() for message in messages]},
    )


@router.delete("/v1/chats/{chat_id}/history")
async def clear_history(chat_id: str, runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    removed = runtime.orchestrator.clear_conversation(chat_id)
    return JSONResponse(status_code=200, content={"chat_id": chat_id, "removed": removed})
