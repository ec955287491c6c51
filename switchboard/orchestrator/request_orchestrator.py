"""Request orchestrator: queueing, admission control, routing and execution.

Requests enter a FIFO queue and are admitted while fewer than
``max_concurrent`` are running. Each admitted request selects a provider,
runs on a leased instance, reports metrics and health back to the registry,
and resolves exactly once: a result or a typed error, never both.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import OrderedDict, deque
from collections.abc import AsyncIterator, Callable
from dataclasses import replace
from typing import Any

from switchboard.clients.base import ChatMessage, ChunkCallback, CompletionResult
from switchboard.core.error_types import ErrorType
from switchboard.core.errors import (
    ConfigurationError,
    NoRouteError,
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
    RequestCancelledError,
    UnknownProviderError,
    UpstreamHTTPError,
    user_message,
)
from switchboard.core.events import EventBus, Events
from switchboard.core.logging import ConversationLogger
from switchboard.core.provider.provider_registry import (
    ProviderInstance,
    ProviderRegistry,
    SelectionRequirements,
)
from switchboard.orchestrator.history import ConversationHistory
from switchboard.orchestrator.request import Request, RequestOptions, RequestRecord, RequestState
from switchboard.orchestrator.retry import RetryPolicy
from switchboard.streaming.chunks import StreamChunk

logger = logging.getLogger(__name__)

ModelResolver = Callable[[str], "str | None"]

# Errors that say something about the provider's reachability
_CONNECTIVITY_ERRORS = (UpstreamHTTPError, ProviderTimeoutError, ProviderConnectionError)


class ChunkChannel:
    """Bounded hand-off of stream chunks to one consumer.

    Before a consumer attaches, a full buffer discards its oldest chunk; every
    chunk carries the cumulative text so a late consumer loses nothing it
    needs. Once attached, a full buffer makes the producer wait. A detached
    channel swallows further chunks.
    """

    def __init__(self, maxsize: int) -> None:
        self._queue: asyncio.Queue[StreamChunk] = asyncio.Queue(maxsize=maxsize)
        self.attached = False
        self.detached = False
        self.dropped = 0

    async def put(self, chunk: StreamChunk) -> None:
        if self.detached:
            return
        if self.attached:
            await self._queue.put(chunk)
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(chunk)

    async def get(self) -> StreamChunk:
        return await self._queue.get()

    def get_nowait(self) -> StreamChunk:
        return self._queue.get_nowait()

    def empty(self) -> bool:
        return self._queue.empty()

    def detach(self) -> None:
        self.detached = True
        while not self._queue.empty():
            self._queue.get_nowait()


class RequestOrchestrator:
    """Bounded-concurrency executor for chat requests."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        events: EventBus | None = None,
        history: ConversationHistory | None = None,
        max_concurrent: int = 3,
        retry_policy: RetryPolicy | None = None,
        stream_buffer_size: int = 64,
        request_history_limit: int = 1000,
        model_resolver: ModelResolver | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.registry = registry
        self.events = events or registry.events
        self.history = history or ConversationHistory()
        self.max_concurrent = max_concurrent
        self.retry_policy = retry_policy or RetryPolicy()
        self.stream_buffer_size = stream_buffer_size
        self.model_resolver = model_resolver
        self.selected_model: tuple[str, str] | None = None
        self.request_history: deque[RequestRecord] = deque(maxlen=request_history_limit)
        self.completed_total = 0
        self.failed_total = 0

        self._queue: deque[Request] = deque()
        self._active: dict[str, asyncio.Task[None]] = {}
        self._backoff: dict[str, asyncio.Task[None]] = {}
        self._requests: dict[str, Request] = {}
        self._callbacks: dict[str, ChunkCallback] = {}
        self._channels: dict[str, ChunkChannel] = {}
        self._results: OrderedDict[str, asyncio.Future[CompletionResult]] = OrderedDict()
        self._result_limit = request_history_limit
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    # === Submission ===

    async def submit(
        self,
        chat_id: str,
        message: str,
        options: RequestOptions | None = None,
        *,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        """Queue a request and return its id without waiting for it to run.

        A request pinned to a provider that is unknown, not initialized or
        not configured is rejected here, before it reaches the queue.
        """
        if self._closed:
            raise RequestCancelledError("Orchestrator is closed")
        options = self._resolve_route(options or RequestOptions())

        request = Request(
            id=str(uuid.uuid4()),
            chat_id=chat_id,
            message=message,
            options=options,
            sequence=self.history.reserve(chat_id),
        )
        future: asyncio.Future[CompletionResult] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        self._requests[request.id] = request
        self._results[request.id] = future
        if on_chunk is not None:
            self._callbacks[request.id] = on_chunk
        if options.streaming:
            self._channels[request.id] = ChunkChannel(self.stream_buffer_size)

        self._queue.append(request)
        self._idle.clear()
        logger.debug(
            f"Queued request {request.id[:8]} for chat '{chat_id}' "
            f"(queue: {len(self._queue)}, active: {len(self._active)})"
        )
        self.events.publish(
            Events.REQUEST_QUEUED,
            {
                "request_id": request.id,
                "chat_id": chat_id,
                "provider_id": options.provider_id,
                "model": options.model,
                "streaming": options.streaming,
                "position": len(self._queue),
            },
        )
        self._drain()
        return request.id

    def _resolve_route(self, options: RequestOptions) -> RequestOptions:
        options = self._pin(options)
        if options.provider_id is not None:
            self._require_usable(options.provider_id)
        return options

    def _pin(self, options: RequestOptions) -> RequestOptions:
        if options.provider_id is not None:
            return options

        if options.model:
            provider_id, _, model = options.model.partition(":")
            if model and self.registry.is_registered(provider_id):
                return replace(options, provider_id=provider_id, model=model)
            provider_id = self.model_resolver(options.model) if self.model_resolver else None
            if provider_id is None:
                raise NoRouteError(f"Model '{options.model}' is not offered by any live provider")
            return replace(options, provider_id=provider_id)

        if self.selected_model is not None:
            provider_id, model = self.selected_model
            return replace(options, provider_id=provider_id, model=model)
        return options

    async def result(self, request_id: str) -> CompletionResult:
        """Wait for a request's outcome; raises its typed error on failure."""
        future = self._results.get(request_id)
        if future is None:
            raise KeyError(f"Unknown request '{request_id}'")
        return await asyncio.shield(future)

    async def stream(self, request_id: str) -> AsyncIterator[StreamChunk]:
        """Consume a streaming request's chunks, ending with the finished one.

        Raises the request's typed error if it fails. Closing the iterator
        early detaches the consumer; the request still runs to completion.
        """
        channel = self._channels.get(request_id)
        if channel is None:
            raise KeyError(f"No stream for request '{request_id}'")
        if channel.attached:
            raise RuntimeError(f"Stream for request '{request_id}' already has a consumer")
        channel.attached = True
        future = self._results[request_id]

        pending_get: asyncio.Task[StreamChunk] | None = None
        try:
            while True:
                if pending_get is None:
                    pending_get = asyncio.ensure_future(channel.get())
                await asyncio.wait({pending_get, future}, return_when=asyncio.FIRST_COMPLETED)
                if pending_get.done():
                    chunk = pending_get.result()
                    pending_get = None
                    yield chunk
                    if chunk.finished:
                        return
                    continue

                pending_get.cancel()
                pending_get = None
                while not channel.empty():
                    chunk = channel.get_nowait()
                    yield chunk
                    if chunk.finished:
                        return
                future.result()
                return
        finally:
            if pending_get is not None:
                pending_get.cancel()
            channel.detach()
            self._channels.pop(request_id, None)

    # === Scheduling ===

    def _drain(self) -> None:
        while self._queue and len(self._active) < self.max_concurrent:
            request = self._queue.popleft()
            self._active[request.id] = asyncio.create_task(
                self._run(request), name=f"switchboard-request-{request.id[:8]}"
            )

    async def _run(self, request: Request) -> None:
        retry_delay: float | None = None
        try:
            with ConversationLogger.correlation_context(request.id):
                retry_delay = await self._execute(request)
        finally:
            self._active.pop(request.id, None)
            if retry_delay is not None and not self._closed:
                self._backoff[request.id] = asyncio.create_task(
                    self._requeue_after(request, retry_delay)
                )
            self._drain()
            self._update_idle()

    async def _requeue_after(self, request: Request, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        finally:
            self._backoff.pop(request.id, None)
        request.state = RequestState.QUEUED
        self._queue.appendleft(request)
        self._drain()

    def _update_idle(self) -> None:
        if not self._queue and not self._active and not self._backoff:
            self._idle.set()

    # === Execution ===

    def _require_usable(self, provider_id: str) -> None:
        if not self.registry.is_registered(provider_id):
            raise UnknownProviderError(provider_id)
        client = self.registry.get_client(provider_id)
        if client is None:
            raise NoRouteError(f"Provider '{provider_id}' is not initialized", provider_id=provider_id)
        if not client.is_configured():
            raise ConfigurationError(
                f"Provider '{provider_id}' is not configured", provider_id=provider_id
            )

    def _select_provider(self, request: Request) -> str:
        options = request.options
        if options.provider_id is not None:
            # Re-checked here: the instance may have changed while queued
            self._require_usable(options.provider_id)
            return options.provider_id

        requirements = SelectionRequirements(
            capabilities=options.required_capabilities + (("streaming",) if options.streaming else ()),
            preferred_providers=options.preferred_providers,
            exclude_providers=options.exclude_providers,
            exclude_unhealthy=options.exclude_unhealthy,
        )
        provider_id = self.registry.get_best_provider(requirements)
        if provider_id is None:
            raise NoRouteError("No configured provider satisfies the request requirements")
        return provider_id

    async def _execute(self, request: Request) -> float | None:
        """Run one attempt; returns a backoff delay when the request should retry."""
        request.attempts += 1
        request.state = RequestState.SELECTING
        start_time = time.time()
        provider_id: str | None = None
        try:
            provider_id = self._select_provider(request)
            request.provider_id = provider_id
            request.state = RequestState.EXECUTING
            async with self.registry.lease(provider_id) as instance:
                result = await self._call(request, instance)
        except asyncio.CancelledError:
            self._fail(request, RequestCancelledError("Request cancelled"), start_time)
            raise
        except Exception as e:
            error = e if isinstance(e, ProviderError) else None
            if error is None:
                logger.exception(f"Unexpected error while executing request {request.id[:8]}")
            duration_ms = (time.time() - start_time) * 1000
            if provider_id is not None and not isinstance(e, NoRouteError):
                self.registry.record_request(
                    provider_id, duration_ms, False, model=request.options.model, error=user_message(e)
                )
                if isinstance(e, _CONNECTIVITY_ERRORS):
                    self.registry.record_health(provider_id, False, user_message(e))

            instance = self.registry.get_instance(provider_id) if provider_id else None
            provider_retries = instance.config.retry_attempts if instance is not None else None
            if self.retry_policy.should_retry(
                e, request.attempts, request.chunks_emitted, provider_retries
            ):
                delay = self.retry_policy.delay_seconds(request.attempts)
                logger.warning(
                    f"Request {request.id[:8]} failed on '{provider_id}' ({user_message(e)}); "
                    f"retrying in {delay:.1f}s (attempt {request.attempts + 1}/"
                    f"{self.retry_policy.attempt_limit(provider_retries)})"
                )
                request.state = RequestState.QUEUED
                return delay
            self._fail(request, e, start_time)
            return None

        self._succeed(request, result, start_time)
        return None

    async def _call(self, request: Request, instance: ProviderInstance) -> CompletionResult:
        client = instance.client
        options = request.options.completion_options()
        messages = self.history.context_for(
            request.chat_id,
            ChatMessage(role="user", content=request.message),
            client.capabilities().max_context_length,
            reserved_tokens=options.max_tokens or 0,
        )

        async def forward(chunk: StreamChunk) -> None:
            request.chunks_emitted += 1
            self.events.publish(
                Events.REQUEST_STREAMING_CHUNK,
                {
                    "request_id": request.id,
                    "chat_id": request.chat_id,
                    "provider_id": instance.provider_id,
                    "chunk": chunk.to_dict(),
                },
            )
            channel = self._channels.get(request.id)
            if channel is not None:
                await channel.put(chunk)
            callback = self._callbacks.get(request.id)
            if callback is not None:
                outcome = callback(chunk)
                if outcome is not None:
                    await outcome

        if request.options.streaming:
            result = await client.complete_streaming(messages, options, forward)
        else:
            result = await client.complete(messages, options)
            await forward(
                StreamChunk(
                    delta_text=result.text,
                    full_text=result.text,
                    finished=True,
                    usage=result.usage,
                    stop_reason=result.stop_reason,
                )
            )

        if result.usage is None:
            result = replace(result, usage=client.estimate_usage(messages, result.text))
        return result

    def _succeed(self, request: Request, result: CompletionResult, start_time: float) -> None:
        duration_ms = (time.time() - start_time) * 1000
        provider_id = result.provider_id
        request.state = RequestState.COMPLETED
        self.history.commit(
            request.chat_id,
            request.sequence,
            (
                ChatMessage(role="user", content=request.message),
                ChatMessage(role="assistant", content=result.text),
            ),
        )
        self.registry.record_request(
            provider_id, duration_ms, True, usage=result.usage, model=result.model
        )
        if self.registry.is_registered(provider_id):
            self.registry.record_health(provider_id, True)
        self.completed_total += 1
        self.request_history.append(
            RequestRecord(
                request_id=request.id,
                chat_id=request.chat_id,
                provider_id=provider_id,
                model=result.model,
                success=True,
                duration_ms=duration_ms,
                attempts=request.attempts,
                streaming=request.options.streaming,
                usage=result.usage,
            )
        )
        logger.info(
            f"📊 Request {request.id[:8]} completed | provider: {provider_id} | model: {result.model} "
            f"| {duration_ms:.0f}ms | tokens: {result.usage.total_tokens if result.usage else 0}"
        )
        self.events.publish(
            Events.REQUEST_COMPLETED,
            {
                "request_id": request.id,
                "chat_id": request.chat_id,
                "provider_id": provider_id,
                "model": result.model,
                "duration_ms": duration_ms,
                "text": result.text,
                "usage": result.usage.to_dict() if result.usage else None,
            },
        )
        self._finish(request, result=result)

    def _fail(self, request: Request, error: BaseException, start_time: float) -> None:
        duration_ms = (time.time() - start_time) * 1000
        request.state = RequestState.FAILED
        self.history.skip(request.chat_id, request.sequence)
        error_type = error.error_type if isinstance(error, ProviderError) else ErrorType.UNEXPECTED_ERROR
        message = user_message(error)
        self.failed_total += 1
        self.request_history.append(
            RequestRecord(
                request_id=request.id,
                chat_id=request.chat_id,
                provider_id=request.provider_id,
                model=request.options.model,
                success=False,
                duration_ms=duration_ms,
                attempts=request.attempts,
                streaming=request.options.streaming,
                error_type=error_type,
                error=message,
            )
        )
        logger.warning(
            f"Request {request.id[:8]} failed | provider: {request.provider_id} | "
            f"{error_type.value}: {message}"
        )
        self.events.publish(
            Events.REQUEST_FAILED,
            {
                "request_id": request.id,
                "chat_id": request.chat_id,
                "provider_id": request.provider_id,
                "error_type": error_type.value,
                "error": message,
            },
        )
        self._finish(request, error=error)

    def _finish(
        self,
        request: Request,
        *,
        result: CompletionResult | None = None,
        error: BaseException | None = None,
    ) -> None:
        self._requests.pop(request.id, None)
        self._callbacks.pop(request.id, None)
        channel = self._channels.get(request.id)
        if channel is not None and channel.detached:
            self._channels.pop(request.id, None)

        future = self._results.get(request.id)
        if future is not None and not future.done():
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)
        while len(self._results) > self._result_limit:
            oldest_id, oldest = next(iter(self._results.items()))
            if not oldest.done():
                break
            del self._results[oldest_id]
            self._channels.pop(oldest_id, None)

    # === Introspection ===

    @property
    def queue_depth(self) -> int:
        return len(self._queue) + len(self._backoff)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def get_request(self, request_id: str) -> Request | None:
        return self._requests.get(request_id)

    def find_record(self, request_id: str) -> RequestRecord | None:
        for record in reversed(self.request_history):
            if record.request_id == request_id:
                return record
        return None

    def get_conversation(self, chat_id: str) -> list[ChatMessage]:
        return self.history.messages(chat_id)

    def clear_conversation(self, chat_id: str) -> int:
        removed = self.history.clear(chat_id)
        self.events.publish(Events.CONVERSATION_CLEARED, {"chat_id": chat_id, "removed": removed})
        return removed

    def get_status(self) -> dict[str, Any]:
        return {
            "queue": {
                "pending": self.queue_depth,
                "active": self.active_count,
                "max_concurrent": self.max_concurrent,
                "completed_total": self.completed_total,
                "failed_total": self.failed_total,
            },
            "conversations": {
                "active": len(self.history.chat_ids()),
                "total_messages": self.history.total_messages,
                "per_chat": self.history.message_counts(),
            },
            "selected_model": (
                {"provider_id": self.selected_model[0], "model": self.selected_model[1]}
                if self.selected_model
                else None
            ),
        }

    # === Lifecycle ===

    async def join(self) -> None:
        """Wait until the queue is empty and nothing is running or backing off."""
        await self._idle.wait()

    async def aclose(self) -> None:
        """Cancel running work and fail everything still queued."""
        self._closed = True
        waiting = list(self._backoff.values())
        for task in waiting:
            task.cancel()
        queued = list(self._queue)
        self._queue.clear()
        backing_off = [r for r in self._requests.values() if r.state is RequestState.QUEUED]
        for request in {r.id: r for r in queued + backing_off}.values():
            self._fail(request, RequestCancelledError("Request cancelled during shutdown"), time.time())

        running = list(self._active.values())
        for task in running:
            task.cancel()
        await asyncio.gather(*running, *waiting, return_exceptions=True)
        self._backoff.clear()
        self._update_idle()


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Failures are delivered through events as well; unawaited futures are normal
    if not future.cancelled():
        future.exception()
