from switchboard.orchestrator.history import ConversationHistory
from switchboard.orchestrator.request import Request, RequestOptions, RequestRecord, RequestState
from switchboard.orchestrator.request_orchestrator import ChunkChannel, RequestOrchestrator
from switchboard.orchestrator.retry import RetryPolicy

__all__ = [
    "ChunkChannel",
    "ConversationHistory",
    "Request",
    "RequestOptions",
    "RequestOrchestrator",
    "RequestRecord",
    "RequestState",
    "RetryPolicy",
]
