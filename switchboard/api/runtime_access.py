"""FastAPI dependency injection for the switchboard Runtime."""

from fastapi import Request

from switchboard.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    """Return the Runtime owned by the FastAPI app.

    Raises:
        RuntimeError: If the app was started without a lifespan-built runtime
    """
    runtime = getattr(request.app.state, "runtime", None)
    if not isinstance(runtime, Runtime):
        raise RuntimeError("app.state.runtime is not initialized")
    return runtime
