import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from switchboard import __version__
from switchboard.api.endpoints import router as api_router
from switchboard.core.config import Config
from switchboard.core.logging import configure_root_logging
from switchboard.runtime import build_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    runtime = getattr(app.state, "runtime", None)
    owned = runtime is None
    if owned:
        runtime = build_runtime(getattr(app.state, "config", None))
        await runtime.start()
        app.state.runtime = runtime
    try:
        yield
    finally:
        if owned:
            await runtime.aclose()
            app.state.runtime = None


def create_app(config: Config | None = None) -> FastAPI:
    app = FastAPI(title="LLM Switchboard", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.include_router(api_router)
    return app


app = create_app()


def main() -> None:
    config = Config.load()
    configure_root_logging(config.log_level)
    app.state.config = config

    print(f"🚀 LLM Switchboard v{__version__}")
    print(f"   Server: {config.host}:{config.port}")
    print(f"   Max concurrent requests: {config.max_concurrent_requests}")
    print(f"   Settings file: {config.settings_path}")
    print("")

    log_level = config.log_level.lower()
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=log_level,
        access_log=log_level == "debug",
    )


if __name__ == "__main__":
    main()
