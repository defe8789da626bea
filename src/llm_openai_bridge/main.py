"""Main FastAPI application entry point."""

import argparse
import asyncio
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from llm_openai_bridge import __version__
from llm_openai_bridge.api import router as openai_router
from llm_openai_bridge.config import Settings, get_settings
from llm_openai_bridge.lifecycle import ServerLifecycleManager
from llm_openai_bridge.metrics import MetricsExporter
from llm_openai_bridge.orchestrator import ChatCompletionOrchestrator, ResponsesOrchestrator
from llm_openai_bridge.resolver import ModelResolver
from llm_openai_bridge.status import StatusReflector
from llm_openai_bridge.upstream import HttpModelProvider, ModelProvider
from llm_openai_bridge.utils import configure_logging, get_logger

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = app.state.settings
    logger.info(
        "startup",
        version=__version__,
        host=settings.host,
        port=settings.port,
        default_model=settings.default_model,
    )

    yield

    await close_provider(app)
    logger.info("shutdown")


async def close_provider(app: FastAPI) -> None:
    aclose = getattr(app.state.provider, "aclose", None)
    if aclose is not None:
        await aclose()


def create_app(
    settings: Settings | None = None,
    provider: ModelProvider | None = None,
    status: StatusReflector | None = None,
) -> FastAPI:
    """Build the application and its per-process services.

    Args:
        settings: Application settings (defaults to the cached env settings)
        provider: Upstream model provider (defaults to the HTTP provider)
        status: Status reflector shared with the lifecycle manager
    """
    settings = settings or get_settings()
    provider = provider or HttpModelProvider(settings)
    resolver = ModelResolver(provider, settings)

    app = FastAPI(
        title="LLM OpenAI Bridge",
        description="OpenAI-compatible HTTP facade over a host language model capability",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.provider = provider
    app.state.resolver = resolver
    app.state.status = status or StatusReflector()
    app.state.chat_orchestrator = ChatCompletionOrchestrator(resolver)
    app.state.responses_orchestrator = ResponsesOrchestrator(resolver)

    app.include_router(openai_router)

    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        if not request.url.path.startswith("/v1"):
            return await call_next(request)

        logger.info("http.request", method=request.method, path=request.url.path)
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.get("/health")
    async def health_check(request: Request) -> dict:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "running_model_cache": request.app.state.resolver.cache_size,
        }

    @app.get("/metrics")
    async def metrics() -> PlainTextResponse:
        """Prometheus metrics endpoint."""
        content_type, metrics_body = MetricsExporter.get_prometheus_format()
        return PlainTextResponse(content=metrics_body.decode("utf-8"), media_type=content_type)

    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-openai-bridge",
        description="OpenAI-compatible HTTP bridge to a language model provider",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve", "start", "status"],
        help="serve (default, honours AUTO_START), start, or status",
    )
    parser.add_argument("--host", help="Bind host")
    parser.add_argument("--port", type=int, help="Bind port")
    parser.add_argument("--default-model", help="Fallback model id")
    parser.add_argument("--start", action="store_true", help="Start serving even without AUTO_START")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {
        "host": args.host,
        "port": args.port,
        "default_model": args.default_model,
    }
    return get_settings().model_copy(update={k: v for k, v in overrides.items() if v is not None})


def check_status(settings: Settings) -> int:
    """GET ``/health`` on the configured address; 0 when reachable."""
    try:
        response = httpx.get(f"{settings.base_url}/health", timeout=5)
        response.raise_for_status()
    except httpx.HTTPError as e:
        print(f"Server is not running on {settings.base_url} ({e})")
        return 1
    payload = response.json()
    print(f"Server is running on {settings.base_url} (version {payload.get('version')})")
    return 0


async def run_server(settings: Settings, force_start: bool) -> int:
    app = create_app(settings)
    manager = ServerLifecycleManager(app, settings, status=app.state.status)
    try:
        started = await manager.start() if force_start else await manager.activate()
        if not started:
            if app.state.status.last_error:
                print(app.state.status.last_error, file=sys.stderr)
                return 1
            print("Auto start is disabled; pass --start or set AUTO_START=true")
            return 0
        print(app.state.status.describe())
        await manager.wait_closed()
        return 0
    finally:
        await manager.stop()
        await close_provider(app)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    configure_logging(settings.log_level, settings.log_file_path)

    if args.command == "status":
        return check_status(settings)

    force_start = args.command == "start" or args.start
    try:
        return asyncio.run(run_server(settings, force_start))
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
