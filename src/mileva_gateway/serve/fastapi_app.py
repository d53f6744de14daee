"""FastAPI gateway in front of a local Ollama server.

Endpoints:
- GET /, GET /health (public)
- POST /api/<alias>  { "input": "..." }  one route per local model
- POST /api/<cloud-alias>  { "input": "..." } or { "contents": [...] }
- GET /api/test-ollama, GET /api/ollama-status
- POST /v1/chat/completions, POST /v1/completions, GET /v1/models
"""
from __future__ import annotations
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import APIRouter, Depends, FastAPI, Request, Security
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from mileva_gateway import __version__
from mileva_gateway.common.errors import (
    AuthError,
    ConfigError,
    GatewayError,
    InvalidRequestError,
)
from mileva_gateway.common.logging_setup import preview, setup_logging
from mileva_gateway.common.model_map import DIAGNOSTIC_TIMEOUT_MS, ModelRoute
from mileva_gateway.common.prompts import flatten_messages
from mileva_gateway.common.schema import (
    ChatCompletionIn,
    CloudGenerateIn,
    CompletionIn,
    GenerateIn,
    chat_completion,
    model_list,
    openai_error,
    text_completion,
)
from mileva_gateway.common.settings import Settings
from mileva_gateway.serve.negotiation import content_negotiation
from mileva_gateway.upstream.gemini_client import GeminiClient, prompt_contents
from mileva_gateway.upstream.ollama_client import OllamaClient

LOGGER = logging.getLogger("mileva.gateway.app")

API_KEY_HEADER = "x-api-key"
TEST_PROMPT = "Say hello"

_api_key = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
_bearer = HTTPBearer(auto_error=False)


def _check_key(expected: str | None, provided: str | None) -> None:
    if not provided:
        LOGGER.warning("Missing API key")
        raise AuthError("Unauthorized - Missing API Key", status_code=401)
    if not expected or not secrets.compare_digest(provided.encode(), expected.encode()):
        LOGGER.warning("Invalid API key provided")
        raise AuthError("Forbidden - Invalid API Key")


def require_api_key(request: Request, key: str | None = Security(_api_key)) -> None:
    _check_key(request.app.state.settings.api_key, key)


def require_openai_key(
    request: Request,
    key: str | None = Security(_api_key),
    creds: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """OpenAI SDKs send ``Authorization: Bearer``; accept it next to ``x-api-key``."""
    _check_key(request.app.state.settings.api_key, key or (creds.credentials if creds else None))


def _is_openai_path(request: Request) -> bool:
    return request.url.path.startswith("/v1")


def _error_response(exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _openai_error_response(exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=openai_error(exc))


async def _auth_error(request: Request, exc: AuthError) -> JSONResponse:
    if _is_openai_path(request):
        return _openai_error_response(exc)
    return _error_response(exc)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "invalid body") if errors else "invalid body"
    err = InvalidRequestError(f"Invalid request: {detail}", code="invalid_body")
    LOGGER.info("Rejected %s %s: %s", request.method, request.url.path, err.message)
    if _is_openai_path(request):
        return _openai_error_response(err)
    return _error_response(err)


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
    if _is_openai_path(request):
        return JSONResponse(
            status_code=500,
            content={"error": {"message": "Internal server error", "type": "server_error", "code": None}},
        )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


async def _log_requests(request: Request, call_next: Callable[..., Any]) -> Any:
    if request.url.path.startswith(("/api", "/v1")):
        client = request.client.host if request.client else "-"
        LOGGER.info("%s %s - IP: %s", request.method, request.url.path, client)
    return await call_next(request)


def index(request: Request) -> dict[str, Any]:
    settings: Settings = request.app.state.settings
    protected = {
        f"POST /api/{r.alias}": f"Generate text using {r.model}" for r in settings.models.routes
    }
    protected.update(
        {f"POST /api/{r.alias}": f"Generate text using {r.model} (Gemini)" for r in settings.models.cloud_routes}
    )
    protected.update(
        {
            "GET /api/test-ollama": "Test ollama functionality",
            "GET /api/ollama-status": "Check ollama service status",
            "POST /v1/chat/completions": "OpenAI-compatible chat completions",
            "POST /v1/completions": "OpenAI-compatible text completions",
            "GET /v1/models": "OpenAI-compatible model list",
        }
    )
    return {
        "message": "Hello, welcome to Mileva API",
        "description": "A REST API server for running Llama models via Ollama",
        "version": __version__,
        "endpoints": {
            "public": {"GET /": "This documentation page", "GET /health": "Health check endpoint"},
            "protected": protected,
        },
        "usage": {
            "authentication": f"Include {API_KEY_HEADER} header for protected endpoints",
            "request_format": {
                "method": "POST",
                "headers": {"Content-Type": "application/json", API_KEY_HEADER: "your-api-key"},
                "body": {"input": "Your prompt text here"},
            },
            "response_format": {"result": "Generated text response"},
        },
    }


def health() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


def _native_route(route: ModelRoute) -> Callable[..., Any]:
    def generate(request: Request, body: GenerateIn | None = None) -> Any:
        if body is None or not body.input:
            LOGGER.info("Rejected %s request: missing input", route.alias)
            return _error_response(InvalidRequestError("Missing input"))

        LOGGER.info("Processing %s request with input: %s", route.alias, preview(body.input))
        ollama: OllamaClient = request.app.state.ollama
        try:
            result = ollama.generate(route.model, body.input, route.timeout_ms)
        except GatewayError as e:
            LOGGER.error("%s failed (model=%s, input=%s): %s", route.alias, route.model, preview(body.input), e)
            return _error_response(e)
        LOGGER.info("%s request completed successfully", route.alias)
        return {"result": result}

    generate.__name__ = f"generate_{route.alias.replace('-', '_')}"
    return generate


def _cloud_route(route: ModelRoute) -> Callable[..., Any]:
    def generate(request: Request, body: CloudGenerateIn | None = None) -> Any:
        if body is None or not (body.contents or body.input):
            LOGGER.info("Rejected %s request: missing input", route.alias)
            return _error_response(InvalidRequestError("Missing input: provide 'input' or 'contents'"))

        gemini: GeminiClient | None = request.app.state.gemini
        if gemini is None:
            err = ConfigError(
                f"GEMINI_API_KEY is not configured. Set GEMINI_API_KEY in the server "
                f"environment to enable /api/{route.alias}."
            )
            LOGGER.error("%s unavailable: %s", route.alias, err)
            return _error_response(err)

        contents = body.contents or prompt_contents(body.input or "")
        extra = {}
        if body.systemInstruction is not None:
            extra["systemInstruction"] = body.systemInstruction
        if body.generationConfig is not None:
            extra["generationConfig"] = body.generationConfig

        summary = body.input or f"<{len(contents)} content entries>"
        LOGGER.info("Processing %s request with input: %s", route.alias, preview(summary))
        try:
            result = gemini.generate(route.model, contents, route.timeout_ms, extra)
        except GatewayError as e:
            LOGGER.error("%s failed (model=%s, input=%s): %s", route.alias, route.model, preview(summary), e)
            return _error_response(e)
        return {"result": result}

    generate.__name__ = f"generate_{route.alias.replace('-', '_')}"
    return generate


def probe_ollama(request: Request) -> Any:
    settings: Settings = request.app.state.settings
    ollama: OllamaClient = request.app.state.ollama
    LOGGER.info("Testing ollama API with simple prompt...")
    try:
        result = ollama.generate(settings.models.default_model, TEST_PROMPT, DIAGNOSTIC_TIMEOUT_MS)
    except GatewayError as e:
        LOGGER.error("Ollama API test error: %s", e)
        return JSONResponse(
            status_code=e.status_code,
            content={"error": e.message, "method": "REST API", "api_url": ollama.base_url},
        )
    return {
        "success": True,
        "result": result,
        "message": "Ollama API is working correctly",
        "method": "REST API",
    }


def ollama_status(request: Request) -> Any:
    ollama: OllamaClient = request.app.state.ollama
    try:
        models = ollama.list_models(DIAGNOSTIC_TIMEOUT_MS)
    except GatewayError as e:
        LOGGER.error("Ollama status check failed: %s", e)
        return JSONResponse(
            status_code=500,
            content={"status": "error", "error": e.message, "api_url": ollama.base_url},
        )
    return {"status": "running", "api_url": ollama.base_url, "models": models}


def _require(body: Any, field: str) -> None:
    if body is None or not getattr(body, field):
        raise InvalidRequestError(f"Missing required field: {field}", code=f"missing_{field}")
    if body.stream:
        raise InvalidRequestError("Streaming is not supported", code="stream_not_supported")


def chat_completions(request: Request, body: ChatCompletionIn | None = None) -> Any:
    try:
        _require(body, "model")
        _require(body, "messages")
    except InvalidRequestError as e:
        LOGGER.info("Rejected chat completion: %s", e)
        return _openai_error_response(e)

    settings: Settings = request.app.state.settings
    ollama: OllamaClient = request.app.state.ollama
    prompt = flatten_messages([(m.role, m.text()) for m in body.messages])
    model = settings.models.resolve(body.model)
    try:
        text = ollama.generate(model, prompt, settings.models.timeout_ms(model), body.ollama_options())
    except GatewayError as e:
        LOGGER.error("Chat completion failed (model=%s, input=%s): %s", model, preview(prompt), e)
        return _openai_error_response(e)
    return chat_completion(body.model, prompt, text)


def completions(request: Request, body: CompletionIn | None = None) -> Any:
    try:
        _require(body, "model")
        _require(body, "prompt")
    except InvalidRequestError as e:
        LOGGER.info("Rejected completion: %s", e)
        return _openai_error_response(e)

    settings: Settings = request.app.state.settings
    ollama: OllamaClient = request.app.state.ollama
    model = settings.models.resolve(body.model)
    try:
        text = ollama.generate(model, body.prompt, settings.models.timeout_ms(model), body.ollama_options())
    except GatewayError as e:
        LOGGER.error("Completion failed (model=%s, input=%s): %s", model, preview(body.prompt), e)
        return _openai_error_response(e)
    return text_completion(body.model, body.prompt, text)


def list_models(request: Request) -> dict[str, Any]:
    settings: Settings = request.app.state.settings
    return model_list(settings.models.public_ids())


def create_app(
    settings: Settings | None = None,
    ollama: OllamaClient | None = None,
    gemini: GeminiClient | None = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Configuration; read from the environment when omitted.
        ollama: Client for the local inference server.
        gemini: Client for the cloud provider; built from
            ``settings.gemini_api_key`` when omitted and a key is set.
    """
    settings = settings or Settings.from_env()
    if ollama is None:
        ollama = OllamaClient(settings.ollama_base_url)
    if gemini is None and settings.gemini_api_key:
        gemini = GeminiClient(settings.gemini_api_key, settings.gemini_base_url)
    if not settings.api_key:
        LOGGER.warning("API_KEY is not set; every protected endpoint will reject requests")

    app = FastAPI(title="Mileva API", version=__version__)
    app.state.settings = settings
    app.state.ollama = ollama
    app.state.gemini = gemini

    app.middleware("http")(content_negotiation())
    app.middleware("http")(_log_requests)
    app.add_exception_handler(AuthError, _auth_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.add_api_route("/", index, methods=["GET"])
    app.add_api_route("/health", health, methods=["GET"])

    api = APIRouter(prefix="/api", dependencies=[Depends(require_api_key)])
    api.add_api_route("/test-ollama", probe_ollama, methods=["GET"])
    api.add_api_route("/ollama-status", ollama_status, methods=["GET"])
    for route in settings.models.routes:
        api.add_api_route(f"/{route.alias}", _native_route(route), methods=["POST"])
    for route in settings.models.cloud_routes:
        api.add_api_route(f"/{route.alias}", _cloud_route(route), methods=["POST"])
    app.include_router(api)

    v1 = APIRouter(prefix="/v1", dependencies=[Depends(require_openai_key)])
    v1.add_api_route("/chat/completions", chat_completions, methods=["POST"])
    v1.add_api_route("/completions", completions, methods=["POST"])
    v1.add_api_route("/models", list_models, methods=["GET"])
    app.include_router(v1)

    return app


def app_from_env() -> FastAPI:
    """Factory for ``uvicorn --factory``: settings and logging from the environment."""
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    return create_app(settings)
