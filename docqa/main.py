"""Quart application for document question answering."""
import logging
import math
import time
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from quart import Quart, current_app, jsonify, request
from werkzeug.exceptions import HTTPException
import structlog

from docqa import config
from docqa.errors import (
    GENERIC_ERROR_MESSAGE,
    DocQAError,
    ErrorKind,
    RateLimitExceeded,
    ValidationError,
)
from docqa.rag.models import ConversationMessage, UploadedDocument
from docqa.ratelimit import RateLimiter, client_identifier
from docqa.services import Services, build_services

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)
logging.basicConfig(level=config.LOG_LEVEL, format="%(message)s")

logger = structlog.get_logger()

_history_adapter = TypeAdapter(List[ConversationMessage])


def _services() -> Services:
    return current_app.extensions["docqa"]


def _admit(limiter: RateLimiter) -> str:
    """Apply a limiter to the current request; returns the client key."""
    identifier = client_identifier(request.headers, request.remote_addr)
    limiter.check(identifier)
    return identifier


def _parse_history(raw) -> Optional[List[ConversationMessage]]:
    if raw is None:
        return None
    try:
        return _history_adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            "conversationHistory must be a list of {role, content} messages",
            field="conversationHistory",
        ) from e


def create_app(services: Optional[Services] = None) -> Quart:
    """Build the Quart app around one set of process-wide services."""
    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = (
        config.MAX_FILE_SIZE * config.MAX_FILES_PER_UPLOAD + 1024 * 1024
    )
    app.extensions["docqa"] = services or build_services()

    @app.before_serving
    async def start_background_tasks():
        svc = _services()
        svc.chat_limiter.start()
        svc.upload_limiter.start()

    @app.after_serving
    async def stop_background_tasks():
        svc = _services()
        await svc.chat_limiter.stop()
        await svc.upload_limiter.stop()

    @app.route("/api/upload", methods=["POST"])
    async def upload():
        """Ingest uploaded documents.

        Expects multipart form data with one or more `files` parts.

        Returns JSON:
        {
            "message": "...",
            "stats": {"chunksCreated": n, "totalChunks": n, "totalFiles": n}
        }
        """
        svc = _services()
        identifier = _admit(svc.upload_limiter)

        files = await request.files
        documents = [
            UploadedDocument(
                file_name=storage.filename or "",
                content=storage.read(),
                content_type=storage.content_type,
            )
            for storage in files.getlist("files")
        ]

        logger.info(
            "upload_request_received",
            file_count=len(documents),
            file_names=[d.file_name for d in documents],
        )

        stats = await svc.ingest.ingest_documents(documents)

        response = jsonify(
            {"message": "Files uploaded and processed successfully.", "stats": stats}
        )
        response.headers["X-RateLimit-Remaining"] = str(
            svc.upload_limiter.get_remaining_requests(identifier)
        )
        return response

    @app.route("/api/chat", methods=["POST"])
    async def chat():
        """Answer a question from the uploaded documents.

        Expects JSON body:
        {
            "question": "user question",
            "model": "optional model name",
            "conversationHistory": [{"role": "user", "content": "..."}]  // optional
        }

        Returns JSON:
        {
            "answer": "assistant answer",
            "sources": [{"text": "...", "fileName": "...", "similarity": "0.873"}]
        }
        """
        svc = _services()
        identifier = _admit(svc.chat_limiter)

        data = await request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object", field="body")

        logger.info(
            "chat_request_received",
            model=data.get("model"),
            question_preview=str(data.get("question", ""))[:100],
        )

        result = await svc.orchestrator.answer(
            data.get("question"),
            model=data.get("model"),
            prior_history=_parse_history(data.get("conversationHistory")),
        )

        response = jsonify(result)
        response.headers["X-RateLimit-Remaining"] = str(
            svc.chat_limiter.get_remaining_requests(identifier)
        )
        return response

    @app.route("/api/documents", methods=["GET"])
    async def list_documents():
        """List stored files with their fragment counts."""
        files = await _services().vector_store.list_files()
        return jsonify({"documents": files})

    @app.route("/api/documents/<path:file_name>", methods=["DELETE"])
    async def delete_document(file_name: str):
        """Delete every fragment of one file.

        Returns:
            200 with the number of removed fragments (0 if the file was unknown)
        """
        removed = await _services().vector_store.delete_chunks_by_file_name(file_name)
        return jsonify({"fileName": file_name, "deletedChunks": removed})

    @app.route("/api/documents", methods=["DELETE"])
    async def clear_documents():
        await _services().vector_store.clear()
        return "", 204

    @app.route("/api/stats", methods=["GET"])
    async def stats():
        store_stats = await _services().vector_store.get_stats()
        return jsonify(store_stats.model_dump(by_alias=True))

    @app.route("/api/history", methods=["GET"])
    async def get_history():
        messages = _services().history.get_all()
        return jsonify({"messages": [m.model_dump() for m in messages]})

    @app.route("/api/history", methods=["DELETE"])
    async def clear_history():
        _services().history.clear()
        return "", 204

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check if app can serve requests.

        Checks:
        - Ollama service is reachable
        - Default chat and embedding models are available
        """
        checks = {"status": "healthy", "ollama": False, "models": False}
        ollama = _services().ollama

        if ollama is None:
            checks.update(ollama=True, models=True)
            return jsonify(checks), 200

        try:
            models = await ollama.list_models()
        except DocQAError as e:
            logger.error("health_check_failed", error=e.message)
            checks["status"] = "unhealthy"
            checks["error"] = e.public_message
            return jsonify(checks), 503

        checks["ollama"] = True
        installed = set(models) | {m.split(":")[0] for m in models if m.endswith(":latest")}
        missing = [
            m for m in (config.CHAT_MODEL, config.EMBEDDING_MODEL) if m not in installed
        ]
        if missing:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing models: {', '.join(missing)}"
        else:
            checks["models"] = True

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(DocQAError)
    async def handle_service_error(error: DocQAError):
        if error.kind is ErrorKind.INTERNAL:
            logger.error(
                "internal_error",
                error=error.message,
                error_type=type(error).__name__,
                path=request.path,
            )
        else:
            logger.warning(
                "request_failed",
                error=error.message,
                error_kind=error.kind.value,
                path=request.path,
            )

        response = jsonify(error.to_dict())
        response.status_code = error.status_code

        if isinstance(error, RateLimitExceeded):
            response.headers["X-RateLimit-Reset"] = str(int(error.reset_at))
            response.headers["Retry-After"] = str(
                max(0, math.ceil(error.reset_at - time.time()))
            )

        return response

    @app.errorhandler(404)
    async def not_found(error):
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    async def too_large(error):
        return jsonify({"error": "Upload too large"}), 413

    @app.errorhandler(Exception)
    async def internal_error(error: Exception):
        """Log unexpected errors; callers get a generic message."""
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        logger.exception(
            "internal_server_error", error=str(error), error_type=type(error).__name__
        )
        return jsonify({"error": GENERIC_ERROR_MESSAGE}), 500

    return app


if __name__ == "__main__":
    # For development - use `hypercorn "docqa.main:create_app()"` in production
    create_app().run(host="0.0.0.0", port=5000, debug=True)
