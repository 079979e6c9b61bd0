"""
HTTP API for the preservation registry.

Invariants:
    - Writes are submitted as ledger calls and require an X-Caller header
    - Reads need no caller and are served from the store
    - Domain results are returned as {"value": ...} or {"error": code} with
      the HTTP status equal to the error code (200 on success)
    - Transport problems (unknown names, missing caller, ledger down) use an
      {"error_code": ...} body instead

How to change safely:
    - Version the API if breaking changes are needed
    - Keep READ_COLLECTIONS in sync with the registry read operations
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..registry import UnknownOperationError
from ..store import OpResult
from .servicer import STATUS_APPLIED, RegistryServicer
from .settings import Settings

logger = logging.getLogger(__name__)

# collection path segment -> (read operation, id argument)
READ_COLLECTIONS: dict[str, tuple[str, str]] = {
    "teachers": ("get_teacher", "teacher_id"),
    "classes": ("get_class", "class_id"),
    "certifications": ("get_certification", "certification_id"),
    "resources": ("get_educational_resource", "resource_id"),
    "seasons": ("get_season", "season_id"),
    "schedules": ("get_schedule", "schedule_id"),
    "events": ("get_event", "event_id"),
    "techniques": ("get_technique", "technique_id"),
    "ingredients": ("get_ingredient", "ingredient_id"),
}

_SUBMIT_ERROR_STATUS = {
    "INVALID_ARGUMENT": 400,
    "UNKNOWN_OPERATION": 400,
    "LEDGER_UNAVAILABLE": 503,
    "IDEMPOTENCY_KEY_REUSED": 422,
}

# Applied but could not run (bad arguments); not a domain result
FAILED_CALL_STATUS = 422


class SubmitRequest(BaseModel):
    """Request to submit a mutating call."""

    args: dict[str, Any] = Field(default_factory=dict, description="Operation arguments")
    idempotency_key: str | None = Field(None, description="Idempotency key")
    wait_applied: bool | None = Field(None, description="Wait for the call to be applied")


def _result_response(result: OpResult) -> JSONResponse:
    status = 200 if result.ok else int(result.error)
    return JSONResponse(content=result.to_dict(), status_code=status)


def _error_response(status: int, error_code: str, message: str) -> JSONResponse:
    return JSONResponse(content={"error_code": error_code, "error": message}, status_code=status)


def _submit_status(response: dict[str, Any]) -> int:
    if not response.get("success"):
        return _SUBMIT_ERROR_STATUS.get(response.get("error_code", ""), 500)
    if response.get("status") != STATUS_APPLIED:
        return 202
    outcome = response["receipt"]["outcome"]
    if "failed" in outcome:
        return FAILED_CALL_STATUS
    if "error" in outcome:
        return int(outcome["error"])
    return 200


def create_app(servicer: RegistryServicer, settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        servicer: RegistryServicer instance
        settings: HTTP settings (read from the environment if omitted)

    Returns:
        FastAPI application
    """
    settings = settings or Settings()

    app = FastAPI(
        title=settings.title,
        description=(
            "Food preservation knowledge registry. Writes are ordered through "
            "the call ledger; reads are served from the registry store."
        ),
        version="1.0.0",
    )
    app.state.servicer = servicer
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/v1/health")
    async def health() -> dict[str, Any]:
        return await servicer.health()

    @app.post("/v1/calls/{operation}")
    async def submit_call(
        operation: str,
        body: SubmitRequest,
        x_caller: str | None = Header(default=None),
    ) -> JSONResponse:
        if not x_caller:
            return _error_response(400, "INVALID_ARGUMENT", "X-Caller header is required")

        wait = settings.default_wait_applied if body.wait_applied is None else body.wait_applied
        response = await servicer.submit(
            caller=x_caller,
            operation=operation,
            args=body.args,
            idempotency_key=body.idempotency_key,
            wait_applied=wait,
        )
        return JSONResponse(content=response, status_code=_submit_status(response))

    @app.get("/v1/receipts/{idempotency_key}")
    async def get_receipt(idempotency_key: str) -> JSONResponse:
        response = await servicer.get_receipt(idempotency_key)
        status = 200 if response["status"] == STATUS_APPLIED else 404
        return JSONResponse(content=response, status_code=status)

    @app.get("/v1/techniques/{technique_id}/steps/{step_number}")
    async def get_technique_step(technique_id: int, step_number: int) -> JSONResponse:
        result = await servicer.read(
            "get_technique_step", technique_id=technique_id, step_number=step_number
        )
        return _result_response(result)

    @app.get("/v1/techniques/{technique_id}/ingredients/{ingredient_id}")
    async def get_technique_ingredient(technique_id: int, ingredient_id: int) -> JSONResponse:
        result = await servicer.read(
            "get_technique_ingredient", technique_id=technique_id, ingredient_id=ingredient_id
        )
        return _result_response(result)

    @app.get("/v1/classes/{class_id}/participants/{participant}")
    async def get_class_participant(class_id: int, participant: str) -> JSONResponse:
        result = await servicer.read(
            "get_class_participant", class_id=class_id, participant=participant
        )
        return _result_response(result)

    @app.get("/v1/{collection}/{record_id}")
    async def get_record(collection: str, record_id: int) -> JSONResponse:
        target = READ_COLLECTIONS.get(collection)
        if target is None:
            return _error_response(404, "UNKNOWN_COLLECTION", f"Unknown collection: {collection}")
        operation, id_arg = target
        return _result_response(await servicer.read(operation, **{id_arg: record_id}))

    @app.exception_handler(UnknownOperationError)
    async def unknown_operation(request: Request, exc: UnknownOperationError) -> JSONResponse:
        logger.info("Unknown operation requested", extra={"operation": exc.operation})
        return _error_response(400, "UNKNOWN_OPERATION", str(exc))

    return app
