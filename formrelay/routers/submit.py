# formrelay/routers/submit.py

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from formrelay.intake.services import IntakeService
from formrelay.schemas.intake import IntakeReason, IntakeResult, RequestContext, SubmitResponse

logger = logging.getLogger("formrelay.routers.submit")

router = APIRouter(prefix="/api", tags=["submit"])

REJECTION_STATUS: Dict[IntakeReason, int] = {
    IntakeReason.PROJECT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    IntakeReason.ORIGIN_NOT_ALLOWED: status.HTTP_403_FORBIDDEN,
    IntakeReason.HONEYPOT_TRIGGERED: status.HTTP_400_BAD_REQUEST,
    IntakeReason.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    IntakeReason.VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def get_intake_service(request: Request) -> IntakeService:
    return request.app.state.intake_service


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """
    Get client IP address for rate limiting.

    X-Forwarded-For is client-controlled unless a proxy overwrites it, so it
    is only read when ``trust_forwarded_for`` is enabled.
    """
    # Check for forwarded IP (from proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For") if trust_forwarded_for else None
    if forwarded:
        # Take the first IP in the chain
        return forwarded.split(",")[0].strip()
    # Fallback to direct connection
    return request.client.host if request.client else "unknown"


def build_request_context(request: Request) -> RequestContext:
    settings = request.app.state.settings
    return RequestContext(
        ip=get_client_ip(request, settings.trust_forwarded_for),
        user_agent=request.headers.get("User-Agent", ""),
        origin=request.headers.get("Origin"),
        referrer=request.headers.get("Referer"),
    )


async def read_form_body(request: Request) -> Dict[str, Any]:
    """
    Accept JSON objects and url-encoded / multipart forms.

    Repeated form keys (checkbox groups) become lists.
    """
    content_type = request.headers.get("Content-Type", "").split(";")[0].strip().lower()

    if content_type in ("application/x-www-form-urlencoded", "multipart/form-data"):
        form = await request.form()
        data: Dict[str, Any] = {}
        for key in form.keys():
            values = [v for v in form.getlist(key) if isinstance(v, str)]
            if not values:
                continue
            data[key] = values[0] if len(values) == 1 else values
        return data

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object or form data.",
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object or form data.",
        )
    return payload


def _to_response(result: IntakeResult) -> JSONResponse:
    if result.accepted:
        outcome = result.mail_outcome
        body = SubmitResponse(
            success=True,
            message="Submission received.",
            submission_id=result.submission_id,
            mail=outcome.model_dump(mode="json") if outcome else None,
        )
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=body.model_dump(mode="json"))

    assert result.reason is not None
    body = SubmitResponse(
        success=False,
        error=result.reason.value,
        message=result.message,
        errors=result.errors,
    )
    return JSONResponse(
        status_code=REJECTION_STATUS.get(result.reason, status.HTTP_400_BAD_REQUEST),
        content=body.model_dump(mode="json"),
    )


@router.post(
    "/submit/{project_identifier}",
    response_model=SubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a form to a project",
)
async def submit_form(
    project_identifier: str,
    request: Request,
    intake: IntakeService = Depends(get_intake_service),
) -> JSONResponse:
    """
    Public endpoint hit by tenant websites.

    ``project_identifier`` is the project's API key (or id). Rejections carry a
    stable ``error`` code; internal failures return a generic 500.
    """
    data = await read_form_body(request)
    context = build_request_context(request)

    try:
        result = await intake.submit(project_identifier, data, context)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to process submission for %r", project_identifier)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to accept submission at this time.",
        ) from exc

    if not result.accepted:
        logger.info(
            "Rejected submission for %r from %s: %s",
            project_identifier,
            context.ip,
            result.reason.value if result.reason else "unknown",
        )
    return _to_response(result)


__all__ = ["router"]
