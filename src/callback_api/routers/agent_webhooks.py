"""
Inbound agent callback endpoint.

The coding-agent API POSTs status changes here. The raw body is read
before any parsing so the signature is checked over the exact bytes
that were signed.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ...shared.logging_config import job_id as job_id_context
from ..dependencies import RelayServices, get_services

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/agent-webhooks/{job_id}")
async def receive_agent_webhook(
    job_id: str,
    request: Request,
    services: RelayServices = Depends(get_services)
) -> JSONResponse:
    """
    Receive a status-change callback for one job.

    Responses:
        200: accepted and handled, or non-final status ignored
        400: malformed payload
        401: missing or invalid signature
        404: unknown job
        500: accepted but the completion handler failed
    """
    token = job_id_context.set(job_id)
    try:
        raw_body = await request.body()

        result = await services.verifier.process(
            raw_body,
            request.headers,
            job_id,
            handler=services.completion_handler
        )

        content = result.to_response()
        if isinstance(result.handler_result, dict):
            content.update(result.handler_result)

        return JSONResponse(content=content, status_code=result.status_code)
    finally:
        job_id_context.reset(token)
