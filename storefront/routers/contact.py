"""
Contact form endpoint, throttled per client IP.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from storefront.clock import to_ms
from storefront.db import Database
from storefront.dependencies import get_db
from storefront.errors import ValidationError
from storefront.models import ContactRequest, SuccessResponse
from storefront.rate_limit import get_client_ip, rate_limit
from storefront.services.otp import normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["contact"])


@router.post(
    "/contact",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    operation_id="submitContact",
    summary="Submit the contact form",
    dependencies=[Depends(rate_limit("contact"))],
)
async def submit_contact(
    request: Request,
    body: ContactRequest,
    db: Annotated[Database, Depends(get_db)],
) -> JSONResponse:
    if not (body.name and body.email and body.subject and body.message):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Missing required fields"},
        )
    try:
        email = normalize_email(body.email)
    except ValidationError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Invalid email format"},
        )

    await db.create_contact_submission(
        name=body.name.strip(),
        email=email,
        phone=body.phone or None,
        subject=body.subject.strip(),
        message=body.message,
        source=body.source or "contact-page",
        ip_address=get_client_ip(request),
        created_at=to_ms(request.app.state.clock()),
    )
    logger.info("Contact submission stored from %s", email)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "message": "Message sent successfully"},
    )
