"""POST /v1/ussd - carrier gateway callback"""

import logging
import re
from fastapi import APIRouter, Depends, Request

from payflex_gateway.api.v1.schemas import UssdRequestBody, UssdResponseBody
from payflex_gateway.api.dependencies import get_request_id, get_ussd_machine
from payflex_gateway.config import settings
from payflex_gateway.domain.models import UssdRequest
from payflex_gateway.domain.ussd import SERVICE_UNAVAILABLE, UssdSessionMachine
from payflex_gateway.utils.text_utils import truncate_utf8

router = APIRouter()

PHONE_PATTERN = re.compile(r"^\+?\d{6,15}$")
INVALID_PHONE = "Invalid phone number."


@router.post("/ussd", response_model=UssdResponseBody)
async def handle_ussd(
    request_body: UssdRequestBody,
    request: Request,
    machine: UssdSessionMachine = Depends(get_ussd_machine),
):
    """
    Advance a USSD dialogue by one turn.

    Always answers with the two-field body, even on failure: the carrier
    shows `response` and closes the dialogue when keepSession is false.
    """
    request_id = get_request_id(request)

    if not PHONE_PATTERN.match(request_body.phone_number):
        return UssdResponseBody(response=INVALID_PHONE, keep_session=False)

    try:
        reply = await machine.handle(
            UssdRequest(
                session_id=request_body.session_id,
                phone_number=request_body.phone_number,
                text=request_body.text,
            ),
            request_id=request_id,
        )
    except Exception as e:
        logging.error(f"Unexpected USSD error: {e}", extra={"request_id": request_id})
        return UssdResponseBody(response=SERVICE_UNAVAILABLE, keep_session=False)

    return UssdResponseBody(
        response=truncate_utf8(reply.response, settings.ussd_max_response_bytes),
        keep_session=reply.keep_session,
    )
