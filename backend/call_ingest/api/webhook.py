from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
import logging

from ..config import Settings, get_settings
from ..db import get_db
from ..errors import AuthenticationError
from ..services.ingest import ingest_delivery

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "elevenlabs-signature"


@router.post("/webhook", response_class=PlainTextResponse)
async def elevenlabs_webhook(request: Request, db=Depends(get_db), settings: Settings = Depends(get_settings)):
    body = await request.body()
    sig = request.headers.get(SIGNATURE_HEADER)

    try:
        outcome = ingest_delivery(body, sig, db, settings)
    except AuthenticationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return PlainTextResponse("unauthorized", status_code=401)

    logger.info(f"Webhook acknowledged: {outcome.value}")
    return PlainTextResponse(outcome.value, status_code=200)
