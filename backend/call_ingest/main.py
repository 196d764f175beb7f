from fastapi import FastAPI
from .api.routes import api_router
from .config import get_settings
import logging

# Loads .env (if present) on first call
settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
    ]
)

if not settings.webhook_secret:
    logging.getLogger(__name__).warning("ELEVENLABS_WEBHOOK_SECRET is not set; every delivery will be rejected")
if not settings.use_supabase:
    logging.getLogger(__name__).warning("SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY not set; using in-memory store")

app = FastAPI(title="Call Event Ingest")

app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    return {"status": "ok"}
