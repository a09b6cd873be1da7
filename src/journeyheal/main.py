import os
import sys
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Reconfigure stdout/stderr to UTF-8 so emoji log prefixes survive on Windows consoles
if sys.platform.startswith('win'):
    import io
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')
    os.environ['PYTHONIOENCODING'] = 'utf-8'

from src.journeyheal import __version__
from src.journeyheal.api.healing_endpoints import router as healing_router
from src.journeyheal.core.config import settings
from src.journeyheal.core.logging_config import setup_healing_logging

# --- Logging Configuration ---
setup_healing_logging(settings.LOG_LEVEL, settings.LOG_DIR)

# --- FastAPI App ---
app = FastAPI(title="journeyheal - Step Mapping and Self-Healing Engine", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- API Router ---
app.include_router(healing_router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


@app.on_event("startup")
async def startup_event():
    logging.info("Application startup complete.")


@app.on_event("shutdown")
async def shutdown_event():
    logging.info("Application shutdown complete.")
