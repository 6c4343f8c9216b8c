from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bonstay.app.api.v1.api import api_router
from bonstay.app.core.config import settings
from bonstay.app.core.logging import configure_logging
from bonstay.app.middleware.request_id import RequestIDMiddleware

configure_logging()

app = FastAPI(title="Bonstay Account Recovery")

# ─── CORS: restrict to configured origins ────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Retry-After"],
)

# ─── Custom middleware (outermost executes first) ─────────────────────────────
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router)
