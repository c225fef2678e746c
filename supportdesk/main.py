import os

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from supportdesk.config import settings
from supportdesk.database import get_db
from supportdesk.logging_config import setup_logging
from supportdesk.routers import escalation, message, sessions, webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="SupportDesk API",
    description="WhatsApp customer support sessions with bot replies and human escalation",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(message.router)
app.include_router(webhook.router)
app.include_router(sessions.router)
app.include_router(escalation.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}
