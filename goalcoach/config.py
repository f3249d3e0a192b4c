import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
]


class Settings(BaseModel):
    """Startup configuration handed to the delegates and the API layer."""

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemma-3-4b-it"
    coach_api_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of a remote coach service; replaces Gemini when set.",
    )
    firebase_credentials: Optional[str] = None
    firebase_project_id: Optional[str] = None
    plan_transition_delay: float = Field(default=2.0, description="Seconds to wait before generating the plan.")
    cors_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    default_user_id: str = "user_01"
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Read the environment (and .env) once and freeze it into a Settings object."""
    load_dotenv()

    origins = os.getenv("CORS_ORIGINS")
    delay = os.getenv("PLAN_TRANSITION_DELAY")

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", "gemma-3-4b-it"),
        coach_api_base_url=os.getenv("COACH_API_BASE_URL") or None,
        firebase_credentials=os.getenv("FIREBASE_CREDENTIALS") or os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
        firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
        plan_transition_delay=float(delay) if delay else 2.0,
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else list(DEFAULT_CORS_ORIGINS),
        default_user_id=os.getenv("DEFAULT_USER_ID", "user_01"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
