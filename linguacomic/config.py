"""
Configuration for LinguaComic.

Values come from environment variables (a .env file is loaded by the
entry points via python-dotenv).
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    """Application configuration loaded from environment variables"""

    # Analysis (Gemini)
    google_api_key: str = ""
    analysis_model: str = "gemini-2.5-flash"
    analysis_temperature: float = 0.3

    # Image synthesis (fal.ai)
    fal_api_key: str = ""
    image_model: str = "fal-ai/flux-pro/kontext/text-to-image"
    inline_images: bool = False  # Return data: URLs instead of hosted URLs

    # Graph viewport
    graph_width: float = 800.0
    graph_height: float = 500.0

    # Dashboard
    dashboard_host: str = "127.0.0.1"
    dashboard_port: int = 5000

    # Logging
    log_level: str = "INFO"


def load_config() -> AppConfig:
    """Load configuration from environment variables"""
    return AppConfig(
        google_api_key=os.getenv("GOOGLE_API_KEY", ""),
        analysis_model=os.getenv("ANALYSIS_MODEL", "gemini-2.5-flash"),
        analysis_temperature=float(os.getenv("ANALYSIS_TEMPERATURE", "0.3")),

        fal_api_key=os.getenv("FAL_API_KEY", ""),
        image_model=os.getenv("IMAGE_MODEL", "fal-ai/flux-pro/kontext/text-to-image"),
        inline_images=_env_bool("INLINE_IMAGES", "false"),

        graph_width=float(os.getenv("GRAPH_WIDTH", "800")),
        graph_height=float(os.getenv("GRAPH_HEIGHT", "500")),

        dashboard_host=os.getenv("DASHBOARD_HOST", "127.0.0.1"),
        dashboard_port=int(os.getenv("DASHBOARD_PORT", "5000")),

        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
