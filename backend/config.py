from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

_BACKEND_DIR = Path(__file__).parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # Interpreter configuration
    interpreter_backend: Literal["subprocess", "modal"] = "subprocess"
    python_executable: str = ""  # empty means the interpreter running the backend
    execution_timeout_seconds: float = 10.0
    modal_app_name: str = "lessonrunner-sandbox"
    sandbox_idle_timeout_seconds: int = 3600

    # Comparison tolerances for numeric return values
    numeric_rel_tol: float = 0.01
    numeric_abs_tol: float = 1e-9

    # Turtle graphics
    turtle_canvas_width: int = 400
    turtle_canvas_height: int = 300
    turtle_visual_threshold: float = 0.95
    turtle_pixel_threshold: float = 0.1
    turtle_match_radius: int = 2  # pixels
    turtle_length_tolerance: float = 2.0  # pixels
    turtle_angle_tolerance: float = 2.0  # degrees

    # Lesson content and progress storage
    lessons_file: Path = _BACKEND_DIR / "lessons.json"
    assets_dir: Path = _BACKEND_DIR / "assets"
    progress_file: str = ""  # empty keeps progress in memory only

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors(cls, v: object) -> list[str]:
        """Accept both a JSON list and a comma-separated string for CORS_ORIGINS."""
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v  # type: ignore[return-value]

    # Error reporting
    sentry_dsn: str = ""
    environment: str = "development"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


settings = Settings()
