import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_booking.db")
CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Booking grid window, in practice-local minutes of day.
GRID_START_MINUTES = int(os.getenv("GRID_START_MINUTES", str(7 * 60)))
GRID_END_MINUTES = int(os.getenv("GRID_END_MINUTES", str(19 * 60)))
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "15"))

TOGGLE_DURATION_MINUTES = int(os.getenv("TOGGLE_DURATION_MINUTES", "60"))
DEFAULT_BLOCK_TYPE = os.getenv("DEFAULT_BLOCK_TYPE", "new_patient")
DEFAULT_APPOINTMENT_MINUTES = int(os.getenv("DEFAULT_APPOINTMENT_MINUTES", "30"))
HOLD_MINUTES = int(os.getenv("HOLD_MINUTES", "10"))
EXCEPTION_LOOKAHEAD_DAYS = int(os.getenv("EXCEPTION_LOOKAHEAD_DAYS", "60"))

ROUTING_RADIUS_BUFFER_MILES = float(os.getenv("ROUTING_RADIUS_BUFFER_MILES", "1"))
ROUTING_NEAR_MISS_MILES = float(os.getenv("ROUTING_NEAR_MISS_MILES", "2"))
COVERAGE_POLYGON_STEPS = int(os.getenv("COVERAGE_POLYGON_STEPS", "64"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not 0 <= GRID_START_MINUTES < GRID_END_MINUTES <= 24 * 60:
        raise RuntimeError("GRID_START_MINUTES must be before GRID_END_MINUTES within one day.")
    if SLOT_STEP_MINUTES <= 0 or TOGGLE_DURATION_MINUTES <= 0:
        raise RuntimeError("SLOT_STEP_MINUTES and TOGGLE_DURATION_MINUTES must be positive.")
