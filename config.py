# config.py
import os

# Entorno: "production" oculta detalles internos en errores 5xx
APP_ENVIRONMENT = os.environ.get("APP_ENVIRONMENT", "production")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Separados por coma. "*" = cualquier origen
CORS_ALLOWED_ORIGINS = [
    o.strip() for o in os.environ.get("CORS_ALLOWED_ORIGINS", "*").split(",") if o.strip()
]

# Base del API que consume el dashboard
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000")

DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "50"))
MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "200"))

_seed = os.environ.get("FACTORY_SEED")
FACTORY_SEED = int(_seed) if _seed else None


def is_production() -> bool:
    return APP_ENVIRONMENT == "production"
