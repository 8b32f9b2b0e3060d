import os

from dotenv import load_dotenv

# Centralized configuration values shared across components.

load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))

DB_URL = os.getenv("GREENPARTNER_DB_URL", "sqlite:///./greenpartner.db")
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "supersecret")
ENGINE_TIMEZONE = os.getenv("ENGINE_TIMEZONE", "UTC")
MAX_COMMIT_RETRIES = int(os.getenv("MAX_COMMIT_RETRIES", "3"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
