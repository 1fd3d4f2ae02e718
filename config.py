# config.py
import os
from dotenv import load_dotenv

# Load .env file from project root
load_dotenv()


class Config:
    # --- App settings ---
    APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", 8000))

    # --- CORS Settings ---
    # Accept comma-separated values: e.g., "http://localhost:3000,http://127.0.0.1:3000"
    ALLOWED_ORIGINS = [
        o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()
    ]

    # --- Database ---
    # Without DATABASE_URL the service runs on the in-memory store
    DATABASE_URL = os.getenv("DATABASE_URL")
    DATABASE_NAME = os.getenv("DATABASE_NAME", "campus_connect")

    # --- External services ---
    UPLOAD_API_URL = os.getenv("UPLOAD_API_URL")
    LLM_API_URL = os.getenv("LLM_API_URL")
    LLM_API_KEY = os.getenv("LLM_API_KEY")
    HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", 30))

    # --- Logging ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")

    # --- Accounts ---
    # Emails registered with the admin role, comma-separated
    ADMIN_EMAILS = [
        e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()
    ]
