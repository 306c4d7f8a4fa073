import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path)

# MongoDB
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "agendamentos")

# WhatsApp confirmation function. When unset, confirmations are built in-process.
MESSAGING_FUNCTION_URL = os.getenv("MESSAGING_FUNCTION_URL")
MESSAGING_TIMEOUT = float(os.getenv("MESSAGING_TIMEOUT", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

PORT = int(os.getenv("PORT", "8000"))
