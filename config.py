"""Environment configuration shared by the Flask app and the analysis service."""
import os
from dotenv import load_dotenv

load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Supabase (auth + tables) ---
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

USERS_TABLE = "users"
SCANS_TABLE = "scanRecords"
AUDIT_TABLE = "auditLogs"

# --- Analysis service ---
# In Docker, the backend service is reachable by its service name "backend"
BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")
BACKEND_TIMEOUT = float(os.getenv("BACKEND_TIMEOUT", 25))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5000,http://127.0.0.1:5000").split(",")

# --- Local text-generation endpoint (Ollama style) ---
LLM_URL = os.getenv("LLM_URL", "http://localhost:11434/api/generate")
LLM_MODEL = os.getenv("LLM_MODEL", "llama3.2")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", 20))
TIPS_TIMEOUT = float(os.getenv("TIPS_TIMEOUT", 15))

# --- Display ---
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "Asia/Manila")
TIP_ROTATION_SECONDS = int(os.getenv("TIP_ROTATION_SECONDS", 5))
HISTORY_POLL_SECONDS = float(os.getenv("HISTORY_POLL_SECONDS", 3))
