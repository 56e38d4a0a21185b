"""Supabase client initialization."""
import logging
from supabase import create_client, Client

from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)

db: Client = None

try:
    if SUPABASE_URL and SUPABASE_KEY:
        db = create_client(SUPABASE_URL, SUPABASE_KEY)
        logger.info("Supabase Client Connected")
    else:
        logger.warning("Supabase credentials not found in environment variables")
except Exception as e:
    logger.error("Error initializing Supabase: %s", e)
