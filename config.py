"""
config.py — Shared constants and settings.
"""

import os
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")  # service role for full access

SQ_M_PER_HECTARE = 10_000.0
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5 MB

# Image analysis
MAX_IMAGE_SIDE = 512
ALPHA_THRESHOLD = 20
IMAGE_DECODE_TIMEOUT_S = float(os.getenv("IMAGE_DECODE_TIMEOUT_S", "10"))
ALLOWED_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif")

# Sensors
LATEST_READINGS_WINDOW = 100
