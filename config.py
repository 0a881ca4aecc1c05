import os

from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "portfolio")

# Auth / JWT, tokens live for 7 days by default
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-portfolio-secret")
JWT_EXPIRE_MIN = int(os.getenv("JWT_EXPIRE_MIN", str(7 * 24 * 60)))

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", "8000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
