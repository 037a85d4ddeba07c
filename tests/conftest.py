"""
Test environment: settings are read once at import time and refuse to load
without JWT_SECRET, so these variables must be set before any app module is
imported. BCRYPT_ROUNDS=4 keeps hashing fast.
"""

import os

os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RESET_TOKEN_EXPIRE_MINUTES", "60")
