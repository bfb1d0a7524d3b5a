import os

# Tests never talk to a real database, gateway or Redis.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DB_FALLBACK_TO_MEMORY", "true")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("JWT_SECRET", "test-secret-" + "x" * 20)
os.environ.setdefault("GATEWAY_SERVER_KEY", "SB-Mid-server-test")
os.environ.setdefault("GATEWAY_CLIENT_KEY", "SB-Mid-client-test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
