import os

from dotenv import load_dotenv

# Optional local overrides for test runs
env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

# Settings are read once at import time; pin a self-contained test environment
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("CONNECTIVITY_PROBE_ENABLED", "false")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_webhook_secret")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("QUOTE_SIGNING_SECRET", "test-quote-secret")

from libs.common.config import get_settings  # noqa: E402

get_settings.cache_clear()
