"""
FastAPI app for phone verification.

Run with:
    uvicorn smsauth.main:app
"""
import logging
import sys

from dotenv import load_dotenv

# Load .env before settings are read
load_dotenv()

from fastapi import FastAPI  # noqa: E402

from .core.config import settings  # noqa: E402
from .core.env import get_env_name, is_local_env  # noqa: E402
from .exception_handlers import register_exception_handlers  # noqa: E402
from .lifespan import lifespan  # noqa: E402
from .middleware.request_id import RequestIDMiddleware  # noqa: E402
from .routers import auth, register  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("smsauth")

env = get_env_name()
if settings.SENTRY_DSN and not is_local_env():
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1,
        environment=env,
        # Phone numbers are PII
        send_default_pii=False,
    )
    logger.info(f"Sentry error tracking initialized for environment: {env}")
elif settings.SENTRY_DSN:
    logger.info("Sentry DSN configured but not initializing in local environment")

app = FastAPI(title="smsauth", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestIDMiddleware)
register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(register.router)


@app.get("/health")
async def health():
    """Liveness probe. No database or provider checks."""
    return {"ok": True, "service": "smsauth", "status": "healthy"}
