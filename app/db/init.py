import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.models.order import Order
from app.models.payment import Payment

DOCUMENT_MODELS = [
    Order,
    Payment,
]

_client: AsyncIOMotorClient | None = None


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def get_client() -> AsyncIOMotorClient:
    """Process-wide Motor client; connections are pooled and borrowed per operation."""
    global _client
    if _client is None:
        settings = get_settings()
        kwargs = {
            "timeoutMS": settings.mongodb_timeout_ms,
            "serverSelectionTimeoutMS": settings.mongodb_server_selection_timeout_ms,
        }
        # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        _client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    return _client


async def init_db() -> None:
    settings = get_settings()
    database = get_client()[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
