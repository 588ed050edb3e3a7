import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.whatsapp import router as whatsapp_router
from app.core.config import settings
from app.wiring.dependencies import close_resources, get_container

class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in (
            "state", "reason", "method", "path", "attempt", "retries",
            "message_id", "voter", "option", "option_id", "status", "error",
        ):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = get_container()
    logger.info("WhatsApp service initializing...")
    await container["session"].initialize()
    try:
        yield
    finally:
        await close_resources()


app = FastAPI(title="WhatsApp Gateway", version="1.0.0", lifespan=lifespan)

app.include_router(whatsapp_router, tags=["whatsapp"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
