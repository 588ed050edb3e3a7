from functools import lru_cache
import logging

from app.core.config import settings
from app.application.ports.chat_client import ChatClientPort
from app.application.ports.poll_backend import PollBackendPort
from app.application.use_cases.messaging import MessagingService
from app.application.use_cases.poll_votes import PollVoteReconciler
from app.application.use_cases.session_manager import SessionManager
from app.domain.entities.poll import PollVoteNotification
from app.domain.entities.session_state import SessionState
from app.infrastructure.backend.backend_client import BackendClient
from app.infrastructure.backend.poll_backend import HttpPollBackend
from app.infrastructure.media.media_loader import MediaLoader
from app.infrastructure.whatsapp.bridge_client import BridgeWhatsAppClient
from app.infrastructure.whatsapp.mock_client import MockWhatsAppClient

logger = logging.getLogger("app")


def log_state_change(state: SessionState, detail: dict | None) -> None:
    reason = (detail.get("error") or detail.get("reason")) if detail else None
    logger.info("WhatsApp status: %s", state.value, extra={"reason": reason})


def log_vote(notification: PollVoteNotification) -> None:
    logger.info(
        "Poll vote handled",
        extra={
            "message_id": notification.message_id,
            "voter": notification.voter,
            "option_id": notification.selected_option_id,
        },
    )


@lru_cache
def get_backend_client() -> BackendClient:
    return BackendClient(
        base_url=settings.BACKEND_BASE_URL,
        api_key=settings.BACKEND_API_KEY,
        timeout=settings.BACKEND_TIMEOUT_SECONDS,
        retries=settings.BACKEND_RETRIES,
        retry_delay=settings.BACKEND_RETRY_DELAY_SECONDS,
    )


def get_poll_backend() -> PollBackendPort:
    return HttpPollBackend(client=get_backend_client())


@lru_cache
def get_media_loader() -> MediaLoader:
    return MediaLoader(timeout=settings.MEDIA_DOWNLOAD_TIMEOUT_SECONDS)


def build_chat_client() -> ChatClientPort:
    logger = logging.getLogger(__name__)
    if not settings.WHATSAPP_BRIDGE_URL:
        if settings.ENV.lower() in {"dev", "local"}:
            logger.info("Using MockWhatsAppClient (bridge URL missing, ENV=dev/local)")
            return MockWhatsAppClient()
        raise ValueError("WHATSAPP_BRIDGE_URL is required to reach the WhatsApp bridge.")

    logger.info("Using WhatsApp bridge client")
    return BridgeWhatsAppClient(
        url=settings.WHATSAPP_BRIDGE_URL,
        token=settings.WHATSAPP_BRIDGE_TOKEN,
        client_id=settings.WHATSAPP_CLIENT_ID,
        session_dir=settings.WHATSAPP_SESSION_DIR,
        command_timeout=settings.WHATSAPP_COMMAND_TIMEOUT_SECONDS,
    )


@lru_cache
def get_session_manager() -> SessionManager:
    session = SessionManager(
        client_factory=build_chat_client,
        init_timeout=settings.WHATSAPP_INIT_TIMEOUT_SECONDS,
        reconnect_delay=settings.WHATSAPP_RECONNECT_DELAY_SECONDS,
        reconnect_on_init_timeout=settings.WHATSAPP_RECONNECT_ON_INIT_TIMEOUT,
    )
    session.on_state_change(log_state_change)
    return session


@lru_cache
def get_messaging_service() -> MessagingService:
    return MessagingService(
        session=get_session_manager(),
        backend=get_poll_backend(),
        media_loader=get_media_loader(),
        otp_expiry_minutes=settings.OTP_DEFAULT_EXPIRY_MINUTES,
    )


@lru_cache
def get_poll_vote_reconciler() -> PollVoteReconciler:
    reconciler = PollVoteReconciler(backend=get_poll_backend(), messaging=get_messaging_service())
    reconciler.on_vote(log_vote)
    get_session_manager().on_vote(reconciler.handle)
    return reconciler


def get_container() -> dict[str, object]:
    return {
        "session": get_session_manager(),
        "messaging": get_messaging_service(),
        "reconciler": get_poll_vote_reconciler(),
    }


async def close_resources() -> None:
    await get_session_manager().shutdown()
    await get_backend_client().aclose()
    await get_media_loader().aclose()
    for getter in (
        get_backend_client,
        get_media_loader,
        get_session_manager,
        get_messaging_service,
        get_poll_vote_reconciler,
    ):
        getter.cache_clear()
