"""Application wiring: settings, logging, storage, gateway, session and sync"""

from pathlib import Path
from typing import Optional

import httpx

from .api.gateway import GatewayClient
from .auth.credential_store import EncryptedFileCredentialStore
from .auth.session_manager import AuthSessionManager
from .models.session import Session
from .services.habit_sync import HabitSyncController
from .utils.config import Settings, config_manager
from .utils.crypto import load_or_create_key
from .utils.logger import get_logger, setup_logger

logger = get_logger(__name__)


class HabitSyncApp:
    """Owns the one session manager and habit controller for this process"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.transport = transport
        self.credential_store: Optional[EncryptedFileCredentialStore] = None
        self.gateway: Optional[GatewayClient] = None
        self.session_manager: Optional[AuthSessionManager] = None
        self.habits: Optional[HabitSyncController] = None

    def initialize(self, configure_logging: bool = True) -> None:
        """Build every component from settings (loading settings.yaml if none were given)."""
        if self.settings is None:
            self.settings = config_manager.load_settings()
        settings = self.settings

        if configure_logging:
            setup_logger(
                log_level=settings.logging.level,
                log_format=settings.logging.format,
                file_path=settings.logging.file_path,
                max_bytes=settings.logging.max_bytes,
                backup_count=settings.logging.backup_count,
            )

        logger.info(
            "Initializing HabitSync",
            app_name=settings.app.name,
            version=settings.app.version,
            environment=settings.app.environment,
            api_base_url=settings.api.base_url,
        )

        key = load_or_create_key(settings.storage.key_env, Path(settings.storage.key_path))
        self.credential_store = EncryptedFileCredentialStore(
            Path(settings.storage.credential_path),
            key,
            storage_key=settings.storage.storage_key,
        )
        self.gateway = GatewayClient(
            settings.api.base_url,
            self.credential_store,
            timeout=settings.api.timeout_seconds,
            transport=self.transport,
        )
        self.session_manager = AuthSessionManager(self.gateway, self.credential_store)
        self.habits = HabitSyncController(
            self.gateway,
            self.session_manager,
            refresh_attempts=settings.sync.refresh_attempts,
            checkin_timezone=settings.sync.checkin_timezone,
        )

    async def start(self) -> Session:
        """Initialize if needed and restore any stored session."""
        if self.session_manager is None:
            self.initialize()
        return await self.session_manager.bootstrap()

    async def close(self) -> None:
        if self.habits is not None:
            self.habits.close()
        if self.gateway is not None:
            await self.gateway.aclose()
        logger.info("HabitSync stopped")
