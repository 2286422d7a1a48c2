"""Base service class for business logic."""

from __future__ import annotations

import logging

from notify_service.infra.logging import get_lazy_logger


class BaseService:
    """Base class for all service classes.

    Provides common functionality like logging for business logic services.

    Loggers:
        - self.logger: Standard logger for INFO/WARNING/ERROR (always evaluated)
        - self._lazy: Lazy logger for DEBUG (zero overhead when DEBUG disabled)

    Example:
        class DigestService(BaseService):
            def __init__(self, users: UserDirectory):
                super().__init__()
                self.users = users

            async def run(self) -> None:
                self.logger.info("Digest sweep started")
                self._lazy.debug(lambda: f"Directory: {self.users!r}")
    """

    def __init__(self) -> None:
        """Initialize base service with loggers."""
        class_name = self.__class__.__name__
        # Standard logger for INFO/WARNING/ERROR
        self.logger = logging.getLogger(class_name)
        # Lazy logger for DEBUG (zero overhead when DEBUG disabled)
        self._lazy = get_lazy_logger(class_name)
