"""Factory for creating activity store instances."""

import sqlite3
from typing import cast

from channelsense.adapters.sqlite_store import SQLiteActivityStore
from channelsense.config.logging_config import get_logger
from channelsense.config.settings import Settings
from channelsense.domain.exceptions import FatalConfigurationError
from channelsense.domain.protocols import ActivityStoreProtocol

logger = get_logger(__name__)


def create_activity_store(settings: Settings) -> ActivityStoreProtocol:
    """Create the activity store selected by settings.

    Args:
        settings: Application settings

    Returns:
        Activity store instance

    Raises:
        FatalConfigurationError: If database_type is not supported or the
            store cannot be opened
    """
    if settings.database_type == "sqlite":
        logger.info("activity_store_sqlite_selected", path=settings.db_path)
        try:
            store = SQLiteActivityStore(settings.db_path)
        except (OSError, sqlite3.Error) as e:
            logger.error(
                "activity_store_open_failed", path=settings.db_path, error=str(e)
            )
            raise FatalConfigurationError(
                f"Cannot open activity store at {settings.db_path}: {e}"
            ) from e
        return cast(ActivityStoreProtocol, store)

    raise FatalConfigurationError(
        f"Unsupported database type: {settings.database_type}. Must be 'sqlite'"
    )
