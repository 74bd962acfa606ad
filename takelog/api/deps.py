import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from takelog.config import get_settings
from takelog.services.take_engine import TakeEngine
from takelog.services.take_store import DatabaseTakeStore, InMemoryTakeStore, TakeStore

logger = logging.getLogger(__name__)


def build_store() -> TakeStore:
    settings = get_settings()
    if settings.storage_backend == "database":
        return DatabaseTakeStore.from_url(settings.database_url, echo=settings.database_echo)
    return InMemoryTakeStore()


@lru_cache
def get_engine() -> TakeEngine:
    """One engine per process; tests override this dependency."""
    settings = get_settings()
    logger.info(f"Starting take engine with {settings.storage_backend} storage")
    return TakeEngine(build_store(), settings)


Engine = Annotated[TakeEngine, Depends(get_engine)]
