"""Shared plumbing for Supabase-backed repositories."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from ..db.supabase import get_supabase_client
from ..errors import StoreNotConfiguredError, TransientSyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SupabaseRepository:
    """Resolves the client lazily and turns query failures into ``TransientSyncError``."""

    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self) -> Any:
        client = self._client or get_supabase_client()
        if client is None:
            raise StoreNotConfiguredError()
        return client

    def _execute(self, operation: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except StoreNotConfiguredError:
            raise
        except Exception as exc:
            logger.error(f"Store operation '{operation}' failed: {exc}")
            raise TransientSyncError(operation, reason=str(exc)) from exc
