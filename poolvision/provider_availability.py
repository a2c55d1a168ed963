from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .analysis_schemas import SchemaInvalid
from .response_extraction import NoJsonFound

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 60.0
QUOTA_AUTH_STATUS_CODES = frozenset({401, 403, 429})


class FailureClass(str, Enum):
    QUOTA_AUTH = "quota_auth"
    TRANSIENT = "transient"
    EXTRACTION = "extraction"
    SCHEMA = "schema"


@dataclass
class ProviderStatus:
    name: str
    disabled_until: float | None = None
    last_error: str | None = None
    last_failure_class: FailureClass | None = None
    failure_count: int = 0
    success_count: int = 0

    def available_at(self, now: float) -> bool:
        return self.disabled_until is None or now >= self.disabled_until

    def to_dict(self, *, now: float) -> dict[str, Any]:
        remaining = None
        if self.disabled_until is not None and now < self.disabled_until:
            remaining = round(self.disabled_until - now, 3)
        return {
            "name": self.name,
            "available": self.available_at(now),
            "cooldown_remaining_seconds": remaining,
            "last_error": self.last_error,
            "last_failure_class": self.last_failure_class.value if self.last_failure_class else None,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
        }


def classify_failure(exc: BaseException) -> FailureClass:
    if isinstance(exc, NoJsonFound):
        return FailureClass.EXTRACTION
    if isinstance(exc, SchemaInvalid):
        return FailureClass.SCHEMA
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int) and status_code in QUOTA_AUTH_STATUS_CODES:
        return FailureClass.QUOTA_AUTH
    return FailureClass.TRANSIENT


class AvailabilityTracker:
    def __init__(
        self,
        provider_names: list[str] | None = None,
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be positive.")
        self.cooldown_seconds = float(cooldown_seconds)
        self._clock = clock
        self._statuses: dict[str, ProviderStatus] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        for name in provider_names or []:
            self._entry(name)

    def now(self) -> float:
        return self._clock()

    def is_available(self, name: str) -> bool:
        status, lock = self._entry(name)
        now = self._clock()
        with lock:
            if status.disabled_until is None:
                return True
            if now < status.disabled_until:
                return False
            status.disabled_until = None
        logger.info("Provider %s re-enabled after cooldown", name)
        return True

    def mark_failed(
        self,
        name: str,
        failure_class: FailureClass,
        *,
        error: str | None = None,
    ) -> None:
        status, lock = self._entry(name)
        now = self._clock()
        with lock:
            status.failure_count += 1
            status.last_error = error
            status.last_failure_class = failure_class
            if failure_class is not FailureClass.QUOTA_AUTH:
                return
            status.disabled_until = now + self.cooldown_seconds
        logger.warning(
            "Provider %s disabled for %.0fs after quota/auth failure: %s",
            name,
            self.cooldown_seconds,
            error or "no detail",
        )

    def mark_succeeded(self, name: str) -> None:
        status, lock = self._entry(name)
        with lock:
            status.success_count += 1
            status.last_error = None

    def status(self, name: str) -> ProviderStatus:
        status, lock = self._entry(name)
        with lock:
            return ProviderStatus(
                name=status.name,
                disabled_until=status.disabled_until,
                last_error=status.last_error,
                last_failure_class=status.last_failure_class,
                failure_count=status.failure_count,
                success_count=status.success_count,
            )

    def snapshot(self) -> list[dict[str, Any]]:
        now = self._clock()
        with self._registry_lock:
            names = list(self._statuses)
        return [self.status(name).to_dict(now=now) for name in names]

    def _entry(self, name: str) -> tuple[ProviderStatus, threading.Lock]:
        status = self._statuses.get(name)
        if status is not None:
            return status, self._locks[name]
        with self._registry_lock:
            if name not in self._statuses:
                self._locks[name] = threading.Lock()
                self._statuses[name] = ProviderStatus(name=name)
            return self._statuses[name], self._locks[name]
