"""Schlanker HTTP-Client für die Pomo-Timer API."""

from .api_client import ApiClient, ApiError, InvalidTransitionError
from .models import IntervalRecord, TimerStatus

__all__ = [
    "ApiClient",
    "ApiError",
    "IntervalRecord",
    "InvalidTransitionError",
    "TimerStatus",
]
