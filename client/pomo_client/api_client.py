"""HTTP-Client für die Pomo-Timer API."""

from __future__ import annotations

import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urljoin

import requests
from dotenv import load_dotenv

from .models import IntervalRecord, TimerStatus


class ApiError(RuntimeError):
    """Fehler beim Zugriff auf die API."""

    def __init__(self, message: str, *, response: Optional[requests.Response] = None) -> None:
        super().__init__(message)
        self.response = response


class InvalidTransitionError(ApiError):
    """Der Befehl ist im aktuellen Timer-Zustand nicht erlaubt (HTTP 409)."""


class ApiClient:
    """Kapselt HTTP-Aufrufe zur Timer API."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: int = 15) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.token = token
        self.timeout = timeout

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "ApiClient":
        """Liest `POMO_API_BASE_URL`, `POMO_API_TOKEN` und `POMO_API_TIMEOUT`, optional aus einer `.env` Datei."""

        if env_path is not None and env_path.exists():
            load_dotenv(env_path)
        return cls(
            os.getenv("POMO_API_BASE_URL", "http://127.0.0.1:8080"),
            token=os.getenv("POMO_API_TOKEN") or None,
            timeout=int(os.getenv("POMO_API_TIMEOUT", "15")),
        )

    # ------------------------------------------------------------------
    # Hilfsfunktionen
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs):
        url = urljoin(self.base_url, path.lstrip("/"))
        kwargs.setdefault("timeout", self.timeout)
        headers = kwargs.setdefault("headers", {})
        headers.update(self._headers())
        try:
            response = requests.request(method, url, **kwargs)
        except requests.RequestException as exc:  # pragma: no cover - Netzwerkfehler
            raise ApiError(str(exc)) from exc

        if response.status_code == 409:
            raise InvalidTransitionError(self._detail(response), response=response)
        if response.status_code >= 400:
            raise ApiError(f"API Fehler {response.status_code}: {response.text}", response=response)

        if response.headers.get("Content-Type", "").startswith("application/json"):
            return response.json()
        return response.content

    @staticmethod
    def _detail(response: requests.Response) -> str:
        try:
            return str(response.json().get("detail", response.text))
        except ValueError:
            return response.text

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------
    def start_timer(self, interval_type: str, duration_seconds: Optional[int] = None) -> TimerStatus:
        payload: dict[str, Any] = {"interval_type": interval_type}
        if duration_seconds is not None:
            payload["duration_seconds"] = duration_seconds
        return self._status(self._request("POST", "/timer/start", json=payload))

    def pause_timer(self) -> TimerStatus:
        return self._status(self._request("POST", "/timer/pause"))

    def resume_timer(self) -> TimerStatus:
        return self._status(self._request("POST", "/timer/resume"))

    def cancel_timer(self) -> TimerStatus:
        return self._status(self._request("POST", "/timer/cancel"))

    def get_timer_state(self) -> TimerStatus:
        return self._status(self._request("GET", "/timer/state"))

    # ------------------------------------------------------------------
    # Verlauf
    # ------------------------------------------------------------------
    def list_intervals(self, from_date: Optional[date] = None, to_date: Optional[date] = None) -> list[IntervalRecord]:
        params = {}
        if from_date:
            params["from_date"] = from_date.isoformat()
        if to_date:
            params["to_date"] = to_date.isoformat()
        data = self._request("GET", "/intervals", params=params) or []
        return [
            IntervalRecord(
                interval_id=int(item["id"]),
                interval_type=item.get("interval_type", ""),
                status=item.get("status", ""),
                start_time=self._parse_datetime(item.get("start_time")),
                end_time=self._parse_datetime(item.get("end_time")),
                planned_duration_seconds=int(item.get("planned_duration_seconds", 0)),
                duration_seconds=item.get("duration_seconds"),
            )
            for item in data
        ]

    # ------------------------------------------------------------------
    # Hilfsfunktionen
    # ------------------------------------------------------------------
    @staticmethod
    def _status(data: Any) -> TimerStatus:
        data = data or {}
        return TimerStatus(
            state=data.get("state", "idle"),
            interval_type=data.get("interval_type", "work"),
            remaining_ms=int(data.get("remaining_ms", 0)),
            planned_duration_seconds=int(data.get("planned_duration_seconds", 0)),
            interval_id=data.get("interval_id"),
            completed_work_count=int(data.get("completed_work_count", 0)),
            overtime=bool(data.get("overtime", False)),
            overtime_ms=int(data.get("overtime_ms", 0)),
        )

    @staticmethod
    def _parse_datetime(value: Optional[str]):
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None


__all__ = ["ApiClient", "ApiError", "InvalidTransitionError"]
