"""Error types raised by platform adapters."""

from __future__ import annotations


class PredictionMarketError(Exception):
    """Upstream failure for one platform. Carries platform name and HTTP status when known."""

    def __init__(self, message: str, platform: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.platform = platform
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.platform}] {self.message} (status {self.status_code})"
        return f"[{self.platform}] {self.message}"


class UnknownPlatformError(PredictionMarketError):
    """Requested platform is not configured."""

    def __init__(self, platform: str):
        super().__init__(f"Unknown platform: {platform}", platform)
