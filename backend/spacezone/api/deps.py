from __future__ import annotations

from fastapi import Request

from spacezone.core.config import Settings
from spacezone.realtime.manager import MessagingSessionManager
from spacezone.realtime.presence import PresenceTracker
from spacezone.security.rate_limiter import RateLimiter


def get_manager(request: Request) -> MessagingSessionManager:
    return request.app.state.manager


def get_presence(request: Request) -> PresenceTracker:
    return request.app.state.presence


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
