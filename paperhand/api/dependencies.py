"""FastAPI dependencies backed by objects stored on ``app.state``."""

from __future__ import annotations

from fastapi import Request

from paperhand.api.auth import resolve_user_id
from paperhand.services.notifier import Notifier


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_stream_user(request: Request) -> int | None:
    cfg = request.app.state.settings
    return resolve_user_id(
        request,
        secret=cfg.jwt_secret,
        algorithm=cfg.jwt_algorithm,
        multi_tenant=cfg.multi_tenant,
        default_user_id=cfg.default_user_id,
    )
