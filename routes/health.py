from __future__ import annotations

import os

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


def _check_store(request: Request) -> tuple[bool, str | None]:
    store = request.app.state.store
    ping = getattr(store, "ping", None)
    if ping is None:
        return True, None
    try:
        ping()
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def _resolve_git_sha() -> str | None:
    return (
        (os.getenv("GIT_SHA") or "").strip()
        or (os.getenv("FLY_IMAGE_REF") or "").strip()
        or None
    )


@router.get("/health")
def health(request: Request):
    settings = request.app.state.settings
    return {
        "ok": True,
        "env": settings.ENV,
        "store": settings.STORE_BACKEND,
        "git_sha": _resolve_git_sha(),
    }


@router.get("/healthz")
def healthz(request: Request):
    db_ok, db_error = _check_store(request)
    return {
        "ok": True,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "db_ok": db_ok,
        "db_error": db_error,
    }
