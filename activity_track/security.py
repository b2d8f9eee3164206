from __future__ import annotations

from fastapi import Header, HTTPException, Request


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-Api-Key"),
) -> None:
    expected = request.app.state.settings.api_key
    if not expected:
        # No key configured: the service is open (typically behind a tunnel or LAN).
        return
    if not x_api_key or x_api_key != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")
