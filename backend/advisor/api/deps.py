"""Shared route dependencies."""

from fastapi import Header, HTTPException, Request, Response

from advisor.services.dashboard import DashboardAggregator


async def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity; login lives in front of this service."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


def get_aggregator(request: Request) -> DashboardAggregator:
    return request.app.state.aggregator


def no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"
