from typing import Optional

from fastapi import Header, Request

from partstore.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_username(x_user: Optional[str] = Header(default=None)) -> Optional[str]:
    # Acting user for the movement log; there is no authentication layer.
    if x_user is None:
        return None
    return x_user.strip() or None
