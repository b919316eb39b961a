from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuthContext:
    """
    Per-request identity, attached to ``request.state.auth`` once the token checks out.
    """

    user_id: int
    username: str
    token: str
