from typing import Optional

from shelfpulse.errors import Unauthenticated
from shelfpulse.tokens import TokenService

BEARER_PREFIX = "Bearer "


class SessionGuard:
    """Resolves the acting user from an Authorization header."""

    def __init__(self, tokens: TokenService) -> None:
        self.tokens = tokens

    def resolve(self, authorization: Optional[str]) -> int:
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            raise Unauthenticated()
        token = authorization[len(BEARER_PREFIX):]
        if not token:
            raise Unauthenticated()
        return self.tokens.verify(token)
