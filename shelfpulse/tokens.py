from datetime import datetime, timedelta, timezone

import jwt

from shelfpulse.errors import Unauthenticated


class TokenService:
    """Issues and verifies signed bearer tokens carrying a user id."""

    def __init__(self, secret: str, algorithm: str = "HS256", expiration_days: int = 30) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.expiration = timedelta(days=expiration_days)

    def issue(self, user_id: int) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "userId": int(user_id),
            "iat": now,
            "exp": now + self.expiration,
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> int:
        """Return the user id in ``token`` or raise Unauthenticated."""
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "userId"]},
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("token expired", reason="token_expired") from None
        except jwt.InvalidTokenError:
            raise Unauthenticated("invalid token", reason="invalid_token") from None

        user_id = claims.get("userId")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
            raise Unauthenticated("invalid token", reason="invalid_token")
        return user_id
