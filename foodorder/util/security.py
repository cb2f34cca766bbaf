import jwt
from datetime import datetime, timedelta, timezone
from foodorder.config import Settings

def create_token(sub: str, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=settings.JWT_EXP_MIN)
    payload = {"sub": sub, "iss": settings.JWT_ISS, "iat": int(now.timestamp()), "exp": int(exp.timestamp())}
    return jwt.encode(payload, settings.APP_SECRET, algorithm="HS256")

def decode_token(token: str, settings: Settings) -> str:
    """Return the subject of a valid token; raises jwt.InvalidTokenError otherwise."""
    data = jwt.decode(token, settings.APP_SECRET, algorithms=["HS256"], issuer=settings.JWT_ISS,
                      options={"verify_aud": False})
    return data["sub"]
