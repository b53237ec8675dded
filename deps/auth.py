
# deps/auth.py
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from uuid import UUID

from deps.payments import get_settings
from security import decode_token
from settings import Settings

bearer = HTTPBearer(auto_error=False)

class CurrentUser:
    def __init__(self, user_id: UUID):
        self.user_id = user_id

def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    if not creds:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    # must be "Bearer"
    if (creds.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    payload = decode_token(creds.credentials, settings)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
    try:
        return CurrentUser(user_id=UUID(str(sub)))
    except ValueError:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")
