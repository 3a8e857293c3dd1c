from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from medicare_backend.auth import jwt_handler
from medicare_backend.scheduling.policy import Identity, Role

security = HTTPBearer(auto_error=False)


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Identity:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing token")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid or expired token") from exc

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    try:
        role = Role(payload.get("role"))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid token role") from exc

    return Identity(id=subject, role=role)
