from typing import Optional

from fastapi import APIRouter, Depends, Header
from jose import JWTError, jwt
from pydantic import BaseModel

from ..errors import AuthenticationError, AuthorizationError
from ..settings import settings

router = APIRouter(prefix="/auth", tags=["auth"])


class User(BaseModel):
	user_id: str
	email: Optional[str] = None


def verification_enabled() -> bool:
	return bool(settings.supabase_jwt_secret)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
	if not authorization:
		return None
	scheme, _, token = authorization.strip().partition(" ")
	if scheme.lower() != "bearer" or not token.strip():
		return None
	return token.strip()


def decode_access_token(token: str) -> User:
	options = {"verify_aud": bool(settings.jwt_audience)}
	try:
		payload = jwt.decode(
			token,
			settings.supabase_jwt_secret,
			algorithms=[settings.jwt_algorithm],
			audience=settings.jwt_audience or None,
			options=options,
		)
	except JWTError:
		raise AuthenticationError("Could not validate credentials")
	subject: Optional[str] = payload.get("sub")
	if not subject:
		raise AuthenticationError("Could not validate credentials")
	return User(user_id=subject, email=payload.get("email"))


def get_current_user(authorization: Optional[str] = Header(default=None)) -> Optional[User]:
	# Tokens are issued by the hosted auth provider; without a secret we trust the caller's user_id
	if not verification_enabled():
		return None
	token = _bearer_token(authorization)
	if token is None:
		raise AuthenticationError("Not authenticated")
	return decode_access_token(token)


def ensure_same_user(user: Optional[User], user_id: Optional[str]) -> None:
	if user is not None and user.user_id != (user_id or "").strip():
		raise AuthorizationError("Token does not belong to user_id")


@router.get("/me")
async def me(user: Optional[User] = Depends(get_current_user)):
	if user is None:
		return {"verification": False, "user": None}
	return {"verification": True, "user": user}
