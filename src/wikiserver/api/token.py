"""Token API — exchange a username/password for a signed API token.

Learn: the only /api route without a bearer token. Credentials come in
the `login` and `password` request headers; the token goes back as plain
text. Claims are resolved from the credential store right now and frozen
into the token until it expires.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wikiserver.auth.authenticator import AuthFailure, Authenticator
from wikiserver.auth.jwt import TokenIssuer, get_token_issuer
from wikiserver.db.engine import get_db
from wikiserver.errors import ApiError

router = APIRouter()


@router.get("/token", response_class=PlainTextResponse)
async def issue_token(
    login: Optional[str] = Header(None),
    password: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    tokens: TokenIssuer = Depends(get_token_issuer),
):
    """Login via headers → JWT as text/plain."""
    try:
        principal = await Authenticator(db=db, tokens=tokens).authenticate(login, password)
    except AuthFailure:
        raise ApiError(
            401,
            "Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return PlainTextResponse(tokens.issue(principal))
