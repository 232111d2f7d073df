"""API route aggregation.

All routers registered here get mounted under /api in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. Every pages route needs a valid bearer token
without touching individual handlers. The token route is open: it is
where clients get their token in the first place.
"""

from fastapi import APIRouter, Depends

from wikiserver.api.pages import router as pages_router
from wikiserver.api.token import router as token_router
from wikiserver.auth.dependencies import get_api_principal

API_PREFIX = "/api"

api_router = APIRouter(prefix=API_PREFIX)

# Open route: credentials travel in the login/password headers
api_router.include_router(token_router, tags=["auth"])

# Protected routes require a valid bearer token
api_router.include_router(
    pages_router, tags=["pages"], dependencies=[Depends(get_api_principal)]
)
