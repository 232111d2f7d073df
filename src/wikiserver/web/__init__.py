"""Browser UI routes.

Learn: the HTML side of the wiki. Login routes are open; everything else
needs a session (see auth/dependencies.get_session_principal), and a
request without one is redirected to /login.
"""

from fastapi import APIRouter

from wikiserver.web.login import router as login_router
from wikiserver.web.wiki import router as wiki_router

web_router = APIRouter()

web_router.include_router(login_router, tags=["ui", "login"])
web_router.include_router(wiki_router, tags=["ui"])
