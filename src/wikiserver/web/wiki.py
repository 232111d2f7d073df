"""Wiki pages for the browser: index, page view/editor, save, delete.

Learn: these handlers are linear chains — resolve the session principal,
check the claim, call the page store, then render or redirect. The first
failure ends the chain:

- no session        → 302 /login (LoginRequired handler in main.py)
- missing claim     → 403
- duplicate name    → 409
- unknown page id   → 404
- storage failure   → 500
"""

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from wikiserver.auth.dependencies import get_session_principal, ui_claim
from wikiserver.auth.gateway import ForbiddenOperation, require_claim
from wikiserver.auth.principal import Claim, Principal
from wikiserver.rendering import render_markdown, templates
from wikiserver.services.page_store import (
    DuplicateNameError,
    Outcome,
    PageNotFoundError,
    PageStoreService,
    get_page_store,
)

router = APIRouter()

EMPTY_PAGE_MARKDOWN = "# A new page\n\nFeel-free to write in Markdown!\n"


def _unwrap(outcome: Outcome):
    """Value of a page store outcome, or the matching HTTP error."""
    if outcome.succeeded:
        return outcome.value
    error = outcome.error
    if isinstance(error, DuplicateNameError):
        raise HTTPException(status_code=409, detail=str(error))
    if isinstance(error, PageNotFoundError):
        raise HTTPException(status_code=404, detail=str(error))
    raise HTTPException(status_code=500, detail="Storage failure")


def _wiki_url(title: str) -> str:
    return "/wiki/" + quote(title, safe="")


@router.get("/")
async def index(
    request: Request,
    principal: Principal = Depends(get_session_principal),
    store: PageStoreService = Depends(get_page_store),
):
    pages = _unwrap(await store.fetch_all_pages())
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "title": "Wiki home",
            "pages": pages,
            "canCreatePage": principal.can_create,
            "username": principal.username,
        },
    )


@router.get("/wiki/{page}")
async def page_view(
    page: str,
    request: Request,
    principal: Principal = Depends(get_session_principal),
    store: PageStoreService = Depends(get_page_store),
):
    lookup = _unwrap(await store.fetch_page(page))
    raw_content = lookup.raw_content if lookup.found else EMPTY_PAGE_MARKDOWN
    return templates.TemplateResponse(
        request,
        "page.html",
        {
            "title": page,
            "id": lookup.id if lookup.found else -1,
            "newPage": "no" if lookup.found else "yes",
            "rawContent": raw_content,
            "content": render_markdown(raw_content),
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "username": principal.username,
            "canSavePage": principal.can_update if lookup.found else principal.can_create,
            "canDeletePage": principal.can_delete and lookup.found,
        },
    )


@router.post("/action/save")
async def save_page(
    title: str = Form(...),
    markdown: str = Form(""),
    newPage: str = Form("no"),
    id: Optional[int] = Form(None),
    principal: Principal = Depends(get_session_principal),
    store: PageStoreService = Depends(get_page_store),
):
    try:
        if newPage == "yes":
            require_claim(principal, Claim.CREATE)
            outcome = await store.create_page(title, markdown)
        else:
            require_claim(principal, Claim.UPDATE)
            if id is None:
                raise HTTPException(status_code=400, detail="Missing page id")
            outcome = await store.save_page(id, markdown)
    except ForbiddenOperation as e:
        raise HTTPException(status_code=403, detail=str(e))

    _unwrap(outcome)
    return RedirectResponse(_wiki_url(title), status_code=303)


@router.post("/action/create")
async def create_page(
    name: str = Form(""),
    principal: Principal = Depends(get_session_principal),
):
    """Jump to the editor for a new page name (nothing is stored yet)."""
    location = _wiki_url(name) if name else "/"
    return RedirectResponse(location, status_code=303)


@router.post("/action/delete")
async def delete_page(
    id: int = Form(...),
    principal: Principal = Depends(ui_claim(Claim.DELETE)),
    store: PageStoreService = Depends(get_page_store),
):
    _unwrap(await store.delete_page(id))
    return RedirectResponse("/", status_code=303)


@router.post("/app/markdown", response_class=HTMLResponse)
async def markdown_preview(request: Request):
    """Render a markdown request body to HTML (editor live preview)."""
    source = (await request.body()).decode("utf-8", errors="replace")
    return HTMLResponse(render_markdown(source))
