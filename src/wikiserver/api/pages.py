"""Pages API — JSON CRUD over the page store.

Learn: every route here sits behind the bearer-token dependency (applied
in api/__init__.py). Writes additionally require the matching claim:

- POST   /api/pages        → create claim
- PUT    /api/pages/{id}   → update claim
- DELETE /api/pages/{id}   → delete claim

The claim is checked before the page store is called, so a token without
canCreate can never insert a row.
"""

import structlog
from fastapi import APIRouter, Depends

from wikiserver.auth.dependencies import api_claim
from wikiserver.auth.principal import Claim, Principal
from wikiserver.errors import ApiError
from wikiserver.realtime.pubsub import PAGE_SAVED, publish_event
from wikiserver.rendering import render_markdown
from wikiserver.schemas.page import (
    PageCreate,
    PageListResponse,
    PageResponse,
    PageUpdate,
    SuccessResponse,
)
from wikiserver.services.page_store import (
    DuplicateNameError,
    PageNotFoundError,
    PageStoreError,
    PageStoreService,
    get_page_store,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/pages")


def _api_failure(error: PageStoreError) -> ApiError:
    if isinstance(error, DuplicateNameError):
        return ApiError(409, str(error))
    if isinstance(error, PageNotFoundError):
        return ApiError(404, str(error))
    return ApiError(500, str(error))


@router.get("", response_model=PageListResponse)
async def list_pages(store: PageStoreService = Depends(get_page_store)):
    outcome = await store.fetch_all_pages_data()
    if outcome.failed:
        raise _api_failure(outcome.error)
    return {
        "success": True,
        "pages": [{"id": p.id, "name": p.name} for p in outcome.value],
    }


@router.get("/{page_id}", response_model=PageResponse)
async def get_page(page_id: int, store: PageStoreService = Depends(get_page_store)):
    outcome = await store.fetch_page_by_id(page_id)
    if outcome.failed:
        raise _api_failure(outcome.error)

    page = outcome.value
    if not page.found:
        raise ApiError(404, f"There is no page with ID {page_id}")
    return {
        "success": True,
        "page": {
            "id": page.id,
            "name": page.name,
            "markdown": page.content,
            "html": render_markdown(page.content),
        },
    }


@router.post("", response_model=SuccessResponse, status_code=201)
async def create_page(
    body: PageCreate,
    principal: Principal = Depends(api_claim(Claim.CREATE)),
    store: PageStoreService = Depends(get_page_store),
):
    outcome = await store.create_page(body.name, body.markdown)
    if outcome.failed:
        raise _api_failure(outcome.error)
    return {"success": True}


@router.put("/{page_id}", response_model=SuccessResponse)
async def update_page(
    page_id: int,
    body: PageUpdate,
    principal: Principal = Depends(api_claim(Claim.UPDATE)),
    store: PageStoreService = Depends(get_page_store),
):
    outcome = await store.save_page(page_id, body.markdown)
    if outcome.failed:
        raise _api_failure(outcome.error)

    await publish_event(PAGE_SAVED, {"id": page_id, "client": body.client})
    return {"success": True}


@router.delete("/{page_id}", response_model=SuccessResponse)
async def delete_page(
    page_id: int,
    principal: Principal = Depends(api_claim(Claim.DELETE)),
    store: PageStoreService = Depends(get_page_store),
):
    outcome = await store.delete_page(page_id)
    if outcome.failed:
        raise _api_failure(outcome.error)
    return {"success": True}
