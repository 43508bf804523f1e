"""Question forwarding to the external index service."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from filedesk.api.deps import Principal, get_bridge, require_user
from filedesk.api.schemas.search import SearchRequest, SearchResponse
from filedesk.errors import IndexBridgeError
from filedesk.index_bridge import IndexBridge, is_semantic_search_request

logger = logging.getLogger(__name__)
router = APIRouter(tags=["search"])


@router.post("/search", response_model=SearchResponse)
async def search(
    body: SearchRequest,
    principal: Principal = Depends(require_user),
    bridge: IndexBridge = Depends(get_bridge),
):
    if not bridge.is_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Index service is not configured",
        )
    try:
        answer = await bridge.search(body.query)
    except IndexBridgeError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return SearchResponse(
        answer=answer,
        semantic_search=is_semantic_search_request(body.query),
    )
