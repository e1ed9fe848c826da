"""Authorizer endpoint for the API layer."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request

from harborlist.trust.authorizer import TokenAuthorizer
from harborlist.trust.models import AuthorizeRequest, AuthorizeResponse, AuthorizerRequest
from harborlist.trust.routes.deps import get_authorizer, raise_401

router = APIRouter(tags=["authorization"])


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(
    request: AuthorizeRequest,
    http_request: Request,
    authorizer: Annotated[TokenAuthorizer, Depends(get_authorizer)],
    authorization: Annotated[str | None, Header()] = None,
    x_request_id: Annotated[str | None, Header()] = None,
) -> AuthorizeResponse:
    """Authorize one request against the identity domain owning its path.

    Denials answer with a generic 401; the reason only reaches the audit log.
    """
    request_id = x_request_id or str(uuid.uuid4())

    attributes = dict(request.source_attributes)
    header = authorizer.edge_secret_header
    if header and not any(k.lower() == header for k in attributes):
        presented = http_request.headers.get(header)
        if presented:
            attributes[header] = presented

    decision = await authorizer.authorize(
        AuthorizerRequest(
            path=request.path,
            bearer_token=authorization,
            source_attributes=attributes,
        ),
        request_id=request_id,
    )

    if not decision.allowed:
        raise_401()

    return AuthorizeResponse(
        effect=decision.effect,
        context=decision.context,
        cache_ttl=decision.cache_ttl,
        request_id=request_id,
    )
