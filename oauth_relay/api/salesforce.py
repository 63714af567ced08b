from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from oauth_relay.api.dependencies import get_salesforce_client
from oauth_relay.services.salesforce_client import SalesforceClient

router = APIRouter(prefix="/sf", tags=["salesforce"])


@router.get("/userinfo")
async def userinfo(
    client: Annotated[SalesforceClient, Depends(get_salesforce_client)],
) -> Any:
    """OpenID userinfo of the logged-in Salesforce user."""
    return await client.get_userinfo()


@router.get("/organization")
async def organization(
    client: Annotated[SalesforceClient, Depends(get_salesforce_client)],
) -> dict[str, Any]:
    """Org name/type/sandbox flag plus the API version used to query it."""
    return await client.get_organization()
