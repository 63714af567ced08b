from __future__ import annotations

import logging
import re
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel, StrictBool

from oauth_relay.api.dependencies import (
    build_salesforce_client,
    get_http_client,
    get_salesforce_client,
    get_settings,
    parse_credentials,
)
from oauth_relay.core.config import Settings
from oauth_relay.core.errors import InvalidRequest
from oauth_relay.services.salesforce_client import SalesforceClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["validation-rules"])

# Salesforce record ids: 15 chars (case-sensitive) or 18 (case-safe).
_RECORD_ID = re.compile(r"^[A-Za-z0-9]{15}(?:[A-Za-z0-9]{3})?$")


class ToggleRuleRequest(BaseModel):
    access_token: str | None = None
    instance_url: str | None = None
    # Strict: "true" or 1 is a client bug, not a boolean.
    active: StrictBool | None = None


@router.get("/validation-rules")
async def list_validation_rules(
    client: Annotated[SalesforceClient, Depends(get_salesforce_client)],
) -> Any:
    return await client.list_validation_rules()


@router.patch("/validation-rules/{rule_id}")
async def toggle_validation_rule(
    rule_id: str,
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    settings: Annotated[Settings, Depends(get_settings)],
    body: ToggleRuleRequest | None = None,
) -> dict[str, Any]:
    body = body or ToggleRuleRequest()
    missing_message = "Missing access_token, instance_url, or active flag"
    if body.active is None:
        raise InvalidRequest(missing_message)
    credentials = parse_credentials(
        body.access_token, body.instance_url, missing_message=missing_message
    )
    if not _RECORD_ID.match(rule_id):
        raise InvalidRequest("Invalid validation rule id")

    client = build_salesforce_client(http_client, credentials, settings)
    result = await client.set_validation_rule_active(rule_id, body.active)
    logger.info("Validation rule %s set active=%s", rule_id, body.active)
    return {"success": True, "result": result}
