"""CRM synchronization: HubSpot, Salesforce, Zoho and a generic webhook."""

from typing import Any, Dict

import httpx

from leadflow.core.exceptions import ProviderError
from leadflow.core.logging import get_logger, log_api_call
from leadflow.models.database import Integration
from leadflow.services.outbound import OutboundService

logger = get_logger(__name__)

HUBSPOT_API_URL = "https://api.hubapi.com"
SALESFORCE_API_VERSION = "v59.0"
ZOHO_API_URL = "https://www.zohoapis.com"


def _split_name(name: str) -> tuple:
    parts = (name or "").strip().split(" ", 1)
    first = parts[0] if len(parts) > 1 else ""
    last = parts[-1] or "Unknown"
    return first, last


class CRMService(OutboundService):
    """Pushes leads into the CRM an integration points at.

    Unlike the messaging clients this raises: a lead that did not reach the
    CRM is not something a workflow should silently continue past.
    """

    async def sync_lead(self, lead: Dict[str, Any], integration: Integration) -> Dict[str, Any]:
        """Create the lead in the integration's CRM.

        Returns:
            {"success": True, "crm_id": ...}

        Raises:
            ProviderError: unsupported provider, missing credentials or API failure
        """
        provider = integration.provider
        credentials = integration.credentials or {}
        logger.info("Syncing lead to CRM", lead_id=lead.get("id"),
                    provider=provider, region=integration.region)

        sync = {
            "hubspot": self._sync_hubspot,
            "salesforce": self._sync_salesforce,
            "zoho": self._sync_zoho,
            "webhook": self._sync_webhook,
        }.get(provider)
        if sync is None:
            raise ProviderError(provider, f"Unsupported CRM provider: {provider}")

        try:
            result = await sync(lead, credentials)
        except httpx.HTTPStatusError as e:
            log_api_call(logger, provider, "sync_lead", False, status=e.response.status_code)
            raise ProviderError(provider, f"HTTP {e.response.status_code}: {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            log_api_call(logger, provider, "sync_lead", False, error=str(e))
            raise ProviderError(provider, str(e) or type(e).__name__) from e

        log_api_call(logger, provider, "sync_lead", True, crm_id=result.get("crm_id"))
        return result

    @staticmethod
    def _token(provider: str, credentials: Dict[str, Any]) -> str:
        token = credentials.get("access_token") or credentials.get("api_key")
        if not token:
            raise ProviderError(provider, "Missing access token")
        return token

    async def _sync_hubspot(self, lead: Dict[str, Any], credentials: Dict[str, Any]) -> Dict[str, Any]:
        token = self._token("hubspot", credentials)
        first, last = _split_name(lead.get("name"))
        async with self.http() as client:
            response = await client.post(
                f"{HUBSPOT_API_URL}/crm/v3/objects/contacts",
                json={"properties": {
                    "email": lead.get("email"),
                    "firstname": first,
                    "lastname": last,
                    "phone": lead.get("phone"),
                    "country": lead.get("country"),
                }},
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            data = response.json()
        return {"success": True, "crm_id": data.get("id")}

    async def _sync_salesforce(self, lead: Dict[str, Any], credentials: Dict[str, Any]) -> Dict[str, Any]:
        token = self._token("salesforce", credentials)
        instance_url = (credentials.get("metadata") or {}).get("instance_url")
        if not instance_url:
            raise ProviderError("salesforce", "Missing instance_url in credentials metadata")
        first, last = _split_name(lead.get("name"))
        async with self.http() as client:
            response = await client.post(
                f"{instance_url}/services/data/{SALESFORCE_API_VERSION}/sobjects/Lead",
                json={
                    "FirstName": first,
                    "LastName": last,
                    "Email": lead.get("email"),
                    "Phone": lead.get("phone"),
                    "Country": lead.get("country"),
                    "Company": lead.get("campaign") or "Unknown",
                    "LeadSource": "LeadFlow",
                },
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            data = response.json()
        return {"success": True, "crm_id": data.get("id")}

    async def _sync_zoho(self, lead: Dict[str, Any], credentials: Dict[str, Any]) -> Dict[str, Any]:
        token = self._token("zoho", credentials)
        # Zoho data centres are regional (zohoapis.eu, zohoapis.in, ...)
        api_domain = (credentials.get("metadata") or {}).get("api_domain") or ZOHO_API_URL
        first, last = _split_name(lead.get("name"))
        async with self.http() as client:
            response = await client.post(
                f"{api_domain}/crm/v2/Leads",
                json={"data": [{
                    "First_Name": first,
                    "Last_Name": last,
                    "Email": lead.get("email"),
                    "Phone": lead.get("phone"),
                    "Country": lead.get("country"),
                }]},
                headers={"Authorization": f"Zoho-oauthtoken {token}"},
            )
            response.raise_for_status()
            data = response.json()
        records = data.get("data") or [{}]
        return {"success": True, "crm_id": (records[0].get("details") or {}).get("id")}

    async def _sync_webhook(self, lead: Dict[str, Any], credentials: Dict[str, Any]) -> Dict[str, Any]:
        url = (credentials.get("metadata") or {}).get("webhook_url")
        if not url:
            raise ProviderError("webhook", "Webhook URL missing in credentials")
        async with self.http() as client:
            response = await client.post(url, json=lead)
            response.raise_for_status()
        return {"success": True, "crm_id": None}
