"""Outbound messaging clients: WhatsApp (Meta Graph), email (SendGrid), SMS (Twilio).

Every send returns a status dict and never raises:

    {"status": "sent", "message_id": "..."}
    {"status": "failed", "error": "..."}
"""

from typing import Any, Dict, Optional

import httpx

from leadflow.core.logging import get_logger, log_api_call
from leadflow.models.nodes import MessagingConfig
from leadflow.services.outbound import OutboundService

logger = get_logger(__name__)


def _failed(error: str) -> Dict[str, Any]:
    return {"status": "failed", "error": error}


def _metadata(credentials: Dict[str, Any]) -> Dict[str, Any]:
    return (credentials or {}).get("metadata") or {}


def _error_text(e: Exception) -> str:
    if isinstance(e, httpx.HTTPStatusError):
        return f"HTTP {e.response.status_code}: {e.response.text[:200]}"
    return str(e) or type(e).__name__


class WhatsAppService(OutboundService):
    """Meta WhatsApp Cloud API."""

    async def send_message(self, lead: Dict[str, Any], config: MessagingConfig,
                           credentials: Dict[str, Any]) -> Dict[str, Any]:
        token = credentials.get("access_token") or credentials.get("api_key")
        phone_number_id = _metadata(credentials).get("phone_number_id")
        to = lead.get("phone")
        if not token or not phone_number_id:
            return _failed("WhatsApp credentials incomplete")
        if not to:
            return _failed("Lead has no phone number")

        if config.template_name:
            body = {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "template",
                "template": {
                    "name": config.template_name,
                    "language": {"code": (lead.get("locale") or "en_US").replace("-", "_")},
                },
            }
        else:
            body = {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": config.message},
            }

        url = (f"{self.settings.meta_graph_url}/{self.settings.meta_graph_version}"
               f"/{phone_number_id}/messages")
        try:
            async with self.http() as client:
                response = await client.post(
                    url, json=body, headers={"Authorization": f"Bearer {token}"}
                )
                response.raise_for_status()
                data = response.json()
            message_id = (data.get("messages") or [{}])[0].get("id")
            log_api_call(logger, "meta", "send_whatsapp", True, lead_id=lead.get("id"))
            return {"status": "sent", "message_id": message_id}
        except Exception as e:
            log_api_call(logger, "meta", "send_whatsapp", False, error=_error_text(e))
            return _failed(_error_text(e))


class EmailService(OutboundService):
    """SendGrid v3 mail send."""

    async def send_email(self, lead: Dict[str, Any], config: MessagingConfig,
                         credentials: Dict[str, Any]) -> Dict[str, Any]:
        api_key = credentials.get("api_key") or credentials.get("access_token")
        sender = (config.from_address
                  or _metadata(credentials).get("email_from")
                  or self.settings.email_from)
        to = lead.get("email")
        if not api_key:
            return _failed("No SendGrid API key")
        if not sender:
            return _failed("No sender address configured")
        if not to:
            return _failed("Lead has no email address")

        text = config.message or ""
        body = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": sender},
            "subject": config.subject or "",
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": text.replace("\n", "<br>")},
            ],
        }
        try:
            async with self.http() as client:
                response = await client.post(
                    f"{self.settings.sendgrid_api_url}/v3/mail/send",
                    json=body,
                    headers={"Authorization": f"Bearer {api_key}"},
                )
                response.raise_for_status()
            log_api_call(logger, "sendgrid", "send_email", True, lead_id=lead.get("id"))
            return {"status": "sent", "message_id": response.headers.get("x-message-id")}
        except Exception as e:
            log_api_call(logger, "sendgrid", "send_email", False, error=_error_text(e))
            return _failed(_error_text(e))


class SMSService(OutboundService):
    """Twilio programmable messaging."""

    async def send_sms(self, lead: Dict[str, Any], config: MessagingConfig,
                       credentials: Dict[str, Any]) -> Dict[str, Any]:
        metadata = _metadata(credentials)
        account_sid = metadata.get("account_sid") or credentials.get("api_key")
        auth_token = credentials.get("access_token") or metadata.get("auth_token")
        sender: Optional[str] = metadata.get("from_number")
        to = lead.get("phone")
        if not account_sid or not auth_token or not sender:
            return _failed("Twilio credentials incomplete")
        if not to:
            return _failed("Lead has no phone number")

        url = f"{self.settings.twilio_api_url}/2010-04-01/Accounts/{account_sid}/Messages.json"
        try:
            async with self.http() as client:
                response = await client.post(
                    url,
                    data={"To": to, "From": sender, "Body": config.message},
                    auth=(account_sid, auth_token),
                )
                response.raise_for_status()
                data = response.json()
            log_api_call(logger, "twilio", "send_sms", True, lead_id=lead.get("id"))
            return {"status": "sent", "message_id": data.get("sid")}
        except Exception as e:
            log_api_call(logger, "twilio", "send_sms", False, error=_error_text(e))
            return _failed(_error_text(e))
