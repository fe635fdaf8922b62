# ses_service.py
# Outbound mail through AWS SES: receipts, coupon notices, claim updates.

import asyncio
import logging
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import settings

log = logging.getLogger(__name__)

CHARSET = "UTF-8"


def _content(data: str) -> Dict[str, str]:
    return {"Data": data, "Charset": CHARSET}


class SESEmailService:
    """Thin async wrapper over the SES ``send_email`` call"""

    def __init__(self):
        self._client = None
        self.source = f"{settings.SES_SENDER_NAME} <{settings.SES_SENDER_EMAIL}>"

    @property
    def is_configured(self) -> bool:
        return settings.email_configured

    @property
    def client(self):
        """Created on first use so the app starts without AWS credentials"""
        if self._client is None:
            self._client = boto3.client(
                "ses",
                region_name=settings.AWS_REGION,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            )
        return self._client

    def build_message(
        self,
        recipient: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        body = {"Html": _content(html)}
        if text:
            body["Text"] = _content(text)

        message = {
            "Source": self.source,
            "Destination": {"ToAddresses": [recipient]},
            "Message": {"Subject": _content(subject), "Body": body},
        }
        if tags:
            message["Tags"] = [{"Name": name, "Value": value} for name, value in tags.items()]
        return message

    async def send_email(
        self,
        recipient: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Send one message. boto3 blocks, so the call runs in a worker thread.

        Never raises for SES problems: the outcome is returned as
        ``{"success": ..., "message_id" | "error": ...}``, with ``skipped``
        set when no AWS credentials are configured.
        """
        if not self.is_configured:
            log.debug(f"SES not configured; not sending '{subject}' to {recipient}")
            return {"success": False, "skipped": True, "recipient": recipient}

        message = self.build_message(recipient, subject, html, text, tags)
        try:
            response = await asyncio.to_thread(self.client.send_email, **message)
        except ClientError as e:
            error = e.response.get("Error", {})
            log.error(f"SES rejected mail to {recipient}: {error.get('Code')} - {error.get('Message')}")
            return {"success": False, "error": error.get("Code"), "message": error.get("Message")}
        except BotoCoreError as e:
            log.error(f"SES unreachable for mail to {recipient}: {e}")
            return {"success": False, "error": type(e).__name__, "message": str(e)}

        message_id = response["MessageId"]
        log.info(f"Mail '{subject}' sent to {recipient} ({message_id})")
        return {"success": True, "message_id": message_id, "recipient": recipient}

    async def send_template(self, recipient: str, template: Dict[str, str], tags: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Send one of the dicts built in email_templates"""
        return await self.send_email(recipient, template["subject"], template["html"], template.get("text"), tags=tags)


ses_service = SESEmailService()
