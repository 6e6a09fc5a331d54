############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# notifier.py: Best-effort email notifications for review decisions
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Review decision notifications.

Notifications are best-effort: every method returns an ``EmailResult`` and
never raises for delivery problems. SMTP configuration comes from the
``settings`` table, falling back to environment settings for keys an admin
has not set.
"""

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.app.db import crud
from backend.app.db.models import NodeRequest, TokenRequest
from backend.app.db.session import Database
from backend.app.logging_config import get_logger
from backend.app.services.results import EmailResult
from backend.app.settings import Settings

logger = get_logger(__name__)

SMTP_SETTING_KEYS = (
    "smtp_host",
    "smtp_port",
    "smtp_user",
    "smtp_pass",
    "smtp_secure",
    "smtp_from",
    "smtp_from_name",
)

NODE_TYPE_LABELS = {
    "rpc": "RPC Endpoint",
    "bootnode": "Boot Node",
    "beacon": "Beacon Node",
}

_SIGNATURE = """Best regards,
The LAB Chain Team

---
LAB Chain - The Native Blockchain of Laos
https://labchain.la"""


def _as_bool(value: Optional[str]) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SmtpConfig:
    """Resolved SMTP configuration."""

    host: Optional[str]
    port: int
    user: Optional[str]
    password: Optional[str]
    secure: bool
    from_address: str
    from_name: str
    timeout: int = 10

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)

    @property
    def sender(self) -> str:
        return formataddr((self.from_name, self.from_address))

    @classmethod
    def resolve(cls, settings: Settings, stored: Mapping[str, str]) -> "SmtpConfig":
        """Stored values win over environment defaults; blank values do not count."""

        def pick(key: str, default):
            value = stored.get(key)
            return value if value not in (None, "") else default

        try:
            port = int(pick("smtp_port", settings.smtp_port))
        except (TypeError, ValueError):
            port = settings.smtp_port
        secure = pick("smtp_secure", None)
        return cls(
            host=pick("smtp_host", settings.smtp_host),
            port=port,
            user=pick("smtp_user", settings.smtp_user),
            password=pick("smtp_pass", settings.smtp_pass),
            secure=_as_bool(secure) if secure is not None else settings.smtp_secure,
            from_address=pick("smtp_from", settings.smtp_from),
            from_name=pick("smtp_from_name", settings.smtp_from_name),
            timeout=settings.smtp_timeout,
        )


async def read_email_settings(database: Database) -> Dict[str, str]:
    """SMTP values stored in the settings table."""
    async with database.session() as db:
        return await crud.get_settings_map(db, SMTP_SETTING_KEYS)


async def write_email_settings(
    database: Database, values: Mapping[str, Optional[str]]
) -> Optional[Dict[str, str]]:
    """Upsert SMTP values. Unknown keys and None values are ignored.

    Returns the stored values, or None if nothing could be saved.
    """
    async with database.session() as db:
        try:
            for key, value in values.items():
                if key in SMTP_SETTING_KEYS and value is not None:
                    await crud.set_setting(db, key, str(value).strip())
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("email_settings_update_failed", error=str(exc))
            return None
        stored = await crud.get_settings_map(db, SMTP_SETTING_KEYS)
    logger.info("email_settings_updated", keys=sorted(k for k in values if k in SMTP_SETTING_KEYS))
    return stored


def _node_details(request: NodeRequest, type_label: str) -> str:
    return (
        "Submission Details:\n"
        f"- Name: {request.name}\n"
        f"- Type: {type_label}\n"
        f"- Endpoint: {request.endpoint}\n"
        f"- Tracking ID: {request.tracking_id}"
    )


def _token_details(request: TokenRequest) -> str:
    return (
        "Request Details:\n"
        f"- Wallet: {request.wallet_address}\n"
        f"- Requested amount: {request.requested_amount} LAB\n"
        f"- Tracking ID: {request.tracking_id}"
    )


class Notifier:
    """Interface for review decision notifications."""

    async def node_request_approved(self, request: NodeRequest) -> EmailResult:
        raise NotImplementedError

    async def node_request_rejected(self, request: NodeRequest, reason: Optional[str]) -> EmailResult:
        raise NotImplementedError

    async def token_request_approved(self, request: TokenRequest) -> EmailResult:
        raise NotImplementedError

    async def token_request_rejected(self, request: TokenRequest, reason: Optional[str]) -> EmailResult:
        raise NotImplementedError

    async def token_transferred(self, request: TokenRequest) -> EmailResult:
        raise NotImplementedError


class NullNotifier(Notifier):
    """Notifier used when email is switched off."""

    async def _disabled(self) -> EmailResult:
        return EmailResult(success=False, error="Email disabled")

    async def node_request_approved(self, request):
        return await self._disabled()

    async def node_request_rejected(self, request, reason):
        return await self._disabled()

    async def token_request_approved(self, request):
        return await self._disabled()

    async def token_request_rejected(self, request, reason):
        return await self._disabled()

    async def token_transferred(self, request):
        return await self._disabled()


class EmailNotifier(Notifier):
    """Sends plain-text decision emails over SMTP."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    async def load_config(self) -> SmtpConfig:
        try:
            stored = await read_email_settings(self.database)
        except SQLAlchemyError as exc:
            logger.warning("email_settings_unavailable", error=str(exc))
            stored = {}
        return SmtpConfig.resolve(self.settings, stored)

    async def is_email_configured(self) -> bool:
        return (await self.load_config()).is_configured

    @staticmethod
    def _deliver(config: SmtpConfig, message: EmailMessage) -> None:
        """Blocking SMTP delivery; run in a worker thread."""
        if config.secure:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout, context=context) as smtp:
                smtp.login(config.user, config.password)
                smtp.send_message(message)
            return
        with smtplib.SMTP(config.host, config.port, timeout=config.timeout) as smtp:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls(context=ssl.create_default_context())
                smtp.ehlo()
            smtp.login(config.user, config.password)
            smtp.send_message(message)

    async def send(self, to: Optional[str], subject: str, body: str) -> EmailResult:
        """Send one message. Never raises."""
        config = await self.load_config()
        if not config.is_configured:
            return EmailResult(success=False, error="Email not configured")
        if not to:
            return EmailResult(success=False, error="No contact email provided")

        message = EmailMessage()
        message["From"] = config.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            await asyncio.to_thread(self._deliver, config, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("email_send_failed", subject=subject, error=str(exc))
            return EmailResult(success=False, error=str(exc))

        logger.info("email_sent", subject=subject)
        return EmailResult(success=True)

    async def node_request_approved(self, request: NodeRequest) -> EmailResult:
        node_type = request.node_type.value
        label = NODE_TYPE_LABELS.get(node_type, node_type)
        body = (
            f"Hello {request.contact_name or 'there'},\n\n"
            f"Great news! Your {label} submission has been approved and is now listed "
            "on the LAB Chain network.\n\n"
            f"{_node_details(request, label)}\n\n"
            "Your node is now visible on the LAB Chain website and can be used by the community.\n\n"
            "Thank you for contributing to the LAB Chain network!\n\n"
            f"{_SIGNATURE}"
        )
        return await self.send(
            request.contact_email, f"Your {label} has been approved - LAB Chain", body
        )

    async def node_request_rejected(self, request: NodeRequest, reason: Optional[str]) -> EmailResult:
        node_type = request.node_type.value
        label = NODE_TYPE_LABELS.get(node_type, node_type)
        body = (
            f"Hello {request.contact_name or 'there'},\n\n"
            "Thank you for your interest in contributing to the LAB Chain network. "
            f"Unfortunately, your {label} submission could not be approved at this time.\n\n"
            f"{_node_details(request, label)}\n\n"
            f"Reason:\n{reason or 'No reason given'}\n\n"
            "If you believe this decision was made in error or if you've resolved the issues "
            "mentioned, please feel free to submit a new request.\n\n"
            f"{_SIGNATURE}"
        )
        return await self.send(
            request.contact_email, f"Update on your {label} submission - LAB Chain", body
        )

    async def token_request_approved(self, request: TokenRequest) -> EmailResult:
        body = (
            f"Hello {request.first_name},\n\n"
            "Your LAB token request has been approved. The tokens will be sent to your "
            "wallet shortly and you will receive another email once the transfer is done.\n\n"
            f"{_token_details(request)}\n\n"
            f"{_SIGNATURE}"
        )
        return await self.send(request.email, "Your LAB token request has been approved - LAB Chain", body)

    async def token_request_rejected(self, request: TokenRequest, reason: Optional[str]) -> EmailResult:
        body = (
            f"Hello {request.first_name},\n\n"
            "Unfortunately, your LAB token request could not be approved at this time.\n\n"
            f"{_token_details(request)}\n\n"
            f"Reason:\n{reason or 'No reason given'}\n\n"
            f"{_SIGNATURE}"
        )
        return await self.send(request.email, "Update on your LAB token request - LAB Chain", body)

    async def token_transferred(self, request: TokenRequest) -> EmailResult:
        body = (
            f"Hello {request.first_name},\n\n"
            f"{request.transferred_amount} LAB has been transferred to your wallet "
            f"{request.wallet_address}.\n\n"
            f"{_token_details(request)}\n\n"
            f"{_SIGNATURE}"
        )
        return await self.send(request.email, "Your LAB tokens have been sent - LAB Chain", body)
