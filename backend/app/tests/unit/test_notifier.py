############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# test_notifier.py: Unit tests for decision email notifications
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Unit tests for EmailNotifier, NullNotifier and SMTP configuration."""

import smtplib
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from backend.app.db import crud
from backend.app.db.models import NodeRequest, NodeType, TokenRequest
from backend.app.services.notifier import (
    EmailNotifier,
    NullNotifier,
    SmtpConfig,
    read_email_settings,
    write_email_settings,
)
from backend.app.settings import Settings

SMTP_VALUES = {
    "smtp_host": "smtp.example.com",
    "smtp_port": "2525",
    "smtp_user": "mailer",
    "smtp_pass": "hunter2",
    "smtp_from": "noreply@labchain.la",
    "smtp_from_name": "LAB Chain",
}


def _node_request(**overrides) -> NodeRequest:
    fields = dict(
        tracking_id="REQ-1A2B3C4D",
        node_type=NodeType.BOOTNODE,
        name="Vientiane Boot 1",
        endpoint="enode://abc@10.0.0.5:30303",
        contact_email="operator@example.com",
        contact_name="Somchai",
    )
    fields.update(overrides)
    return NodeRequest(**fields)


def _token_request(**overrides) -> TokenRequest:
    fields = dict(
        tracking_id="TKN-0F0F0F0F",
        first_name="Noy",
        last_name="Phommachanh",
        email="noy@example.com",
        wallet_address="0x" + "ab" * 20,
        requested_amount="100",
        reason="testing",
        transferred_amount="90",
    )
    fields.update(overrides)
    return TokenRequest(**fields)


@pytest.fixture
def notifier(database, test_settings):
    return EmailNotifier(database, test_settings)


@pytest.fixture
def smtp_mock():
    """Patched smtplib.SMTP; yields the connection object used inside ``with``."""
    with patch("backend.app.services.notifier.smtplib.SMTP") as smtp_cls:
        connection = MagicMock()
        smtp_cls.return_value.__enter__.return_value = connection
        yield smtp_cls, connection


class TestNullNotifier:
    @pytest.mark.asyncio
    async def test_always_disabled(self):
        result = await NullNotifier().node_request_approved(_node_request())
        assert result.success is False
        assert result.error == "Email disabled"


class TestSmtpConfig:
    def test_environment_defaults(self, test_settings):
        config = SmtpConfig.resolve(test_settings, {})
        assert config.host is None
        assert config.port == 587
        assert not config.is_configured

    def test_stored_values_win(self):
        settings = Settings(_env_file=None, smtp_host="env.example.com", smtp_user="env", smtp_pass="env")
        config = SmtpConfig.resolve(settings, dict(SMTP_VALUES, smtp_secure="true"))

        assert config.host == "smtp.example.com"
        assert config.port == 2525
        assert config.secure is True
        assert config.is_configured

    def test_blank_stored_values_fall_back(self):
        settings = Settings(_env_file=None, smtp_host="env.example.com")
        config = SmtpConfig.resolve(settings, {"smtp_host": "", "smtp_port": "not-a-port"})

        assert config.host == "env.example.com"
        assert config.port == settings.smtp_port

    def test_sender_header(self, test_settings):
        config = SmtpConfig.resolve(test_settings, SMTP_VALUES)
        assert config.sender == "LAB Chain <noreply@labchain.la>"


class TestEmailSettingsStorage:
    @pytest.mark.asyncio
    async def test_write_and_read(self, database):
        await write_email_settings(database, dict(SMTP_VALUES, unrelated="ignored"))
        stored = await read_email_settings(database)

        assert stored["smtp_host"] == "smtp.example.com"
        assert "unrelated" not in stored

    @pytest.mark.asyncio
    async def test_overwrite(self, database):
        await write_email_settings(database, SMTP_VALUES)
        await write_email_settings(database, {"smtp_host": "mail.labchain.la"})

        stored = await read_email_settings(database)
        assert stored["smtp_host"] == "mail.labchain.la"
        assert stored["smtp_user"] == "mailer"

    @pytest.mark.asyncio
    async def test_storage_error_is_reported(self, database):
        failing = AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("read-only")))
        with patch.object(crud, "set_setting", failing):
            assert await write_email_settings(database, SMTP_VALUES) is None

        assert await read_email_settings(database) == {}


class TestEmailNotifier:
    @pytest.mark.asyncio
    async def test_not_configured(self, notifier):
        assert await notifier.is_email_configured() is False
        result = await notifier.node_request_approved(_node_request())
        assert result.error == "Email not configured"

    @pytest.mark.asyncio
    async def test_missing_recipient(self, database, notifier):
        await write_email_settings(database, SMTP_VALUES)
        result = await notifier.node_request_approved(_node_request(contact_email=None))
        assert result.error == "No contact email provided"

    @pytest.mark.asyncio
    async def test_approval_email(self, database, notifier, smtp_mock):
        smtp_cls, connection = smtp_mock
        await write_email_settings(database, SMTP_VALUES)

        result = await notifier.node_request_approved(_node_request())

        assert result.success
        smtp_cls.assert_called_once_with("smtp.example.com", 2525, timeout=10)
        connection.login.assert_called_once_with("mailer", "hunter2")
        message = connection.send_message.call_args[0][0]
        assert message["Subject"] == "Your Boot Node has been approved - LAB Chain"
        assert message["To"] == "operator@example.com"
        body = message.get_content()
        assert "Hello Somchai" in body
        assert "REQ-1A2B3C4D" in body

    @pytest.mark.asyncio
    async def test_rejection_email_includes_reason(self, database, notifier, smtp_mock):
        _, connection = smtp_mock
        await write_email_settings(database, SMTP_VALUES)

        await notifier.node_request_rejected(
            _node_request(node_type=NodeType.RPC, contact_name=None), "Endpoint unreachable"
        )

        message = connection.send_message.call_args[0][0]
        assert message["Subject"] == "Update on your RPC Endpoint submission - LAB Chain"
        assert "Hello there" in message.get_content()
        assert "Endpoint unreachable" in message.get_content()

    @pytest.mark.asyncio
    async def test_token_emails(self, database, notifier, smtp_mock):
        _, connection = smtp_mock
        await write_email_settings(database, SMTP_VALUES)

        assert (await notifier.token_request_approved(_token_request())).success
        assert (await notifier.token_transferred(_token_request())).success

        subjects = [call[0][0]["Subject"] for call in connection.send_message.call_args_list]
        assert subjects == [
            "Your LAB token request has been approved - LAB Chain",
            "Your LAB tokens have been sent - LAB Chain",
        ]

    @pytest.mark.asyncio
    async def test_smtp_failure_is_reported(self, database, notifier, smtp_mock):
        _, connection = smtp_mock
        connection.send_message.side_effect = smtplib.SMTPException("mailbox full")
        await write_email_settings(database, SMTP_VALUES)

        result = await notifier.token_request_rejected(_token_request(), "no")

        assert result.success is False
        assert "mailbox full" in result.error

    @pytest.mark.asyncio
    async def test_secure_uses_ssl(self, database, notifier):
        await write_email_settings(database, dict(SMTP_VALUES, smtp_secure="true"))

        with patch("backend.app.services.notifier.smtplib.SMTP_SSL") as ssl_cls:
            result = await notifier.node_request_approved(_node_request())

        assert result.success
        assert ssl_cls.call_args[0] == ("smtp.example.com", 2525)
