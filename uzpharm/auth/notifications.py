"""Out-of-band delivery of one-time codes by SMS and email."""

from __future__ import annotations

import logging
import smtplib
import ssl
from concurrent.futures import Executor, Future
from email.mime.text import MIMEText
from typing import Protocol

import requests

from uzpharm.auth.contacts import normalize_phone
from uzpharm.auth.models import OtpChannel, OtpPurpose
from uzpharm.core.logging import mask_contact

LOGGER = logging.getLogger(__name__)

_PURPOSE_LABELS = {
    OtpPurpose.LOGIN: "login",
    OtpPurpose.REGISTER: "registration",
    OtpPurpose.PASSWORD_RESET: "password reset",
}


class CodeSender(Protocol):
    def send_code(self, contact: str, code: str, purpose: OtpPurpose) -> None: ...


class SmsSender:
    """Eskiz.uz SMS gateway client; logs codes instead when no API key is set."""

    def __init__(
        self,
        *,
        api_key: str = "",
        api_url: str = "https://notify.eskiz.uz/api",
        sender: str = "UzPharm",
        base_url: str = "",
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._sender = sender
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @staticmethod
    def format_phone_number(phone: str) -> str:
        """Format a number for Uzbek operators, adding the 998 prefix if missing."""
        return normalize_phone(phone)

    def send_code(self, contact: str, code: str, purpose: OtpPurpose) -> None:
        if not self.is_configured:
            LOGGER.info(
                "sms_dev_mode code=%s",
                code,
                extra={"channel": "sms", "purpose": str(purpose)},
            )
            return

        message = (
            f"UzPharm {_PURPOSE_LABELS[purpose]} code: {code}. "
            "Do not share this code with anyone."
        )
        body = {
            "mobile_phone": self.format_phone_number(contact),
            "message": message,
            "from": self._sender,
        }
        if self._base_url:
            body["callback_url"] = f"{self._base_url}/api/webhooks/sms-status"

        response = self._session.post(
            f"{self._api_url}/message/sms/send",
            json=body,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self._timeout_seconds,
        )
        response.raise_for_status()
        LOGGER.info(
            "sms_sent",
            extra={"channel": "sms", "purpose": str(purpose), "status_code": response.status_code},
        )


class EmailSender:
    """SMTP mailer for one-time codes; logs codes instead when unconfigured."""

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._smtp_use_tls = smtp_use_tls
        self._from_email = from_email or smtp_user
        self._timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self._smtp_host and self._from_email)

    def send_code(self, contact: str, code: str, purpose: OtpPurpose) -> None:
        if not self.is_configured:
            LOGGER.info(
                "email_dev_mode code=%s",
                code,
                extra={"channel": "email", "purpose": str(purpose)},
            )
            return

        label = _PURPOSE_LABELS[purpose]
        msg = MIMEText(
            f"Your UzPharm {label} code is {code}.\n"
            "It expires in 5 minutes. Do not share this code with anyone.",
            "plain",
            "utf-8",
        )
        msg["Subject"] = f"UzPharm {label} code"
        msg["From"] = self._from_email
        msg["To"] = contact

        with smtplib.SMTP(
            self._smtp_host, self._smtp_port, timeout=self._timeout_seconds
        ) as server:
            if self._smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self._smtp_user and self._smtp_password:
                server.login(self._smtp_user, self._smtp_password)
            server.sendmail(self._from_email, [contact], msg.as_string())
        LOGGER.info("email_sent", extra={"channel": "email", "purpose": str(purpose)})


class NotificationDispatcher:
    """Route codes to the channel sender without failing the caller.

    With an executor the send is fire-and-forget; without one it runs inline.
    Delivery errors are logged either way, the OTP session stays valid.
    """

    def __init__(
        self,
        *,
        email_sender: CodeSender,
        sms_sender: CodeSender,
        executor: Executor | None = None,
    ) -> None:
        self._senders: dict[OtpChannel, CodeSender] = {
            OtpChannel.EMAIL: email_sender,
            OtpChannel.SMS: sms_sender,
        }
        self._executor = executor

    def dispatch(
        self, channel: OtpChannel, contact: str, code: str, purpose: OtpPurpose
    ) -> None:
        sender = self._senders[channel]
        if self._executor is None:
            self._send(sender, channel, contact, code, purpose)
            return
        future = self._executor.submit(
            self._send, sender, channel, contact, code, purpose
        )
        future.add_done_callback(self._log_unexpected)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)

    @staticmethod
    def _send(
        sender: CodeSender,
        channel: OtpChannel,
        contact: str,
        code: str,
        purpose: OtpPurpose,
    ) -> bool:
        try:
            sender.send_code(contact, code, purpose)
        except Exception:
            LOGGER.exception(
                "otp_delivery_failed contact=%s",
                mask_contact(contact),
                extra={"channel": str(channel), "purpose": str(purpose)},
            )
            return False
        return True

    @staticmethod
    def _log_unexpected(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            LOGGER.error("otp_delivery_crashed", exc_info=exc)
