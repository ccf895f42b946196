"""Normalization of login identifiers into email or phone contacts."""

from __future__ import annotations

import re

from uzpharm.auth.models import OtpChannel

_NON_DIGITS = re.compile(r"\D")
UZ_COUNTRY_CODE = "998"


def is_email(identifier: str) -> bool:
    """Treat any identifier containing ``@`` as an email address."""
    return "@" in (identifier or "")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_phone(phone: str) -> str:
    """Reduce a phone number to ``+998<digits>``; empty when no digits remain.

    Local numbers without the Uzbek country code get the ``998`` prefix, so
    storage, lookup and SMS delivery all agree on one key per subscriber.
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if not digits:
        return ""
    if not digits.startswith(UZ_COUNTRY_CODE):
        digits = f"{UZ_COUNTRY_CODE}{digits}"
    return f"+{digits}"


def resolve_contact(identifier: str) -> tuple[OtpChannel, str]:
    """Return delivery channel and normalized contact for an identifier."""
    if is_email(identifier):
        return OtpChannel.EMAIL, normalize_email(identifier)
    return OtpChannel.SMS, normalize_phone(identifier)
