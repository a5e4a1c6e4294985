"""Credential storage via OS keyring."""

from __future__ import annotations

import logging

import keyring

from seatsnipe.errors import AuthError
from seatsnipe.models import UserCredentials

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "seatsnipe-sso"


class CredentialStore:
    """Keeps the school id and SSO password out of config files."""

    def store(self, school_id: str, password: str) -> None:
        keyring.set_password(KEYRING_SERVICE, "school_id", school_id)
        keyring.set_password(KEYRING_SERVICE, school_id, password)
        logger.info("Credentials stored in keyring.")

    def load(self) -> UserCredentials:
        school_id = keyring.get_password(KEYRING_SERVICE, "school_id")
        if not school_id:
            raise AuthError(
                "No credentials found. Run 'seatsnipe configure' or pass --user-info."
            )
        password = keyring.get_password(KEYRING_SERVICE, school_id)
        if not password:
            raise AuthError(
                f"Password not found for {school_id}. Run 'seatsnipe configure' again."
            )
        return UserCredentials(school_id=school_id, password=password)
