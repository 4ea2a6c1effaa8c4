from __future__ import annotations

import os

from daybridge.errors import CredentialError
from daybridge.models import CalDAVConfig


def resolve_password(config: CalDAVConfig) -> str:
    if config.password:
        return config.password
    if config.password_env:
        value = os.getenv(config.password_env, "").strip()
        if value:
            return value
        raise CredentialError(f"Environment variable {config.password_env} is not set.")
    raise CredentialError("CalDAV password is not configured.")
