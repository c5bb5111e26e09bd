from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional, Protocol, Union

from google.auth.credentials import Credentials
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from playpublisher.errors import CredentialsError

log = logging.getLogger(__name__)

SCOPE = "https://www.googleapis.com/auth/androidpublisher"


class CredentialProvider(Protocol):
    def get_credentials(self) -> Credentials:
        ...


class ServiceAccountCredentialProvider:
    """Service-account credentials from a JSON key file or its parsed contents."""

    def __init__(self, source: Union[str, os.PathLike, Mapping[str, Any]], scopes: Optional[list[str]] = None):
        self.source = source
        self.scopes = scopes or [SCOPE]

    def get_credentials(self) -> Credentials:
        if isinstance(self.source, Mapping):
            log.info("Loading service account")
            try:
                return service_account.Credentials.from_service_account_info(
                    dict(self.source), scopes=self.scopes
                )
            except (ValueError, KeyError, GoogleAuthError) as e:
                raise CredentialsError(f"Invalid service account credentials: {e}", e)

        path = os.fspath(self.source)
        if not os.path.isfile(path):
            raise CredentialsError(f"Missing service account JSON: {path}")
        log.info("Loading service account from %s", path)
        try:
            return service_account.Credentials.from_service_account_file(path, scopes=self.scopes)
        except (OSError, ValueError, KeyError, GoogleAuthError) as e:
            raise CredentialsError(f"Could not load service account JSON {path}: {e}", e)
