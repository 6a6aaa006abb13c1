"""Azure Resource Manager authentication provider."""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from azure.core.credentials import AccessToken, TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential

from ..utils.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

ARM_SCOPE = "https://management.azure.com/.default"
REFRESH_MARGIN_SECONDS = 300


class AzureAuthProvider:
    """Hands out ARM bearer tokens, refreshing them shortly before they expire.

    The credential defaults to ``DefaultAzureCredential`` (environment, managed
    identity, Azure CLI login ...) and is created on first use. Worker threads
    share one provider, so acquisition is serialized.
    """

    def __init__(
        self,
        credential: Optional[TokenCredential] = None,
        scope: str = ARM_SCOPE,
        refresh_margin: float = REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credential = credential
        self._scope = scope
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = threading.Lock()

    @property
    def credential(self) -> TokenCredential:
        if self._credential is None:
            self._credential = DefaultAzureCredential()
        return self._credential

    def _needs_refresh(self) -> bool:
        if self._token is None:
            return True
        return self._token.expires_on - self._clock() <= self._refresh_margin

    def is_authenticated(self) -> bool:
        return not self._needs_refresh()

    def get_access_token(self) -> str:
        with self._lock:
            if self._needs_refresh():
                self._token = self._acquire()
            return self._token.token

    def _acquire(self) -> AccessToken:
        refreshing = self._token is not None
        try:
            token = self.credential.get_token(self._scope)
        except ClientAuthenticationError as e:
            raise AuthenticationError(
                f"Unable to obtain an Azure access token: {e}",
                provider="azure",
            ) from e
        logger.info(
            "Azure access token %s, valid until %s",
            "refreshed" if refreshing else "acquired",
            datetime.fromtimestamp(token.expires_on, tz=timezone.utc).isoformat(),
        )
        return token
