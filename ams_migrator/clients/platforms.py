import logging
from typing import Dict, Optional
from urllib.parse import quote

from ..auth.azure import AzureAuthProvider

logger = logging.getLogger(__name__)

DEFAULT_MKIO_ENDPOINT = "https://api.mk.io"
ARM_ENDPOINT = "https://management.azure.com"
AMS_API_VERSION = "2023-01-01"


def _escape(segment: str) -> str:
    return quote(segment, safe="")


class Platform:
    """URL layout and credentials for one media-services control plane."""

    name = "platform"
    embeds_content_keys = True

    def collection_url(self, *segments: str) -> str:
        raise NotImplementedError

    def profile_url(self) -> str:
        raise NotImplementedError

    def headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def default_params(self) -> Dict[str, str]:
        return {}


class MkioPlatform(Platform):
    name = "mkio"
    embeds_content_keys = True

    def __init__(
        self,
        subscription: str,
        token: str,
        api_endpoint: Optional[str] = None,
    ) -> None:
        if not subscription:
            raise ValueError("mk.io subscription name cannot be empty")
        self._subscription = subscription
        self._token = token
        self._host = (api_endpoint or DEFAULT_MKIO_ENDPOINT).rstrip("/")

    @property
    def subscription(self) -> str:
        return self._subscription

    def collection_url(self, *segments: str) -> str:
        path = "/".join(_escape(s) for s in segments)
        return f"{self._host}/api/ams/{_escape(self._subscription)}/{path}"

    def profile_url(self) -> str:
        return f"{self._host}/api/profile"

    def headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "x-mkio-token": self._token,
        }


class AzureMediaServicesPlatform(Platform):
    name = "azure"
    embeds_content_keys = False

    def __init__(
        self,
        subscription: str,
        resource_group: str,
        account_name: str,
        auth: AzureAuthProvider,
        arm_endpoint: str = ARM_ENDPOINT,
        api_version: str = AMS_API_VERSION,
    ) -> None:
        if not (subscription and resource_group and account_name):
            raise ValueError(
                "Azure subscription, resource group and account name are all required"
            )
        self._subscription = subscription
        self._resource_group = resource_group
        self._account_name = account_name
        self._auth = auth
        self._arm_endpoint = arm_endpoint.rstrip("/")
        self._api_version = api_version

    def _account_url(self) -> str:
        return (
            f"{self._arm_endpoint}/subscriptions/{_escape(self._subscription)}"
            f"/resourceGroups/{_escape(self._resource_group)}"
            f"/providers/Microsoft.Media/mediaServices/{_escape(self._account_name)}"
        )

    def collection_url(self, *segments: str) -> str:
        path = "/".join(_escape(s) for s in segments)
        return f"{self._account_url()}/{path}"

    def profile_url(self) -> str:
        return self._account_url()

    def headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._auth.get_access_token()}",
        }

    def default_params(self) -> Dict[str, str]:
        return {"api-version": self._api_version}
