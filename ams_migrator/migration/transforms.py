"""Rewrites applied to snapshot records before they are submitted to mk.io.

Each function returns a new object; the snapshot item passed in is left as is.
"""

import logging
from enum import Enum
from typing import Dict, Optional, Union

from ..clients.models import (
    ContentKeyPolicy,
    FairPlayPolicyView,
    StreamingEndpoint,
    StreamingLocator,
)
from ..utils.exceptions import CdnProviderMismatchError, ConfigurationError

logger = logging.getLogger(__name__)

LOCATION_MAP: Dict[str, str] = {
    "East US": "eastus",
    "West US 2": "westus2",
    "West Europe": "westeurope",
}

SUPPORTED_CDN_PROVIDER = "StandardAkamai"
_COMPATIBLE_CDN_PROVIDERS = frozenset({"Akamai", SUPPORTED_CDN_PROVIDER})

_SERVER_ASSIGNED_PROPERTIES = ("created", "lastModified")
_CDN_PROPERTIES = ("cdnProvider", "cdnProfile")


class CdnProviderPolicy(Enum):
    KEEP = "keep"
    COERCE = "coerce"
    FAIL = "fail"

    @classmethod
    def parse(cls, value: Union[str, "CdnProviderPolicy"]) -> "CdnProviderPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ConfigurationError(
                f"Invalid CDN provider policy '{value}' (expected one of: {choices})",
                config_key="migration.cdn_provider_policy",
            )


def map_location(location: Optional[str]) -> Optional[str]:
    if location is None:
        return None
    return LOCATION_MAP.get(location, location)


def is_supported_cdn_provider(provider: Optional[str]) -> bool:
    return provider is None or provider in _COMPATIBLE_CDN_PROVIDERS


def prepare_streaming_endpoint(
    endpoint: StreamingEndpoint,
    cdn_policy: CdnProviderPolicy = CdnProviderPolicy.KEEP,
) -> StreamingEndpoint:
    result = endpoint.copy()

    if result.location is not None:
        mapped = map_location(result.location)
        if mapped != result.location:
            logger.debug(
                "Location mismatch for %s, setting %s to %s",
                result.name,
                result.location,
                mapped,
            )
            result.location = mapped  # type: ignore[assignment]

    for key in _SERVER_ASSIGNED_PROPERTIES:
        result.properties.pop(key, None)

    if not result.cdn_enabled:
        for key in _CDN_PROPERTIES:
            result.properties.pop(key, None)
    elif not is_supported_cdn_provider(result.cdn_provider):
        provider = result.cdn_provider
        if cdn_policy == CdnProviderPolicy.FAIL:
            raise CdnProviderMismatchError(
                f"CDN provider {provider} of {result.name} is not supported by mk.io",
                provider=provider,
            )
        if cdn_policy == CdnProviderPolicy.COERCE:
            logger.info(
                "Setting CDN provider of %s from %s to %s",
                result.name,
                provider,
                SUPPORTED_CDN_PROVIDER,
            )
            result.properties["cdnProvider"] = SUPPORTED_CDN_PROVIDER
        else:
            logger.warning(
                "CDN provider %s of %s is not supported by mk.io, submitting unchanged",
                provider,
                result.name,
            )

    return result


def prepare_streaming_locator(locator: StreamingLocator) -> StreamingLocator:
    result = locator.copy()
    if result.uses_predefined_policy and "contentKeys" in result.properties:
        logger.debug(
            "Removing content keys from %s, it uses predefined policy %s",
            result.name,
            result.streaming_policy_name,
        )
        result.content_keys = None
    return result


def prepare_content_key_policy(
    policy: ContentKeyPolicy, fairplay_ams_compatibility: bool = False
) -> Union[ContentKeyPolicy, FairPlayPolicyView]:
    if not fairplay_ams_compatibility:
        return policy.copy()
    return FairPlayPolicyView(
        policy=policy.copy(),
        fair_play_ams_compatibility=policy.has_fairplay_option(),
    )
