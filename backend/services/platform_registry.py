"""Registry of social platform clients keyed by provider identifier."""

import enum
from collections.abc import Mapping

from config import Settings
from services.facebook_service import FacebookClient
from services.instagram_service import InstagramClient
from services.linkedin_service import LinkedInClient
from services.platform_client import PlatformClient
from services.twitter_service import TwitterClient
from services.youtube_service import YouTubeClient


class Provider(str, enum.Enum):
    """Social providers that support analytics."""
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"
    YOUTUBE = "youtube"


class StorageProvider(str, enum.Enum):
    """Cloud storage providers (no analytics)."""
    GOOGLE_DRIVE = "google-drive"
    DROPBOX = "dropbox"


class UnknownProviderError(LookupError):
    """No social platform client is registered for an identifier."""

    def __init__(self, identifier: str, message: str | None = None):
        super().__init__(message or f"Social provider not found: {identifier}")
        self.identifier = identifier


class PlatformRegistry:
    """Maps each Provider to its client instance."""

    def __init__(self, clients: Mapping[Provider, PlatformClient]):
        self._clients = dict(clients)

    def get(self, identifier: str) -> PlatformClient:
        """Return the client for ``identifier``.

        Raises:
            UnknownProviderError: the identifier is not a registered social provider.
        """
        if identifier in {p.value for p in StorageProvider}:
            raise UnknownProviderError(identifier, f"Storage provider has no analytics: {identifier}")
        try:
            provider = Provider(identifier)
        except ValueError:
            raise UnknownProviderError(identifier) from None
        client = self._clients.get(provider)
        if client is None:
            raise UnknownProviderError(identifier)
        return client

    def identifiers(self) -> list[str]:
        return [provider.value for provider in self._clients]

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.identifiers()


def build_registry(settings: Settings) -> PlatformRegistry:
    """Registry with a client for every supported social provider."""
    return PlatformRegistry({
        Provider.TWITTER: TwitterClient(settings.twitter_client_id, settings.twitter_client_secret),
        Provider.FACEBOOK: FacebookClient(settings.facebook_graph_version),
        Provider.INSTAGRAM: InstagramClient(settings.instagram_graph_version),
        Provider.LINKEDIN: LinkedInClient(settings.linkedin_client_id, settings.linkedin_client_secret),
        Provider.YOUTUBE: YouTubeClient(settings.youtube_client_id, settings.youtube_client_secret),
    })
