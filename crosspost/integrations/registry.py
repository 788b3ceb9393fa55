"""Static platform -> adapter registration table."""
from crosspost.config import Settings
from crosspost.integrations.base import PlatformAdapter
from crosspost.integrations.errors import UnsupportedPlatform
from crosspost.integrations.meta.adapter import FacebookAdapter, InstagramAdapter
from crosspost.integrations.resilience import RateLimiter
from crosspost.integrations.youtube.adapter import YouTubeAdapter
from crosspost.models.account import Platform


class AdapterRegistry:
    """Pure lookup from platform tag to adapter instance."""

    def __init__(self, adapters: dict[Platform, PlatformAdapter] | None = None):
        self._adapters: dict[Platform, PlatformAdapter] = {}
        for platform, adapter in (adapters or {}).items():
            self.register(platform, adapter)

    def register(self, platform: Platform, adapter: PlatformAdapter) -> None:
        if adapter.platform != platform:
            raise ValueError(f"Adapter for {adapter.platform.value} cannot serve {platform.value}")
        self._adapters[platform] = adapter

    def get(self, platform: Platform | str) -> PlatformAdapter:
        try:
            tag = Platform(platform)
        except ValueError:
            raise UnsupportedPlatform(f"Unsupported platform: {platform}", str(platform)) from None

        adapter = self._adapters.get(tag)
        if adapter is None:
            raise UnsupportedPlatform(f"Unsupported platform: {tag.value}", tag.value)
        return adapter

    @property
    def platforms(self) -> frozenset[Platform]:
        return frozenset(self._adapters)


def build_registry(settings: Settings, rate_limiter: RateLimiter | None = None) -> AdapterRegistry:
    """Register every platform with a shipped adapter. TikTok and Threads have none yet."""
    return AdapterRegistry({
        Platform.YOUTUBE: YouTubeAdapter(settings, rate_limiter=rate_limiter),
        Platform.INSTAGRAM: InstagramAdapter(settings, rate_limiter=rate_limiter),
        Platform.FACEBOOK: FacebookAdapter(settings, rate_limiter=rate_limiter),
    })
