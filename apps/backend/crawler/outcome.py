"""
Result of a single fetch tier.
"""
from dataclasses import dataclass, replace
from typing import Optional

PROVIDER_GREENHOUSE_API = 'gh-api'
PROVIDER_LEVER_API = 'lever-api'
PROVIDER_DIRECT = 'direct'
PROVIDER_RENDERER = 'renderer'
UNWRAPPED_SUFFIX = '-unwrapped'


@dataclass
class FetchOutcome:
    """What one tier produced for a URL. Never persisted."""
    status: int
    final_url: str
    html: str = ''
    provider: str = PROVIDER_DIRECT
    api_company: Optional[str] = None
    api_role: Optional[str] = None

    @property
    def is_rendered(self) -> bool:
        return self.provider.startswith(PROVIDER_RENDERER)

    def unwrapped(self) -> "FetchOutcome":
        return replace(self, provider=self.provider + UNWRAPPED_SUFFIX)
