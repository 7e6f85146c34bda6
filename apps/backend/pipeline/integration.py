"""
Resolution engine: tiered fetch + decision + renderer escalation.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from core.audit import AuditToken
from crawler.outcome import FetchOutcome
from crawler.resolver import Resolver
from .extractor import CompanyRoleExtractor, ExtractionDecision

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """A fetch outcome, the decision made from it, and engine-level audit tokens."""
    outcome: FetchOutcome
    decision: ExtractionDecision
    tokens: List[AuditToken] = field(default_factory=list)


class ResolutionEngine:
    """Runs one URL through the fetch tiers and the decision algorithm."""

    def __init__(self, resolver: Resolver, extractor: CompanyRoleExtractor):
        self.resolver = resolver
        self.extractor = extractor

    async def decide(self, outcome: FetchOutcome, url: str) -> ExtractionDecision:
        return await self.extractor.decide(
            outcome.html,
            outcome.final_url or url,
            api_company=outcome.api_company,
            api_role=outcome.api_role,
        )

    async def resolve_and_decide(self, url: str) -> Resolution:
        """
        Resolve `url` and decide company/role.

        When nothing at all was extracted (confidence 0) from a non-rendered
        body, the final URL is rendered once more and the better decision kept.
        """
        outcome = await self.resolver.resolve(url)
        final_url = outcome.final_url or url
        decision = await self.decide(outcome, url)
        tokens: List[AuditToken] = []

        if decision.confidence == 0 and not outcome.is_rendered:
            rendered = await self.resolver.render(final_url)
            if rendered and rendered.html:
                second = await self.decide(rendered, final_url)
                if second.confidence > decision.confidence:
                    logger.info(f"[engine] Renderer escalation improved {final_url} "
                                f"to conf={second.confidence:.2f}")
                    decision = second
                    tokens.append(AuditToken(kind='fetch', fields={'escalated': 'renderer'}))

        return Resolution(outcome=outcome, decision=decision, tokens=tokens)
