"""
Company/role decision algorithm.

Signals are applied strongest first and each one that fires adds its weight
to the confidence:

1. ATS API hints
2. JSON-LD JobPosting
3. ATS company slug in the URL
4. H1 -> og:title -> <title> for the role
5. og:site_name for the company (not on aggregators)
6. "Company - Role" rescue split
7. Role cleanup
8. LLM escalation (optional, last resort)
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.audit import AuditToken
from core.canonical import canonicalize
from core.hosts import HostClassifier, host_from_url
from .ai_fallback import LLMClient, LLMError
from .cleaner import clean_role
from .heuristics import PageSignals, is_generic_title, text_preview

logger = logging.getLogger(__name__)

SIGNAL_WEIGHTS = {
    'api-company': 0.5,
    'api-title': 0.5,
    'jsonld-org': 0.5,
    'jsonld-title': 0.5,
    'ats-slug': 0.35,
    'h1': 0.35,
    'og:title': 0.25,
    'title': 0.15,
    'og:site_name': 0.25,
}
RESCUE_SPLIT_FLOOR = 0.55
LLM_FLOOR = 0.6
INCOMPLETE_CAP = 0.5
LLM_BODY_PREVIEW = 2000

SPLIT_PATTERN = re.compile(r'\s[-–—]\s')


@dataclass
class ExtractionDecision:
    """Outcome of deciding company/role for one page."""
    company: str = ''
    role: str = ''
    canonical_url: str = ''
    confidence: float = 0.0
    signal_path: List[str] = field(default_factory=list)
    aux_audit_tokens: List[AuditToken] = field(default_factory=list)

    @property
    def decision(self) -> str:
        return '+'.join(self.signal_path) if self.signal_path else 'heuristic'

    def to_dict(self) -> Dict:
        return {
            "company": self.company,
            "role": self.role,
            "canonical_url": self.canonical_url,
            "confidence": round(self.confidence, 2),
            "signals": self.decision,
            "audit": [{"kind": t.kind, "fields": dict(t.fields)} for t in self.aux_audit_tokens],
        }


class CompanyRoleExtractor:
    """Turns a page (or API hints) into a scored ExtractionDecision."""

    def __init__(self, classifier: HostClassifier, llm_client: Optional[LLMClient] = None,
                 enable_llm: bool = False):
        self.classifier = classifier
        self.llm_client = llm_client
        self.enable_llm = enable_llm and llm_client is not None

    async def decide(self, html: Optional[str], final_url: str,
                     api_company: Optional[str] = None,
                     api_role: Optional[str] = None) -> ExtractionDecision:
        """
        Decide company and role for a fetched page.

        Args:
            html: Page body ('' for API-only outcomes)
            final_url: URL after redirects
            api_company: Company hint from an ATS API tier
            api_role: Role hint from an ATS API tier

        Returns:
            ExtractionDecision with confidence in [0, 1]
        """
        result = ExtractionDecision(canonical_url=canonicalize(final_url))
        signals = PageSignals.from_html(html)
        host = host_from_url(final_url)
        company = ''
        role = ''

        def fire(name: str):
            result.signal_path.append(name)
            result.confidence += SIGNAL_WEIGHTS[name]

        if api_company and api_company.strip():
            company = api_company.strip()
            fire('api-company')
        if api_role and api_role.strip():
            role = api_role.strip()
            fire('api-title')

        if not company and signals.jsonld_company:
            company = signals.jsonld_company
            fire('jsonld-org')
        if not role and signals.jsonld_role:
            role = signals.jsonld_role
            fire('jsonld-title')

        if not company:
            slug_company = self.classifier.guess_company_from_url(final_url)
            if slug_company:
                company = slug_company
                fire('ats-slug')

        if not role:
            for name, candidate in (('h1', signals.h1), ('og:title', signals.og_title),
                                    ('title', signals.title)):
                if candidate:
                    role = candidate
                    fire(name)
                    break

        if not company and signals.og_site_name and not self.classifier.is_aggregator_host(host):
            company = signals.og_site_name
            fire('og:site_name')

        if not company and role:
            parts = SPLIT_PATTERN.split(role)
            if len(parts) == 2 and len(parts[0].strip()) > 1 and len(parts[1].strip()) > 1:
                company, role = parts[0].strip(), parts[1].strip()
                result.signal_path.append('title-split')
                result.confidence = max(result.confidence, RESCUE_SPLIT_FLOOR)

        role = clean_role(role, company)

        if self.enable_llm and (not role or is_generic_title(role) or not company):
            company, role = await self._escalate(result, signals, html, company, role)

        result.company = company
        result.role = role
        if not company or not role:
            result.confidence = min(result.confidence, INCOMPLETE_CAP)
        result.confidence = max(0.0, min(1.0, result.confidence))

        logger.debug(f"[extract] {result.canonical_url} -> company={company!r} role={role!r} "
                     f"conf={result.confidence:.2f} via {result.decision}")
        return result

    async def _escalate(self, result: ExtractionDecision, signals: PageSignals,
                        html: Optional[str], company: str, role: str):
        snippet = {
            "url": result.canonical_url,
            "h1": signals.h1,
            "ogTitle": signals.og_title,
            "ogSite": signals.og_site_name,
            "title": signals.title,
            "body_preview": text_preview(html, LLM_BODY_PREVIEW),
        }
        try:
            out = await self.llm_client.extract_company_role(snippet)
        except LLMError as e:
            logger.warning(f"[extract] LLM escalation failed for {result.canonical_url}: {e}")
            result.aux_audit_tokens.append(AuditToken(
                kind='extract',
                fields={'mode': 'llm', 'outcome': 'error', 'err': str(e)[:120]}
            ))
            return company, role

        filled = False
        if not company and out.get('company'):
            company = out['company']
            filled = True
        if (not role or is_generic_title(role)) and out.get('role'):
            role = clean_role(out['role'], company)
            filled = True

        if not filled:
            logger.info(f"[extract] LLM escalation for {result.canonical_url} filled nothing")
            result.aux_audit_tokens.append(AuditToken(
                kind='extract',
                fields={'mode': 'llm', 'outcome': 'error', 'err': 'no-output'}
            ))
            return company, role

        result.confidence = max(result.confidence, LLM_FLOOR)
        result.signal_path.append('llm')
        result.aux_audit_tokens.append(AuditToken(
            kind='extract',
            fields={'mode': 'llm', 'outcome': 'ok'}
        ))
        return company, role
