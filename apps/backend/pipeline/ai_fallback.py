"""
LLM escalation adapter.

Talks to a chat-completion style endpoint for two purposes: inferring
company/role from thin page signals, and drafting outreach notes. Every call
is fallible: failures raise LLMError and callers keep their heuristic or
template result.
"""

import json
import logging
from typing import Dict, Optional

import httpx

from core.config import Settings
from core.net import HTTPClient

logger = logging.getLogger(__name__)

EXTRACT_SYSTEM_PROMPT = "\n".join([
    "You are a precise extractor. Infer the HIRING company (not the aggregator) and the ROLE title from partial page signals.",
    'Return STRICT JSON only: {"company":"...","role":"..."}. No commentary.',
    "Prefer signals in order: JSON-LD -> H1 -> OG:title -> title -> body preview hints.",
    "Normalize: company as proper name, role as a clean job title.",
])

NOTES_SYSTEM_PROMPT = "\n".join([
    "You craft brief LinkedIn outreach.",
    'Return STRICT JSON: {"invite":"...","followup":"...","meta":"llm"}. No extra text.',
    "invite: <=280 chars. No emojis. Friendly, recruiter-appropriate.",
    "followup: 280-500 chars; specific hook from job/company if present; no emojis.",
    "Write for a generic recruiter/manager (no personal names).",
])


class LLMError(Exception):
    """Raised when the LLM endpoint fails or returns unusable content."""
    pass


def extract_json_object(content: Optional[str]) -> Dict:
    """
    Pull the first JSON object out of free-form model output.

    Tries the first balanced {...} substring, then the span from the first
    '{' to the last '}'.

    Raises:
        LLMError: if no JSON object can be decoded
    """
    text = (content or '').strip()
    start = text.find('{')
    if start < 0:
        raise LLMError("LLM response contained no JSON object")

    candidates = []
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                candidates.append(text[start:i + 1])
                break

    end = text.rfind('}')
    if end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise LLMError(f"Could not parse JSON from LLM response: {text[:120]}")


class LLMClient:
    """Chat-completion client for extraction and notes."""

    def __init__(self, settings: Settings, http_client: Optional[HTTPClient] = None):
        self.settings = settings
        self.http = http_client or HTTPClient(
            timeout=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries
        )

    async def _chat(self, model: str, system: str, user: str,
                    temperature: float, max_tokens: int) -> str:
        if not self.settings.llm_configured:
            raise LLMError("LLM endpoint or API key not configured")

        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.settings.llm_api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self.http.post_json(self.settings.llm_endpoint, payload, headers=headers)
        except httpx.HTTPError as e:
            raise LLMError(f"LLM request failed: {e}") from e

        if not (200 <= response.status < 300):
            raise LLMError(f"LLM HTTP {response.status}: {response.text[:300]}")

        try:
            data = json.loads(response.text) if response.text.strip() else {}
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Unexpected LLM response shape: {e}") from e

        return content or ''

    async def extract_company_role(self, snippet: Dict) -> Dict[str, str]:
        """
        Ask the model for {company, role}.

        Args:
            snippet: Page signals (url, h1, ogTitle, ogSite, title, body_preview)

        Returns:
            Dict with stripped 'company' and 'role' strings (either may be '')
        """
        user = "Signals:\n" + json.dumps(snippet, indent=2, ensure_ascii=False)
        content = await self._chat(
            self.settings.extraction_model, EXTRACT_SYSTEM_PROMPT, user,
            temperature=0.2, max_tokens=120
        )
        out = extract_json_object(content)
        return {
            "company": str(out.get("company") or '').strip(),
            "role": str(out.get("role") or '').strip(),
        }

    async def generate_notes(self, snippet: Dict) -> Dict[str, str]:
        """Ask the model for outreach notes {invite, followup, meta}."""
        user = "Snippet:\n" + json.dumps(snippet, indent=2, ensure_ascii=False)
        content = await self._chat(
            self.settings.llm_model, NOTES_SYSTEM_PROMPT, user,
            temperature=0.4, max_tokens=380
        )
        out = extract_json_object(content)
        invite = str(out.get("invite") or '').strip()
        followup = str(out.get("followup") or '').strip()
        if not invite and not followup:
            raise LLMError("LLM notes response had neither invite nor followup")
        return {"invite": invite, "followup": followup, "meta": str(out.get("meta") or 'llm')}
