"""
Outreach note snippet and deterministic template.
"""

from typing import Dict, Optional

from core.canonical import canonicalize
from .heuristics import PageSignals, text_preview

INVITE_MAX = 280
NOTE_BODY_PREVIEW = 1000


def build_note_snippet(url: str, html: Optional[str], company: str, role: str,
                       profile: Optional[Dict[str, str]] = None) -> Dict:
    """Package page signals, parsed fields and the sender profile for note generation."""
    signals = PageSignals.from_html(html)
    return {
        "url": canonicalize(url),
        "company": company or '',
        "role": role or '',
        "h1": signals.h1,
        "ogTitle": signals.og_title,
        "ogSite": signals.og_site_name,
        "title": signals.title,
        "body_preview": text_preview(html, NOTE_BODY_PREVIEW),
        "profile": dict(profile or {}),
    }


def render_template_notes(snippet: Dict) -> Dict[str, str]:
    """Deterministic invite + follow-up used when the LLM is off or fails."""
    me = snippet.get("profile") or {}
    hook = me.get("one-line hook") or me.get("headline") or "software engineer"
    skills = me.get("top skills") or "full-stack development and shipping production features"
    company = snippet.get("company") or "your company"
    role = snippet.get("role") or "this role"

    invite = " ".join([
        f"Hi there, I applied for {role} at {company}.",
        f"I'm a {hook} and would love to connect.",
    ])
    followup = " ".join([
        f"Thanks for connecting! I just applied for {role} at {company}.",
        f"My background includes {skills}.",
        "If there's a chance to chat, I'd value 10-15 minutes to share how I can contribute.",
    ])

    return {"invite": invite[:INVITE_MAX], "followup": followup, "meta": "template"}
