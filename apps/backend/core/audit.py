"""
Audit ledger for processed items.

The ledger is an ordered mapping of kind -> fields. It renders to the
human-readable form kept in the row's free-text source column:

    parse:{provider=gh-api, signals=api-company+api-title, conf=1.00} | notes:{mode=template}

Re-appending a kind replaces the earlier token in place.
"""
import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

DELIMITER = ' | '
TOKEN_PATTERN = re.compile(r'([A-Za-z][\w-]*):\{([^}]*)\}')


def _clean_value(value) -> str:
    # Braces and the delimiter would break re-parsing
    text = str(value).replace('{', '(').replace('}', ')').replace('|', '/')
    return re.sub(r'\s+', ' ', text).strip()


@dataclass
class AuditEntry:
    """A `kind:{k=v, ...}` token, or a plain text note when kind is empty."""
    kind: str
    fields: Dict[str, str] = field(default_factory=dict)
    text: str = ''

    def render(self) -> str:
        if not self.kind:
            return self.text
        body = ', '.join(f"{k}={v}" for k, v in self.fields.items())
        return f"{self.kind}:{{{body}}}"


def _parse_fields(body: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    last_key: Optional[str] = None
    for piece in body.split(', '):
        key, sep, value = piece.partition('=')
        if sep and key.strip():
            last_key = key.strip()
            fields[last_key] = value
        elif last_key is not None:
            # A value that itself contained ", "
            fields[last_key] = f"{fields[last_key]}, {piece}"
    return fields


class AuditLedger:
    """Ordered kind -> fields mapping with free-text notes kept in position."""

    def __init__(self, entries: Optional[List[AuditEntry]] = None):
        self.entries: List[AuditEntry] = list(entries or [])

    @classmethod
    def parse(cls, text: Optional[str]) -> "AuditLedger":
        """Parse a rendered ledger; anything that is not a token is kept as a note."""
        entries: List[AuditEntry] = []
        seen: Dict[str, int] = {}
        text = text or ''
        position = 0

        def add_notes(chunk: str):
            for note in chunk.split('|'):
                note = note.strip()
                if note:
                    entries.append(AuditEntry(kind='', text=note))

        for match in TOKEN_PATTERN.finditer(text):
            add_notes(text[position:match.start()])
            kind = match.group(1)
            fields = _parse_fields(match.group(2))
            if kind in seen:
                entries[seen[kind]].fields = fields
            else:
                seen[kind] = len(entries)
                entries.append(AuditEntry(kind=kind, fields=fields))
            position = match.end()
        add_notes(text[position:])

        return cls(entries)

    def append(self, kind: str, fields: Mapping[str, object]) -> None:
        """Add a token, replacing any earlier token of the same kind in place."""
        if not kind or not re.fullmatch(r'[A-Za-z][\w-]*', kind):
            raise ValueError(f"Invalid audit token kind: {kind!r}")
        rendered = {str(k): _clean_value(v) for k, v in fields.items()}
        for entry in self.entries:
            if entry.kind == kind:
                entry.fields = rendered
                return
        self.entries.append(AuditEntry(kind=kind, fields=rendered))

    def note(self, text: str) -> None:
        """Append a plain text note (e.g. a short error message)."""
        text = _clean_value(text)
        if text:
            self.entries.append(AuditEntry(kind='', text=text))

    def get(self, kind: str) -> Optional[Dict[str, str]]:
        for entry in self.entries:
            if entry.kind == kind:
                return dict(entry.fields)
        return None

    def kinds(self) -> List[str]:
        return [e.kind for e in self.entries if e.kind]

    def render(self) -> str:
        return DELIMITER.join(e.render() for e in self.entries)

    def __str__(self) -> str:
        return self.render()


def append_token(current: Optional[str], kind: str, fields: Mapping[str, object]) -> str:
    """Return `current` with the token for `kind` added or replaced."""
    ledger = AuditLedger.parse(current)
    ledger.append(kind, fields)
    return ledger.render()


@dataclass
class AuditToken:
    """An audit token produced during processing, written later by the caller."""
    kind: str
    fields: Dict[str, str] = field(default_factory=dict)
