"""
@mention detection, completion and extraction.

Pure functions only; the annotation state machine in ``annotations`` drives
them.  Extraction builds one pattern from the known user names so multi-word
names ("Jane Doe") resolve exactly and unknown mentions never match.
"""

import re
from dataclasses import dataclass

from schedule_engine.models import User

DEFAULT_SUGGESTION_LIMIT = 5


@dataclass(frozen=True)
class MentionQuery:
    """An active ``@query`` span ending at the cursor."""

    start: int  # index of the '@'
    end: int  # cursor position
    query: str


def detect_mention_query(text: str, cursor: int) -> MentionQuery | None:
    """Return the active mention query at *cursor*, or None.

    The nearest '@' before the cursor must start the text or follow
    whitespace, and nothing between it and the cursor may be whitespace.
    """
    cursor = max(0, min(cursor, len(text)))
    at = text.rfind("@", 0, cursor)
    if at == -1:
        return None
    if at > 0 and not text[at - 1].isspace():
        return None
    query = text[at + 1 : cursor]
    if any(ch.isspace() for ch in query):
        return None
    return MentionQuery(start=at, end=cursor, query=query)


def suggest_users(
    query: str, users: list[User], limit: int = DEFAULT_SUGGESTION_LIMIT
) -> list[User]:
    """Case-insensitive substring match on name or email, capped at *limit*."""
    needle = query.lower()
    matches = [
        u for u in users if needle in (u.name or "").lower() or needle in (u.email or "").lower()
    ]
    return matches[:limit]


def commit_mention(text: str, mention: MentionQuery, user: User) -> tuple[str, int]:
    """Replace the ``@query`` span with ``@<Full Name> ``; return (text, cursor)."""
    insert = f"@{user.name} "
    new_text = text[: mention.start] + insert + text[mention.end :]
    return new_text, mention.start + len(insert)


def _mention_pattern(names: list[str]) -> re.Pattern | None:
    names = sorted({n for n in names if n}, key=len, reverse=True)
    if not names:
        return None
    alternatives = "|".join(re.escape(n) for n in names)
    # Name must end at whitespace, end of text or punctuation.
    return re.compile(rf"(?<!\w)@({alternatives})(?=\s|$|[^\w\s])", re.IGNORECASE)


def extract_mentions(text: str, users: list[User], author_id: str | None = None) -> list[str]:
    """Resolve ``@Name`` tokens in finalized note text to user ids.

    Unknown names and the author are dropped; ids are de-duplicated in
    first-mention order.
    """
    pattern = _mention_pattern([u.name for u in users])
    if pattern is None or not text:
        return []
    by_name = {}
    for user in users:
        by_name.setdefault(user.name.lower(), user)

    resolved: list[str] = []
    for match in pattern.finditer(text):
        user = by_name.get(match.group(1).lower())
        if user is None or user.id == author_id:
            continue
        if user.id not in resolved:
            resolved.append(user.id)
    return resolved
