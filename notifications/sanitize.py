# notifications/sanitize.py
import unicodedata

from django.utils.html import escape


def clean_text(value, max_length: int) -> str:
    """
    Make spectator input safe to store, echo and speak.

    Whitespace runs collapse to one space, control characters are dropped,
    the result is cut to ``max_length`` characters and then HTML-escaped.
    Cutting happens before escaping so an entity is never split.
    """
    if value is None:
        return ""
    text = " ".join(str(value).split())
    text = "".join(ch for ch in text if unicodedata.category(ch) not in ("Cc", "Cf"))
    text = text.strip()[:max_length].rstrip()
    return str(escape(text))
