"""Input sanitization for user-provided strings.

Escapes markup-significant characters before text is sent to the webhook
or stored. This is defense in depth for consumers that render the text as
HTML; it does not replace escaping at render time.
"""

# Ampersand must come first so later substitutions are not re-escaped
_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#39;"),
)


def sanitize_input(value: str | None) -> str:
    """Escape HTML-significant characters, then trim surrounding whitespace.

    Single pass only: already-escaped input is escaped again
    ("&amp;" becomes "&amp;amp;").

    Args:
        value: Raw user input. None is treated as empty.

    Returns:
        Escaped, trimmed string ("" for empty input).
    """
    if not value:
        return ""

    result = str(value)
    for char, entity in _ESCAPES:
        result = result.replace(char, entity)
    return result.strip()
