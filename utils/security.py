import re


def redact_secrets(text: str) -> str:
    """Redact API keys, tokens and passwords from log lines and stored error messages."""
    if not isinstance(text, str):
        return text

    redacted = text

    # Query params like key=, api_key=, token=, password= (the YouTube client passes key=)
    redacted = re.sub(
        r"(?i)(api[_-]?key|key|token|secret|password)=([^&\s]+)", r"\1=***REDACTED***", redacted
    )

    # Google API keys leaking outside a query string
    redacted = re.sub(r"AIza[0-9A-Za-z_\-]{20,}", "***REDACTED***", redacted)

    # Authorization: Bearer <token>
    redacted = re.sub(
        r"(?i)Authorization:\s*Bearer\s+[A-Za-z0-9._\-]+", "Authorization: Bearer ***REDACTED***", redacted
    )

    return redacted


def is_configured_key(value) -> bool:
    """Return True if an env var-like value is set and is not a placeholder."""
    if not value:
        return False
    s = str(value).strip()
    if not s:
        return False
    return ("YOUR_" not in s) and ("your_" not in s)
