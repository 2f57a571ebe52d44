from __future__ import annotations

from urllib.parse import urlparse

from rulex.errors import ValidationError

# prepend https:// when the caller passed a bare host or path

def normalize_url(url: str) -> str:
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationError("URL is required", "VALIDATION_ERROR")
    if not candidate.startswith(("http://", "https://")):
        candidate = f"https://{candidate}"
    return candidate


def hostname_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower().rstrip(".")

# exact domain or a true subdomain; "notcbic.gov.in" must not match "cbic.gov.in"

def is_allowed_host(hostname: str, allowed_domains: list[str]) -> bool:
    host = hostname.lower().rstrip(".")
    if not host:
        return False
    for domain in allowed_domains:
        domain = domain.lower().strip().rstrip(".")
        if not domain:
            continue
        if host == domain or host.endswith("." + domain):
            return True
    return False


def ensure_allowed_url(url: str, allowed_domains: list[str]) -> str:
    """Normalise *url* and reject it unless its host is allow-listed.

    Runs before any network call or document row is created.  Returns
    the normalised URL on success.
    """
    normalized = normalize_url(url)
    parsed = urlparse(normalized)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationError("Invalid URL format", "VALIDATION_ERROR")

    if not is_allowed_host(hostname_of(normalized), allowed_domains):
        raise ValidationError(
            "Domain not allowed. Only official government domains can be scraped: "
            + ", ".join(allowed_domains),
            "VALIDATION_ERROR",
        )
    return normalized
