import re
import secrets
import string

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

ALPHABET = string.ascii_letters + string.digits

SHORTCODE_PATTERN = re.compile(r"^[A-Za-z0-9]{4,10}$")

_http_url = TypeAdapter(AnyHttpUrl)

def generate_random_code(length: int = 6) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def is_valid_shortcode(code) -> bool:
    return isinstance(code, str) and SHORTCODE_PATTERN.fullmatch(code) is not None

def is_web_url(url) -> bool:
    """True for a non-empty http(s) URL with a host."""
    if not isinstance(url, str) or not url.strip():
        return False
    # AnyHttpUrl would quietly strip or percent-encode these
    if any(ch.isspace() for ch in url):
        return False
    try:
        parsed = _http_url.validate_python(url)
    except ValidationError:
        return False
    return bool(parsed.host)
