import re

_SLUG_STRIP = re.compile(r"[^0-9A-Za-z _-]")
_WHITESPACE = re.compile(r"\s+")


def generate_slug(title: str, year_of_release: int) -> str:
    """
    Build the URL-safe slug for a movie, e.g. ``the-shawshank-redemption-1994``.

    Characters outside ``[0-9A-Za-z _-]`` are dropped, the rest is
    lower-cased and whitespace runs become a single hyphen.
    """
    cleaned = _SLUG_STRIP.sub("", title).strip().lower()
    cleaned = _WHITESPACE.sub("-", cleaned)
    if not cleaned:
        return str(year_of_release)
    return f"{cleaned}-{year_of_release}"
