from __future__ import annotations

from fastapi import Request

from teams.core.config import get_settings
from teams.schemas.team import Language

_LANGUAGE_BY_CODE = {
    "en": Language.ENGLISH,
    "nl": Language.DUTCH,
    "pt": Language.PORTUGUESE,
}


def resolve_language(
    lang_cookie: str | None,
    accept_language: str | None,
    supported_language_codes: list[str] | None = None,
) -> Language:
    """Pick the invitation language from the ``lang`` cookie, then ``Accept-Language``."""
    supported_codes = set(supported_language_codes or _LANGUAGE_BY_CODE)
    candidates: list[str] = []
    if lang_cookie and lang_cookie.strip():
        candidates.append(lang_cookie)
    if accept_language:
        candidates.extend(_parse_accept_language(accept_language))

    for candidate in candidates:
        code = candidate.strip().lower().split("-")[0].split("_")[0]
        if code in supported_codes and code in _LANGUAGE_BY_CODE:
            return _LANGUAGE_BY_CODE[code]
    return Language.ENGLISH


def _parse_accept_language(header_value: str) -> list[str]:
    weighted: list[tuple[float, int, str]] = []
    for position, part in enumerate(header_value.split(",")):
        tag, _, parameters = part.strip().partition(";")
        if not tag:
            continue
        quality = 1.0
        parameters = parameters.strip()
        if parameters.startswith("q="):
            try:
                quality = float(parameters[2:])
            except ValueError:
                quality = 0.0
        weighted.append((-quality, position, tag))
    weighted.sort()
    return [tag for _, _, tag in weighted]


def request_language(request: Request) -> Language:
    return resolve_language(
        request.cookies.get("lang"),
        request.headers.get("accept-language"),
        get_settings().supported_language_codes,
    )
