"""
subextract/language_filter.py

Clasificación de pistas de subtítulos por idioma (español / inglés).

- Comparación case-insensitive contra tablas fijas (ISO 639-1/639-2 + variantes
  regionales habituales). Sin más normalización: "spa-ES" o "castellano" NO son
  español para este filtro.
- Solo español e inglés son idiomas de primera clase: con cualquier toggle activo,
  un tag desconocido (o vacío) se descarta siempre.
- Módulo puro: sin logging ni I/O.
"""

from __future__ import annotations

from typing import Final

from subextract.models import MediaStream

SPANISH_LANGUAGE_CODES: Final[frozenset[str]] = frozenset(
    code.casefold()
    for code in (
        "spa",  # ISO 639-2
        "es",  # ISO 639-1
        "es-ES",
        "es-MX",
        "es-AR",
        "es-CO",
        "es-CL",
        "es-VE",
        "es-PE",
        "es-UY",
        "es-EC",
        "es-GT",
        "es-CU",
        "es-BO",
        "es-DO",
        "es-HN",
        "es-PY",
        "es-SV",
        "es-NI",
        "es-CR",
        "es-PA",
        "es-PR",
        "es-US",
    )
)

ENGLISH_LANGUAGE_CODES: Final[frozenset[str]] = frozenset(
    code.casefold()
    for code in (
        "eng",  # ISO 639-2
        "en",  # ISO 639-1
        "en-US",
        "en-GB",
        "en-CA",
        "en-AU",
        "en-NZ",
        "en-IE",
        "en-ZA",
        "en-IN",
    )
)


def _in_table(language_code: str | None, table: frozenset[str]) -> bool:
    if not language_code:
        return False
    return language_code.casefold() in table


def is_spanish(language_code: str | None) -> bool:
    return _in_table(language_code, SPANISH_LANGUAGE_CODES)


def is_english(language_code: str | None) -> bool:
    return _in_table(language_code, ENGLISH_LANGUAGE_CODES)


def should_extract_subtitle(stream: MediaStream, extract_spanish: bool, extract_english: bool) -> bool:
    """
    ¿Debe conservarse esta pista de subtítulos?

    - Sin toggles activos: siempre True (no hay filtro).
    - Con algún toggle activo: False si la pista no trae idioma; si no, True
      solo cuando el idioma coincide con un toggle activo.
    """
    if not extract_spanish and not extract_english:
        return True

    if not stream.language:
        return False

    return (extract_spanish and is_spanish(stream.language)) or (
        extract_english and is_english(stream.language)
    )
