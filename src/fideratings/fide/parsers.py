"""
Parsers for FIDE rating-list files.

FIDE has published two layouts for its monthly per-category lists:

- Fixed-width TXT (until 2019): one player per line, columns at fixed
  byte offsets, one header line.
- XML (2020 onwards): a ``playerslist`` root with repeated ``player``
  elements.

Both parsers normalize entries into RatingRecord objects and never raise
on an individual bad line or element; those are counted in the
ParseResult and skipped.
"""

import logging
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from lxml import etree

from fideratings.exceptions import RatingFileError
from fideratings.fide.records import (
    Category,
    FileFormat,
    ParsedLine,
    ParseResult,
    RatingRecord,
    validate_category,
)

logger = logging.getLogger(__name__)

# Fixed-width column positions (start, end) - 0-based, end exclusive
# Header: ID Number  Name  Fed Sex Tit WTit OTit FOA <MON><YY> Gms K B-day Flag
FIXED_WIDTH_COLUMNS = {
    "id": (0, 15),
    "name": (15, 76),
    "federation": (76, 80),
    "sex": (80, 83),
    "title": (83, 88),
    "rating": (113, 118),
    "games": (118, 123),
    "birth_year": (127, 132),
    "flag": (132, 136),
}

# FIDE's short title codes (combined lists and some XML files)
TITLE_CODES = {
    "g": "GM",
    "m": "IM",
    "f": "FM",
    "c": "CM",
    "wg": "WGM",
    "wm": "WIM",
    "wf": "WFM",
    "wc": "WCM",
}


# =============================================================================
# Field normalization
# =============================================================================

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _safe_int(value: Optional[str], allow_zero: bool = True) -> Optional[int]:
    """Convert to int, returning None for blank, non-numeric or (optionally) zero."""
    value = _clean(value)
    if value is None:
        return None
    try:
        number = int(value)
    except ValueError:
        return None
    if number == 0 and not allow_zero:
        return None
    return number


def _fix_encoding(value: Optional[str]) -> Optional[str]:
    """Re-decode latin-1 sliced text as UTF-8 when it is valid UTF-8."""
    if value is None:
        return None
    try:
        return value.encode("latin-1").decode("utf-8")
    except UnicodeError:
        return value


def normalize_title(value: Optional[str]) -> Optional[str]:
    value = _clean(value)
    if value is None:
        return None
    return TITLE_CODES.get(value.lower(), value.upper())


def normalize_sex(value: Optional[str]) -> Optional[str]:
    value = _clean(value)
    if value is None:
        return None
    value = value.upper()
    return value if value in ("M", "F") else None


def normalize_federation(value: Optional[str]) -> Optional[str]:
    value = _clean(value)
    return value.upper() if value else None


def _build_record(
    fide_id: int,
    category: Category,
    *,
    name: Optional[str],
    title: Optional[str],
    federation: Optional[str],
    sex: Optional[str],
    birth_year: Optional[str],
    flag: Optional[str],
    rating: Optional[str],
    games: Optional[str],
) -> RatingRecord:
    return RatingRecord(
        fide_id=fide_id,
        category=category,
        name=_clean(name),
        title=normalize_title(title),
        federation=normalize_federation(federation),
        sex=normalize_sex(sex),
        birth_year=_safe_int(birth_year, allow_zero=False),
        flag=_clean(flag),
        # 0 is FIDE's marker for "no rating in this list"
        rating=_safe_int(rating, allow_zero=False),
        games=_safe_int(games),
    )


# =============================================================================
# Fixed-width TXT
# =============================================================================

def parse_fixed_width_line(line: str, category: Category) -> ParsedLine:
    """
    Parse a single fixed-width line.

    Never raises. Returns a ParsedLine holding either the record or the
    reason the line was skipped ('blank', 'header', 'invalid_id').
    """
    line = line.rstrip("\r\n")
    if not line.strip():
        return ParsedLine(skip_reason="blank")

    start, end = FIXED_WIDTH_COLUMNS["id"]
    id_field = line[start:end].strip()
    if id_field.lower().startswith("id"):
        return ParsedLine(skip_reason="header")

    fide_id = _safe_int(id_field, allow_zero=False)
    if fide_id is None or fide_id < 0:
        return ParsedLine(skip_reason="invalid_id")

    fields = {name: line[a:b] for name, (a, b) in FIXED_WIDTH_COLUMNS.items() if name != "id"}
    record = _build_record(
        fide_id,
        category,
        name=_fix_encoding(fields["name"]),
        title=fields["title"],
        federation=fields["federation"],
        sex=fields["sex"],
        birth_year=fields["birth_year"],
        flag=fields["flag"],
        rating=fields["rating"],
        games=fields["games"],
    )
    return ParsedLine(record=record)


def parse_fixed_width(data: bytes, category: Category) -> ParseResult:
    """
    Parse a whole fixed-width rating list.

    The bytes are decoded as latin-1 so that string offsets equal byte
    offsets; text fields are re-decoded as UTF-8 afterwards when possible.
    """
    category = validate_category(category)
    result = ParseResult(category=category, file_format="txt")
    text = data.decode("latin-1")

    for line_number, line in enumerate(text.splitlines(), start=1):
        parsed = parse_fixed_width_line(line, category)
        if parsed.ok:
            result.records.append(parsed.record)
        elif parsed.skip_reason == "invalid_id":
            result.malformed += 1
            logger.debug("Skipping malformed line %d: %r", line_number, line[:40])
        else:
            result.blank_or_header += 1

    return result


# =============================================================================
# XML
# =============================================================================

def _findtext(element, *tags: str) -> Optional[str]:
    for tag in tags:
        value = element.findtext(tag)
        if value is not None and value.strip():
            return value
    return None


def parse_xml(data: bytes, category: Category) -> ParseResult:
    """
    Parse a ``playerslist`` XML rating list.

    Elements are streamed and cleared as they are read, so 40+ MB lists do
    not build a full tree. A player element without a parseable FIDE id
    is counted as malformed and dropped.

    A truncated or otherwise damaged document keeps every player element
    that closed before the damage; the unfinished element is counted as
    malformed and the result is flagged as damaged.
    """
    category = validate_category(category)
    result = ParseResult(category=category, file_format="xml")
    if not data.strip():
        return result

    context = etree.iterparse(
        BytesIO(data),
        events=("end",),
        tag="player",
        huge_tree=True,
    )
    try:
        for _event, element in context:
            fide_id = _safe_int(_findtext(element, "fideid", "fide_id"), allow_zero=False)
            if fide_id is None or fide_id < 0:
                result.malformed += 1
            else:
                result.records.append(
                    _build_record(
                        fide_id,
                        category,
                        name=_findtext(element, "name"),
                        title=_findtext(element, "title"),
                        federation=_findtext(element, "country"),
                        sex=_findtext(element, "sex"),
                        birth_year=_findtext(element, "birthday"),
                        flag=_findtext(element, "flag"),
                        rating=_findtext(element, "rating"),
                        games=_findtext(element, "games"),
                    )
                )
            element.clear()
            while element.getprevious() is not None:
                del element.getparent()[0]
    except etree.XMLSyntaxError as exc:
        result.malformed += 1
        result.damaged = str(exc)
        logger.warning(
            "XML rating list is damaged after %d players, keeping what was parsed: %s",
            len(result.records), exc,
        )

    return result


# =============================================================================
# Dispatch
# =============================================================================

def detect_format(name: Union[str, Path], data: bytes) -> FileFormat:
    """Pick the parser from the file suffix, falling back to sniffing the content."""
    suffix = Path(name).suffix.lower()
    if suffix == ".xml":
        return "xml"
    if suffix == ".txt":
        return "txt"
    return "xml" if data.lstrip()[:1] == b"<" else "txt"


def parse_rating_data(data: bytes, file_format: FileFormat, category: Category) -> ParseResult:
    if file_format == "xml":
        return parse_xml(data, category)
    if file_format == "txt":
        return parse_fixed_width(data, category)
    raise RatingFileError(f"Unknown rating file format: {file_format!r}", category=category)


def parse_rating_file(path: Union[str, Path], category: Category) -> ParseResult:
    """
    Read and parse a rating-list data file (.xml or .txt).

    Raises:
        RatingFileError: if the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise RatingFileError(f"Rating file not found: {path}", category=category)

    data = path.read_bytes()
    result = parse_rating_data(data, detect_format(path, data), category)
    logger.info("%s: %s", path.name, result.summary())
    return result
