"""
Normalized rating-list records.

Every parser produces RatingRecord objects regardless of the source file
format, so the upsert engine never sees FIDE's layout quirks.
"""

from dataclasses import dataclass, field
from typing import Literal, Optional

Category = Literal["standard", "rapid", "blitz"]

# Import order for multi-category runs
CATEGORIES: tuple[Category, ...] = ("standard", "rapid", "blitz")

FileFormat = Literal["txt", "xml"]


def validate_category(category: str) -> Category:
    """Return the category unchanged, or raise ValueError if unknown."""
    if category not in CATEGORIES:
        raise ValueError(f"Unknown rating category: {category!r} (expected one of {CATEGORIES})")
    return category  # type: ignore[return-value]


@dataclass(frozen=True)
class RatingRecord:
    """
    One player's entry in one category's rating list.

    Profile fields are optional because historical files omit some of
    them; rating and games are None when the player is listed without a
    rating in this category.
    """

    fide_id: int
    category: Category
    name: Optional[str] = None
    title: Optional[str] = None
    federation: Optional[str] = None
    sex: Optional[str] = None
    birth_year: Optional[int] = None
    flag: Optional[str] = None
    rating: Optional[int] = None
    games: Optional[int] = None

    def profile(self) -> dict:
        """Player profile columns for the players table."""
        return {
            "fide_id": self.fide_id,
            "name": self.name,
            "federation": self.federation,
            "title": self.title,
            "sex": self.sex,
            "birth_year": self.birth_year,
            "flag": self.flag,
        }


@dataclass
class ParsedLine:
    """
    Outcome of parsing a single fixed-width line.

    Exactly one of record / skip_reason is set. Skip reasons:
    'blank', 'header' or 'invalid_id'.
    """

    record: Optional[RatingRecord] = None
    skip_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass
class ParseResult:
    """Records decoded from one rating file plus the entries that were dropped."""

    category: Category
    file_format: FileFormat
    records: list[RatingRecord] = field(default_factory=list)
    malformed: int = 0
    blank_or_header: int = 0
    # Parser error when the file ends or breaks before its closing tag
    damaged: Optional[str] = None

    def __len__(self) -> int:
        return len(self.records)

    def summary(self) -> str:
        return (
            f"{len(self.records)} {self.category} records parsed from {self.file_format}, "
            f"{self.malformed} malformed dropped"
        )
