"""Builders for small FIDE rating-list fixtures."""

from pathlib import Path
from typing import Optional


def txt_line(
    fide_id,
    name="",
    fed="",
    sex="",
    title="",
    rating="",
    games="",
    birth="",
    flag="",
) -> str:
    """Build one line of FIDE's fixed-width rating list."""
    return (
        f"{str(fide_id):<15}{name:<61}{fed:<4}{sex:<3}{title:<5}{'':<25}"
        f"{str(rating):<5}{str(games):<5}{'':<4}{str(birth):<5}{flag:<4}"
    )


TXT_HEADER = txt_line("ID Number", "Name", "Fed", "Sex", "Tit", "AUG15", "Gms", "B-day", "Flag")


def player_xml(
    fide_id,
    name: str = "",
    country: str = "",
    sex: str = "",
    title: str = "",
    rating="",
    games="",
    birthday="",
    flag: str = "",
) -> str:
    return (
        "<player>"
        f"<fideid>{fide_id}</fideid><name>{name}</name><country>{country}</country>"
        f"<sex>{sex}</sex><title>{title}</title><w_title></w_title><o_title></o_title>"
        f"<foa_title></foa_title><rating>{rating}</rating><games>{games}</games><k>10</k>"
        f"<birthday>{birthday}</birthday><flag>{flag}</flag>"
        "</player>"
    )


def playerslist(*players: str) -> bytes:
    body = "".join(players)
    return f'<?xml version="1.0" encoding="utf-8"?>\n<playerslist>{body}</playerslist>'.encode("utf-8")


class FakeFetcher:
    """Stands in for RatingListFetcher: serves prepared files by (period, category)."""

    def __init__(
        self,
        files: Optional[dict] = None,
        default: Optional[Path] = None,
        error: Optional[Exception] = None,
    ):
        self.files = files or {}
        self.default = default
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def fetch(self, period: str, category: str, strict: bool = False) -> Optional[Path]:
        self.calls.append((period, category))
        if self.error is not None:
            raise self.error
        return self.files.get((period, category), self.default)
