"""FIDE rating-list sources: download, archive extraction and parsing."""

from fideratings.fide.fetcher import RatingListFetcher, extract_data_file, rating_list_filename
from fideratings.fide.parsers import (
    parse_fixed_width,
    parse_fixed_width_line,
    parse_rating_file,
    parse_xml,
)
from fideratings.fide.records import CATEGORIES, ParsedLine, ParseResult, RatingRecord

__all__ = [
    "CATEGORIES",
    "ParsedLine",
    "ParseResult",
    "RatingListFetcher",
    "RatingRecord",
    "extract_data_file",
    "parse_fixed_width",
    "parse_fixed_width_line",
    "parse_rating_file",
    "parse_xml",
    "rating_list_filename",
]
