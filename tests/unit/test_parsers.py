"""
Tests for the FIDE rating-list parsers.

Covers the fixed-width TXT layout (pre-2020) and the playerslist XML
layout (2020+), including the damaged inputs both formats are known to
contain.
"""

import logging

import pytest

from fideratings.exceptions import RatingFileError
from fideratings.fide.parsers import (
    detect_format,
    normalize_federation,
    normalize_sex,
    normalize_title,
    parse_fixed_width,
    parse_fixed_width_line,
    parse_rating_file,
    parse_xml,
)
from tests.helpers import TXT_HEADER, player_xml, playerslist, txt_line


# =============================================================================
# Field normalization
# =============================================================================

class TestNormalization:

    @pytest.mark.parametrize("raw, expected", [
        ("GM", "GM"),
        ("g", "GM"),
        ("wg", "WGM"),
        ("m", "IM"),
        ("fm", "FM"),
        ("  ", None),
        (None, None),
    ])
    def test_title(self, raw, expected):
        assert normalize_title(raw) == expected

    @pytest.mark.parametrize("raw, expected", [("M", "M"), ("f", "F"), ("X", None), ("", None)])
    def test_sex(self, raw, expected):
        assert normalize_sex(raw) == expected

    def test_federation_upper_cased(self):
        assert normalize_federation(" nor ") == "NOR"
        assert normalize_federation("") is None


# =============================================================================
# Fixed-width lines
# =============================================================================

class TestFixedWidthLine:

    def test_parses_full_line(self):
        line = txt_line(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2876, 9, 1990, "")
        parsed = parse_fixed_width_line(line, "standard")

        assert parsed.ok
        record = parsed.record
        assert record.fide_id == 1503014
        assert record.name == "Carlsen, Magnus"
        assert record.federation == "NOR"
        assert record.sex == "M"
        assert record.title == "GM"
        assert record.rating == 2876
        assert record.games == 9
        assert record.birth_year == 1990
        assert record.flag is None
        assert record.category == "standard"

    def test_zero_rating_and_birth_year_mean_unknown(self):
        line = txt_line(4100018, "Player, Unrated", "GER", "F", "", 0, 0, 0, "wi")
        record = parse_fixed_width_line(line, "rapid").record

        assert record.rating is None
        assert record.birth_year is None
        assert record.games == 0
        assert record.flag == "wi"

    def test_blank_line(self):
        assert parse_fixed_width_line("   \r\n", "standard").skip_reason == "blank"

    def test_header_line(self):
        assert parse_fixed_width_line(TXT_HEADER, "standard").skip_reason == "header"

    @pytest.mark.parametrize("bad_id", ["abc", "0", "-5", "12x4"])
    def test_invalid_id(self, bad_id):
        parsed = parse_fixed_width_line(txt_line(bad_id, "Someone"), "standard")
        assert not parsed.ok
        assert parsed.skip_reason == "invalid_id"

    def test_truncated_line_keeps_what_is_there(self):
        parsed = parse_fixed_width_line("2016192        Nakamura, Hikaru", "blitz")
        assert parsed.ok
        assert parsed.record.name == "Nakamura, Hikaru"
        assert parsed.record.rating is None
        assert parsed.record.federation is None

    def test_never_raises_on_garbage(self):
        for line in ["\x00\x01\x02", "ID", "9" * 200, "\t\t\t"]:
            parse_fixed_width_line(line, "standard")


class TestFixedWidthFile:

    def test_counts_dropped_lines(self):
        lines = [
            TXT_HEADER,
            txt_line(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2876, 9, 1990),
            "",
            txt_line("garbage", "Broken line"),
            txt_line(2016192, "Nakamura, Hikaru", "USA", "M", "GM", 2787, 0, 1987),
        ]
        data = ("\n".join(lines) + "\n").encode("latin-1")

        result = parse_fixed_width(data, "standard")

        assert [r.fide_id for r in result.records] == [1503014, 2016192]
        assert result.malformed == 1
        assert result.blank_or_header == 2
        assert result.file_format == "txt"
        assert len(result) == 2

    def test_latin1_names(self):
        data = txt_line(4600002, "Müller, Jörg", "GER", "M", "", 2100, 4, 1970).encode("latin-1")
        result = parse_fixed_width(data, "standard")
        assert result.records[0].name == "Müller, Jörg"
        assert result.records[0].rating == 2100

    def test_crlf_line_endings(self):
        lines = [TXT_HEADER, txt_line(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2876, 9, 1990)]
        data = ("\r\n".join(lines) + "\r\n").encode("latin-1")
        result = parse_fixed_width(data, "standard")
        assert len(result) == 1
        assert result.records[0].flag is None


# =============================================================================
# XML
# =============================================================================

class TestXml:

    def test_parses_players(self):
        data = playerslist(
            player_xml(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2839, 5, 1990),
            player_xml(5202213, "So, Wesley", "USA", "M", "GM", 2753, 0, 1993, "i"),
        )
        result = parse_xml(data, "standard")

        assert result.file_format == "xml"
        assert result.malformed == 0
        carlsen, so = result.records
        assert carlsen.fide_id == 1503014
        assert carlsen.rating == 2839
        assert carlsen.games == 5
        assert carlsen.federation == "NOR"
        assert carlsen.title == "GM"
        assert so.flag == "i"
        assert so.games == 0

    def test_player_without_id_is_malformed(self):
        data = playerslist(
            player_xml("", "No Id"),
            player_xml("n/a", "Bad Id"),
            player_xml(1503014, "Carlsen, Magnus", rating=2839, games=5),
        )
        result = parse_xml(data, "blitz")
        assert [r.fide_id for r in result.records] == [1503014]
        assert result.malformed == 2

    def test_player_without_rating_keeps_profile(self):
        data = playerslist(player_xml(24116068, "Newcomer, Anna", "IND", "F", "", "", "", 2012))
        record = parse_xml(data, "rapid").records[0]
        assert record.rating is None
        assert record.games is None
        assert record.birth_year == 2012
        assert record.name == "Newcomer, Anna"

    def test_fide_id_tag_variant(self):
        data = b"<playerslist><player><fide_id>1503014</fide_id><name>Carlsen, Magnus</name><rating>2839</rating></player></playerslist>"
        result = parse_xml(data, "standard")
        assert result.records[0].fide_id == 1503014

    def test_utf8_names(self):
        data = playerslist(player_xml(4600002, "Müller, Jörg", "GER", "M", rating=2100, games=4))
        assert parse_xml(data, "standard").records[0].name == "Müller, Jörg"

    def test_empty_input(self):
        result = parse_xml(b"", "standard")
        assert len(result) == 0
        assert result.malformed == 0

    def test_truncated_document_keeps_complete_players(self):
        data = playerslist(
            player_xml(1503014, "Carlsen, Magnus", rating=2839, games=5),
            player_xml(2016192, "Nakamura, Hikaru", rating=2807, games=3),
        )
        truncated = data[: data.rindex(b"<fideid>") + len(b"<fideid>201")]

        result = parse_xml(truncated, "standard")

        assert [r.fide_id for r in result.records] == [1503014]
        assert result.malformed == 1
        assert result.damaged is not None

    def test_truncation_is_logged(self, caplog):
        data = playerslist(player_xml(1503014, "Carlsen, Magnus", rating=2839, games=5))

        with caplog.at_level(logging.WARNING, logger="fideratings.fide.parsers"):
            result = parse_xml(data[:-20], "standard")

        assert result.malformed == 1
        assert "damaged" in caplog.text

    def test_complete_document_is_not_damaged(self):
        data = playerslist(player_xml(1503014, "Carlsen, Magnus", rating=2839, games=5))
        assert parse_xml(data, "standard").damaged is None


# =============================================================================
# Dispatch
# =============================================================================

class TestDispatch:

    def test_detect_by_suffix(self):
        assert detect_format("standard_aug25frl_xml.xml", b"") == "xml"
        assert detect_format("standard_jun15frl.txt", b"<") == "txt"

    def test_detect_by_content(self):
        assert detect_format("players.dat", b"  <?xml version='1.0'?>") == "xml"
        assert detect_format("players.dat", b"ID Number") == "txt"

    def test_parse_rating_file(self, write_xml, write_txt):
        xml_path = write_xml("blitz_aug25frl_xml.xml", player_xml(1503014, "Carlsen, Magnus", rating=2887, games=10))
        txt_path = write_txt("standard_jun15frl.txt", txt_line(1503014, "Carlsen, Magnus", "NOR", "M", "GM", 2876, 9, 1990))

        assert parse_rating_file(xml_path, "blitz").records[0].rating == 2887
        assert parse_rating_file(txt_path, "standard").records[0].rating == 2876

    def test_missing_file(self, tmp_path):
        with pytest.raises(RatingFileError):
            parse_rating_file(tmp_path / "nope.xml", "standard")

    def test_unknown_category(self):
        with pytest.raises(ValueError):
            parse_xml(b"<playerslist/>", "bullet")
