"""Tests for header canonicalization: pairs, composite keys, GI ordering."""

from datetime import date, datetime

from openpyxl import Workbook

from assetmap.header_model import (
    GENERAL_INFO,
    HeaderPair,
    cell_text,
    composite_key,
    detect_two_row,
    general_info_order,
    normalize_pair,
    read_header,
    split_composite,
    union_pairs,
)


class TestCompositeKeys:
    def test_composite_key_with_and_without_section(self):
        assert composite_key("Details", "Depth") == "Details – Depth"
        assert composite_key("", "Depth") == "Depth"

    def test_split_composite(self):
        assert split_composite("Details – Depth") == HeaderPair("Details", "Depth")
        assert split_composite("Depth") == HeaderPair("", "Depth")

    def test_pair_properties(self):
        pair = HeaderPair("Details", "Depth")
        assert pair.composite == "Details – Depth"
        assert pair.key() == "details – depth"
        assert HeaderPair("", "").is_blank


class TestNormalizePair:
    def test_type_aliases_become_category(self):
        for field in ("Asset Type", "type", "CATEGORY"):
            assert normalize_pair("Anything", field) == HeaderPair(GENERAL_INFO, "Category")

    def test_structure_type_is_left_alone(self):
        assert normalize_pair("Details", "Structure Type") == HeaderPair("Details", "Structure Type")

    def test_whitespace_is_trimmed(self):
        assert normalize_pair("  Details ", " Depth ") == HeaderPair("Details", "Depth")


class TestCellText:
    def test_renders_common_values(self):
        assert cell_text(None) == ""
        assert cell_text(3.0) == "3"
        assert cell_text(2.5) == "2.5"
        assert cell_text(True) == "TRUE"
        assert cell_text(False) == "FALSE"
        assert cell_text("  x ") == "x"

    def test_renders_dates(self):
        assert cell_text(datetime(2024, 1, 2)) == "2024-01-02"
        assert cell_text(date(2024, 1, 2)) == "2024-01-02"


class TestReadHeader:
    def test_one_row_header(self):
        ws = Workbook().active
        ws.append(["Station ID", "Name"])
        assert not detect_two_row(ws)
        assert read_header(ws) == [HeaderPair("", "Station ID"), HeaderPair("", "Name")]

    def test_two_row_header_keeps_blank_columns(self):
        ws = Workbook().active
        ws.append(["General Information", None, "Details"])
        ws.append(["Station ID", None, "Depth"])
        assert detect_two_row(ws)
        pairs = read_header(ws)
        assert pairs == [
            HeaderPair(GENERAL_INFO, "Station ID"),
            HeaderPair("", ""),
            HeaderPair("Details", "Depth"),
        ]


class TestOrdering:
    def test_union_pairs_is_case_insensitive(self):
        existing = [HeaderPair("S", "a")]
        incoming = [HeaderPair("s", "A"), HeaderPair("S", "b")]
        assert union_pairs(existing, incoming) == [HeaderPair("S", "a"), HeaderPair("S", "b")]

    def test_lead_columns_move_to_first_general_info_position(self):
        pairs = [
            HeaderPair("Extra", "A"),
            HeaderPair(GENERAL_INFO, "Latitude"),
            HeaderPair(GENERAL_INFO, "Site Name"),
            HeaderPair("Other", "B"),
            HeaderPair(GENERAL_INFO, "Station ID"),
            HeaderPair(GENERAL_INFO, "Category"),
        ]
        assert general_info_order(pairs) == [0, 4, 5, 2, 1, 3]

    def test_other_general_info_columns_stay_put(self):
        pairs = [
            HeaderPair(GENERAL_INFO, "Station ID"),
            HeaderPair(GENERAL_INFO, "Category"),
            HeaderPair(GENERAL_INFO, "Site Name"),
            HeaderPair("Details", "Depth"),
            HeaderPair(GENERAL_INFO, "Province"),
        ]
        assert general_info_order(pairs) == [0, 1, 2, 3, 4]

    def test_only_lead_columns_move(self):
        pairs = [
            HeaderPair("Extra", "A"),
            HeaderPair(GENERAL_INFO, "Province"),
            HeaderPair("Other", "B"),
            HeaderPair(GENERAL_INFO, "Station ID"),
        ]
        assert general_info_order(pairs) == [0, 3, 1, 2]

    def test_no_general_info_keeps_order(self):
        pairs = [HeaderPair("A", "x"), HeaderPair("B", "y")]
        assert general_info_order(pairs) == [0, 1]
