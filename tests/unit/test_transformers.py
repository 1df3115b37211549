"""
Unit tests for field maps and the row transformer
"""

import pytest
from datetime import date

from core.exceptions import RowTransformError
from ingestion.sources import florida, michigan, north_carolina
from ingestion.transformers.field_map import FieldMap, first_present, values_of
from ingestion.transformers.row_transformer import (
    ALL_PARTICIPANTS,
    RowTransformer,
    parse_date_value,
    parse_participants,
    parse_size_text,
    split_brands,
)
from schemas.apl import PolicyFlag
from schemas.ingestion import IngestionStats


class TestFieldMap:
    """Column lookup"""

    def test_first_candidate_wins(self):
        row = {"UPC": "041220576081", "UPC Code": "070038000563"}
        assert first_present(row, ["UPC", "UPC Code"]) == "041220576081"

    def test_blank_candidate_falls_through(self):
        row = {"UPC": "  ", "UPC Code": "070038000563"}
        assert first_present(row, ["UPC", "UPC Code"]) == "070038000563"

    def test_case_and_whitespace_insensitive(self):
        row = {" upc  code ": "041220576081"}
        assert first_present(row, ["UPC Code"]) == "041220576081"

    def test_missing_column(self):
        assert first_present({"Other": "x"}, ["UPC"]) is None

    def test_values_of_collects_every_column(self):
        row = {"Description": "Red 40 candy", "Notes": "contains dyes", "Brand": "X"}
        assert values_of(row, ["Description", "Notes"]) == ["Red 40 candy", "contains dyes"]

    def test_unknown_logical_field(self):
        fm = FieldMap(upc=["UPC"])
        with pytest.raises(KeyError):
            fm.candidates("price")


class TestSizeParsing:

    def test_range(self):
        size = parse_size_text("8.9-36 oz")
        assert size.min_size == 8.9
        assert size.max_size == 36.0
        assert size.unit == "oz"

    def test_range_with_words(self):
        size = parse_size_text("16 to 24 ounces")
        assert (size.min_size, size.max_size, size.unit) == (16.0, 24.0, "oz")

    def test_enumerated_sizes(self):
        size = parse_size_text("18 oz or 12 oz")
        assert size.allowed_sizes == [12.0, 18.0]
        assert size.unit == "oz"

    def test_enumerated_with_commas(self):
        size = parse_size_text("12, 18 oz")
        assert size.allowed_sizes == [12.0, 18.0]

    def test_exact(self):
        size = parse_size_text("1 gal")
        assert size.exact_size == 1.0
        assert size.unit == "gal"

    def test_fluid_ounces(self):
        size = parse_size_text("64 fl oz")
        assert size.exact_size == 64.0
        assert size.unit == "fl_oz"

    @pytest.mark.parametrize("text,expected", [
        ("1/2 GAL", 0.5),
        ("1/2 gallon", 0.5),
        ("1 1/2 lb", 1.5),
    ])
    def test_fractional_sizes(self, text, expected):
        size = parse_size_text(text)
        assert size.exact_size == expected
        assert size.allowed_sizes is None

    def test_fractional_enumeration(self):
        size = parse_size_text("1/2 gal or 1 gal")
        assert size.allowed_sizes == [0.5, 1.0]
        assert size.unit == "gal"

    @pytest.mark.parametrize("text", ["", None, "Family size", "1/0 gal"])
    def test_unparseable_means_no_restriction(self, text):
        assert parse_size_text(text) is None


class TestParticipants:

    def test_full_names(self):
        found = parse_participants("Pregnant, Postpartum", michigan.FIELD_MAP.participant_aliases)
        assert found == ["pregnant", "postpartum"]

    def test_all(self):
        assert parse_participants("All", michigan.FIELD_MAP.participant_aliases) == ALL_PARTICIPANTS

    def test_conduent_abbreviations(self):
        found = parse_participants("PREG/PP/BF", north_carolina.PARTICIPANT_ALIASES)
        assert found == ["pregnant", "postpartum", "breastfeeding"]

    def test_abbreviation_inside_word_is_ignored(self):
        assert parse_participants("Supplemental", north_carolina.PARTICIPANT_ALIASES) == []

    def test_plural_matches(self):
        assert parse_participants("Children", michigan.FIELD_MAP.participant_aliases) == ["child"]

    def test_empty(self):
        assert parse_participants(None, michigan.FIELD_MAP.participant_aliases) == []


class TestDates:

    def test_iso(self):
        assert parse_date_value("2025-01-01") == date(2025, 1, 1)

    def test_us_format(self):
        assert parse_date_value("01/02/2025") == date(2025, 1, 2)

    def test_day_first(self):
        assert parse_date_value("01/02/2025", dayfirst=True) == date(2025, 2, 1)

    def test_excel_serial(self):
        assert parse_date_value("45658") == date(2025, 1, 1)

    def test_unparseable(self):
        with pytest.raises(RowTransformError) as exc_info:
            parse_date_value("next tuesday-ish", field_name="effective_date", row_number=7)

        assert exc_info.value.context["row_number"] == 7
        assert exc_info.value.context["field_name"] == "effective_date"


def test_split_brands():
    assert split_brands("Quaker; Kellogg's, Quaker") == ["Quaker", "Kellogg's"]
    assert split_brands(None) == []


class TestRowTransformer:
    """Row -> APLEntryCreate"""

    @pytest.fixture
    def stats(self):
        return IngestionStats(state="MI", data_source="fis")

    @pytest.fixture
    def transformer(self):
        return RowTransformer(
            state="MI",
            data_source="fis",
            field_map=michigan.FIELD_MAP,
            source_hash="abc123",
            today=date(2025, 6, 1),
        )

    def test_full_row(self, transformer, stats, michigan_rows):
        entry = transformer.transform(michigan_rows[0], 1, stats)

        assert entry.state == "MI"
        assert entry.upc == "041220576081"
        assert entry.benefit_category == "Cereal - Hot Cereal"
        assert entry.benefit_subcategory == "Hot Cereal"
        assert entry.participant_types == ["pregnant", "postpartum", "breastfeeding", "child"]
        assert entry.size_restriction.min_size == 12.0
        assert entry.size_restriction.max_size == 36.0
        assert entry.brand_restriction.allowed_brands == ["Quaker"]
        assert entry.effective_date == date(2025, 1, 1)
        assert entry.expiration_date is None
        assert entry.source_hash == "abc123"
        assert entry.row_number == 1
        assert entry.additional_restrictions.has_flag(PolicyFlag.WHOLE_GRAIN_REQUIRED)

    def test_notes_keywords(self, transformer, stats, michigan_rows):
        entry = transformer.transform(michigan_rows[1], 2, stats)

        assert entry.participant_types == ALL_PARTICIPANTS
        assert entry.size_restriction.exact_size == 1.0
        assert entry.additional_restrictions.has_flag(PolicyFlag.LOW_FAT_REQUIRED)
        assert entry.brand_restriction is None

    def test_missing_upc_is_skipped(self, transformer, stats, michigan_rows):
        assert transformer.transform(michigan_rows[3], 4, stats) is None
        assert stats.skipped_rows == 1
        assert stats.invalid_entries == 0

    def test_invalid_upc_is_rejected(self, transformer, stats):
        assert transformer.transform({"UPC": "1234567", "Category": "Milk"}, 5, stats) is None
        assert stats.invalid_entries == 1
        assert "Row 5" in stats.errors[0]

    def test_defaults(self, transformer, stats):
        entry = transformer.transform({"UPC": "041220576081"}, 1, stats)

        assert entry.benefit_category == "Unknown"
        assert entry.effective_date == date(2025, 6, 1)
        assert entry.size_restriction is None
        assert entry.additional_restrictions is None
        assert entry.participant_types == []

    def test_min_max_columns(self, transformer, stats):
        row = {"UPC": "041220576081", "Category": "Juice", "Min Size": "8", "Max Size": "36 oz"}
        entry = transformer.transform(row, 1, stats)

        assert entry.size_restriction.min_size == 8.0
        assert entry.size_restriction.max_size == 36.0
        assert entry.size_restriction.unit == "oz"

    def test_sugar_note(self, transformer, stats):
        row = {"UPC": "041220576081", "Category": "Yogurt", "Notes": "Max 40g sugar per 8 oz"}
        entry = transformer.transform(row, 1, stats)

        assert entry.additional_restrictions.flags == [PolicyFlag.SUGAR_LIMIT]

    def test_bad_date_raises(self, transformer, stats):
        with pytest.raises(RowTransformError):
            transformer.transform({"UPC": "041220576081", "Effective Date": "soon"}, 3, stats)

    def test_contract_brand_column(self, stats):
        transformer = RowTransformer("FL", "fis", florida.FIELD_MAP, today=date(2025, 6, 1))
        row = {"UPC": "070074640709", "Category": "Infant Formula", "Contract Brand": "Similac"}
        entry = transformer.transform(row, 1, stats)

        assert entry.brand_restriction.contract_brand == "Similac"
        assert entry.brand_restriction.allowed_brands is None

    def test_conduent_columns(self, stats):
        transformer = RowTransformer("NC", "conduent", north_carolina.FIELD_MAP, today=date(2025, 6, 1))
        row = {
            "UPC/PLU": "41220576081",
            "Item Description": "Oat cereal",
            "Food Category": "Breakfast Cereal",
            "Container Size": "12",
            "Unit of Measure": "OZ",
            "Eligible Participants": "PREG, BF",
            "Begin Date": "10/01/2025",
        }
        entry = transformer.transform(row, 1, stats)

        assert entry.upc == "041220576081"
        assert entry.product_description == "Oat cereal"
        assert entry.participant_types == ["pregnant", "breastfeeding"]
        assert entry.effective_date == date(2025, 10, 1)
