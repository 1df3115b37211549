"""
Unit tests for entry validation and sanitization
"""

import pytest
from datetime import date

from ingestion.transformers.validator import (
    EntryValidator,
    WARN_CHECK_DIGIT,
    WARN_CONTRACT_NO_START,
    WARN_DUPLICATE_PARTICIPANTS,
    WARN_MIN_EQUALS_MAX,
    WARN_NO_PARTICIPANTS,
    WARN_UNKNOWN_UNIT,
    WARN_UNVERIFIED,
)
from schemas.apl import (
    APLEntryCreate,
    AdditionalRestrictions,
    BrandRestriction,
    SizeRestriction,
)


def make_entry(**overrides) -> APLEntryCreate:
    values = {
        "state": "MI",
        "upc": "041220576081",
        "benefit_category": "Cereal",
        "participant_types": ["child"],
        "effective_date": date(2025, 1, 1),
        "data_source": "fis",
    }
    values.update(overrides)
    return APLEntryCreate(**values)


@pytest.fixture
def validator():
    return EntryValidator()


class TestStructuralErrors:

    def test_valid_entry(self, validator):
        result = validator.validate(make_entry())

        assert result.valid is True
        assert result.errors == []
        assert result.warnings == [WARN_UNVERIFIED]

    def test_invalid_state(self, validator):
        result = validator.validate(make_entry(state="ZZ"))

        assert result.valid is False
        assert "invalid state code" in result.errors[0]

    def test_territory_codes_are_valid(self, validator):
        assert validator.validate(make_entry(state="PR")).valid is True

    def test_missing_category(self, validator):
        assert validator.validate(make_entry(benefit_category="  ")).valid is False

    def test_category_too_long(self, validator):
        assert validator.validate(make_entry(benefit_category="x" * 101)).valid is False

    def test_unknown_data_source(self, validator):
        result = validator.validate(make_entry(data_source="acme"))
        assert any("data source" in e for e in result.errors)

    def test_invalid_upc(self, validator):
        result = validator.validate(make_entry(upc="12345"))
        assert any("UPC" in e for e in result.errors)

    @pytest.mark.parametrize("expiration", [date(2025, 1, 1), date(2024, 12, 31)])
    def test_expiration_not_after_effective(self, validator, expiration):
        result = validator.validate(make_entry(expiration_date=expiration))

        assert result.valid is False
        assert "expiration date" in result.errors[0]

    def test_invalid_participant(self, validator):
        result = validator.validate(make_entry(participant_types=["child", "teen"]))
        assert "teen" in result.errors[0]

    def test_size_min_greater_than_max(self, validator):
        size = SizeRestriction(min_size=36, max_size=12, unit="oz")
        assert validator.validate(make_entry(size_restriction=size)).valid is False

    def test_size_two_forms(self, validator):
        size = SizeRestriction(exact_size=12, allowed_sizes=[12, 18], unit="oz")
        result = validator.validate(make_entry(size_restriction=size))
        assert any("exactly one form" in e for e in result.errors)

    def test_size_without_unit(self, validator):
        size = SizeRestriction(exact_size=12)
        assert validator.validate(make_entry(size_restriction=size)).valid is False

    def test_non_positive_sizes(self, validator):
        assert validator.validate(make_entry(size_restriction=SizeRestriction(exact_size=0, unit="oz"))).valid is False
        assert validator.validate(make_entry(size_restriction=SizeRestriction(min_size=-1, max_size=5, unit="oz"))).valid is False
        assert validator.validate(make_entry(size_restriction=SizeRestriction(allowed_sizes=[12, -1], unit="oz"))).valid is False

    def test_brand_lists_are_exclusive(self, validator):
        brand = BrandRestriction(allowed_brands=["A"], excluded_brands=["B"])
        assert validator.validate(make_entry(brand_restriction=brand)).valid is False

    def test_contract_with_lists(self, validator):
        brand = BrandRestriction(contract_brand="Similac", allowed_brands=["Enfamil"])
        assert validator.validate(make_entry(brand_restriction=brand)).valid is False

    def test_contract_end_before_start(self, validator):
        brand = BrandRestriction(
            contract_brand="Similac",
            contract_start_date=date(2026, 2, 1),
            contract_end_date=date(2026, 1, 1),
        )
        assert validator.validate(make_entry(brand_restriction=brand)).valid is False

    def test_negative_nutrient_limits(self, validator):
        extra = AdditionalRestrictions(max_sugar_grams=-1)
        assert validator.validate(make_entry(additional_restrictions=extra)).valid is False


class TestWarnings:

    def test_no_participants(self, validator):
        result = validator.validate(make_entry(participant_types=[]))

        assert result.valid is True
        assert WARN_NO_PARTICIPANTS in result.warnings

    def test_duplicate_participants(self, validator):
        result = validator.validate(make_entry(participant_types=["child", "child"]))
        assert WARN_DUPLICATE_PARTICIPANTS in result.warnings

    def test_min_equals_max(self, validator):
        size = SizeRestriction(min_size=12, max_size=12, unit="oz")
        result = validator.validate(make_entry(size_restriction=size))

        assert result.valid is True
        assert WARN_MIN_EQUALS_MAX in result.warnings

    def test_unknown_unit(self, validator):
        size = SizeRestriction(exact_size=12, unit="bushel")
        result = validator.validate(make_entry(size_restriction=size))

        assert result.valid is True
        assert WARN_UNKNOWN_UNIT in result.warnings

    def test_contract_without_start(self, validator):
        brand = BrandRestriction(contract_brand="Similac")
        result = validator.validate(make_entry(brand_restriction=brand))

        assert result.valid is True
        assert WARN_CONTRACT_NO_START in result.warnings

    def test_check_digit_is_only_a_warning(self, validator):
        result = validator.validate(make_entry(upc="041220576082"))

        assert result.valid is True
        assert WARN_CHECK_DIGIT in result.warnings

    def test_verified_entry_has_no_unverified_warning(self, validator):
        assert WARN_UNVERIFIED not in validator.validate(make_entry(verified=True)).warnings


class TestSanitize:

    def test_sanitize(self, validator):
        entry = make_entry(
            state=" mi ",
            upc="41220576081",
            benefit_category=" Cereal ",
            product_description="  ",
            participant_types=["Child", "child", " infant"],
            size_restriction=SizeRestriction(allowed_sizes=[18, 12, 18], unit="oz"),
            brand_restriction=BrandRestriction(allowed_brands=[" Quaker", "Quaker"]),
            additional_restrictions=AdditionalRestrictions(),
        )

        clean = validator.sanitize(entry)

        assert clean.state == "MI"
        assert clean.upc == "041220576081"
        assert clean.benefit_category == "Cereal"
        assert clean.product_description is None
        assert clean.participant_types == ["child", "infant"]
        assert clean.size_restriction.allowed_sizes == [12.0, 18.0]
        assert clean.brand_restriction.allowed_brands == ["Quaker"]
        assert clean.additional_restrictions is None

    def test_sanitize_drops_empty_size(self, validator):
        clean = validator.sanitize(make_entry(size_restriction=SizeRestriction(unit="oz")))
        assert clean.size_restriction is None

    def test_sanitize_does_not_mutate_input(self, validator):
        entry = make_entry(state="mi")
        validator.sanitize(entry)
        assert entry.state == "mi"
