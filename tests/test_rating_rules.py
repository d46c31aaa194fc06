"""Unit tests for rating validation, text sanitising and the running mean."""

import pytest

from transfer.domain.enums import RatingType
from transfer.domain.errors import ValidationError
from transfer.domain.rating import (
    MAX_COMMENT_LENGTH,
    running_average,
    sanitize_text,
    validate_rating,
)

C2D = RatingType.CUSTOMER_TO_DRIVER
D2C = RatingType.DRIVER_TO_CUSTOMER


class TestValidateRating:
    def test_five_stars_needs_no_reason(self):
        assert validate_rating(C2D, 5) == []

    def test_low_rating_without_reasons_rejected(self):
        with pytest.raises(ValidationError, match="Reasons are required"):
            validate_rating(C2D, 2, [])

    def test_three_stars_is_low(self):
        with pytest.raises(ValidationError):
            validate_rating(C2D, 3)

    def test_low_rating_with_reason_ok(self):
        assert validate_rating(C2D, 2, ["late"]) == ["late"]

    def test_unknown_reason_rejected(self):
        with pytest.raises(ValidationError, match="Invalid reason codes"):
            validate_rating(C2D, 4, ["smelly"])

    @pytest.mark.parametrize("stars", [0, 6, -1])
    def test_stars_out_of_range(self, stars):
        with pytest.raises(ValidationError, match="Stars must be"):
            validate_rating(C2D, stars, ["late"])

    def test_bool_is_not_a_star_count(self):
        with pytest.raises(ValidationError):
            validate_rating(C2D, True)

    def test_tip_only_from_customers(self):
        with pytest.raises(ValidationError, match="Tips can only"):
            validate_rating(D2C, 5, tip=50)

    def test_zero_tip_from_driver_ignored(self):
        assert validate_rating(D2C, 5, tip=0) == []

    @pytest.mark.parametrize("tip", [-1, 10_001])
    def test_tip_bounds(self, tip):
        with pytest.raises(ValidationError, match="Tip must be"):
            validate_rating(C2D, 5, tip=tip)

    def test_max_tip_accepted(self):
        validate_rating(C2D, 5, tip=10_000)


class TestSanitizeText:
    def test_strips_tags(self):
        assert sanitize_text("<script>alert(1)</script>great driver") == "alert(1)great driver"

    def test_strips_control_characters(self):
        assert sanitize_text("nice\x00\x07 ride") == "nice ride"

    def test_caps_length(self):
        assert len(sanitize_text("a" * 600)) == MAX_COMMENT_LENGTH

    def test_none_becomes_empty(self):
        assert sanitize_text(None) == ""


class TestRunningAverage:
    def test_first_rating_replaces_default(self):
        assert running_average(5.0, 0, 3) == 3.0

    def test_mean_of_two(self):
        assert running_average(4.0, 1, 5) == 4.5

    def test_rounded(self):
        assert running_average(4.0, 2, 5) == pytest.approx(4.3333, abs=1e-4)
