"""Unit tests for the pricing tables.

Tests cover:
- Coach request quotes
- Course quotes (margin, rounding, apportioned line items)
- Session and regeneration prices
- Case-insensitive selection parsing
- Course titles
"""

import pytest

from app.core.exceptions import ValidationError
from app.schemas.course import CourseOptions
from app.services.pricing import (
    Equipment,
    Level,
    PdfMode,
    RegenerationScope,
    TrainingType,
    calc_coach_request_tokens,
    calc_full_course_tokens,
    generate_available_slots,
    generate_course_title,
    get_regeneration_cost,
    get_session_cost,
    parse_choice,
)


# ============================================================================
# Coach requests
# ============================================================================


class TestCoachRequestQuote:
    def test_cheapest_selection_is_base_price(self):
        quote = calc_coach_request_tokens("Beginner", "Home", "None", 3)

        assert quote.total == 10_000
        assert quote.level_add == 0
        assert quote.days_add == 0

    def test_line_items_add_up(self):
        quote = calc_coach_request_tokens("Intermediate", "Mixed", "Full gym", 6)

        assert quote.base == 10_000
        assert quote.level_add == 5_000
        assert quote.training_type_add == 4_000
        assert quote.equipment_add == 6_000
        assert quote.days_add == 12_000
        assert quote.total == 37_000

    def test_most_expensive_selection(self):
        quote = calc_coach_request_tokens(Level.ADVANCED, TrainingType.MIXED, Equipment.FULL_GYM, 6)

        assert quote.total == 44_000

    def test_each_day_beyond_three_adds_4000(self):
        totals = [calc_coach_request_tokens("Beginner", "Gym", "None", days).total for days in range(2, 7)]

        assert totals == [10_000, 10_000, 14_000, 18_000, 22_000]

    @pytest.mark.parametrize("days", [0, 1, 7])
    def test_days_out_of_range_rejected(self, days):
        with pytest.raises(ValidationError):
            calc_coach_request_tokens("Beginner", "Home", "None", days)

    def test_unknown_level_rejected(self):
        with pytest.raises(ValidationError) as exc:
            calc_coach_request_tokens("Expert", "Home", "None", 3)

        assert "Beginner, Intermediate, Advanced" in exc.value.message


class TestChoiceParsing:
    @pytest.mark.parametrize("raw", ["Full gym", "full_gym", "FULL-GYM", "FullGym", "  full   gym "])
    def test_equipment_spellings(self, raw):
        assert Equipment(raw) == Equipment.FULL_GYM

    def test_level_is_case_insensitive(self):
        assert parse_choice(Level, "ADVANCED") == Level.ADVANCED

    def test_legacy_none_pdf_means_text(self):
        assert PdfMode("none") == PdfMode.TEXT

    def test_unknown_choice_raises_validation_error(self):
        with pytest.raises(ValidationError):
            parse_choice(TrainingType, "outdoor")


# ============================================================================
# Courses
# ============================================================================


class TestCourseQuote:
    def test_default_text_course(self):
        quote = calc_full_course_tokens()

        # (400 + 4*120 + 4*4*8 + 60) * 1.3 = 1388.4
        assert quote.total == 1388
        assert quote.base == 1310
        assert quote.pdf == 78
        assert quote.injury_safe == 0

    def test_everything_enabled(self):
        quote = calc_full_course_tokens(
            weeks=8,
            sessions_per_week=5,
            injury_safe=True,
            special_equipment=True,
            nutrition_tips=True,
            pdf="illustrated",
            images=6,
            workout_types_count=2,
            target_muscles_count=3,
        )

        # Raw subtotal 2154, times 1.3 is 2800.2
        assert quote.total == 2800
        assert quote.as_dict() == {
            "base": 2184,
            "injury_safe": 156,
            "special_equipment": 104,
            "nutrition_tips": 130,
            "pdf": 156,
            "workout_types": 39,
            "target_muscles": 31,
            "total": 2800,
        }

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"weeks": 1, "sessions_per_week": 2},
            {"weeks": 12, "sessions_per_week": 6, "nutrition_tips": True},
            {"injury_safe": True, "workout_types_count": 7, "target_muscles_count": 11},
            {"pdf": PdfMode.ILLUSTRATED, "images": 12, "special_equipment": True},
        ],
    )
    def test_line_items_always_sum_to_total(self, kwargs):
        quote = calc_full_course_tokens(**kwargs)
        lines = quote.as_dict()
        total = lines.pop("total")

        assert sum(lines.values()) == total

    def test_images_only_count_for_illustrated_pdf(self):
        text = calc_full_course_tokens(pdf="text", images=10)
        plain = calc_full_course_tokens(pdf="text")

        assert text.total == plain.total

    def test_invalid_weeks_rejected(self):
        with pytest.raises(ValidationError):
            calc_full_course_tokens(weeks=0)

    def test_options_quote_counts_selections(self):
        options = CourseOptions(
            workout_types=["hiit (high-intensity intervals)", "Circuit Training"],
            target_muscles=["chest", "back", "chest"],
        )

        quote = options.quote()

        assert options.workout_types == ["HIIT (High-Intensity Intervals)", "Circuit Training"]
        assert options.target_muscles == ["chest", "back"]
        assert quote.workout_types > 0
        assert quote.target_muscles > 0


class TestCourseTitle:
    def test_minimal_title(self):
        assert generate_course_title(CourseOptions()) == "4-Week Fitness Program (4 sessions/week) (Men)"

    def test_full_title(self):
        options = CourseOptions(
            weeks=6,
            sessions_per_week=3,
            workout_types=["HIIT (High-Intensity Intervals)"],
            target_muscles=["chest", "back", "legs"],
            injury_safe=True,
            nutrition_tips=True,
            gender="female",
        )

        assert generate_course_title(options) == (
            "6-Week Fitness Program (3 sessions/week) - HIIT (High-Intensity Intervals) "
            "for chest, back and legs - Injury-Safe, Nutrition Tips (Women)"
        )

    def test_many_muscles_are_summarised(self):
        options = CourseOptions(target_muscles=["chest", "back", "legs", "core"])

        assert "for chest, back and 2 more" in generate_course_title(options)


# ============================================================================
# Sessions and regeneration
# ============================================================================


class TestSessionPricing:
    @pytest.mark.parametrize("hours,cost", [(1, 10_000), (2, 20_000), (3, 30_000)])
    def test_hourly_rate(self, hours, cost):
        assert get_session_cost(hours) == cost

    @pytest.mark.parametrize("hours", [0, 4, -1, True])
    def test_unsupported_duration(self, hours):
        with pytest.raises(ValidationError):
            get_session_cost(hours)

    def test_slots_end_by_closing_time(self):
        assert generate_available_slots(1) == list(range(8, 20))
        assert generate_available_slots(3) == list(range(8, 18))


class TestRegenerationPricing:
    def test_prices(self):
        assert get_regeneration_cost(RegenerationScope.DAY) == 30
        assert get_regeneration_cost("WEEK") == 120

    def test_unknown_scope(self):
        with pytest.raises(ValidationError):
            get_regeneration_cost("month")
