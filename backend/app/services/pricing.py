"""Token pricing rules.

Pure, table-driven cost calculation for coach requests, AI-generated
courses, coach sessions and course regenerations. Nothing here touches
the database; services quote with these functions and then debit the
ledger.

Categorical selections are str enums that accept case-insensitive input
(``"advanced"``, ``"ADVANCED"``) and a few spelling variants
(``"full_gym"`` for ``"Full gym"``), so API validation and the pricing
tables share one vocabulary.
"""

import enum
from dataclasses import asdict, dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any, TypeVar

from app.core.exceptions import ValidationError


def _normalize_choice(value: Any) -> str:
    return " ".join(str(value).strip().lower().replace("_", " ").replace("-", " ").split())


class _Choice(str, enum.Enum):
    """Str enum matched case-insensitively, with ``_`` and ``-`` read as spaces."""

    @classmethod
    def _missing_(cls, value: Any):
        key = cls._alias(_normalize_choice(value))
        for member in cls:
            if _normalize_choice(member.value) == key:
                return member
        return None

    @classmethod
    def _alias(cls, key: str) -> str:
        return key


class Level(_Choice):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class TrainingType(_Choice):
    HOME = "Home"
    GYM = "Gym"
    MIXED = "Mixed"


class Equipment(_Choice):
    NONE = "None"
    BASIC = "Basic"
    FULL_GYM = "Full gym"

    @classmethod
    def _alias(cls, key: str) -> str:
        return "full gym" if key == "fullgym" else key


class Goal(_Choice):
    STRENGTH = "Strength"
    FAT_LOSS = "Fat loss"
    MOBILITY = "Mobility"
    ENDURANCE = "Endurance"
    POSTURE = "Posture"


class PdfMode(_Choice):
    TEXT = "text"
    ILLUSTRATED = "illustrated"

    @classmethod
    def _alias(cls, key: str) -> str:
        # Every course ships a text PDF; "none" is the legacy spelling of that.
        return "text" if key == "none" else key


class Gender(_Choice):
    MALE = "male"
    FEMALE = "female"


class RegenerationScope(_Choice):
    DAY = "day"
    WEEK = "week"


E = TypeVar("E", bound=enum.Enum)


def require_complete(table: dict, enum_cls: type[enum.Enum]) -> dict:
    missing = set(enum_cls) - set(table)
    if missing:
        names = ", ".join(sorted(member.name for member in missing))
        raise RuntimeError(f"Lookup table for {enum_cls.__name__} is missing: {names}")
    return table


def parse_choice(enum_cls: type[E], value: Any) -> E:
    """Coerce raw input into ``enum_cls`` or raise ValidationError."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {enum_cls.__name__} '{value}'. Allowed: {allowed}"
        )


# ============================================================================
# Coach requests
# ============================================================================

COACH_REQUEST_BASE = 10_000

LEVEL_SURCHARGE = require_complete(
    {
        Level.BEGINNER: 0,
        Level.INTERMEDIATE: 5_000,
        Level.ADVANCED: 12_000,
    },
    Level,
)

TRAINING_TYPE_SURCHARGE = require_complete(
    {
        TrainingType.HOME: 0,
        TrainingType.GYM: 0,
        TrainingType.MIXED: 4_000,
    },
    TrainingType,
)

EQUIPMENT_SURCHARGE = require_complete(
    {
        Equipment.NONE: 0,
        Equipment.BASIC: 3_000,
        Equipment.FULL_GYM: 6_000,
    },
    Equipment,
)

# Every day beyond three adds 4,000
DAYS_PER_WEEK_SURCHARGE = {2: 0, 3: 0, 4: 4_000, 5: 8_000, 6: 12_000}
MIN_DAYS_PER_WEEK = min(DAYS_PER_WEEK_SURCHARGE)
MAX_DAYS_PER_WEEK = max(DAYS_PER_WEEK_SURCHARGE)


@dataclass(frozen=True)
class CoachRequestCostBreakdown:
    base: int
    level_add: int
    training_type_add: int
    equipment_add: int
    days_add: int
    total: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def calc_coach_request_tokens(
    level: Any,
    training_type: Any,
    equipment: Any,
    days_per_week: int,
) -> CoachRequestCostBreakdown:
    """Quote a coach request.

    Raises:
        ValidationError: Unknown selection or days per week outside 2..6
    """
    level = parse_choice(Level, level)
    training_type = parse_choice(TrainingType, training_type)
    equipment = parse_choice(Equipment, equipment)
    if days_per_week not in DAYS_PER_WEEK_SURCHARGE:
        raise ValidationError(
            f"days_per_week must be between {MIN_DAYS_PER_WEEK} and {MAX_DAYS_PER_WEEK}"
        )

    level_add = LEVEL_SURCHARGE[level]
    training_type_add = TRAINING_TYPE_SURCHARGE[training_type]
    equipment_add = EQUIPMENT_SURCHARGE[equipment]
    days_add = DAYS_PER_WEEK_SURCHARGE[days_per_week]

    return CoachRequestCostBreakdown(
        base=COACH_REQUEST_BASE,
        level_add=level_add,
        training_type_add=training_type_add,
        equipment_add=equipment_add,
        days_add=days_add,
        total=COACH_REQUEST_BASE + level_add + training_type_add + equipment_add + days_add,
    )


# ============================================================================
# AI-generated courses
# ============================================================================

COURSE_BASE = 400
COURSE_PER_WEEK = 120
COURSE_PER_SESSION = 8
INJURY_SAFE_COST = 120
SPECIAL_EQUIPMENT_COST = 80
NUTRITION_TIPS_COST = 100
PDF_BASE_COST = 60
PDF_IMAGE_COST = 10
WORKOUT_TYPE_COST = 15
TARGET_MUSCLE_COST = 8
PLATFORM_MARGIN = Decimal("1.3")

COURSE_DEFAULT_WEEKS = 4
COURSE_DEFAULT_SESSIONS_PER_WEEK = 4
COURSE_MAX_WEEKS = 12
COURSE_MAX_IMAGES = 12


@dataclass(frozen=True)
class CourseCostBreakdown:
    """Margin-applied line items; they always add up to ``total``."""

    base: int
    injury_safe: int
    special_equipment: int
    nutrition_tips: int
    pdf: int
    workout_types: int
    target_muscles: int
    total: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _apportion(raw: dict[str, int], total: int) -> dict[str, int]:
    """Split ``total`` across ``raw`` proportionally (largest remainder).

    Ties go to the line declared first.
    """
    subtotal = sum(raw.values())
    if subtotal == 0:
        return {key: 0 for key in raw}

    shares = {key: Decimal(value) * total / subtotal for key, value in raw.items()}
    lines = {key: int(share.to_integral_value(rounding=ROUND_FLOOR)) for key, share in shares.items()}
    leftover = total - sum(lines.values())

    order = sorted(raw, key=lambda key: (-(shares[key] - lines[key]), list(raw).index(key)))
    for key in order[:leftover]:
        lines[key] += 1
    return lines


def calc_full_course_tokens(
    weeks: int = COURSE_DEFAULT_WEEKS,
    sessions_per_week: int = COURSE_DEFAULT_SESSIONS_PER_WEEK,
    injury_safe: bool = False,
    special_equipment: bool = False,
    nutrition_tips: bool = False,
    pdf: Any = PdfMode.TEXT,
    images: int = 0,
    workout_types_count: int = 0,
    target_muscles_count: int = 0,
) -> CourseCostBreakdown:
    """Quote a generated course.

    The margin is applied once to the raw subtotal and rounded half-up;
    line items are then apportioned from that total.
    """
    pdf = parse_choice(PdfMode, pdf)
    if weeks < 1 or sessions_per_week < 1:
        raise ValidationError("weeks and sessions_per_week must be positive")

    pdf_cost = PDF_BASE_COST
    if pdf == PdfMode.ILLUSTRATED:
        pdf_cost += PDF_IMAGE_COST * max(0, images)

    raw = {
        "base": COURSE_BASE + COURSE_PER_WEEK * weeks + COURSE_PER_SESSION * sessions_per_week * weeks,
        "injury_safe": INJURY_SAFE_COST if injury_safe else 0,
        "special_equipment": SPECIAL_EQUIPMENT_COST if special_equipment else 0,
        "nutrition_tips": NUTRITION_TIPS_COST if nutrition_tips else 0,
        "pdf": pdf_cost,
        "workout_types": WORKOUT_TYPE_COST * max(0, workout_types_count),
        "target_muscles": TARGET_MUSCLE_COST * max(0, target_muscles_count),
    }

    total = max(0, _round_half_up(Decimal(sum(raw.values())) * PLATFORM_MARGIN))
    return CourseCostBreakdown(total=total, **_apportion(raw, total))


# ============================================================================
# Regeneration
# ============================================================================

REGEN_DAY_COST = 30
REGEN_WEEK_COST = 120

REGENERATION_COSTS = require_complete(
    {
        RegenerationScope.DAY: REGEN_DAY_COST,
        RegenerationScope.WEEK: REGEN_WEEK_COST,
    },
    RegenerationScope,
)


def get_regeneration_cost(scope: Any) -> int:
    return REGENERATION_COSTS[parse_choice(RegenerationScope, scope)]


# ============================================================================
# Coach sessions
# ============================================================================

HOURLY_RATE = 10_000
SESSION_DURATIONS = (1, 2, 3)
# Longest possible session; bounds the overlap lookback window
MAX_SESSION_HOURS = max(SESSION_DURATIONS)

# Sessions start on the hour and end by closing time (UTC)
SESSION_DAY_START_HOUR = 8
SESSION_DAY_END_HOUR = 20


def get_session_cost(duration_hours: int) -> int:
    """Cost of a coach session.

    Raises:
        ValidationError: Duration is not one of SESSION_DURATIONS
    """
    if isinstance(duration_hours, bool) or duration_hours not in SESSION_DURATIONS:
        allowed = ", ".join(str(hours) for hours in SESSION_DURATIONS)
        raise ValidationError(f"duration_hours must be one of {allowed}")
    return HOURLY_RATE * duration_hours


def generate_available_slots(duration_hours: int) -> list[int]:
    """Start hours for a session of ``duration_hours`` within opening hours."""
    get_session_cost(duration_hours)
    return list(range(SESSION_DAY_START_HOUR, SESSION_DAY_END_HOUR - duration_hours + 1))


def generate_course_title(options: Any) -> str:
    """Human-readable course title built from the generation options.

    ``options`` is anything with the course option attributes (usually
    ``CourseOptions``).
    """
    title = f"{options.weeks}-Week Fitness Program"
    if options.sessions_per_week > 0:
        title += f" ({options.sessions_per_week} sessions/week)"

    if options.workout_types:
        title += f" - {options.workout_types[0]}"

    muscles = list(options.target_muscles)
    if len(muscles) == 1:
        title += f" for {muscles[0]}"
    elif 1 < len(muscles) <= 3:
        title += f" for {', '.join(muscles[:-1])} and {muscles[-1]}"
    elif len(muscles) > 3:
        title += f" for {', '.join(muscles[:2])} and {len(muscles) - 2} more"

    features = []
    if options.injury_safe:
        features.append("Injury-Safe")
    if options.special_equipment:
        features.append("Special Equipment")
    if options.nutrition_tips:
        features.append("Nutrition Tips")
    if features:
        title += f" - {', '.join(features)}"

    audience = "Men" if parse_choice(Gender, options.gender) == Gender.MALE else "Women"
    return f"{title} ({audience})"
