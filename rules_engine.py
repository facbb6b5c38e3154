"""
Rules Engine - deterministic coverage review

Maps an Intake to a findings report without any I/O:
1. Overlap: first matching rule over the joined policy labels
2. Gap: first matching rule over assets, employment, household and labels
3. Priority review: ordered candidates, deduplicated by title, top 3
4. Human summary: fixed headed sections for the results view

The engine is total: every Intake, including an empty one, yields a report.
It is also the fallback for the remote analyzer, so its output has exactly
the same shape as a remote result.

Usage:
    from rules_engine import analyze_with_rules_engine

    report = analyze_with_rules_engine(intake)
    report["json"]["gap"]["title"]
"""

from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, asdict

from intake import Intake, HIGH_INCOME_RANGES

# =============================================================================
# FINDINGS
# =============================================================================

@dataclass(frozen=True)
class Overlap:
    """Coverage the user may be paying for twice."""
    title: str
    reason: str
    what_to_verify: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Gap:
    """Highest-impact missing or thin coverage."""
    title: str
    reason: str
    suggested_next_step: str


@dataclass(frozen=True)
class PriorityItem:
    coverage: str
    why: str


# =============================================================================
# FIXED REPORT TEXT
# =============================================================================

ASSUMPTIONS = (
    "Analysis based on general patterns",
    "Specific policy details not examined",
    "Regional regulations may vary",
    "Professional review recommended",
)

NOT_VALIDATED = ("automation_accuracy", "integrations", "pricing", "compliance")

DISCLAIMER = (
    "This is general education, not financial or legal advice. "
    "Confirm with a licensed professional in your region."
)

NO_OVERLAP = Overlap(
    title="No Obvious Overlap Found",
    reason="Based on your current policies, we don't see clear overlapping coverage.",
    what_to_verify=(
        "Review policy documents for hidden duplications",
        "Check if credit cards provide any insurance benefits",
        "Consider whether employer benefits overlap personal coverage",
    ),
)

NO_GAP = Gap(
    title="No Critical Gap Detected",
    reason="Your current coverage appears to address the major risk categories, though limits and deductibles should be reviewed.",
    suggested_next_step="Focus on reviewing coverage limits and deductibles to ensure they align with your current financial situation.",
)

NOT_SPECIFIED = "Not specified"


# =============================================================================
# OVERLAP RULES
# =============================================================================

def _all_present(text: str, *needles: str) -> bool:
    return all(n in text for n in needles)


def _property_device_overlap(intake: Intake, text: str) -> bool:
    owns_or_rents = intake.has_asset("home") or intake.has_asset("renting")
    has_property_policy = "renters" in text or "homeowners" in text
    return owns_or_rents and has_property_policy and "device" in text


# (predicate, finding) pairs, checked in order; first match wins
OVERLAP_RULES: List[Tuple[Callable[[Intake, str], bool], Overlap]] = [
    (
        lambda intake, text: _all_present(text, "credit-card", "rental", "auto"),
        Overlap(
            title="Rental Car Coverage Overlap",
            reason="You may have rental car coverage through both your credit card and auto insurance policy.",
            what_to_verify=(
                "Whether credit card coverage is primary or secondary",
                "Coverage limits and exclusions on each",
                "Which provides better value for your needs",
            ),
        ),
    ),
    (
        lambda intake, text: _all_present(text, "credit-card", "phone", "device"),
        Overlap(
            title="Phone Coverage Overlap",
            reason="Credit card phone protection may duplicate your device insurance plan.",
            what_to_verify=(
                "Deductible amounts for each coverage",
                "Coverage limits and claim processes",
                "Whether one plan offers superior protection",
            ),
        ),
    ),
    (
        lambda intake, text: _all_present(text, "credit-card", "travel", "travel insurance"),
        Overlap(
            title="Travel Coverage Overlap",
            reason="Premium credit card travel benefits may overlap with separate travel insurance.",
            what_to_verify=(
                "Medical evacuation coverage limits",
                "Trip cancellation reasons covered",
                "Coverage for pre-existing conditions",
            ),
        ),
    ),
    (
        _property_device_overlap,
        Overlap(
            title="Property vs. Device Coverage Overlap",
            reason="Your homeowners/renters policy may already cover electronics that have separate device plans.",
            what_to_verify=(
                "Personal property limits in home/renters policy",
                "Special limits for electronics",
                "Deductible differences between policies",
            ),
        ),
    ),
]


def detect_overlap(intake: Intake) -> Overlap:
    text = intake.policy_text
    for matches, finding in OVERLAP_RULES:
        if matches(intake, text):
            return finding
    return NO_OVERLAP


# =============================================================================
# GAP RULES
# =============================================================================

GAP_RULES: List[Tuple[Callable[[Intake, str], bool], Gap]] = [
    (
        lambda intake, text: intake.has_asset("renting") and "renters" not in text,
        Gap(
            title="Missing Renters Insurance",
            reason="You're renting but don't appear to have renters insurance to protect your belongings and liability.",
            suggested_next_step="Get quotes for renters insurance - it's typically very affordable ($15-30/month) but provides essential protection.",
        ),
    ),
    (
        lambda intake, text: intake.has_asset("home") and "homeowners" not in text,
        Gap(
            title="Missing Homeowners Insurance",
            reason="You own a home but don't appear to have homeowners insurance listed.",
            suggested_next_step="Verify you have adequate homeowners coverage - this is typically required by mortgage lenders and essential for protection.",
        ),
    ),
    (
        lambda intake, text: _all_present(text, "auto", "state-min"),
        Gap(
            title="Insufficient Auto Liability Limits",
            reason="State minimum liability coverage may not provide adequate protection for your assets and income level.",
            suggested_next_step="Consider increasing liability limits to at least 100/300/50 or higher based on your net worth.",
        ),
    ),
    (
        lambda intake, text: intake.earns_income and "disability" not in text,
        Gap(
            title="Missing Disability Income Insurance",
            reason="You depend on income from work but don't have disability insurance to protect if you can't work due to illness or injury.",
            suggested_next_step="Research disability insurance options through your employer or individual policies - this protects your most valuable asset: your earning ability.",
        ),
    ),
    (
        lambda intake, text: (intake.household or 0) > 1 and "life" not in text,
        Gap(
            title="Missing Term Life Insurance",
            reason="With dependents in your household, life insurance could provide important financial protection for your family.",
            suggested_next_step="Consider term life insurance equal to 10-12x your annual income to replace lost earnings and cover major expenses.",
        ),
    ),
]


def detect_gap(intake: Intake) -> Gap:
    text = intake.policy_text
    for matches, finding in GAP_RULES:
        if matches(intake, text):
            return finding
    return NO_GAP


# =============================================================================
# PRIORITY REVIEW
# =============================================================================

PRIORITY_LIMIT = 3

AUTO_LIABILITY = PriorityItem(
    coverage="Auto Liability Limits",
    why="Ensure adequate protection against lawsuits from accidents - consider 250/500/100 or higher",
)
RENTERS_PROPERTY = PriorityItem(
    coverage="Renters Personal Property & Liability",
    why="Protects belongings and provides liability coverage for accidents in your rental",
)
HOME_DWELLING = PriorityItem(
    coverage="Home Dwelling & Liability Coverage",
    why="Ensure rebuilding costs are covered and liability limits protect your assets",
)
DISABILITY_INCOME = PriorityItem(
    coverage="Disability Income Protection",
    why="Protects your ability to earn income if you become unable to work due to illness or injury",
)
UMBRELLA_LIABILITY = PriorityItem(
    coverage="Umbrella Liability Policy",
    why="Additional liability protection beyond auto/home policies for higher-net-worth individuals",
)
HEALTH_DEDUCTIBLE = PriorityItem(
    coverage="Health Insurance Deductible Coverage",
    why="Ensure you can afford your health insurance deductible and out-of-pocket maximums",
)

GAP_PRIORITY_WHY = "Addresses the most significant protection gap in your current coverage"


def generate_priority_list(intake: Intake, gap: Gap) -> List[PriorityItem]:
    """
    Candidates are appended from highest to lowest severity, then
    deduplicated by exact coverage title and cut to PRIORITY_LIMIT.
    """
    text = intake.policy_text
    candidates: List[PriorityItem] = []

    if gap != NO_GAP:
        candidates.append(PriorityItem(coverage=gap.title, why=GAP_PRIORITY_WHY))

    if intake.has_asset("car"):
        candidates.append(AUTO_LIABILITY)

    # renting wins when both home and renting are listed
    if intake.has_asset("renting"):
        candidates.append(RENTERS_PROPERTY)
    elif intake.has_asset("home"):
        candidates.append(HOME_DWELLING)

    if intake.earns_income and "disability" not in text:
        candidates.append(DISABILITY_INCOME)

    if intake.income_range in HIGH_INCOME_RANGES or (intake.has_asset("home") and intake.has_asset("car")):
        candidates.append(UMBRELLA_LIABILITY)

    candidates.append(HEALTH_DEDUCTIBLE)

    unique: List[PriorityItem] = []
    seen = set()
    for item in candidates:
        if item.coverage in seen:
            continue
        seen.add(item.coverage)
        unique.append(item)
    return unique[:PRIORITY_LIMIT]


# =============================================================================
# HUMAN SUMMARY
# =============================================================================

def _or_not_specified(value: Optional[Any]) -> str:
    return NOT_SPECIFIED if value is None else str(value)


def generate_human_summary(overlap: Overlap, gap: Gap, priority_review: List[PriorityItem], intake: Intake) -> str:
    # Sections are separated by blank lines; the results view takes the
    # first line of each section as its heading.
    age = _or_not_specified(intake.age)
    household = _or_not_specified(intake.household)
    income = _or_not_specified(intake.income_range)

    ranked = "\n".join(f"{i}. {item.coverage}: {item.why}" for i, item in enumerate(priority_review, 1))
    overlap_level = "minimal" if overlap == NO_OVERLAP else "some"
    gap_level = "good" if gap == NO_GAP else "moderate"

    sections = [
        "Overview",
        f"Based on your profile (age {age}, household of {household}, income {income}), "
        "we've identified opportunities to optimize your insurance coverage. "
        "Our analysis focuses on eliminating redundant coverage while ensuring adequate protection for your key risks.",
        "Potential Overlap to Consider Dropping",
        f"{overlap.title}\n{overlap.reason} Review your policy documents to determine which coverage "
        "provides better value and consider dropping the redundant option.",
        "Critical Gap to Address",
        f"{gap.title}\n{gap.reason} This represents a significant vulnerability in your current risk management strategy.",
        "Priority Review List (ranked)",
        ranked,
        "Money/Risk Snapshot",
        f"Your current insurance portfolio shows {overlap_level} overlap opportunities and {gap_level} coverage gaps. "
        "Addressing the identified gap could significantly improve your risk protection.",
        "Next Steps",
        "• Review and compare the overlapping policies to eliminate redundancy\n"
        "• Address the critical gap by researching appropriate coverage options\n"
        "• Schedule annual insurance reviews to ensure coverage keeps pace with life changes",
        "Plain-Language Disclaimer",
        "This analysis is for educational purposes only and should not be considered financial or legal advice. "
        "Insurance needs vary greatly based on individual circumstances, state regulations, and policy specifics. "
        "Please consult with a licensed insurance professional in your area to make informed decisions about your coverage.",
    ]
    return "\n\n".join(sections)


# =============================================================================
# PUBLIC API
# =============================================================================

def _overlap_dict(overlap: Overlap) -> Dict[str, Any]:
    data = asdict(overlap)
    data["what_to_verify"] = list(overlap.what_to_verify)
    return data


def analyze_with_rules_engine(intake: Intake) -> Dict[str, Any]:
    """
    Run the full deterministic review.

    Returns {"humanSummary": str, "json": {overlap, gap, priority_review,
    assumptions, not_validated, disclaimer}}, built fresh on every call.
    """
    overlap = detect_overlap(intake)
    gap = detect_gap(intake)
    priority_review = generate_priority_list(intake, gap)

    return {
        "humanSummary": generate_human_summary(overlap, gap, priority_review, intake),
        "json": {
            "overlap": _overlap_dict(overlap),
            "gap": asdict(gap),
            "priority_review": [asdict(p) for p in priority_review],
            "assumptions": list(ASSUMPTIONS),
            "not_validated": list(NOT_VALIDATED),
            "disclaimer": DISCLAIMER,
        },
    }
