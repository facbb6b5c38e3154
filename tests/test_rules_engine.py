"""
Test suite for the rules engine

Covers:
1. Overlap rules and their precedence
2. Gap rules and their precedence
3. Priority review accumulation, dedup and truncation
4. Human summary layout
5. Totality, idempotence and risk_preference inertness
"""

import sys
import os
import json
import itertools

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from intake import Intake, ASSET_TYPES, EMPLOYMENT_TYPES, INCOME_RANGES, RISK_PREFERENCES
from rules_engine import (
    analyze_with_rules_engine,
    detect_overlap,
    detect_gap,
    generate_priority_list,
    NO_OVERLAP,
    NO_GAP,
    ASSUMPTIONS,
    NOT_VALIDATED,
    DISCLAIMER,
)


def _titles(report):
    return [p["coverage"] for p in report["json"]["priority_review"]]


# =============================================================================
# SCENARIOS
# =============================================================================

class TestScenarios:
    """End-to-end reports for the reference scenarios."""

    def test_empty_intake(self):
        """Empty intake yields both sentinels and only the baseline filler."""
        report = analyze_with_rules_engine(Intake())

        assert report["json"]["overlap"]["title"] == "No Obvious Overlap Found"
        assert report["json"]["gap"]["title"] == "No Critical Gap Detected"
        assert _titles(report) == ["Health Insurance Deductible Coverage"], \
            "Nothing but the baseline filler should be generated"

    def test_renter_without_renters_policy(self):
        report = analyze_with_rules_engine(Intake(assets=("renting",)))

        assert report["json"]["gap"]["title"] == "Missing Renters Insurance"
        assert _titles(report) == [
            "Missing Renters Insurance",
            "Renters Personal Property & Liability",
            "Health Insurance Deductible Coverage",
        ]

    def test_rental_car_overlap_and_state_min_gap(self):
        intake = Intake(existing_policies=("auto: state-min liability", "credit-card: rental car coverage"))
        report = analyze_with_rules_engine(intake)

        assert report["json"]["overlap"]["title"] == "Rental Car Coverage Overlap"
        assert report["json"]["gap"]["title"] == "Insufficient Auto Liability Limits"
        assert _titles(report) == [
            "Insufficient Auto Liability Limits",
            "Health Insurance Deductible Coverage",
        ]

    def test_fixed_lists_on_every_report(self):
        report = analyze_with_rules_engine(Intake(age=40))
        assert report["json"]["assumptions"] == list(ASSUMPTIONS)
        assert report["json"]["not_validated"] == ["automation_accuracy", "integrations", "pricing", "compliance"]
        assert report["json"]["not_validated"] == list(NOT_VALIDATED)
        assert report["json"]["disclaimer"] == DISCLAIMER


# =============================================================================
# OVERLAP RULES
# =============================================================================

class TestOverlapRules:

    def test_rental_car(self):
        overlap = detect_overlap(Intake(existing_policies=("Credit-Card rental cover", "Auto policy")))
        assert overlap.title == "Rental Car Coverage Overlap"
        assert overlap.what_to_verify == (
            "Whether credit card coverage is primary or secondary",
            "Coverage limits and exclusions on each",
            "Which provides better value for your needs",
        )

    def test_rental_car_needs_hyphenated_credit_card(self):
        """Matching is by exact substring; 'credit card' without a hyphen does not count."""
        overlap = detect_overlap(Intake(existing_policies=("credit card rental cover", "auto")))
        assert overlap == NO_OVERLAP

    def test_phone(self):
        overlap = detect_overlap(Intake(existing_policies=("credit-card phone protection", "device insurance")))
        assert overlap.title == "Phone Coverage Overlap"
        assert overlap.reason == "Credit card phone protection may duplicate your device insurance plan."

    def test_travel(self):
        overlap = detect_overlap(Intake(existing_policies=("credit-card travel perks", "travel insurance annual")))
        assert overlap.title == "Travel Coverage Overlap"

    def test_property_vs_device_for_owner(self):
        intake = Intake(assets=("home",), existing_policies=("homeowners HO-3", "device protection plan"))
        assert detect_overlap(intake).title == "Property vs. Device Coverage Overlap"

    def test_property_vs_device_for_renter(self):
        intake = Intake(assets=("renting",), existing_policies=("renters", "device plan"))
        assert detect_overlap(intake).title == "Property vs. Device Coverage Overlap"

    def test_property_vs_device_requires_home_or_renting(self):
        intake = Intake(assets=("car",), existing_policies=("homeowners", "device plan"))
        assert detect_overlap(intake) == NO_OVERLAP

    def test_first_match_wins(self):
        """Policies matching both rental and phone rules report the rental overlap."""
        intake = Intake(existing_policies=("credit-card rental auto", "phone device plan"))
        assert detect_overlap(intake).title == "Rental Car Coverage Overlap"

    def test_sentinel_has_generic_checks(self):
        overlap = detect_overlap(Intake(existing_policies=("health PPO",)))
        assert overlap.title == "No Obvious Overlap Found"
        assert len(overlap.what_to_verify) == 3


# =============================================================================
# GAP RULES
# =============================================================================

class TestGapRules:

    def test_missing_homeowners(self):
        gap = detect_gap(Intake(assets=("home",)))
        assert gap.title == "Missing Homeowners Insurance"

    def test_homeowners_present(self):
        gap = detect_gap(Intake(assets=("home",), existing_policies=("Homeowners HO-3",)))
        assert gap == NO_GAP

    def test_renting_checked_before_home(self):
        gap = detect_gap(Intake(assets=("home", "renting")))
        assert gap.title == "Missing Renters Insurance"

    def test_home_gap_when_renters_covered(self):
        gap = detect_gap(Intake(assets=("home", "renting"), existing_policies=("renters",)))
        assert gap.title == "Missing Homeowners Insurance"

    def test_state_min_auto(self):
        gap = detect_gap(Intake(existing_policies=("Auto State-Min",)))
        assert gap.title == "Insufficient Auto Liability Limits"
        assert gap.suggested_next_step == (
            "Consider increasing liability limits to at least 100/300/50 or higher based on your net worth."
        )

    @pytest.mark.parametrize("employment", ["W2", "self-employed", "contractor"])
    def test_missing_disability_for_earners(self, employment):
        gap = detect_gap(Intake(employment=employment))
        assert gap.title == "Missing Disability Income Insurance"

    @pytest.mark.parametrize("employment", ["student", "unemployed", None])
    def test_no_disability_gap_without_paycheck(self, employment):
        gap = detect_gap(Intake(employment=employment))
        assert gap == NO_GAP

    def test_disability_policy_closes_gap(self):
        gap = detect_gap(Intake(employment="W2", existing_policies=("long-term disability",)))
        assert gap == NO_GAP

    def test_missing_term_life_with_dependents(self):
        gap = detect_gap(Intake(household=3))
        assert gap.title == "Missing Term Life Insurance"

    def test_life_policy_closes_gap(self):
        gap = detect_gap(Intake(household=3, existing_policies=("term life 20yr",)))
        assert gap == NO_GAP

    def test_single_person_household_has_no_life_gap(self):
        assert detect_gap(Intake(household=1)) == NO_GAP
        assert detect_gap(Intake()) == NO_GAP

    def test_disability_outranks_life(self):
        gap = detect_gap(Intake(employment="W2", household=4))
        assert gap.title == "Missing Disability Income Insurance"


# =============================================================================
# PRIORITY REVIEW
# =============================================================================

class TestPriorityReview:

    def test_gap_entry_and_disability_are_separate_titles(self):
        """The disability gap and the disability priority share a concept, not a title."""
        intake = Intake(employment="W2")
        items = generate_priority_list(intake, detect_gap(intake))
        assert [i.coverage for i in items] == [
            "Missing Disability Income Insurance",
            "Disability Income Protection",
            "Health Insurance Deductible Coverage",
        ]

    def test_truncated_to_three(self):
        intake = Intake(assets=("home", "car"), employment="W2", income_range=">200k")
        items = generate_priority_list(intake, detect_gap(intake))
        assert [i.coverage for i in items] == [
            "Missing Homeowners Insurance",
            "Auto Liability Limits",
            "Home Dwelling & Liability Coverage",
        ]

    def test_renting_privileged_over_home(self):
        intake = Intake(assets=("home", "renting"), existing_policies=("renters", "homeowners"))
        titles = [i.coverage for i in generate_priority_list(intake, detect_gap(intake))]
        assert "Renters Personal Property & Liability" in titles
        assert "Home Dwelling & Liability Coverage" not in titles

    def test_umbrella_for_high_income(self):
        intake = Intake(income_range="100–200k")
        titles = [i.coverage for i in generate_priority_list(intake, NO_GAP)]
        assert titles == ["Umbrella Liability Policy", "Health Insurance Deductible Coverage"]

    def test_umbrella_for_home_and_car(self):
        intake = Intake(assets=("home", "car"), existing_policies=("homeowners",), income_range="<50k")
        titles = [i.coverage for i in generate_priority_list(intake, detect_gap(intake))]
        assert titles == [
            "Auto Liability Limits",
            "Home Dwelling & Liability Coverage",
            "Umbrella Liability Policy",
        ]

    def test_no_umbrella_for_moderate_income(self):
        titles = [i.coverage for i in generate_priority_list(Intake(income_range="50–100k"), NO_GAP)]
        assert "Umbrella Liability Policy" not in titles

    def test_sentinel_gap_not_listed(self):
        items = generate_priority_list(Intake(assets=("car",)), NO_GAP)
        assert items[0].coverage == "Auto Liability Limits"


# =============================================================================
# HUMAN SUMMARY
# =============================================================================

class TestHumanSummary:

    HEADINGS = [
        "Overview",
        "Potential Overlap to Consider Dropping",
        "Critical Gap to Address",
        "Priority Review List (ranked)",
        "Money/Risk Snapshot",
        "Next Steps",
        "Plain-Language Disclaimer",
    ]

    def test_headings_in_order(self):
        summary = analyze_with_rules_engine(Intake(assets=("renting",)))["humanSummary"]
        sections = [s.strip() for s in summary.split("\n\n")]
        positions = [sections.index(h) for h in self.HEADINGS]
        assert positions == sorted(positions), "Headings must appear in fixed order"
        assert sections[0] == "Overview"

    def test_missing_profile_fields(self):
        summary = analyze_with_rules_engine(Intake())["humanSummary"]
        assert "age Not specified, household of Not specified, income Not specified" in summary
        assert "shows minimal overlap opportunities and good coverage gaps" in summary

    def test_profile_fields_interpolated(self):
        intake = Intake(age=35, household=2, income_range="50–100k")
        summary = analyze_with_rules_engine(intake)["humanSummary"]
        assert "age 35, household of 2, income 50–100k" in summary
        assert "shows minimal overlap opportunities and moderate coverage gaps" in summary

    def test_findings_and_ranked_list(self):
        report = analyze_with_rules_engine(Intake(assets=("renting",)))
        summary = report["humanSummary"]
        assert "Missing Renters Insurance\nYou're renting" in summary
        assert "1. Missing Renters Insurance: Addresses the most significant protection gap" in summary
        assert "3. Health Insurance Deductible Coverage: " in summary


# =============================================================================
# PROPERTIES
# =============================================================================

def _intake_grid():
    asset_sets = [(), ("car",), ("renting",), ("home", "car"), ("home", "renting", "car", "pets")]
    policy_sets = [(), ("auto state-min", "credit-card rental"), ("renters", "homeowners", "disability", "life")]
    for assets, policies, employment, household, income in itertools.product(
        asset_sets, policy_sets, (None,) + EMPLOYMENT_TYPES, (None, 1, 4), (None,) + INCOME_RANGES
    ):
        yield Intake(
            assets=assets,
            existing_policies=policies,
            employment=employment,
            household=household,
            income_range=income,
        )


class TestProperties:

    def test_total_and_bounded(self):
        """Every intake gets a report; priority lists hold at most 3 unique titles."""
        for intake in _intake_grid():
            report = analyze_with_rules_engine(intake)
            titles = _titles(report)
            assert 1 <= len(titles) <= 3
            assert len(set(titles)) == len(titles), f"Duplicate titles for {intake}"
            assert titles[-1] == "Health Insurance Deductible Coverage" or len(titles) == 3

    def test_three_items_when_three_candidates(self):
        intake = Intake(assets=("car", "renting"))
        assert len(_titles(analyze_with_rules_engine(intake))) == 3

    def test_idempotent(self):
        intake = Intake(age=52, household=3, employment="contractor", assets=("home", "car"),
                        existing_policies=("auto state-min",))
        first = analyze_with_rules_engine(intake)
        second = analyze_with_rules_engine(intake)
        assert first == second
        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)

    def test_reports_are_independent_copies(self):
        first = analyze_with_rules_engine(Intake())
        first["json"]["assumptions"].append("mutated")
        first["json"]["overlap"]["what_to_verify"].clear()
        second = analyze_with_rules_engine(Intake())
        assert "mutated" not in second["json"]["assumptions"]
        assert len(second["json"]["overlap"]["what_to_verify"]) == 3

    def test_findings_are_immutable(self):
        """Findings handed out by detect_overlap cannot be edited to change later reports."""
        overlap = detect_overlap(Intake())
        with pytest.raises(AttributeError):
            overlap.what_to_verify.clear()
        with pytest.raises(TypeError):
            overlap.what_to_verify[0] = "edited"
        report = analyze_with_rules_engine(Intake())
        assert report["json"]["overlap"]["what_to_verify"] == list(NO_OVERLAP.what_to_verify)
        assert isinstance(report["json"]["overlap"]["what_to_verify"], list)

    def test_risk_preference_is_inert(self):
        base = dict(age=30, household=2, employment="W2", assets=("renting", "car"))
        reports = [analyze_with_rules_engine(Intake(risk_preference=p, **base)) for p in (None,) + RISK_PREFERENCES]
        assert all(r == reports[0] for r in reports)

    def test_notes_and_location_are_inert(self):
        plain = analyze_with_rules_engine(Intake(assets=("home",)))
        annotated = analyze_with_rules_engine(
            Intake(assets=("home",), notes="renters insurance via landlord", state_or_country="CA")
        )
        assert plain == annotated

    def test_every_asset_accepted(self):
        for asset in ASSET_TYPES:
            analyze_with_rules_engine(Intake(assets=(asset,)))
