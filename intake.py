"""
Intake Model - user-supplied facts for one coverage review

The intake is built once per submission from the raw form payload and is
immutable afterwards. Nothing here makes decisions; the rules engine and the
remote analyzer both consume the same Intake value.

Usage:
    from intake import Intake, validate_intake_payload

    errors = validate_intake_payload(payload)
    if not errors:
        intake = Intake.from_dict(payload)
"""

from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass

# =============================================================================
# ALLOWED VALUES
# =============================================================================

INCOME_RANGES = ("<50k", "50–100k", "100–200k", ">200k")
EMPLOYMENT_TYPES = ("W2", "self-employed", "contractor", "student", "unemployed")
ASSET_TYPES = ("car", "home", "renting", "valuable_electronics", "pets", "bike")
RISK_PREFERENCES = ("frugal", "balanced", "safety-first")

AGE_RANGE = (18, 100)
MIN_HOUSEHOLD = 1

# Employment values that do not depend on a paycheck
NON_EARNING_EMPLOYMENT = ("unemployed", "student")

HIGH_INCOME_RANGES = ("100–200k", ">200k")


# =============================================================================
# HELPERS
# =============================================================================

def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _to_int(value: Any) -> Optional[int]:
    """Coerce form input ("35", 35.0, 35) to int; None when not numeric."""
    if _is_blank(value) or isinstance(value, bool):
        return None
    try:
        f = float(str(value).strip())
    except (ValueError, TypeError):
        return None
    if f != f or not f.is_integer():
        return None
    return int(f)


def _norm_text(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    return str(value).strip()


def _unique(items: List[str]) -> Tuple[str, ...]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return tuple(out)


# =============================================================================
# INTAKE
# =============================================================================

@dataclass(frozen=True)
class Intake:
    """Structured, immutable input to one analysis run."""
    age: Optional[int] = None
    household: Optional[int] = None
    income_range: Optional[str] = None
    employment: Optional[str] = None
    assets: Tuple[str, ...] = ()
    state_or_country: Optional[str] = None
    risk_preference: Optional[str] = None  # accepted, not consulted by any rule
    existing_policies: Tuple[str, ...] = ()
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "Intake":
        """
        Build an Intake from a raw JSON payload.

        Assumes the payload already passed validate_intake_payload; values
        that still do not fit are dropped rather than raised on.
        """
        payload = payload if isinstance(payload, dict) else {}

        assets_raw = payload.get("assets") or []
        if not isinstance(assets_raw, (list, tuple)):
            assets_raw = []
        assets = _unique([str(a).strip() for a in assets_raw if str(a).strip() in ASSET_TYPES])

        policies_raw = payload.get("existing_policies") or []
        if not isinstance(policies_raw, (list, tuple)):
            policies_raw = []
        policies = _unique([p.strip() for p in policies_raw if isinstance(p, str) and p.strip()])

        def _enum(key: str, allowed: Tuple[str, ...]) -> Optional[str]:
            v = _norm_text(payload.get(key))
            return v if v in allowed else None

        return cls(
            age=_to_int(payload.get("age")),
            household=_to_int(payload.get("household")),
            income_range=_enum("income_range", INCOME_RANGES),
            employment=_enum("employment", EMPLOYMENT_TYPES),
            assets=assets,
            state_or_country=_norm_text(payload.get("state_or_country")),
            risk_preference=_enum("risk_preference", RISK_PREFERENCES),
            existing_policies=policies,
            notes=_norm_text(payload.get("notes")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the remote request; absent optional fields are omitted."""
        out: Dict[str, Any] = {}
        for key in ("age", "household", "income_range", "employment"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        out["assets"] = list(self.assets)
        for key in ("state_or_country", "risk_preference"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        out["existing_policies"] = list(self.existing_policies)
        if self.notes is not None:
            out["notes"] = self.notes
        return out

    # Convenience predicates shared by the rules

    def has_asset(self, asset: str) -> bool:
        return asset in self.assets

    @property
    def policy_text(self) -> str:
        """Lower-cased, space-joined policy labels used for substring matching."""
        return " ".join(self.existing_policies).lower()

    @property
    def earns_income(self) -> bool:
        return self.employment is not None and self.employment not in NON_EARNING_EMPLOYMENT


# =============================================================================
# PAYLOAD VALIDATION
# =============================================================================

def validate_intake_payload(payload: Any) -> List[str]:
    """
    Check a raw intake payload. Returns a list of "<field>:<problem>" codes,
    empty when the payload can be turned into an Intake.
    """
    if not isinstance(payload, dict):
        return ["invalid_payload_type"]

    errs = []

    # Numeric fields
    age = payload.get("age")
    if not _is_blank(age):
        av = _to_int(age)
        if av is None:
            errs.append("age:not_numeric")
        elif av < AGE_RANGE[0] or av > AGE_RANGE[1]:
            errs.append("age:out_of_range")

    household = payload.get("household")
    if not _is_blank(household):
        hv = _to_int(household)
        if hv is None:
            errs.append("household:not_numeric")
        elif hv < MIN_HOUSEHOLD:
            errs.append("household:out_of_range")

    # Enum fields
    enums = {
        "income_range": INCOME_RANGES,
        "employment": EMPLOYMENT_TYPES,
        "risk_preference": RISK_PREFERENCES,
    }
    for k, allowed in enums.items():
        v = payload.get(k)
        if not _is_blank(v) and str(v).strip() not in allowed:
            errs.append(f"{k}:invalid_value")

    # List fields
    assets = payload.get("assets")
    if assets is not None:
        if not isinstance(assets, list):
            errs.append("assets:not_a_list")
        elif any(str(a).strip() not in ASSET_TYPES for a in assets):
            errs.append("assets:invalid_value")

    policies = payload.get("existing_policies")
    if policies is not None:
        if not isinstance(policies, list):
            errs.append("existing_policies:not_a_list")
        elif any(not isinstance(p, str) for p in policies):
            errs.append("existing_policies:not_a_string")

    # Free-text fields
    for k in ("state_or_country", "notes"):
        v = payload.get(k)
        if v is not None and not isinstance(v, str):
            errs.append(f"{k}:not_a_string")

    return errs
