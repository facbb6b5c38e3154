"""
Analysis Orchestrator - remote review with deterministic fallback

Protocol:
1. Send the fixed PolicyPilot prompt and the intake to the remote analyzer
2. If it returns a well-shaped report, hand that back untouched
3. On any failure (missing key, network, status, bad content) run the
   rules engine on the same intake and return its report instead

Callers always get the same report shape and never see a remote error.

Usage:
    from analysis import analyze_intake

    report = analyze_intake(intake)
"""

import logging
from typing import Any, Dict, Optional

from intake import Intake
from llm_client import get_remote_analyzer
from rules_engine import analyze_with_rules_engine

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are PolicyPilot, a minimal insurance guidance assistant.

Objective:
From a small user input, output:
1) one overlap to consider dropping, 2) one critical gap to address,
3) a ranked priority review list (3 items), 4) a brief money/risk snapshot and next steps,
5) a plain-language disclaimer. Return both a concise human summary and a JSON object.

Guardrails:
- Educational only; no legal/financial advice. Use "consider / may / could".
- Do not invent policy specifics not provided. No chain-of-thought. Privacy-respectful tone.

Input: JSON with fields: age, household, income_range, employment, assets[], state_or_country, risk_preference, existing_policies[], notes.

Output (both):
A) Human summary with these headings:
Overview
Potential Overlap to Consider Dropping
Critical Gap to Address
Priority Review List (ranked)
Money/Risk Snapshot (very brief)
Next Steps
Plain-Language Disclaimer

B) JSON object:
{
  "overlap": {"title": "...", "reason": "...", "what_to_verify": ["..."]},
  "gap": {"title": "...", "reason": "...", "suggested_next_step": "..."},
  "priority_review": [
    {"coverage":"...", "why":"..."},
    {"coverage":"...", "why":"..."},
    {"coverage":"...", "why":"..."}
  ],
  "assumptions": ["..."],
  "not_validated": ["automation_accuracy","integrations","pricing","compliance"],
  "disclaimer": "..."
}

Decision Heuristics:
Overlaps (pick one likely from inputs):
- Credit-card rental car coverage overlapping with auto policy's rental add-on.
- Credit-card phone coverage overlapping with separate device/phone plan.
- Premium credit-card travel benefits overlapping with separate travel insurance.
- Homeowners/renters property vs. separate gadget plan.

Gaps (pick one highest-impact):
- Renters/Home missing when user rents/owns.
- Inadequate auto liability when only state-minimum listed.
- Disability income missing when user depends on paycheck.
- Term life missing with dependents or significant debt.
- Umbrella for high assets/income.

Priority ordering:
High-severity liability/dwelling/income first, then moderate-probability property, then low-yield add-ons.

Tone: calm, practical, brief."""


class AnalysisOrchestrator:
    def __init__(self, remote: Any = None, system_prompt: str = SYSTEM_PROMPT):
        # remote: anything with analyze(system_prompt, user_json) -> dict
        self.remote = remote
        self.system_prompt = system_prompt

    def _remote(self):
        return self.remote if self.remote is not None else get_remote_analyzer()

    def run(self, intake: Intake) -> Dict[str, Any]:
        try:
            return self._remote().analyze(self.system_prompt, intake.to_dict())
        except Exception as e:
            logger.warning(f"Remote analysis failed, falling back to rules engine: {type(e).__name__}: {e}")
        return analyze_with_rules_engine(intake)


def analyze_intake(intake: Intake, remote: Optional[Any] = None) -> Dict[str, Any]:
    return AnalysisOrchestrator(remote=remote).run(intake)
