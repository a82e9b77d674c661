"""
Risk aggregation engine for KYC/KYB parties.

Additive design: every input signal contributes weighted points (weights
live in Config.risk_weights), the total is clamped to 0-100 and banded by
the configured thresholds:

    score < medium -> LOW, < high -> MEDIUM, < extreme -> HIGH, else EXTREME

Ownership anomalies and unresolved high-score AML matches floor the score
at the HIGH threshold, so a degraded input never under-states risk.
compute_risk is a pure function of the gathered inputs plus as_of.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from config import Config, get_config, get_review_interval_days
from models import (
    AmlMatch, AmlScreening, AssessmentType, BusinessLocation, BusinessProfile,
    EconomicActivity, EddReason, ExpectedActivity, IndustryRisk, ListType,
    OwnershipResult, ResolutionStatus, RiskAssessment, RiskCategory, RiskFactor,
    RiskLevel, SanctionsQuestionnaire, SourceOfFunds, Ubo,
)
from utilities.reference_data import SOURCE_OF_FUNDS_RISK, classify_country


@dataclass
class RiskInputs:
    """Everything the engine reads about one party, from one consistent snapshot."""
    party_id: int
    ownership: OwnershipResult
    industry_risk: Optional[IndustryRisk] = None
    economic_activities: list[EconomicActivity] = field(default_factory=list)
    screenings: list[AmlScreening] = field(default_factory=list)
    matches: list[AmlMatch] = field(default_factory=list)
    sanctions_questionnaire: Optional[SanctionsQuestionnaire] = None
    expected_activities: list[ExpectedActivity] = field(default_factory=list)
    sources_of_funds: list[SourceOfFunds] = field(default_factory=list)
    ubos: list[Ubo] = field(default_factory=list)
    business_profile: Optional[BusinessProfile] = None
    business_locations: list[BusinessLocation] = field(default_factory=list)
    has_prior_assessment: bool = False


# Factor category -> regulatory risk category
_CATEGORY_MAP = {
    "industry": RiskCategory.PRODUCT,
    "economic_activity": RiskCategory.PRODUCT,
    "expected_activity": RiskCategory.PRODUCT,
    "geography": RiskCategory.GEOGRAPHY,
}


def _points(value) -> int:
    """Round a weighted contribution to whole points."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def score_to_risk_level(score: int, config: Optional[Config] = None) -> RiskLevel:
    """Band a 0-100 score using the configured thresholds."""
    config = config or get_config()
    if score < config.risk_threshold_medium:
        return RiskLevel.LOW
    elif score < config.risk_threshold_high:
        return RiskLevel.MEDIUM
    elif score < config.risk_threshold_extreme:
        return RiskLevel.HIGH
    else:
        return RiskLevel.EXTREME


def recency_factor(screening_date: datetime, as_of: datetime, recency_days: int) -> Decimal:
    """
    Weight for a screening's age: 1.0 within the recency window, then
    linear decay to 0.5 at four windows old, never below 0.5.
    """
    age_days = max((as_of - screening_date).days, 0)
    if age_days <= recency_days:
        return Decimal("1")
    decay = Decimal(age_days - recency_days) / Decimal(3 * recency_days) / 2
    return max(Decimal("0.5"), Decimal("1") - decay)


# =============================================================================
# Factor groups
# =============================================================================

def _industry_factors(inputs: RiskInputs, config: Config, factors: list):
    industry = inputs.industry_risk
    if industry is not None:
        if industry.risk_score is not None:
            points = _points(industry.risk_score * config.get_risk_weight("industry_score_multiplier"))
            label = f"Industry risk {industry.activity_code}: score {industry.risk_score}"
        else:
            points = config.get_risk_weight(f"industry_level_{industry.inherent_risk_level.value.lower()}")
            label = f"Industry risk {industry.activity_code}: {industry.inherent_risk_level.value}"
        if points:
            factors.append(RiskFactor(factor=label, points=points, category="industry", source="IndustryRisk"))

        lists = [
            name for name, flagged in (
                ("SEPBLAC", industry.sepblac_high_risk),
                ("EU", industry.eu_high_risk),
                ("FATF", industry.fatf_high_risk),
            ) if flagged
        ]
        if lists:
            factors.append(RiskFactor(
                factor=f"Industry on high-risk list(s): {', '.join(lists)}",
                points=config.get_risk_weight("industry_high_risk_list"),
                category="industry",
                source="IndustryRisk",
            ))

    high_risk = [a.activity_code for a in inputs.economic_activities if a.high_risk_activity]
    if high_risk:
        factors.append(RiskFactor(
            factor=f"High-risk economic activity: {', '.join(high_risk)}",
            points=config.get_risk_weight("economic_activity_high_risk"),
            category="economic_activity",
            source="EconomicActivity",
        ))


def _ownership_factors(inputs: RiskInputs, config: Config, factors: list):
    ownership = inputs.ownership
    if ownership.complex_structure:
        factors.append(RiskFactor(
            factor="Complex ownership structure (corporate owner above threshold)",
            points=config.get_risk_weight("ownership_complex_structure"),
            category="ownership",
            source="CorporateStructure",
        ))
    if ownership.cycle_detected:
        factors.append(RiskFactor(
            factor="Circular ownership detected: manual review required",
            points=config.get_risk_weight("ownership_cycle"),
            category="ownership",
            source="CorporateStructure",
        ))
    if ownership.max_depth_exceeded:
        factors.append(RiskFactor(
            factor="Ownership chain exceeds maximum depth: manual review required",
            points=config.get_risk_weight("ownership_depth_exceeded"),
            category="ownership",
            source="CorporateStructure",
        ))
    if ownership.control_without_majority:
        factors.append(RiskFactor(
            factor=f"Control without majority ownership: {ownership.control_without_majority}",
            points=config.get_risk_weight("ownership_control_without_majority"),
            category="ownership",
            source="CorporateStructure",
        ))


def _considered_matches(inputs: RiskInputs, as_of: datetime) -> list[tuple[AmlMatch, AmlScreening]]:
    """Non-false-positive matches from screenings run on or before as_of."""
    screenings = {s.aml_screening_id: s for s in inputs.screenings}
    considered = []
    for match in inputs.matches:
        screening = screenings.get(match.aml_screening_id)
        if screening is None or screening.screening_date > as_of:
            continue
        if match.is_unresolved:
            considered.append((match, screening))
    return considered


def _aml_factors(considered, as_of: datetime, config: Config, factors: list):
    if not considered:
        return

    def weighted(pair):
        match, screening = pair
        return (match.match_score
                * recency_factor(screening.screening_date, as_of, config.aml_recency_days)
                * config.get_risk_weight("aml_match_multiplier"))

    strongest = max(considered, key=weighted)
    match, _ = strongest
    factors.append(RiskFactor(
        factor=(
            f"AML match '{match.matched_name}' ({match.list_type.value}, "
            f"score {match.match_score}, {match.resolution_status.value})"
        ),
        points=_points(weighted(strongest)),
        category="aml",
        source="AmlMatch",
    ))

    extra = min(len(considered) - 1, config.get_risk_weight("aml_additional_match_cap"))
    if extra > 0:
        factors.append(RiskFactor(
            factor=f"{len(considered) - 1} additional unresolved AML match(es)",
            points=extra * config.get_risk_weight("aml_additional_match"),
            category="aml",
            source="AmlMatch",
        ))

    if any(m.resolution_status == ResolutionStatus.CONFIRMED_HIT for m, _ in considered):
        factors.append(RiskFactor(
            factor="Confirmed AML hit",
            points=config.get_risk_weight("aml_confirmed_hit"),
            category="aml",
            source="AmlMatch",
        ))


def _sanctions_factors(inputs: RiskInputs, config: Config, factors: list) -> list[str]:
    questionnaire = inputs.sanctions_questionnaire
    answers = questionnaire.true_answers() if questionnaire else []
    if answers:
        factors.append(RiskFactor(
            factor=f"Sanctions questionnaire answered yes: {', '.join(answers)}",
            points=config.get_risk_weight("sanctions_answer"),
            category="sanctions",
            source="SanctionsQuestionnaire",
        ))
    return answers


def _expected_activity_factors(inputs: RiskInputs, config: Config, factors: list):
    activities = inputs.expected_activities
    checks = [
        ("cash_intensive", "Cash-intensive expected activity", "expected_cash_intensive"),
        ("tax_haven_transactions", "Expected tax-haven transactions", "expected_tax_haven"),
        ("is_high_value", "High-value expected activity", "expected_high_value"),
    ]
    for attr, label, weight in checks:
        if any(getattr(a, attr) for a in activities):
            factors.append(RiskFactor(
                factor=label,
                points=config.get_risk_weight(weight),
                category="expected_activity",
                source="ExpectedActivity",
            ))


def _geography_factors(inputs: RiskInputs, config: Config, factors: list):
    countries = {loc.country_iso_code.upper() for loc in inputs.business_locations}
    for activity in inputs.expected_activities:
        countries.update(c.upper() for c in activity.anticipated_countries)

    # The strongest list across all countries counts once
    classifications = {classify_country(c): c for c in sorted(countries)}
    for list_name in ("fatf_black_list", "fatf_grey_list", "offshore"):
        if list_name in classifications:
            factors.append(RiskFactor(
                factor=f"Exposure to {classifications[list_name]} ({list_name.replace('_', ' ')})",
                points=config.get_risk_weight(f"geography_{list_name}"),
                category="geography",
                source="BusinessLocation/ExpectedActivity",
            ))
            break


def _transparency_factors(inputs: RiskInputs, as_of: datetime, config: Config, factors: list):
    unverified_sources = [s for s in inputs.sources_of_funds if not s.is_verified]
    if unverified_sources:
        # The riskiest unverified source type adds to the base weight
        type_points = max(SOURCE_OF_FUNDS_RISK.get(s.source_type.value, 0) for s in unverified_sources)
        factors.append(RiskFactor(
            factor=(
                f"{len(unverified_sources)} unverified source(s) of funds: "
                f"{', '.join(sorted({s.source_type.value for s in unverified_sources}))}"
            ),
            points=config.get_risk_weight("source_of_funds_unverified") + type_points,
            category="transparency",
            source="SourceOfFunds",
        ))
    unverified_ubos = [u for u in inputs.ubos if u.is_active(as_of) and not u.is_verified]
    if unverified_ubos:
        factors.append(RiskFactor(
            factor=f"{len(unverified_ubos)} unverified beneficial owner(s)",
            points=config.get_risk_weight("ubo_unverified"),
            category="transparency",
            source="Ubo",
        ))


def _mitigation_factors(inputs: RiskInputs, config: Config, factors: list):
    profile = inputs.business_profile
    if profile is not None and (profile.is_regulated or profile.is_public_entity):
        factors.append(RiskFactor(
            factor="Regulated or public entity",
            points=config.get_risk_weight("regulated_entity"),
            category="mitigation",
            source="BusinessProfile",
        ))


# =============================================================================
# EDD decision
# =============================================================================

def determine_edd_reasons(
    inputs: RiskInputs,
    considered,
    sanctions_answers: list[str],
    score: int,
    config: Config,
) -> list[EddReason]:
    """EDD reasons in priority order; empty when EDD is not required."""
    reasons = []
    strong = [m for m, _ in considered if m.match_score >= config.edd_match_score_threshold]
    confirmed = [m for m, _ in considered if m.resolution_status == ResolutionStatus.CONFIRMED_HIT]
    flagged = strong + confirmed

    if sanctions_answers or any(m.list_type == ListType.SANCTIONS for m in flagged):
        reasons.append(EddReason.SANCTIONS)
    if any(m.list_type == ListType.PEP for m in flagged):
        reasons.append(EddReason.PEP)
    if inputs.ownership.manual_review_required:
        reasons.append(EddReason.COMPLEX_STRUCTURE)
    industry_requires = inputs.industry_risk is not None and inputs.industry_risk.requires_edd
    # Strong matches and anomalies are floored to the HIGH band before this runs
    if score >= config.risk_threshold_high or industry_requires:
        reasons.append(EddReason.HIGH_RISK)
    return reasons


def _dominant_category(factors: list[RiskFactor]) -> RiskCategory:
    totals: dict[RiskCategory, int] = {}
    for f in factors:
        if f.points <= 0:
            continue
        category = _CATEGORY_MAP.get(f.category, RiskCategory.CUSTOMER)
        totals[category] = totals.get(category, 0) + f.points
    if not totals:
        return RiskCategory.CUSTOMER
    return max(totals, key=totals.get)


# =============================================================================
# Entry point
# =============================================================================

def compute_risk(
    inputs: RiskInputs,
    as_of: datetime,
    config: Optional[Config] = None,
    assessment_type: Optional[AssessmentType] = None,
    assessment_agent: Optional[str] = None,
) -> RiskAssessment:
    """
    Compute a party's composite risk.

    Args:
        inputs: Snapshot of the party's risk inputs
        as_of: Reference instant (timezone-aware)
        config: Thresholds and intervals (defaults to the global config)
        assessment_type: Defaults to INITIAL for a first assessment, else EVENT_DRIVEN
        assessment_agent: Who or what requested the assessment

    Returns:
        Unsaved RiskAssessment with score, level, factors and EDD decision
    """
    config = config or get_config()
    factors: list[RiskFactor] = []

    _industry_factors(inputs, config, factors)
    _ownership_factors(inputs, config, factors)
    considered = _considered_matches(inputs, as_of)
    _aml_factors(considered, as_of, config, factors)
    sanctions_answers = _sanctions_factors(inputs, config, factors)
    _expected_activity_factors(inputs, config, factors)
    _geography_factors(inputs, config, factors)
    _transparency_factors(inputs, as_of, config, factors)
    _mitigation_factors(inputs, config, factors)

    score = max(0, min(100, sum(f.points for f in factors)))

    strong_match = any(m.match_score >= config.edd_match_score_threshold for m, _ in considered)
    if (strong_match or inputs.ownership.manual_review_required) and score < config.risk_threshold_high:
        floor_points = config.risk_threshold_high - score
        factors.append(RiskFactor(
            factor="Conservative floor: unresolved high-score match or ownership anomaly",
            points=floor_points,
            category="escalation",
            source="RiskAggregation",
        ))
        score = config.risk_threshold_high

    level = score_to_risk_level(score, config)
    reasons = determine_edd_reasons(inputs, considered, sanctions_answers, score, config)

    if assessment_type is None:
        assessment_type = AssessmentType.EVENT_DRIVEN if inputs.has_prior_assessment else AssessmentType.INITIAL

    notes = (
        f"{len(factors)} factor(s); EDD {'required: ' + ', '.join(r.value for r in reasons) if reasons else 'not required'}"
    )

    return RiskAssessment(
        party_id=inputs.party_id,
        assessment_type=assessment_type,
        assessment_date=as_of,
        risk_category=_dominant_category(factors),
        risk_score=score,
        risk_level=level,
        risk_factors=factors,
        assessment_notes=notes,
        assessment_agent=assessment_agent,
        next_assessment_date=as_of + timedelta(days=get_review_interval_days(level.value)),
        enhanced_due_diligence=bool(reasons),
        edd_reasons=reasons,
        cycle_detected=inputs.ownership.cycle_detected,
        max_depth_exceeded=inputs.ownership.max_depth_exceeded,
        manual_review_required=inputs.ownership.manual_review_required,
    )
