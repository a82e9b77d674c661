"""
Pydantic models for the KYC/KYB Compliance Lifecycle Engine.

Defines the persisted entities (camelCase field names are the stable
contract, exposed as aliases) and the engine's result types:
1. Enums for every lifecycle and reference value
2. Party-scoped entities (verifications, structures, screenings, cases...)
3. Engine outputs (ownership resolution, risk factors, transition results)
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, ClassVar, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from errors import CycleDetected, MaxDepthExceeded


Percentage = Annotated[Decimal, Field(ge=0, le=100)]
Score = Annotated[Decimal, Field(ge=0, le=100)]


# =============================================================================
# Lifecycle Enums
# =============================================================================

class VerificationStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class ResolutionStatus(str, Enum):
    PENDING = "PENDING"
    FALSE_POSITIVE = "FALSE_POSITIVE"
    CONFIRMED_HIT = "CONFIRMED_HIT"


class CaseStatus(str, Enum):
    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    ESCALATED = "ESCALATED"
    CLOSED = "CLOSED"


class ActionStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class EddStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    WAIVED = "WAIVED"


class ReportStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    SUPPLEMENTED = "SUPPLEMENTED"


# =============================================================================
# Classification Enums
# =============================================================================

class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class RiskCategory(str, Enum):
    CUSTOMER = "CUSTOMER"
    GEOGRAPHY = "GEOGRAPHY"
    PRODUCT = "PRODUCT"
    CHANNEL = "CHANNEL"


class AssessmentType(str, Enum):
    INITIAL = "INITIAL"
    PERIODIC = "PERIODIC"
    EVENT_DRIVEN = "EVENT_DRIVEN"


class ScreeningType(str, Enum):
    INITIAL = "INITIAL"
    PERIODIC = "PERIODIC"
    EVENT_DRIVEN = "EVENT_DRIVEN"


class ScreeningResult(str, Enum):
    CLEAR = "CLEAR"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    POSITIVE_HIT = "POSITIVE_HIT"


class ListType(str, Enum):
    SANCTIONS = "SANCTIONS"
    PEP = "PEP"
    ADVERSE_MEDIA = "ADVERSE_MEDIA"
    WATCHLIST = "WATCHLIST"


class RelationshipType(str, Enum):
    SUBSIDIARY = "SUBSIDIARY"
    BRANCH = "BRANCH"
    AFFILIATE = "AFFILIATE"
    JOINT_VENTURE = "JOINT_VENTURE"


class OwnershipType(str, Enum):
    DIRECT = "DIRECT"
    INDIRECT = "INDIRECT"
    CONTROL = "CONTROL"


class CaseType(str, Enum):
    KYC_REVIEW = "KYC_REVIEW"
    AML_ALERT = "AML_ALERT"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"


class CasePriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ActionType(str, Enum):
    DOCUMENT_REQUEST = "DOCUMENT_REQUEST"
    CUSTOMER_CONTACT = "CUSTOMER_CONTACT"
    ESCALATION = "ESCALATION"


class EddReason(str, Enum):
    HIGH_RISK = "HIGH_RISK"
    PEP = "PEP"
    SANCTIONS = "SANCTIONS"
    COMPLEX_STRUCTURE = "COMPLEX_STRUCTURE"


class ReportType(str, Enum):
    COMUNICACION_SEPBLAC = "COMUNICACION_SEPBLAC"
    COMUNICACION_COMISION = "COMUNICACION_COMISION"
    RESPUESTA_REQUERIMIENTO = "RESPUESTA_REQUERIMIENTO"


class VerificationMethod(str, Enum):
    MANUAL = "MANUAL"
    AUTOMATED = "AUTOMATED"
    HYBRID = "HYBRID"


class VerificationPurpose(str, Enum):
    IDENTITY = "IDENTITY"
    ADDRESS = "ADDRESS"
    INCOME = "INCOME"
    SOURCE_OF_FUNDS = "SOURCE_OF_FUNDS"


class DocumentType(str, Enum):
    DNI = "DNI"
    NIE = "NIE"
    PASSPORT = "PASSPORT"
    UTILITY_BILL = "UTILITY_BILL"
    BANK_STATEMENT = "BANK_STATEMENT"
    DEED_OF_INCORPORATION = "DEED_OF_INCORPORATION"
    POWER_OF_ATTORNEY = "POWER_OF_ATTORNEY"
    BOARD_RESOLUTION = "BOARD_RESOLUTION"
    BYLAW = "BYLAW"
    TAX_ID = "TAX_ID"


class CorporateDocumentType(str, Enum):
    DEED_OF_INCORPORATION = "DEED_OF_INCORPORATION"
    BYLAWS = "BYLAWS"
    POWER_OF_ATTORNEY = "POWER_OF_ATTORNEY"
    BOARD_RESOLUTION = "BOARD_RESOLUTION"
    TAX_ID = "TAX_ID"


class PowerType(str, Enum):
    GENERAL = "GENERAL"
    LIMITED = "LIMITED"
    SPECIAL = "SPECIAL"
    TRADING = "TRADING"


class SourceType(str, Enum):
    SALARY = "SALARY"
    BUSINESS_INCOME = "BUSINESS_INCOME"
    INHERITANCE = "INHERITANCE"
    INVESTMENT = "INVESTMENT"


class VerificationKind(str, Enum):
    """Which verification record an operation targets."""
    KYC = "KYC"
    KYB = "KYB"


# =============================================================================
# Entity Base
# =============================================================================

class Entity(BaseModel):
    """Persisted record with an opaque numeric key and an optimistic-lock version."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    id_field: ClassVar[str] = ""

    version: int = Field(default=0, ge=0)

    @property
    def entity_id(self) -> Optional[int]:
        return getattr(self, self.id_field)

    @classmethod
    def entity_type(cls) -> str:
        return cls.__name__


# =============================================================================
# Ownership
# =============================================================================

class CorporateStructure(Entity):
    """Directed edge: party is owned/controlled by parent_entity_id."""
    id_field: ClassVar[str] = "corporate_structure_id"

    corporate_structure_id: Optional[int] = None
    party_id: int
    parent_entity_id: int
    ownership_percentage: Percentage
    relationship_type: RelationshipType = RelationshipType.SUBSIDIARY
    control_notes: Optional[str] = None
    is_verified: bool = False
    verification_date: Optional[AwareDatetime] = None
    start_date: Optional[AwareDatetime] = None
    end_date: Optional[AwareDatetime] = None

    def is_active(self, as_of: datetime) -> bool:
        """True when [start_date, end_date] contains as_of (open bounds allowed)."""
        if self.start_date is not None and as_of < self.start_date:
            return False
        if self.end_date is not None and as_of > self.end_date:
            return False
        return True


class Ubo(Entity):
    """Natural person owning or controlling a party."""
    id_field: ClassVar[str] = "ubo_id"

    ubo_id: Optional[int] = None
    party_id: int
    natural_person_id: int
    ownership_percentage: Percentage
    ownership_type: OwnershipType = OwnershipType.DIRECT
    control_structure: Optional[str] = None
    is_verified: bool = False
    verification_method: Optional[str] = None
    verification_date: Optional[AwareDatetime] = None
    start_date: Optional[AwareDatetime] = None
    end_date: Optional[AwareDatetime] = None

    def is_active(self, as_of: datetime) -> bool:
        if self.start_date is not None and as_of < self.start_date:
            return False
        if self.end_date is not None and as_of > self.end_date:
            return False
        return True


# =============================================================================
# AML Screening
# =============================================================================

class AmlScreening(Entity):
    """A screening run. Counters and result are derived from its matches."""
    id_field: ClassVar[str] = "aml_screening_id"

    aml_screening_id: Optional[int] = None
    party_id: int
    screening_date: AwareDatetime
    screening_type: ScreeningType = ScreeningType.INITIAL
    matches_found: bool = False
    match_count: int = Field(default=0, ge=0)
    screening_provider: Optional[str] = None
    reference_id: Optional[str] = None
    screening_result: ScreeningResult = ScreeningResult.CLEAR
    next_screening_date: Optional[AwareDatetime] = None

    @model_validator(mode="after")
    def _counters_agree(self):
        if self.matches_found != (self.match_count > 0):
            raise ValueError("matchesFound must equal matchCount > 0")
        return self


class AmlMatch(Entity):
    id_field: ClassVar[str] = "aml_match_id"

    aml_match_id: Optional[int] = None
    aml_screening_id: Optional[int] = None
    list_type: ListType = ListType.WATCHLIST
    list_source: Optional[str] = None
    matched_name: str = ""
    match_score: Score
    match_details: Optional[str] = None
    resolution_status: ResolutionStatus = ResolutionStatus.PENDING
    resolution_notes: Optional[str] = None
    resolution_agent: Optional[str] = None
    resolution_date: Optional[AwareDatetime] = None

    @property
    def is_unresolved(self) -> bool:
        """Anything other than a false positive still counts against the party."""
        return self.resolution_status != ResolutionStatus.FALSE_POSITIVE


# =============================================================================
# Verification
# =============================================================================

class KycVerification(Entity):
    id_field: ClassVar[str] = "kyc_verification_id"

    kyc_verification_id: Optional[int] = None
    party_id: int
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verification_date: Optional[AwareDatetime] = None
    verification_method: Optional[VerificationMethod] = None
    verification_agent: Optional[str] = None
    rejection_reason: Optional[str] = None
    risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    risk_level: Optional[RiskLevel] = None
    enhanced_due_diligence: bool = False
    next_review_date: Optional[AwareDatetime] = None


class KybVerification(Entity):
    id_field: ClassVar[str] = "kyb_verification_id"

    kyb_verification_id: Optional[int] = None
    party_id: int
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verification_date: Optional[AwareDatetime] = None
    mercantile_registry_verified: bool = False
    deed_of_incorporation_verified: bool = False
    business_structure_verified: bool = False
    ubo_verified: bool = False
    tax_id_verified: bool = False
    operating_license_verified: bool = False
    powers_of_attorney_verified: bool = False
    verification_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    risk_level: Optional[RiskLevel] = None
    enhanced_due_diligence: bool = False
    next_review_date: Optional[AwareDatetime] = None


class VerificationDocument(Entity):
    id_field: ClassVar[str] = "verification_document_id"

    verification_document_id: Optional[int] = None
    kyc_verification_id: int
    identity_document_id: Optional[int] = None
    document_type: DocumentType
    verification_purpose: VerificationPurpose = VerificationPurpose.IDENTITY
    document_reference: Optional[str] = None
    document_system_id: Optional[str] = None
    is_verified: bool = False
    verification_notes: Optional[str] = None
    expiry_date: Optional[AwareDatetime] = None


class CorporateDocument(Entity):
    id_field: ClassVar[str] = "corporate_document_id"

    corporate_document_id: Optional[int] = None
    party_id: int
    document_type: CorporateDocumentType
    document_reference: Optional[str] = None
    commercial_registry: Optional[str] = None
    issue_date: Optional[AwareDatetime] = None
    expiry_date: Optional[AwareDatetime] = None
    is_verified: bool = False
    verification_notes: Optional[str] = None
    verification_date: Optional[AwareDatetime] = None
    verification_agent: Optional[str] = None


class PowerOfAttorney(Entity):
    """Signing authority granted to an attorney acting for a party."""
    id_field: ClassVar[str] = "power_of_attorney_id"

    power_of_attorney_id: Optional[int] = None
    party_id: int
    corporate_document_id: Optional[int] = None
    attorney_id: int
    power_type: PowerType
    power_scope: Optional[str] = None
    joint_signature_required: bool = False
    joint_signature_count: Optional[int] = Field(default=None, ge=2)
    joint_signature_notes: Optional[str] = None
    financial_limit: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    effective_date: Optional[AwareDatetime] = None
    expiry_date: Optional[AwareDatetime] = None
    is_verified: bool = False
    # Legal sufficiency review of the power (bastanteo)
    is_bastanteo_completed: bool = False
    verification_method: Optional[str] = None
    verification_date: Optional[AwareDatetime] = None
    verifying_legal_counsel: Optional[str] = None

    def is_active(self, as_of: datetime) -> bool:
        if self.effective_date is not None and as_of < self.effective_date:
            return False
        if self.expiry_date is not None and as_of >= self.expiry_date:
            return False
        return True


# =============================================================================
# Risk
# =============================================================================

class RiskFactor(BaseModel):
    """Individual risk factor contributing to overall score."""
    factor: str = Field(description="Description of the risk factor")
    points: int = Field(description="Points assigned (negative for mitigation)")
    category: str = Field(description="e.g., industry, ownership, aml, sanctions, geography")
    source: str = Field(description="Entity type the factor was derived from")


class RiskAssessment(Entity):
    """Append-only record of one risk computation; latest by date is authoritative."""
    id_field: ClassVar[str] = "risk_assessment_id"

    risk_assessment_id: Optional[int] = None
    party_id: int
    assessment_type: AssessmentType = AssessmentType.EVENT_DRIVEN
    assessment_date: AwareDatetime
    risk_category: RiskCategory = RiskCategory.CUSTOMER
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    assessment_notes: Optional[str] = None
    assessment_agent: Optional[str] = None
    next_assessment_date: Optional[AwareDatetime] = None
    enhanced_due_diligence: bool = False
    edd_reasons: list[EddReason] = Field(default_factory=list)
    cycle_detected: bool = False
    max_depth_exceeded: bool = False
    manual_review_required: bool = False


class IndustryRisk(Entity):
    """Reference data keyed by activity code; not party-specific."""
    id_field: ClassVar[str] = "industry_risk_id"

    industry_risk_id: Optional[int] = None
    activity_code: str
    industry_name: Optional[str] = None
    inherent_risk_level: RiskLevel = RiskLevel.LOW
    risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    risk_factors: Optional[str] = None
    mitigating_factors: Optional[str] = None
    sepblac_high_risk: bool = False
    eu_high_risk: bool = False
    fatf_high_risk: bool = False
    cash_intensive: bool = False
    complex_structures: bool = False
    assessment_date: Optional[AwareDatetime] = None
    assessed_by: Optional[str] = None
    next_assessment_date: Optional[AwareDatetime] = None
    requires_edd: bool = False


class EnhancedDueDiligence(Entity):
    id_field: ClassVar[str] = "edd_id"

    edd_id: Optional[int] = None
    verification_id: int
    verification_kind: VerificationKind = VerificationKind.KYC
    edd_reason: EddReason
    edd_status: EddStatus = EddStatus.PENDING
    edd_description: Optional[str] = None
    approving_authority: Optional[str] = None
    approval_date: Optional[AwareDatetime] = None
    edd_notes: Optional[str] = None
    internal_committee_approval: bool = False
    committee_approval_date: Optional[AwareDatetime] = None
    completion_date: Optional[AwareDatetime] = None
    completed_by: Optional[str] = None


# =============================================================================
# Compliance Cases
# =============================================================================

class ComplianceCase(Entity):
    id_field: ClassVar[str] = "compliance_case_id"

    compliance_case_id: Optional[int] = None
    party_id: int
    case_type: CaseType
    case_status: CaseStatus = CaseStatus.OPEN
    case_priority: CasePriority = CasePriority.MEDIUM
    case_reference: Optional[str] = None
    case_summary: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[AwareDatetime] = None
    resolution_date: Optional[AwareDatetime] = None
    resolution_notes: Optional[str] = None
    report_to_sepblac_required: bool = False


class ComplianceAction(Entity):
    id_field: ClassVar[str] = "compliance_action_id"

    compliance_action_id: Optional[int] = None
    compliance_case_id: int
    action_type: ActionType
    action_status: ActionStatus = ActionStatus.PENDING
    action_description: Optional[str] = None
    action_agent: Optional[str] = None
    due_date: Optional[AwareDatetime] = None
    completion_date: Optional[AwareDatetime] = None
    result: Optional[str] = None


class RegulatoryReporting(Entity):
    id_field: ClassVar[str] = "report_id"

    report_id: Optional[int] = None
    compliance_case_id: int
    report_type: ReportType = ReportType.COMUNICACION_SEPBLAC
    report_reference: Optional[str] = None
    regulatory_authority: Optional[str] = "SEPBLAC"
    report_status: ReportStatus = ReportStatus.DRAFT
    submission_date: Optional[AwareDatetime] = None
    submitting_agent: Optional[str] = None
    acknowledgment_date: Optional[AwareDatetime] = None
    report_content_summary: Optional[str] = None


# =============================================================================
# Descriptive Risk Inputs
# =============================================================================

class SanctionsQuestionnaire(Entity):
    id_field: ClassVar[str] = "sanctions_questionnaire_id"

    sanctions_questionnaire_id: Optional[int] = None
    party_id: int
    entity_sanctions_questionnaire: Optional[str] = None
    activity_outside_eu: bool = False
    economic_sanctions: bool = False
    resident_countries_sanctions: bool = False
    involved_sanctions: bool = False
    questionnaire_date: Optional[AwareDatetime] = None

    def true_answers(self) -> list[str]:
        """Names of the questions answered yes."""
        answers = {
            "activityOutsideEu": self.activity_outside_eu,
            "economicSanctions": self.economic_sanctions,
            "residentCountriesSanctions": self.resident_countries_sanctions,
            "involvedSanctions": self.involved_sanctions,
        }
        return [name for name, value in answers.items() if value]


class EconomicActivity(Entity):
    id_field: ClassVar[str] = "economic_activity_id"

    economic_activity_id: Optional[int] = None
    party_id: int
    activity_code: str
    is_primary: bool = False
    sector_code: Optional[str] = None
    subsector: Optional[str] = None
    high_risk_activity: bool = False
    activity_details: Optional[str] = None
    regulated_activity: bool = False


class ExpectedActivity(Entity):
    id_field: ClassVar[str] = "expected_activity_id"

    expected_activity_id: Optional[int] = None
    party_id: int
    activity_type_code: Optional[str] = None
    expected_monthly_volume: Optional[Decimal] = Field(default=None, ge=0)
    expected_annual_volume: Optional[Decimal] = Field(default=None, ge=0)
    expected_transaction_count: Optional[int] = Field(default=None, ge=0)
    currency_iso_code: Optional[str] = None
    anticipated_countries: list[str] = Field(default_factory=list)
    is_high_value: bool = False
    cash_intensive: bool = False
    tax_haven_transactions: bool = False


class SourceOfFunds(Entity):
    id_field: ClassVar[str] = "source_of_funds_id"

    source_of_funds_id: Optional[int] = None
    party_id: int
    source_type: SourceType
    source_description: Optional[str] = None
    estimated_annual_amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    is_verified: bool = False
    verification_method: Optional[str] = None
    verification_date: Optional[AwareDatetime] = None


class BusinessProfile(Entity):
    id_field: ClassVar[str] = "business_profile_id"

    business_profile_id: Optional[int] = None
    party_id: int
    legal_form_code: Optional[str] = None
    business_description: Optional[str] = None
    incorporation_year: Optional[int] = None
    employee_count: Optional[int] = Field(default=None, ge=0)
    annual_revenue: Optional[Decimal] = Field(default=None, ge=0)
    is_regulated: bool = False
    regulatory_authority: Optional[str] = None
    is_public_entity: bool = False
    registration_number: Optional[str] = None


class BusinessLocation(Entity):
    id_field: ClassVar[str] = "business_location_id"

    business_location_id: Optional[int] = None
    party_id: int
    location_type_code: Optional[str] = None
    is_primary: bool = False
    city: Optional[str] = None
    country_iso_code: str
    is_verified: bool = False


# Every persisted entity type, by name
ENTITY_TYPES: dict[str, type[Entity]] = {
    model.__name__: model
    for model in (
        CorporateStructure, Ubo, AmlScreening, AmlMatch,
        KycVerification, KybVerification, VerificationDocument, CorporateDocument,
        PowerOfAttorney,
        RiskAssessment, IndustryRisk, EnhancedDueDiligence,
        ComplianceCase, ComplianceAction, RegulatoryReporting,
        SanctionsQuestionnaire, EconomicActivity, ExpectedActivity,
        SourceOfFunds, BusinessProfile, BusinessLocation,
    )
}


# =============================================================================
# Engine Outputs
# =============================================================================

class AncestorOwnership(BaseModel):
    """Effective ownership of one ancestor over the resolved party."""
    entity_id: int
    effective_percentage: Decimal = Field(ge=0, le=100)
    path_count: int = 0
    min_depth: int = 0
    is_ultimate_parent: bool = False


class BeneficialOwnership(BaseModel):
    """Effective ownership of one natural person over the resolved party."""
    natural_person_id: int
    effective_percentage: Decimal = Field(ge=0, le=100)
    via_entities: list[int] = Field(default_factory=list)
    has_control: bool = False
    reportable: bool = False


class OwnershipAnomalyRecord(BaseModel):
    """A traversal path excluded from the result."""
    kind: str = Field(description="'cycle' or 'max_depth'")
    path: list[int] = Field(default_factory=list)
    max_depth: Optional[int] = None


class OwnershipResult(BaseModel):
    """Resolution of a party's ownership graph as of a reference date."""
    party_id: int
    as_of: datetime
    ancestors: list[AncestorOwnership] = Field(default_factory=list)
    ultimate_parents: list[int] = Field(default_factory=list)
    beneficial_owners: list[BeneficialOwnership] = Field(default_factory=list)
    cycle_detected: bool = False
    max_depth_exceeded: bool = False
    complex_structure: bool = False
    control_without_majority: list[int] = Field(default_factory=list)
    anomalies: list[OwnershipAnomalyRecord] = Field(default_factory=list)

    @property
    def manual_review_required(self) -> bool:
        return self.cycle_detected or self.max_depth_exceeded

    def effective_percentage(self, entity_id: int) -> Decimal:
        """Effective ownership of an ancestor (0 when unreachable)."""
        for ancestor in self.ancestors:
            if ancestor.entity_id == entity_id:
                return ancestor.effective_percentage
        return Decimal("0")

    def raise_for_anomalies(self):
        """Raise the first recorded anomaly, for callers that cannot accept a flagged result."""
        for anomaly in self.anomalies:
            if anomaly.kind == "cycle":
                raise CycleDetected(
                    f"Ownership cycle detected for party {self.party_id}",
                    path=anomaly.path,
                )
            if anomaly.kind == "max_depth":
                raise MaxDepthExceeded(
                    f"Ownership depth limit exceeded for party {self.party_id}",
                    max_depth=anomaly.max_depth or 0,
                    path=anomaly.path,
                )


class TransitionContext(BaseModel):
    """Caller-supplied context for a state transition."""
    agent: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    verification_method: Optional[VerificationMethod] = None


class TransitionResult(BaseModel):
    """Outcome of a successful lifecycle operation."""
    entity_type: str
    entity_id: int
    from_state: Optional[str] = None
    to_state: str
    changed: bool = True
    triggered: list[str] = Field(default_factory=list, description="Follow-on effects, e.g. 'case_opened:7'")
