"""
Configuration management for the KYC/KYB Compliance Lifecycle Engine.

Loads configuration from environment variables with sensible defaults.
Scoring weights, risk bands and SLA durations are tunable per jurisdiction,
never hard-coded in the engine.
"""

import os
import logging
from decimal import Decimal
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv

from errors import ValidationError


def _load_dotenv():
    """Load the .env file next to this module, if present."""
    env_path = Path(__file__).parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)


# Load .env file on module import
_load_dotenv()


# =============================================================================
# Risk Factor Weights
# =============================================================================

# Points contributed by each risk factor. Multipliers are applied to 0-100
# source scores (industry risk score, AML match score).
RISK_WEIGHTS = {
    # Industry baseline
    "industry_score_multiplier": Decimal("0.3"),
    "industry_level_low": 0,
    "industry_level_medium": 8,
    "industry_level_high": 15,
    "industry_level_extreme": 25,
    "industry_high_risk_list": 10,
    "economic_activity_high_risk": 10,
    # Ownership graph
    "ownership_complex_structure": 10,
    "ownership_cycle": 25,
    "ownership_depth_exceeded": 25,
    "ownership_control_without_majority": 5,
    # AML screening
    "aml_match_multiplier": Decimal("0.6"),
    "aml_additional_match": 5,
    "aml_additional_match_cap": 2,
    "aml_confirmed_hit": 20,
    # Sanctions questionnaire
    "sanctions_answer": 25,
    # Expected activity
    "expected_cash_intensive": 10,
    "expected_tax_haven": 15,
    "expected_high_value": 5,
    # Geography
    "geography_fatf_black_list": 20,
    "geography_fatf_grey_list": 10,
    "geography_offshore": 8,
    # Transparency
    "source_of_funds_unverified": 5,
    "ubo_unverified": 5,
    # Mitigation
    "regulated_entity": -5,
}


def get_risk_weight(name: str):
    """Get the weight for a risk factor from the global config (0 when unknown)."""
    return get_config().get_risk_weight(name)


# =============================================================================
# Review Intervals
# =============================================================================

# Days until the next risk assessment / verification review, by risk level
REVIEW_INTERVAL_DAYS = {
    "LOW": 365,
    "MEDIUM": 180,
    "HIGH": 90,
    "EXTREME": 30,
}


def get_review_interval_days(risk_level: str) -> int:
    """Get the review interval for a risk level (defaults to the strictest)."""
    return REVIEW_INTERVAL_DAYS.get(risk_level, REVIEW_INTERVAL_DAYS["EXTREME"])


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_decimal(name: str, default: str) -> Decimal:
    return Decimal(os.environ.get(name, default))


# =============================================================================
# Application Configuration
# =============================================================================

@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # Jurisdiction the thresholds below were tuned for
    jurisdiction: str = field(default_factory=lambda: os.environ.get("JURISDICTION", "ES"))

    # Logging Configuration
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_format: str = field(
        default_factory=lambda: os.environ.get(
            "LOG_FORMAT",
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    )

    # Optimistic concurrency retry limit
    max_retries: int = field(default_factory=lambda: _env_int("MAX_RETRIES", 5))

    # Ownership graph
    max_ownership_depth: int = field(default_factory=lambda: _env_int("MAX_OWNERSHIP_DEPTH", 10))
    complex_structure_threshold: Decimal = field(
        default_factory=lambda: _env_decimal("COMPLEX_STRUCTURE_THRESHOLD", "25")
    )
    ubo_threshold: Decimal = field(default_factory=lambda: _env_decimal("UBO_THRESHOLD", "25"))

    # AML
    edd_match_score_threshold: Decimal = field(
        default_factory=lambda: _env_decimal("EDD_MATCH_SCORE_THRESHOLD", "80")
    )
    aml_recency_days: int = field(default_factory=lambda: _env_int("AML_RECENCY_DAYS", 90))

    # Risk banding: score < medium is LOW, < high is MEDIUM, < extreme is HIGH
    risk_threshold_medium: int = field(default_factory=lambda: _env_int("RISK_THRESHOLD_MEDIUM", 25))
    risk_threshold_high: int = field(default_factory=lambda: _env_int("RISK_THRESHOLD_HIGH", 50))
    risk_threshold_extreme: int = field(default_factory=lambda: _env_int("RISK_THRESHOLD_EXTREME", 75))

    # Case SLA in days, by priority
    case_sla_days: dict = field(default_factory=lambda: {
        "CRITICAL": _env_int("CASE_SLA_CRITICAL_DAYS", 1),
        "HIGH": _env_int("CASE_SLA_HIGH_DAYS", 3),
        "MEDIUM": _env_int("CASE_SLA_MEDIUM_DAYS", 7),
        "LOW": _env_int("CASE_SLA_LOW_DAYS", 14),
    })

    # Verification document requirements
    required_kyc_purposes: list = field(default_factory=lambda: ["IDENTITY", "ADDRESS"])
    required_kyb_checks: list = field(default_factory=lambda: [
        "mercantile_registry_verified",
        "deed_of_incorporation_verified",
        "ubo_verified",
        "tax_id_verified",
        "powers_of_attorney_verified",
    ])

    # Risk factor weights, a per-instance copy of RISK_WEIGHTS
    risk_weights: dict = field(default_factory=lambda: dict(RISK_WEIGHTS))

    def __post_init__(self):
        """Validate configuration after initialization."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            self.log_level = "INFO"
        self.log_level = self.log_level.upper()

        if not (0 < self.risk_threshold_medium < self.risk_threshold_high
                < self.risk_threshold_extreme <= 100):
            raise ValidationError(
                "Risk thresholds must be ascending within 1-100",
                field="risk_thresholds",
                details={
                    "medium": self.risk_threshold_medium,
                    "high": self.risk_threshold_high,
                    "extreme": self.risk_threshold_extreme,
                },
            )
        if self.max_ownership_depth < 1:
            raise ValidationError(
                "Maximum ownership depth must be at least 1",
                field="max_ownership_depth",
            )

    def get_log_level(self) -> int:
        """Get the logging level as an integer."""
        return getattr(logging, self.log_level, logging.INFO)

    def get_sla_days(self, priority: str) -> int:
        """SLA for a case priority; unknown priorities get the strictest SLA."""
        return self.case_sla_days.get(priority, min(self.case_sla_days.values()))

    def get_risk_weight(self, name: str):
        """Weight for a risk factor (0 when unknown)."""
        return self.risk_weights.get(name, 0)


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config):
    """Set the global configuration instance."""
    global _config
    _config = config
