"""
Static reference data for KYC/KYB risk aggregation.
FATF lists, EU high-risk third countries and offshore jurisdictions keyed
by ISO 3166-1 alpha-2 code, plus source-of-funds weights.
"""

# FATF Grey List (Jurisdictions Under Increased Monitoring), as of 2024-2025
FATF_GREY_LIST = {
    "DZ", "AO", "BG", "BF", "CM", "CI", "HR", "CD", "HT", "KE",
    "LB", "ML", "MC", "MZ", "NA", "NG", "PH", "SN", "ZA", "SS",
    "SY", "TZ", "VE", "VN", "YE",
}

# FATF Black List (High-Risk Jurisdictions Subject to a Call for Action)
FATF_BLACK_LIST = {"IR", "MM", "KP"}

# EU list of high-risk third countries (AMLD Art. 9 delegated regulation)
EU_HIGH_RISK_THIRD_COUNTRIES = {
    "AF", "BF", "CM", "CD", "HT", "IR", "KP", "ML", "MZ", "MM",
    "NG", "PH", "SN", "SS", "SY", "TZ", "TT", "UG", "VU", "YE",
}

# Offshore / tax haven jurisdictions
OFFSHORE_JURISDICTIONS = {
    "VG", "KY", "BM", "JE", "GG", "IM", "PA", "BS", "SC", "MU",
    "LI", "AD", "SM", "VU", "WS", "MH", "BZ", "KN", "TC", "GI",
    "CW", "AW", "SX", "GD",
}

# Source of funds categories and their risk weights
SOURCE_OF_FUNDS_RISK = {
    "SALARY": 0,
    "INVESTMENT": 0,
    "BUSINESS_INCOME": 5,
    "INHERITANCE": 5,
}


def classify_country(iso_code: str) -> str | None:
    """Return the strongest list a country appears on, or None."""
    code = (iso_code or "").strip().upper()
    if code in FATF_BLACK_LIST:
        return "fatf_black_list"
    if code in FATF_GREY_LIST or code in EU_HIGH_RISK_THIRD_COUNTRIES:
        return "fatf_grey_list"
    if code in OFFSHORE_JURISDICTIONS:
        return "offshore"
    return None
