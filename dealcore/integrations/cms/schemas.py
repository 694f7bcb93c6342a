"""
CMS provider registry records

Registry rows arrive as flat string dicts (Socrata-style API). Numeric fields
are frequently blank or "N/A"; parsing never raises, malformed values become
None.
"""
import math
import re
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def parse_numeric(value: Any) -> Optional[float]:
    """Parse a registry numeric field; blank/N/A/malformed -> None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        parsed = float(value)
    else:
        text = str(value).strip().replace(",", "").replace("$", "")
        if not text or text.upper() == "N/A":
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
    # NaN and infinities are malformed, not numbers
    if not math.isfinite(parsed):
        return None
    return parsed


def parse_int(value: Any) -> Optional[int]:
    """Parse a registry integer field; blank/N/A/malformed -> None"""
    parsed = parse_numeric(value)
    if parsed is None:
        return None
    return int(parsed)


def normalize_ccn(ccn: Optional[str]) -> str:
    """Digits only, left-padded to six. Empty string when no digits."""
    digits = re.sub(r"\D", "", ccn or "")
    if not digits:
        return ""
    return digits.zfill(6)


class CanonicalProvider(BaseModel):
    """
    Authoritative registry snapshot for one certified provider.

    Immutable; refreshed only when the cached registry entry expires.
    """
    model_config = ConfigDict(frozen=True)

    ccn: str = Field(..., description="CMS Certification Number")
    provider_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    phone_number: str = ""
    ownership_type: str = ""

    number_of_beds: Optional[int] = None
    average_residents_per_day: Optional[float] = None

    overall_rating: Optional[int] = None
    health_inspection_rating: Optional[int] = None
    staffing_rating: Optional[int] = None
    quality_measure_rating: Optional[int] = None

    reported_rn_hppd: Optional[float] = None
    reported_lpn_hppd: Optional[float] = None
    reported_cna_hppd: Optional[float] = None
    total_nursing_hppd: Optional[float] = None

    total_penalties: Optional[int] = None
    fines_total: Optional[float] = None

    is_sff: bool = False
    is_sff_candidate: bool = False
    abuse_icon: bool = False
    data_date: Optional[str] = None

    @classmethod
    def from_registry_row(cls, row: dict[str, Any]) -> "CanonicalProvider":
        """Build from a raw provider-information row"""
        special_focus = (row.get("special_focus_status") or "").lower()
        return cls(
            ccn=normalize_ccn(row.get("federal_provider_number")),
            provider_name=row.get("provider_name") or "",
            address=row.get("provider_address") or "",
            city=row.get("provider_city") or "",
            state=row.get("provider_state") or "",
            zip_code=row.get("provider_zip_code") or "",
            phone_number=row.get("provider_phone_number") or "",
            ownership_type=row.get("ownership_type") or "",
            number_of_beds=parse_int(row.get("number_of_certified_beds")),
            average_residents_per_day=parse_numeric(row.get("average_number_of_residents_per_day")),
            overall_rating=parse_int(row.get("overall_rating")),
            health_inspection_rating=parse_int(row.get("health_inspection_rating")),
            staffing_rating=parse_int(row.get("staffing_rating")),
            quality_measure_rating=parse_int(row.get("quality_measure_rating")),
            reported_rn_hppd=parse_numeric(row.get("reported_rn_staffing_hours_per_resident_per_day")),
            reported_lpn_hppd=parse_numeric(row.get("reported_lpn_staffing_hours_per_resident_per_day")),
            reported_cna_hppd=parse_numeric(row.get("reported_nurse_aide_staffing_hours_per_resident_per_day")),
            total_nursing_hppd=parse_numeric(row.get("reported_total_nurse_staffing_hours_per_resident_per_day")),
            total_penalties=parse_int(row.get("total_number_of_penalties")),
            fines_total=parse_numeric(row.get("total_amount_of_fines_in_dollars")),
            is_sff="sff" in special_focus and "candidate" not in special_focus,
            is_sff_candidate="candidate" in special_focus,
            abuse_icon=(row.get("abuse_icon") or "").lower() in ("y", "yes", "true"),
            data_date=row.get("processing_date") or None,
        )


class ProviderPenalty(BaseModel):
    """Civil money penalty or payment denial"""
    model_config = ConfigDict(frozen=True)

    penalty_type: str = ""
    penalty_date: Optional[str] = None
    fine_amount: Optional[float] = None

    @classmethod
    def from_registry_row(cls, row: dict[str, Any]) -> "ProviderPenalty":
        return cls(
            penalty_type=row.get("penalty_type") or "",
            penalty_date=row.get("penalty_date") or None,
            fine_amount=parse_numeric(row.get("fine_amount")),
        )


class ProviderDeficiency(BaseModel):
    """Health inspection deficiency citation"""
    model_config = ConfigDict(frozen=True)

    survey_date: Optional[str] = None
    tag: str = ""
    description: str = ""
    scope_severity: str = ""
    corrected: bool = False
    correction_date: Optional[str] = None

    @classmethod
    def from_registry_row(cls, row: dict[str, Any]) -> "ProviderDeficiency":
        return cls(
            survey_date=row.get("survey_date") or None,
            tag=f"{row.get('deficiency_prefix') or ''}{row.get('deficiency_tag_number') or ''}",
            description=row.get("deficiency_description") or "",
            scope_severity=row.get("scope_severity_code") or "",
            corrected=(row.get("deficiency_corrected") or "").upper().startswith("Y"),
            correction_date=row.get("correction_date") or None,
        )


class ProviderProfile(BaseModel):
    """Provider with penalty and deficiency history"""
    provider: CanonicalProvider
    penalties: list[ProviderPenalty] = Field(default_factory=list)
    deficiencies: list[ProviderDeficiency] = Field(default_factory=list)

    @property
    def penalty_fines_total(self) -> float:
        return sum(p.fine_amount or 0.0 for p in self.penalties)
