"""
Data schemas for chart-of-accounts classification
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MappingMethod(str, Enum):
    """How a line item was assigned to its COA account"""
    EXACT = "exact"      # Static rule, confidence >= exact cutoff
    FUZZY = "fuzzy"      # Static rule below the exact cutoff, needs review
    LEARNED = "learned"  # Learned from an earlier human confirmation
    MANUAL = "manual"    # Human confirmed


class LearnedScope(str, Enum):
    """Which learned-mapping tier produced a suggestion"""
    DEAL = "deal"
    GLOBAL = "global"


class MonthlyValue(BaseModel):
    month: str = Field(..., description="Period label, e.g. \"Jan '24\"")
    value: float
    is_estimate: bool = False


class ExtractedLineItem(BaseModel):
    """
    One financial line item from document extraction.

    Extraction confidence is supplied upstream and only ever combined,
    never re-derived.
    """
    label: str = Field(..., min_length=1)
    raw_label: Optional[str] = Field(None, description="Label exactly as it appeared in the document")
    values: list[MonthlyValue] = Field(default_factory=list)
    category: Optional[str] = Field(None, description="Category hint, e.g. 'nursing'")
    confidence: float = Field(1.0, ge=0.0, le=1.0, description="Extraction confidence")

    @property
    def source_label(self) -> str:
        return self.raw_label or self.label

    class Config:
        json_schema_extra = {
            "example": {
                "label": "Medicaid Room & Board Revenue",
                "raw_label": "Medicaid Room & Board Revenue",
                "values": [{"month": "Jan '24", "value": 412000.0}],
                "category": "revenue",
                "confidence": 0.92,
            }
        }


class ExtractedFinancialData(BaseModel):
    """A document's worth of extracted line items"""
    source: str = Field(..., description="Document name or id")
    extracted_at: Optional[datetime] = None
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    line_items: list[ExtractedLineItem] = Field(default_factory=list)
    facility_id: Optional[str] = None
    document_id: Optional[str] = None
    facility_name: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    report_type: Optional[str] = None


class TaxonomyMatch(BaseModel):
    """Static rule match for one label"""
    coa_code: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str


class COAGuess(BaseModel):
    """Ranked guess offered for a line item that could not be mapped"""
    coa_code: str
    coa_name: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str


class MappingResult(BaseModel):
    """Final line item -> COA account assignment"""
    coa_code: str
    coa_name: str
    source_label: str
    monthly_values: dict[str, float] = Field(default_factory=dict)
    confidence: float = Field(..., ge=0.0, le=1.0, description="Method confidence x extraction confidence")
    mapping_method: MappingMethod
    needs_review: bool = False
    reason: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "coa_code": "4110",
                "coa_name": "Medicaid Room & Board",
                "source_label": "MCAID RM&B",
                "monthly_values": {"Jan '24": 412000.0},
                "confidence": 0.874,
                "mapping_method": "learned",
                "needs_review": False,
                "reason": "Exact match from this deal",
            }
        }


class UnmappedLineItem(BaseModel):
    """Line item left for human disposition, with ranked guesses"""
    source_label: str
    label: str
    category: Optional[str] = None
    monthly_values: dict[str, float] = Field(default_factory=dict)
    confidence: float = Field(1.0, ge=0.0, le=1.0, description="Extraction confidence")
    guesses: list[COAGuess] = Field(default_factory=list)


class COAMappingBatch(BaseModel):
    """Classification of one ExtractedFinancialData"""
    source: str
    deal_id: Optional[str] = None
    mappings: list[MappingResult] = Field(default_factory=list)
    unmapped: list[UnmappedLineItem] = Field(default_factory=list)

    @property
    def needs_review_count(self) -> int:
        return sum(1 for m in self.mappings if m.needs_review) + len(self.unmapped)


class MappingConfirmation(BaseModel):
    """
    Human-confirmed (label -> COA account) tuple from the review surface.

    Without a deal id only the global tier learns.
    """
    source_label: str = Field(..., min_length=1)
    coa_code: str = Field(..., min_length=1)
    coa_name: str = Field(..., min_length=1)
    deal_id: Optional[str] = None
    facility_id: Optional[str] = None
    document_id: Optional[str] = None
    reviewed_by: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "source_label": "MCAID RM&B",
                "coa_code": "4110",
                "coa_name": "Medicaid Room & Board",
                "deal_id": "deal-001",
                "reviewed_by": "analyst@example.com",
            }
        }


class LearnedSuggestion(BaseModel):
    """Learned-mapping hit for a label"""
    coa_code: str
    coa_name: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    scope: LearnedScope
    is_exact: bool = Field(..., description="Normalized label equal to the query, not a containment hit")
    matched_label: str
    usage_count: int = 1
    reason: str = ""


class GlobalConflictOutcome(str, Enum):
    """What a confirmation did to the global tier"""
    CREATED = "created"
    REINFORCED = "reinforced"
    DISAGREED = "disagreed"      # Kept existing mapping, disagreement recorded
    CHALLENGED = "challenged"    # Challenger counted, not yet over threshold
    OVERRIDDEN = "overridden"    # Challenger replaced the existing mapping


class LearnOutcome(BaseModel):
    normalized_label: str
    deal_recorded: bool
    global_outcome: GlobalConflictOutcome


class DealMappingStats(BaseModel):
    deal_id: str
    total: int = 0
    mapped: int = 0
    manual: int = 0
    auto: int = 0
    unmapped: int = 0


class GlobalMapping(BaseModel):
    """Global-tier row as exported for backup or review"""
    normalized_label: str
    coa_code: str
    coa_name: Optional[str] = None
    category: Optional[str] = None
    confidence: float
    usage_count: int
    disagreement_count: int = 0
    challenger_code: Optional[str] = None
    challenger_count: int = 0
    source_deal_id: Optional[str] = None
    last_reviewed_at: Optional[datetime] = None


class DealMapping(BaseModel):
    source_label: str
    coa_code: Optional[str] = None
    coa_name: Optional[str] = None
    mapping_method: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class LearnedMappingExport(BaseModel):
    global_mappings: list[GlobalMapping] = Field(default_factory=list)
    per_deal: dict[str, list[DealMapping]] = Field(default_factory=dict)


class UnmappedLabelCount(BaseModel):
    source_label: str
    count: int


class UnmappedCategorySummary(BaseModel):
    category: str
    count: int
    examples: list[str] = Field(default_factory=list)
