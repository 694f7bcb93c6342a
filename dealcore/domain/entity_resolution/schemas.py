"""
Data schemas for facility -> CMS provider entity resolution
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from dealcore.integrations.cms.schemas import CanonicalProvider, parse_int


class MatchDecision(str, Enum):
    """Outcome of the decision ladder"""
    MATCHED = "matched"      # score > accept threshold
    POSSIBLE = "possible"    # between floor and accept threshold, needs review
    NO_MATCH = "no_match"    # below floor, normal reportable outcome


class ExtractedFacility(BaseModel):
    """
    Facility description pulled from deal documents.

    Only the name is required; everything else may be missing or wrong.
    """
    name: str = Field(..., min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    licensed_beds: Optional[int] = None
    ccn: Optional[str] = Field(None, description="Certification number if the documents state it")
    facility_id: Optional[str] = Field(None, description="Caller's facility identifier")

    @field_validator("licensed_beds", mode="before")
    @classmethod
    def parse_licensed_beds(cls, v):
        """Unparseable bed counts ("N/A", "147 beds") are treated as absent"""
        return parse_int(v)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Valley Grande Manor",
                "city": "Weslaco",
                "state": "TX",
                "licensed_beds": 147,
            }
        }


class MatchCandidate(BaseModel):
    """One extracted facility scored against one registry provider"""
    provider: CanonicalProvider
    name_similarity: float = Field(..., ge=0.0, le=1.0)
    city_match: bool
    bed_similarity: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0, description="Blended score")
    reason: str = ""


class MatchResult(BaseModel):
    """Best provider for an extracted facility, with ranked alternatives"""
    facility: ExtractedFacility
    decision: MatchDecision
    provider: Optional[CanonicalProvider] = Field(None, description="Set only for accepted matches")
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    auto_verified: bool = False
    candidates: list[MatchCandidate] = Field(default_factory=list)
    reason: str = ""

    @property
    def best_candidate(self) -> Optional[MatchCandidate]:
        return self.candidates[0] if self.candidates else None
