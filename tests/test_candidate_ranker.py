import pytest

from dealcore.common.config import MatchThresholds
from dealcore.domain.entity_resolution.candidate_ranker import CandidateRanker, bed_similarity
from dealcore.domain.entity_resolution.schemas import ExtractedFacility, MatchDecision
from dealcore.integrations.cms.schemas import CanonicalProvider


def provider(ccn, name, city="", state="TX", beds=None):
    return CanonicalProvider(ccn=ccn, provider_name=name, city=city, state=state, number_of_beds=beds)


@pytest.fixture
def ranker(thresholds) -> CandidateRanker:
    return CandidateRanker(thresholds)


class TestBedSimilarity:

    def test_identical(self):
        assert bed_similarity(147, 147) == 1.0

    def test_relative_difference(self):
        assert bed_similarity(100, 120) == pytest.approx(1 - 20 / 120)

    @pytest.mark.parametrize("a,b", [(None, 120), (120, None), (0, 120), (120, 0), (-5, 10)])
    def test_missing_or_zero_contributes_nothing(self, a, b):
        assert bed_similarity(a, b) == 0.0


class TestCandidateRanker:

    def test_exact_facility_scores_one_and_auto_verifies(self, ranker):
        facility = ExtractedFacility(name="Valley Grande Manor", city="Weslaco", state="TX", licensed_beds=147)
        candidate = provider("455678", "VALLEY GRANDE MANOR", city="WESLACO", beds=147)

        scored = ranker.score_candidate(facility, candidate)
        assert scored.name_similarity == 1.0
        assert scored.city_match is True
        assert scored.bed_similarity == 1.0
        assert scored.confidence == 1.0

        result = ranker.resolve(facility, [candidate])
        assert result.decision == MatchDecision.MATCHED
        assert result.auto_verified is True
        assert result.provider.ccn == "455678"

    def test_matching_city_strictly_outranks(self, ranker):
        facility = ExtractedFacility(name="Colonial Manor", city="Weslaco", state="TX")
        elsewhere = provider("000001", "Colonial Manor", city="Houston")
        local = provider("000002", "Colonial Manor", city="Weslaco")

        ranked = ranker.rank(facility, [elsewhere, local])
        assert ranked[0].provider.ccn == "000002"
        assert ranked[0].confidence > ranked[1].confidence

    def test_ties_broken_by_ccn(self, ranker):
        facility = ExtractedFacility(name="Colonial Manor")
        ranked = ranker.rank(facility, [provider("000009", "Colonial Manor"), provider("000003", "Colonial Manor")])
        assert [c.provider.ccn for c in ranked] == ["000003", "000009"]

    def test_accept_boundary_is_exclusive(self, ranker):
        assert ranker.decide(0.70) == MatchDecision.POSSIBLE
        assert ranker.decide(0.7001) == MatchDecision.MATCHED

    def test_possible_floor_is_inclusive(self, ranker):
        assert ranker.decide(0.50) == MatchDecision.POSSIBLE
        assert ranker.decide(0.4999) == MatchDecision.NO_MATCH

    def test_auto_verify_boundary_is_exclusive(self, ranker):
        assert ranker.is_auto_verified(0.90) is False
        assert ranker.is_auto_verified(0.9001) is True

    def test_possible_match_is_not_accepted(self, ranker):
        # name 1.0, no city, beds 0.6 -> 0.50 + 0.15
        facility = ExtractedFacility(name="Colonial Manor", licensed_beds=60)
        candidate = provider("000001", "Colonial Manor", beds=100)

        result = ranker.resolve(facility, [candidate])
        assert result.confidence == pytest.approx(0.65)
        assert result.decision == MatchDecision.POSSIBLE
        assert result.provider is None
        assert result.auto_verified is False
        assert result.candidates[0].provider.ccn == "000001"

    def test_no_match_keeps_alternatives(self, ranker):
        facility = ExtractedFacility(name="Sunrise Gardens", city="Austin")
        candidates = [provider(f"00000{i}", f"Oak Hollow {i}", city="Houston") for i in range(7)]

        result = ranker.resolve(facility, candidates)
        assert result.decision == MatchDecision.NO_MATCH
        assert result.provider is None
        assert len(result.candidates) == 5

    def test_no_candidates(self, ranker):
        result = ranker.resolve(ExtractedFacility(name="Nowhere"), [])
        assert result.decision == MatchDecision.NO_MATCH
        assert result.candidates == []
        assert result.confidence == 0.0

    def test_malformed_beds_contribute_zero(self, ranker):
        facility = ExtractedFacility(name="Valley Grande Manor", city="Weslaco")
        candidate = CanonicalProvider.from_registry_row({
            "federal_provider_number": "455678",
            "provider_name": "Valley Grande Manor",
            "provider_city": "Weslaco",
            "number_of_certified_beds": "N/A",
        })
        scored = ranker.score_candidate(facility, candidate)
        assert scored.bed_similarity == 0.0
        assert scored.confidence == pytest.approx(0.75)

    def test_weights_come_from_thresholds(self):
        ranker = CandidateRanker(MatchThresholds(name_weight=1.0, city_weight=0.0, bed_weight=0.0))
        assert ranker.blend(0.8, True, 1.0) == pytest.approx(0.8)
