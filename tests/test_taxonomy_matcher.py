import pytest

from dealcore.domain.coa.chart_of_accounts import (
    SNF_CHART_OF_ACCOUNTS,
    category_from_code,
    find_account,
    find_account_by_mapping_key,
)
from dealcore.domain.coa.taxonomy_matcher import TaxonomyMatcher, contains_key


@pytest.fixture
def matcher(thresholds) -> TaxonomyMatcher:
    return TaxonomyMatcher(thresholds)


class TestChartOfAccounts:

    def test_codes_unique(self):
        codes = [a.code for a in SNF_CHART_OF_ACCOUNTS]
        assert len(codes) == len(set(codes))

    def test_mapping_keys_unique(self):
        keys = [k for a in SNF_CHART_OF_ACCOUNTS for k in a.mapping_keys]
        assert len(keys) == len(set(keys))

    def test_parents_exist(self):
        for account in SNF_CHART_OF_ACCOUNTS:
            if account.parent_code:
                assert find_account(account.parent_code) is not None, account.code

    def test_variation_table_targets_postable_accounts(self):
        for variation, code in TaxonomyMatcher.LABEL_VARIATIONS.items():
            account = find_account(code)
            assert account is not None, variation
            assert not account.is_header, variation

    def test_payer_revenue_uses_payer_days(self):
        assert find_account("4110").ppd_denominator == "medicaid_days"
        assert find_account("4210").ppd_denominator == "medicare_days"
        assert find_account("9210").ppd_eligible is False

    def test_lookup_helpers(self):
        assert find_account_by_mapping_key("medicare_part_a").code == "4210"
        assert find_account("0000") is None
        assert category_from_code("5210") == "expense"
        assert category_from_code("9111") == "statistics"


class TestContainsKey:

    def test_token_boundary(self):
        assert contains_key("contract_nursing_staff", "contract_nursing")
        assert not contains_key("pharmacy", "ma")
        assert not contains_key("gastric_tubes", "gas")

    def test_empty(self):
        assert not contains_key("", "gas")
        assert not contains_key("gas", "")


class TestMatch:

    def test_mapping_key(self, matcher):
        match = matcher.match("Medicaid Room & Board Revenue")
        assert match.coa_code == "4110"
        assert match.confidence >= 0.90
        assert match.reason == "Direct mapping key match"

    def test_variation(self, matcher):
        match = matcher.match("MCAID")
        assert match.coa_code == "4110"
        assert match.confidence == 0.90

        assert matcher.match("Nursing Wages").coa_code == "5210"

    def test_partial_longest_key_wins(self, matcher):
        match = matcher.match("Contract Nursing Staff")
        assert match.coa_code == "5230"
        assert match.confidence == 0.75
        assert match.reason == "Partial match: contract_nursing"

    def test_partial_respects_token_boundaries(self, matcher):
        assert matcher.match("Pharmacy") is None
        assert matcher.match("Gastric Tubes") is None

    def test_category_fallback(self, matcher):
        match = matcher.match("Misc Line", category="Operating Expense")
        assert match.coa_code == "6499"
        assert match.confidence == 0.50

        assert matcher.match("Zzz", category="nursing").coa_code == "5299"

    def test_category_order(self, matcher):
        # "expense" is checked before "nursing"
        assert matcher.match("Zzz", category="Nursing Expense").coa_code == "6499"

    def test_no_match(self, matcher):
        assert matcher.match("Zzz") is None
        assert matcher.match("") is None

    def test_label_wins_over_category(self, matcher):
        assert matcher.match("Raw Food", category="revenue").coa_code == "5740"


class TestPossibleMatches:

    def test_guesses_ranked_and_unique(self, matcher):
        guesses = matcher.find_possible_matches("Nursing Staff Costs")

        assert guesses[0].coa_code == "5299"
        assert guesses[0].confidence == pytest.approx(0.60)
        assert len(guesses) <= 5
        codes = [g.coa_code for g in guesses]
        assert len(codes) == len(set(codes))
        confidences = [g.confidence for g in guesses]
        assert confidences == sorted(confidences, reverse=True)

    def test_word_overlap_guess(self, matcher):
        guesses = matcher.find_possible_matches("Lab Fees")
        assert guesses[0].coa_code == "6170"
        assert guesses[0].confidence == pytest.approx(0.35)

    def test_headers_never_guessed(self, matcher):
        guesses = matcher.find_possible_matches("Skilled Revenue")
        assert "4200" not in [g.coa_code for g in guesses]

    def test_limit(self, matcher):
        assert len(matcher.find_possible_matches("Total Nursing Therapy Dietary Revenue Expense", limit=2)) == 2

    def test_empty_label(self, matcher):
        assert matcher.find_possible_matches("") == []


def test_get_account_name(matcher):
    assert matcher.get_account_name("4110") == "Medicaid Room & Board"
    assert matcher.get_account_name("0000") is None
