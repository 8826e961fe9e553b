"""
Stock name to ISIN matching for imports that leave the ISIN blank.
"""

import pytest

from folio.services.isin_matcher import find_isin, name_similarity, normalize_stock_name

MASTERS = [
    ("INE0LXG01040", "OLA ELECTRIC MOBILITY LIMITED"),
    ("INE002A01018", "Reliance Industries Limited"),
    ("INE003A01024", "RELIANCE INDUSTRIES"),
    ("INE040A01034", "HDFC Bank Ltd."),
]


class TestNormalizeStockName:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("HDFC Bank Ltd.", "hdfc bank"),
            ("  Bajaj Finance   Limited ", "bajaj finance"),
            ("L&T Technology Services", "l t technology services"),
            ("", ""),
        ],
    )
    def test_normalize(self, name, expected):
        assert normalize_stock_name(name) == expected


class TestNameSimilarity:
    def test_identical_after_normalization(self):
        assert name_similarity("hdfc bank", "HDFC Bank Ltd.") == 1.0

    def test_short_name_inside_master_name(self):
        assert name_similarity("Ola Electric", "OLA ELECTRIC MOBILITY LIMITED") >= 0.7

    def test_unrelated_names(self):
        assert name_similarity("Zomato", "Reliance Industries") < 0.7


class TestFindIsin:
    def test_exact_name_wins(self):
        """
        Given: two master names that normalize the same
        When: the query matches one of them exactly, ignoring case
        Then: that one is returned with similarity 1
        """
        match = find_isin("reliance industries", MASTERS)

        assert match.isin == "INE003A01024"
        assert match.similarity == 1.0

    def test_fuzzy_match(self):
        match = find_isin("Ola Electric", MASTERS)

        assert match.isin == "INE0LXG01040"
        assert 0.7 <= match.similarity < 1.0

    def test_below_threshold(self):
        assert find_isin("Zomato", MASTERS) is None
        assert find_isin("Ola Electric", MASTERS, threshold=0.99) is None

    def test_blank_name(self):
        assert find_isin("  ", MASTERS) is None
        assert find_isin("Ola Electric", []) is None
