"""Tests for search module."""
import pytest

from src.models import FilterConfig, ListFilters, Patient
from src.search import (
    ListSearch,
    RankedSearch,
    SearchIndexCache,
    build_search_index,
    score_patient,
)


@pytest.fixture
def ranked(today):
    return RankedSearch(clock=lambda: today)


@pytest.fixture
def list_search():
    return ListSearch()


def names(items):
    return [getattr(item, "patient", item).name for item in items]


class TestSearchIndex:
    def test_joins_fields_lowercased(self, patients):
        index = build_search_index(patients)
        assert index[0].id == "1"
        assert index[0].text == "john doe diabetes john.doe@example.com (555) 123-4567 1"
        assert index[0].patient is patients[0]

    def test_skips_missing_fields(self):
        index = build_search_index([Patient(id="P9", name="Ann Lee")])
        assert index[0].text == "ann lee p9"

    def test_cache_reuses_index_for_same_list(self, patients):
        cache = SearchIndexCache()
        first = cache.get(patients)
        assert cache.get(patients) is first

    def test_cache_rebuilds_for_new_list(self, patients):
        cache = SearchIndexCache()
        first = cache.get(patients)
        second = cache.get(patients[:2])
        assert second is not first
        assert len(second) == 2


class TestScoring:
    def test_blank_query_scores_one(self, patients):
        assert score_patient(patients[0], "") == (1, ())
        assert score_patient(patients[0], "   ") == (1, ())

    def test_exact_name_match(self, patients):
        score, fields = score_patient(patients[0], "John Doe")
        assert score >= 100
        assert "name" in fields

    def test_name_prefix_bonus(self, patients):
        score, fields = score_patient(patients[0], "Jo")
        assert score >= 150
        assert fields[0] == "name"

    def test_name_infix_has_no_bonus(self, patients):
        score, fields = score_patient(patients[2], "johnson")
        # name (100) + email (30)
        assert score == 130
        assert fields == ("name", "email")

    def test_fields_are_additive(self, patients):
        score, fields = score_patient(patients[0], "john")
        assert score == 180
        assert fields == ("name", "email")

    def test_condition_match(self, patients):
        assert score_patient(patients[0], "diab") == (60, ("condition",))

    def test_id_match(self):
        patient = Patient(id="MRN-0042", name="Ann Lee")
        assert score_patient(patient, "mrn-0042") == (80, ("id",))

    def test_phone_matches_on_digits(self, patients):
        assert score_patient(patients[0], "123-4567") == (40, ("phone",))
        assert score_patient(patients[0], "5551234567") == (40, ("phone",))

    def test_query_without_digits_skips_phone(self, patients):
        _, fields = score_patient(patients[1], "smith")
        assert "phone" not in fields

    def test_no_match_scores_zero(self, patients):
        assert score_patient(patients[1], "xyznonexistent") == (0, ())

    def test_missing_fields_do_not_raise(self):
        assert score_patient(Patient(id="9", name=""), "abc") == (0, ())


class TestRankedSearch:
    def test_empty_query_returns_everyone(self, ranked, patients):
        results = ranked.search(patients, FilterConfig(), "")
        assert len(results) == 3
        assert all(r.score >= 1 for r in results)
        assert names(results) == ["Bob Johnson", "Jane Smith", "John Doe"]

    def test_empty_query_order_is_deterministic(self, ranked, patients):
        first = ranked.search(patients, FilterConfig(), "")
        second = ranked.search(list(reversed(patients)), FilterConfig(), "")
        assert names(first) == names(second)

    def test_ranked_by_score(self, ranked, patients):
        results = ranked.search(patients, FilterConfig(), "john")
        assert names(results) == ["John Doe", "Bob Johnson"]
        assert results[0].matched_fields == ("name", "email")

    def test_zero_scores_dropped(self, ranked, patients):
        results = ranked.search(patients, FilterConfig(), "hypertension")
        assert names(results) == ["Jane Smith"]

    def test_condition_filter_scenario(self, ranked, patients):
        results = ranked.search(patients, FilterConfig(conditions=("Diabetes",)), "")
        assert sorted(names(results)) == ["Bob Johnson", "John Doe"]

    def test_risk_descending_scenario(self, ranked, patients):
        filters = FilterConfig(sort_by="risk", sort_order="desc")
        results = ranked.search(patients, filters, "")
        assert [r.patient.risk for r in results] == [75, 65, 45]

    def test_filters_apply_before_scoring(self, ranked, patients):
        filters = FilterConfig(risk_level="high")
        results = ranked.search(patients, filters, "smith")
        assert results == []


class TestListSearch:
    def test_single_word_matches_any_field(self, list_search, patients):
        results = list_search.search(patients, ListFilters(), "john")
        assert names(results) == ["Bob Johnson", "John Doe"]

    def test_every_word_must_match(self, list_search, patients):
        results = list_search.search(patients, ListFilters(), "doe diabetes")
        assert names(results) == ["John Doe"]

    def test_words_can_match_id(self, list_search, patients):
        results = list_search.search(patients, ListFilters(), "smith 2")
        assert names(results) == ["Jane Smith"]

    def test_no_match(self, list_search, patients):
        assert list_search.search(patients, ListFilters(), "xyznonexistent") == []

    def test_risk_filter(self, list_search, patients):
        results = list_search.search(patients, ListFilters(filter_risk="high"), "")
        assert len(results) > 0
        assert all(p.risk >= 60 for p in results)

    def test_condition_filter(self, list_search, patients):
        results = list_search.search(patients, ListFilters(filter_condition="Diabetes"), "")
        assert len(results) == 2
        assert all(p.condition == "Diabetes" for p in results)

    def test_sort_by_name(self, list_search, patients):
        results = list_search.search(patients, ListFilters(sort_by="name"), "")
        assert names(results) == ["Bob Johnson", "Jane Smith", "John Doe"]

    def test_sort_by_risk(self, list_search, patients):
        results = list_search.search(patients, ListFilters(sort_by="risk"), "")
        assert [p.risk for p in results] == [75, 65, 45]

    def test_sort_by_recent(self, list_search, patients):
        results = list_search.search(patients, ListFilters(sort_by="recent"), "")
        assert names(results) == ["Jane Smith", "John Doe", "Bob Johnson"]
