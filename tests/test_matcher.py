"""Test filter compilation and matching."""

import re

import pytest

from bookdb.errors import QueryError
from bookdb.query.matcher import compile_filter, equality_fields


def matches(spec, doc):
    return compile_filter(spec)(doc)


class TestEquality:
    """Plain field equality."""

    def test_empty_filter_matches_everything(self):
        assert matches({}, {"title": "1984"})
        assert matches(None, {})

    def test_exact_value(self):
        doc = {"genre": "Fiction"}
        assert matches({"genre": "Fiction"}, doc)
        assert not matches({"genre": "Fantasy"}, doc)

    def test_int_and_float_compare_equal(self):
        assert matches({"price": 15}, {"price": 15.0})

    def test_bool_is_not_a_number(self):
        assert matches({"in_stock": True}, {"in_stock": True})
        assert not matches({"in_stock": 1}, {"in_stock": True})

    def test_none_matches_missing_and_null(self):
        assert matches({"isbn": None}, {"title": "x"})
        assert matches({"isbn": None}, {"isbn": None})
        assert not matches({"isbn": None}, {"isbn": "123"})

    def test_array_field_matches_element_or_whole(self):
        doc = {"tags": ["classic", "dystopia"]}
        assert matches({"tags": "classic"}, doc)
        assert matches({"tags": ["classic", "dystopia"]}, doc)
        assert not matches({"tags": "romance"}, doc)

    def test_dotted_path_into_embedded_document(self):
        doc = {"publisher": {"name": "Penguin", "city": "London"}}
        assert matches({"publisher.name": "Penguin"}, doc)
        assert not matches({"publisher.city": "Paris"}, doc)

    def test_dotted_path_through_array_of_documents(self):
        doc = {"reviews": [{"rating": 3}, {"rating": 5}]}
        assert matches({"reviews.rating": 5}, doc)
        assert not matches({"reviews.rating": 4}, doc)

    def test_embedded_document_equality(self):
        doc = {"dims": {"h": 20, "w": 13}}
        assert matches({"dims": {"h": 20, "w": 13}}, doc)
        assert not matches({"dims": {"h": 20}}, doc)


class TestComparison:
    """Range operators."""

    def test_gt_excludes_threshold(self):
        spec = {"published_year": {"$gt": 2000}}
        assert matches(spec, {"published_year": 2001})
        assert not matches(spec, {"published_year": 2000})
        assert not matches(spec, {"published_year": 1999})

    def test_gte_lt_lte(self):
        assert matches({"price": {"$gte": 10}}, {"price": 10})
        assert matches({"price": {"$lt": 10}}, {"price": 9.99})
        assert matches({"price": {"$lte": 10}}, {"price": 10.0})
        assert not matches({"price": {"$lt": 10}}, {"price": 10})

    def test_range_with_two_bounds(self):
        spec = {"published_year": {"$gte": 1900, "$lt": 2000}}
        assert matches(spec, {"published_year": 1949})
        assert not matches(spec, {"published_year": 2000})

    def test_missing_field_never_satisfies_gt(self):
        assert not matches({"published_year": {"$gt": 0}}, {"title": "x"})

    def test_comparison_is_type_bracketed(self):
        assert not matches({"price": {"$gt": "10"}}, {"price": 12})
        assert matches({"title": {"$gt": "M"}}, {"title": "Moby Dick"})

    def test_ne_and_nin(self):
        assert matches({"genre": {"$ne": "Fiction"}}, {"genre": "Memoir"})
        assert matches({"genre": {"$ne": "Fiction"}}, {"title": "no genre"})
        assert not matches({"genre": {"$nin": ["Fiction", "Memoir"]}}, {"genre": "Memoir"})

    def test_in(self):
        spec = {"genre": {"$in": ["Fiction", "Fantasy"]}}
        assert matches(spec, {"genre": "Fantasy"})
        assert not matches(spec, {"genre": "Romance"})


class TestOtherOperators:
    def test_exists(self):
        assert matches({"isbn": {"$exists": True}}, {"isbn": None})
        assert not matches({"isbn": {"$exists": True}}, {})
        assert matches({"isbn": {"$exists": False}}, {})

    def test_regex_with_options(self):
        spec = {"title": {"$regex": "^the", "$options": "i"}}
        assert matches(spec, {"title": "The Hobbit"})
        assert not matches(spec, {"title": "Animal Farm"})

    def test_compiled_pattern_as_value(self):
        assert matches({"author": re.compile("Orwell$")}, {"author": "George Orwell"})

    def test_not(self):
        spec = {"price": {"$not": {"$gt": 10}}}
        assert matches(spec, {"price": 9})
        assert not matches(spec, {"price": 11})

    def test_size_and_all(self):
        doc = {"tags": ["a", "b", "c"]}
        assert matches({"tags": {"$size": 3}}, doc)
        assert matches({"tags": {"$all": ["a", "c"]}}, doc)
        assert not matches({"tags": {"$all": ["a", "z"]}}, doc)

    def test_elem_match(self):
        doc = {"reviews": [{"user": "ann", "rating": 2}, {"user": "bob", "rating": 5}]}
        assert matches({"reviews": {"$elemMatch": {"user": "bob", "rating": {"$gte": 4}}}}, doc)
        assert not matches({"reviews": {"$elemMatch": {"user": "ann", "rating": {"$gte": 4}}}}, doc)


class TestLogical:
    def test_implicit_and(self):
        spec = {"in_stock": True, "published_year": {"$gt": 2010}}
        assert matches(spec, {"in_stock": True, "published_year": 2020})
        assert not matches(spec, {"in_stock": False, "published_year": 2020})
        assert not matches(spec, {"in_stock": True, "published_year": 2006})

    def test_or_and_nor(self):
        spec = {"$or": [{"genre": "Fantasy"}, {"price": {"$lt": 8}}]}
        assert matches(spec, {"genre": "Fantasy", "price": 20})
        assert matches(spec, {"genre": "Romance", "price": 7.99})
        assert not matches(spec, {"genre": "Romance", "price": 9})
        assert matches({"$nor": [{"genre": "Fantasy"}]}, {"genre": "Romance"})


class TestInvalidFilters:
    """Malformed filters fail at compile time."""

    @pytest.mark.parametrize(
        "spec",
        [
            {"price": {"$between": [1, 2]}},
            {"$where": "this.price > 1"},
            {"$and": []},
            {"genre": {"$in": "Fiction"}},
            {"title": {"$regex": "("}},
            {"title": {"$options": "i"}},
            {"title": {"a": 1, "$gt": 2}},
            {"title": {"$gt": 2, "a": 1}},
        ],
    )
    def test_rejected(self, spec):
        with pytest.raises(QueryError):
            compile_filter(spec)

    def test_non_document_filter(self):
        with pytest.raises(QueryError):
            compile_filter(["title", "1984"])


class TestEqualityFields:
    def test_collects_plain_and_eq_conditions(self):
        spec = {"title": "1984", "price": {"$eq": 10.99}, "published_year": {"$gt": 1900}}
        assert equality_fields(spec) == {"title": "1984", "price": 10.99}

    def test_descends_into_and(self):
        assert equality_fields({"$and": [{"author": "A"}, {"genre": "B"}]}) == {
            "author": "A",
            "genre": "B",
        }
