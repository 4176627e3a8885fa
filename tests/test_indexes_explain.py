"""Test index management and query explanation."""

import pytest

from bookdb.errors import DuplicateKeyError, IndexNotFound, QueryError


def winning_stage(explained):
    """Innermost stage of the winning plan."""
    stage = explained["queryPlanner"]["winningPlan"]
    while "inputStage" in stage:
        stage = stage["inputStage"]
    return stage


class TestCreateIndex:
    def test_default_names(self, books):
        assert books.create_index({"title": 1}) == "title_1"
        assert books.create_index({"author": 1, "published_year": -1}) == (
            "author_1_published_year_-1"
        )
        assert books.create_index("genre") == "genre_1"

    def test_list_indexes(self, books):
        books.create_index({"title": 1}, unique=True)
        assert books.list_indexes() == [
            {"v": 2, "key": {"_id": 1}, "name": "_id_"},
            {"v": 2, "key": {"title": 1}, "name": "title_1", "unique": True},
        ]
        assert set(books.index_information()) == {"_id_", "title_1"}

    def test_same_index_twice_is_a_noop(self, books):
        books.create_index({"title": 1})
        assert books.create_index([("title", 1)]) == "title_1"
        assert len(books.list_indexes()) == 2

    def test_id_index_always_exists(self, books):
        assert books.create_index({"_id": 1}) == "_id_"
        assert len(books.list_indexes()) == 1

    def test_conflicting_options(self, books):
        books.create_index({"title": 1})
        with pytest.raises(QueryError):
            books.create_index({"title": 1}, unique=True)
        with pytest.raises(QueryError):
            books.create_index({"price": 1}, name="title_1")

    @pytest.mark.parametrize(
        "keys",
        [{}, {"title": 2}, {"title": "text"}, [("title", 1), ("title", -1)], 42],
    )
    def test_invalid_key_specs(self, books, keys):
        with pytest.raises(QueryError):
            books.create_index(keys)

    def test_reserved_name(self, books):
        with pytest.raises(QueryError):
            books.create_index({"title": 1}, name="_id_")


class TestUniqueIndex:
    """Unique indexes reject colliding writes."""

    def test_not_built_over_existing_duplicates(self, books):
        with pytest.raises(DuplicateKeyError):
            books.create_index({"author": 1}, unique=True)
        assert [info["name"] for info in books.list_indexes()] == ["_id_"]

    def test_rejects_duplicate_insert(self, books):
        books.create_index({"title": 1}, unique=True)
        with pytest.raises(DuplicateKeyError) as excinfo:
            books.insert_one({"title": "1984", "author": "Someone Else"})
        assert "E11000" in excinfo.value.message
        assert excinfo.value.details["index"] == "title_1"
        assert books.count_documents() == 16

    def test_rejects_colliding_update(self, books):
        books.create_index({"title": 1}, unique=True)
        with pytest.raises(DuplicateKeyError):
            books.update_one({"title": "1984"}, {"$set": {"title": "Animal Farm"}})
        assert books.count_documents({"title": "1984"}) == 1

    def test_deleted_value_can_be_reused(self, books):
        books.create_index({"title": 1}, unique=True)
        books.delete_one({"title": "Moby Dick"})
        books.insert_one({"title": "Moby Dick", "author": "Herman Melville"})
        assert books.count_documents({"title": "Moby Dick"}) == 1

    def test_compound_unique_key(self, empty):
        empty.create_index([("author", 1), ("title", 1)], unique=True)
        empty.insert_one({"author": "A", "title": "One"})
        empty.insert_one({"author": "A", "title": "Two"})
        with pytest.raises(DuplicateKeyError):
            empty.insert_one({"author": "A", "title": "One"})

    def test_missing_field_counts_as_null(self, empty):
        empty.create_index({"isbn": 1}, unique=True)
        empty.insert_one({"title": "A"})
        with pytest.raises(DuplicateKeyError):
            empty.insert_one({"title": "B"})

    def test_sparse_skips_missing_field(self, empty):
        empty.create_index({"isbn": 1}, unique=True, sparse=True)
        empty.insert_many([{"title": "A"}, {"title": "B"}, {"isbn": "1"}])
        with pytest.raises(DuplicateKeyError):
            empty.insert_one({"isbn": "1"})


class TestDropIndex:
    def test_drop_index(self, books):
        books.create_index({"title": 1})
        books.drop_index("title_1")
        assert [info["name"] for info in books.list_indexes()] == ["_id_"]

    def test_drop_unknown_index(self, books):
        with pytest.raises(IndexNotFound):
            books.drop_index("title_1")

    def test_cannot_drop_id_index(self, books):
        with pytest.raises(QueryError):
            books.drop_index("_id_")

    def test_drop_indexes_keeps_id_index(self, books):
        books.create_index({"title": 1})
        books.create_index({"genre": 1})
        books.drop_indexes()
        assert [info["name"] for info in books.list_indexes()] == ["_id_"]


class TestExplain:
    """Plans chosen for ``find`` and the counters reported with them."""

    def test_collection_scan_without_index(self, books):
        explained = books.find({"title": "1984"}).explain("executionStats")
        assert winning_stage(explained)["stage"] == "COLLSCAN"
        stats = explained["executionStats"]
        assert stats["nReturned"] == 1
        assert stats["totalDocsExamined"] == 16
        assert stats["totalKeysExamined"] == 0

    def test_index_scan_after_create_index(self, books):
        books.create_index({"title": 1})
        explained = books.find({"title": "1984"}).explain("executionStats")
        plan = explained["queryPlanner"]["winningPlan"]
        assert plan["stage"] == "FETCH"
        assert plan["inputStage"]["stage"] == "IXSCAN"
        assert plan["inputStage"]["indexName"] == "title_1"
        stats = explained["executionStats"]
        assert stats["nReturned"] == 1
        assert stats["totalKeysExamined"] == 1
        assert stats["totalDocsExamined"] == 1

    def test_compound_index_used_for_leading_field(self, books):
        books.create_index({"author": 1, "published_year": -1})
        explained = books.find({"author": "George Orwell"}).explain("executionStats")
        assert winning_stage(explained)["indexName"] == "author_1_published_year_-1"
        assert explained["executionStats"]["nReturned"] == 2
        assert explained["executionStats"]["totalDocsExamined"] == 2

    def test_id_lookup(self, books):
        explained = books.find({"_id": 2}).explain("executionStats")
        assert explained["queryPlanner"]["winningPlan"] == {"stage": "IDHACK"}
        assert explained["executionStats"]["totalDocsExamined"] == 1

    def test_query_planner_does_not_execute(self, books):
        explained = books.find({"genre": "Fiction"}).explain()
        assert "executionStats" not in explained
        planner = explained["queryPlanner"]
        assert planner["namespace"] == "library.books"
        assert planner["parsedQuery"] == {"genre": "Fiction"}
        assert planner["rejectedPlans"] == []

    def test_all_plans_execution(self, books):
        explained = books.find().explain("allPlansExecution")
        assert explained["executionStats"]["allPlansExecution"] == []
        assert explained["executionStats"]["nReturned"] == 16

    def test_cursor_modifiers_wrap_the_plan(self, books):
        cursor = books.find({"genre": "Fiction"}, {"title": 1}).sort({"price": 1}).skip(1).limit(2)
        plan = cursor.explain("executionStats")
        stages = []
        stage = plan["queryPlanner"]["winningPlan"]
        while stage:
            stages.append(stage["stage"])
            stage = stage.get("inputStage")
        assert stages == ["PROJECTION_SIMPLE", "LIMIT", "SKIP", "SORT", "COLLSCAN"]
        assert plan["executionStats"]["nReturned"] == 2

    def test_explain_leaves_cursor_usable(self, books):
        cursor = books.find({"genre": "Fiction"})
        cursor.explain("executionStats")
        assert len(list(cursor)) == 6

    def test_bad_verbosity(self, books):
        with pytest.raises(QueryError):
            books.find().explain("verbose")

    def test_index_follows_updates(self, books):
        books.create_index({"title": 1})
        books.update_one({"title": "1984"}, {"$set": {"title": "Nineteen Eighty-Four"}})
        assert books.find_one({"title": "1984"}) is None
        assert books.find_one({"title": "Nineteen Eighty-Four"})["author"] == "George Orwell"

    def test_index_matches_array_elements(self, empty):
        empty.create_index({"tags": 1})
        empty.insert_many([{"tags": ["classic", "war"]}, {"tags": ["romance"]}])
        explained = empty.find({"tags": "classic"}).explain("executionStats")
        assert winning_stage(explained)["stage"] == "IXSCAN"
        assert explained["executionStats"]["nReturned"] == 1
