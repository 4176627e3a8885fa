"""Test the sample query listing against the bundled dataset."""

import pytest

from bookdb import sample_queries as q


class TestBasicCrud:
    def test_find_by_genre(self, books):
        found = list(q.find_by_genre(books))
        assert len(found) == 6
        assert {doc["genre"] for doc in found} == {"Fiction"}

    def test_find_published_after(self, books):
        titles = {doc["title"] for doc in q.find_published_after(books)}
        assert titles == {"The Road", "The Midnight Library", "Educated", "The Martian"}

    def test_find_by_author(self, books):
        titles = [doc["title"] for doc in q.find_by_author(books)]
        assert titles == ["1984", "Animal Farm"]

    def test_update_price(self, books):
        result = q.update_price(books)
        assert result.matched_count == 1
        assert books.find_one({"title": "The Alchemist"})["price"] == 15.99

    def test_delete_by_title(self, books):
        assert q.delete_by_title(books).deleted_count == 1
        assert list(books.find({"title": "Moby Dick"})) == []


class TestAdvancedQueries:
    def test_in_stock_published_after_2010(self, books):
        titles = {doc["title"] for doc in q.find_in_stock_published_after(books)}
        assert titles == {"The Midnight Library", "The Martian"}

    def test_projection(self, books):
        docs = list(q.project_title_author_price(books))
        assert len(docs) == 16
        assert docs[0] == {"title": "To Kill a Mockingbird", "author": "Harper Lee", "price": 12.99}

    def test_sorting(self, books):
        ascending = [doc["title"] for doc in q.sort_by_price_ascending(books)]
        descending = [doc["title"] for doc in q.sort_by_price_descending(books)]
        assert ascending[0] == "Pride and Prejudice"
        assert descending[0] == "The Lord of the Rings"
        assert len(ascending) == len(descending) == 16

    @pytest.mark.parametrize("number, expected", [(1, [1, 2, 3, 4, 5]), (2, [6, 7, 8, 9, 10])])
    def test_pages(self, books, number, expected):
        assert [doc["_id"] for doc in q.page(books, number)] == expected

    def test_last_page_is_short(self, books):
        assert [doc["_id"] for doc in q.page(books, 4)] == [16]
        assert list(q.page(books, 5)) == []


class TestIndexing:
    def test_create_indexes(self, books):
        assert q.create_title_index(books) == "title_1"
        assert q.create_author_year_index(books) == "author_1_published_year_-1"

    def test_explain_title_lookup_uses_index(self, books):
        q.create_title_index(books)
        explained = q.explain_title_lookup(books)
        assert explained["queryPlanner"]["winningPlan"]["inputStage"]["stage"] == "IXSCAN"
        assert explained["executionStats"]["nReturned"] == 1


class TestRunAll:
    """``run_all`` executes the listing in order."""

    def test_every_query_has_a_result(self, books):
        results = q.run_all(books)
        assert list(results) == [name for name, _ in q.SAMPLE_QUERIES]

    def test_results_are_materialized(self, books):
        results = q.run_all(books)
        assert isinstance(results["find_by_genre"], list)
        assert isinstance(results["books_by_decade"], list)
        assert results["author_with_most_books"][0]["total_books"] == 2

    def test_writes_are_visible_to_later_queries(self, books):
        results = q.run_all(books)
        assert results["update_price"].modified_count == 1
        assert results["delete_by_title"].deleted_count == 1
        assert len(results["project_title_author_price"]) == 15
        assert sum(row["total_books"] for row in results["books_by_decade"]) == 15

    def test_index_is_in_place_for_explain(self, books):
        results = q.run_all(books)
        plan = results["explain_title_lookup"]["queryPlanner"]["winningPlan"]
        assert plan["inputStage"]["indexName"] == "title_1"
