"""
Unit tests for repositories and the repository factory.
"""

from dataclasses import dataclass
from typing import List, Optional
from unittest.mock import Mock

import pytest
from pydantic import BaseModel

from solr_repository.config import Config, RepositoryConfig, SOLRConfig
from solr_repository.exceptions import QueryCreationError
from solr_repository.query import PageRequest
from solr_repository.query_method import query
from solr_repository.query_parser import QueryParser
from solr_repository.repository import (
    SolrRepository,
    SolrRepositoryFactory,
    entity_id,
    load_named_queries,
)
from solr_repository.repository_query import PartTreeSolrQuery, StringBasedSolrQuery
from solr_repository.results import Page
from solr_repository.transaction import TransactionManager

parser = QueryParser()


class Product(BaseModel):
    id: str
    name: Optional[str] = None
    popularity: Optional[int] = None


class ProductRepository(SolrRepository):
    entity_type = Product

    def find_by_name(self, name: str) -> List[Product]:
        """Products with exactly this name."""

    @query("popularity:?0")
    def popular(self, popularity: int, page: PageRequest) -> Page: ...

    def count_by_popularity(self, popularity: int) -> int: ...

    def delete_by_name(self, name: str) -> List[Product]: ...

    def helper(self) -> str:
        return "plain"


def last_query_string(operations):
    return parser.get_query_string(operations.queries[-1])


class TestSolrRepositoryFactory:
    """Test cases for resolving query methods."""

    def test_installs_query_methods(self, operations):
        repository = SolrRepositoryFactory(operations).get_repository(ProductRepository)

        assert set(repository.query_methods) == {
            "find_by_name",
            "popular",
            "count_by_popularity",
            "delete_by_name",
        }
        assert isinstance(repository.query_methods["find_by_name"], PartTreeSolrQuery)
        assert isinstance(repository.query_methods["popular"], StringBasedSolrQuery)
        assert repository.helper() == "plain"
        assert repository.find_by_name.__doc__ == "Products with exactly this name."

    def test_derived_query_method(self, operations):
        repository = SolrRepositoryFactory(operations).get_repository(ProductRepository)

        result = repository.find_by_name("ipod")

        assert operations.calls == ["count", "query_for_page"]
        assert last_query_string(operations) == "name:ipod"
        assert len(result) == 3

    def test_keyword_arguments(self, operations):
        repository = SolrRepositoryFactory(operations).get_repository(ProductRepository)

        page = repository.popular(popularity=5, page=PageRequest(0, 2))

        assert page.number_of_elements == 2
        assert last_query_string(operations) == "popularity:5"

    def test_count_and_delete_methods(self, make_operations):
        operations = make_operations(documents=[{"id": "1"}], count_result=4)
        repository = SolrRepositoryFactory(operations).get_repository(ProductRepository)

        assert repository.count_by_popularity(5) == 4
        deleted = repository.delete_by_name("ipod")

        assert deleted == [{"id": "1"}]
        assert operations.calls == ["count", "query_for_page", "delete", "commit"]

    def test_named_query_wins_over_derivation(self, operations):
        factory = SolrRepositoryFactory(
            operations, named_queries={"Product.find_by_name": "name:?0*"}
        )
        repository = factory.get_repository(ProductRepository)

        repository.find_by_name("ip")

        assert isinstance(repository.query_methods["find_by_name"], StringBasedSolrQuery)
        assert last_query_string(operations) == "name:ip*"

    def test_named_query_by_explicit_name(self, operations):
        class NamedRepository(SolrRepository):
            entity_type = Product

            @query(name="Product.popular")
            def popular(self, popularity: int) -> List[Product]: ...

        factory = SolrRepositoryFactory(
            operations, named_queries={"Product.popular": "popularity:[?0 TO *]"}
        )
        factory.get_repository(NamedRepository).popular(3)

        assert last_query_string(operations) == "popularity:[3 TO *]"

    def test_missing_named_query(self, operations):
        class NamedRepository(SolrRepository):
            entity_type = Product

            @query(name="Product.missing")
            def popular(self, popularity: int) -> List[Product]: ...

        with pytest.raises(QueryCreationError, match="Product.missing"):
            SolrRepositoryFactory(operations).get_repository(NamedRepository)

    def test_underivable_decorated_method(self, operations):
        class BrokenRepository(SolrRepository):
            entity_type = Product

            @query(fields=["id"])
            def lookup(self, name: str) -> List[Product]: ...

        with pytest.raises(QueryCreationError):
            SolrRepositoryFactory(operations).get_repository(BrokenRepository)

    def test_entity_core_uses_collection_operations(self, make_operations):
        @dataclass
        class Manufacturer:
            __solr_core__ = "manufacturers"
            id: str

        class ManufacturerRepository(SolrRepository):
            entity_type = Manufacturer

            def find_by_id(self, doc_id: str) -> Manufacturer: ...

        core_operations = make_operations()
        operations = Mock()
        operations.for_collection.return_value = core_operations
        factory = SolrRepositoryFactory(operations)

        first = factory.get_repository(ManufacturerRepository)
        second = factory.get_repository(ManufacturerRepository)

        operations.for_collection.assert_called_once_with("manufacturers")
        assert first.operations is core_operations
        assert second.operations is core_operations
        first.find_by_id("m1")
        assert core_operations.calls == ["query_for_object"]

    def test_operations_are_required(self):
        with pytest.raises(ValueError):
            SolrRepositoryFactory(None)

    def test_from_config(self, operations, tmp_path):
        named_queries = tmp_path / "named-queries.properties"
        named_queries.write_text("Product.find_by_name=name:?0\n")
        config = Config(
            solr=SOLRConfig(collection="products", max_rows=50),
            repository=RepositoryConfig(named_queries_file=named_queries, commit_on_write=False),
        )

        factory = SolrRepositoryFactory.from_config(config, operations=operations)

        assert factory.operations is operations
        assert factory.named_queries == {"Product.find_by_name": "name:?0"}
        assert factory.page_size == 50
        assert factory.commit_on_write is False


class TestSolrRepositoryCrud:
    """Test cases for the CRUD operations of the base repository."""

    @pytest.fixture
    def repository(self, operations):
        return SolrRepositoryFactory(operations).get_repository(ProductRepository)

    def test_save_commits(self, repository, operations):
        product = Product(id="4", name="imac")

        assert repository.save(product) is product
        assert operations.saved == [product]
        assert operations.calls == ["save_beans", "commit"]

    def test_save_all(self, repository, operations):
        products = [Product(id="4"), Product(id="5")]

        assert repository.save_all(iter(products)) == products
        assert operations.saved == products
        assert operations.calls == ["save_beans", "commit"]

    def test_save_all_without_entities(self, repository, operations):
        assert repository.save_all([]) == []
        assert operations.calls == []

    def test_save_without_commit_on_write(self, operations):
        repository = SolrRepositoryFactory(operations, commit_on_write=False).get_repository(
            ProductRepository
        )

        repository.save(Product(id="4"))

        assert operations.calls == ["save_beans"]

    def test_save_inside_transaction(self, operations):
        manager = TransactionManager()
        repository = SolrRepositoryFactory(
            operations, transaction_manager=manager
        ).get_repository(ProductRepository)

        with manager.transaction():
            repository.save(Product(id="4"))
            repository.delete_by_id("1")
            assert operations.calls == ["save_beans", "delete_by_id"]

        assert operations.calls == ["save_beans", "delete_by_id", "commit"]

    def test_failed_transaction_rolls_back(self, operations):
        manager = TransactionManager()
        repository = SolrRepositoryFactory(
            operations, transaction_manager=manager
        ).get_repository(ProductRepository)

        with pytest.raises(RuntimeError):
            with manager.transaction():
                repository.save(Product(id="4"))
                raise RuntimeError("failed")

        assert operations.calls == ["save_beans", "rollback"]

    def test_find_one_and_exists(self, repository, operations):
        assert repository.find_one("2")["name"] == "ipad"
        assert repository.exists("2") is True
        assert last_query_string(operations) == "id:2"

    def test_exists_without_match(self, make_operations):
        operations = make_operations(count_result=0)
        repository = SolrRepositoryFactory(operations).get_repository(ProductRepository)

        assert repository.exists("missing") is False

    def test_count(self, repository, operations):
        assert repository.count() == 3
        assert last_query_string(operations) == "*:*"

    def test_find_page(self, repository):
        page = repository.find_page(PageRequest(1, 2))

        assert page.number == 1
        assert [doc["id"] for doc in page.content] == ["3"]

    def test_find_all_fetches_every_page(self, operations):
        repository = SolrRepositoryFactory(operations, page_size=2).get_repository(
            ProductRepository
        )

        result = repository.find_all()

        assert [doc["id"] for doc in result] == ["1", "2", "3"]
        assert operations.calls == ["query_for_page", "query_for_page"]

    def test_delete_entity(self, repository, operations):
        repository.delete(Product(id="2"))

        assert operations.deleted_ids == ["2"]
        assert operations.calls == ["delete_by_id", "commit"]

    def test_delete_all(self, repository, operations):
        repository.delete_all()

        assert operations.calls == ["delete", "commit"]
        assert parser.get_query_string(operations.queries[0]) == "*:*"


class TestHelpers:
    def test_entity_id(self):
        assert entity_id(Product(id="7")) == "7"
        assert entity_id({"id": 8}) == 8
        with pytest.raises(ValueError):
            entity_id({"name": "no id"})

    def test_load_named_queries(self, tmp_path):
        path = tmp_path / "named-queries.properties"
        path.write_text(
            "# products\n"
            "\n"
            "Product.find_by_name = name:?0\n"
            "! legacy comment\n"
            "Product.by_expr=price:[?0 TO ?1] AND cat:a=b\n"
        )

        assert load_named_queries(path) == {
            "Product.find_by_name": "name:?0",
            "Product.by_expr": "price:[?0 TO ?1] AND cat:a=b",
        }

    def test_load_named_queries_rejects_invalid_lines(self, tmp_path):
        path = tmp_path / "named-queries.properties"
        path.write_text("Product.find_by_name\n")

        with pytest.raises(ValueError, match="Invalid named query"):
            load_named_queries(path)
