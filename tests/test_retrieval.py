import psycopg
import pytest

from realty_chat.conversations.models import KnowledgeSource
from realty_chat.errors import UpstreamUnavailable
from realty_chat.retrieval import (
    InMemoryTrainingDataStore,
    KnowledgeRetriever,
    query_terms,
)


@pytest.fixture
def store():
    store = InMemoryTrainingDataStore()
    store.add_qa("tenant-1", "What is your company name?", "We are Sunrise Realty.")
    store.add_qa("tenant-1", "What are your office hours?", "Weekdays 9 to 5.")
    store.add_file("tenant-1", "about.pdf", "Sunrise Realty is a family company since 1998.")
    store.add_qa("tenant-2", "What is your company name?", "Harbour Homes.")
    return store


def test_query_terms_drop_stop_words_and_short_tokens():
    assert query_terms("What is your company name? Is it OK?") == ["company", "name"]


def test_retrieve_returns_qa_and_file_matches(store):
    result = KnowledgeRetriever(store).retrieve("What is your company name?", "tenant-1")
    assert not result.is_empty
    assert result.qa_matches[0].metadata["answer"] == "We are Sunrise Realty."
    assert all(m.source is KnowledgeSource.QA_PAIR for m in result.qa_matches)
    assert [m.metadata["file_name"] for m in result.file_matches] == ["about.pdf"]


def test_retrieve_is_scoped_to_tenant(store):
    result = KnowledgeRetriever(store).retrieve("company name", "tenant-2")
    assert [m.metadata["answer"] for m in result.qa_matches] == ["Harbour Homes."]
    assert result.file_matches == []


def test_best_match_is_ranked_first(store):
    result = KnowledgeRetriever(store).retrieve("office hours please", "tenant-1")
    assert result.qa_matches[0].metadata["question"] == "What are your office hours?"


def test_max_results_and_source_filters(store):
    retriever = KnowledgeRetriever(store, max_results=5)
    result = retriever.retrieve(
        "company office", "tenant-1", include_files=False, max_results=1
    )
    assert len(result.qa_matches) == 1
    assert result.file_matches == []


def test_no_overlap_is_empty(store):
    assert KnowledgeRetriever(store).retrieve("zzz", "tenant-1").is_empty
    assert KnowledgeRetriever(store).retrieve("company", "unknown").is_empty


class FailingStore:
    def __init__(self, exc):
        self.exc = exc

    def search_qa(self, tenant_id, terms, limit):
        raise self.exc

    def search_files(self, tenant_id, terms, limit):
        raise self.exc


@pytest.mark.parametrize(
    "exc",
    [
        psycopg.OperationalError("connection refused"),
        UpstreamUnavailable("retrieval", "timed out"),
    ],
)
def test_store_failure_is_an_empty_result(exc, caplog):
    result = KnowledgeRetriever(FailingStore(exc)).retrieve("company", "tenant-1")
    assert result.is_empty
    assert "Knowledge retrieval failed for tenant tenant-1" in caplog.text


def test_unexpected_store_error_is_an_empty_result(caplog):
    store = FailingStore(KeyError("question"))
    result = KnowledgeRetriever(store).retrieve("company", "tenant-1")
    assert result.is_empty
    assert "Knowledge retrieval failed unexpectedly for tenant tenant-1" in caplog.text
