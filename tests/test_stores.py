import json
from unittest.mock import Mock, patch

import pytest
import requests

from paper_notes.documents import Paper, QARecord, TextSegment
from paper_notes.errors import PersistenceError, RetrievalError
from paper_notes.search.embedding import OllamaEmbeddingClient
from paper_notes.search.opensearch_client import OpenSearchClient
from paper_notes.search.vector_index import VectorIndex
from paper_notes.storage.papers import PaperStore

PAPER_URL = "https://arxiv.org/pdf/1706.03762"


def http_response(status_code, payload=None, text=""):
    response = Mock(status_code=status_code, text=text)
    response.json.return_value = payload if payload is not None else {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(str(status_code), response=response)
    return response


@pytest.fixture
def client():
    return Mock(spec=OpenSearchClient)


@pytest.fixture
def embedder():
    embedder = Mock()
    embedder.embed.return_value = [[0.1, 0.2, 0.3]]
    return embedder


class TestPaperStore:
    def test_missing_paper_returns_none(self, client, settings):
        client.get_document.return_value = None
        store = PaperStore(client, settings)

        assert store.get_paper(PAPER_URL) is None
        assert store.has_paper(PAPER_URL) is False
        index, doc_id = client.get_document.call_args[0]
        assert index == "papers"
        assert doc_id == OpenSearchClient.doc_id_for(PAPER_URL)

    def test_stored_document_is_loaded_as_paper(self, client, settings):
        client.get_document.return_value = {
            "url": PAPER_URL,
            "name": "Attention",
            "paper": "full text",
            "notes": [{"note": "Uses attention.", "pageNumbers": [3]}],
        }

        paper = PaperStore(client, settings).get_paper(PAPER_URL)

        assert paper.name == "Attention"
        assert paper.full_text == "full text"
        assert paper.notes[0].page_numbers == [3]

    def test_add_paper_writes_record_keyed_by_url(self, client, settings, sample_notes):
        paper = Paper(url=PAPER_URL, name="Attention", full_text="full text", notes=sample_notes)

        PaperStore(client, settings).add_paper(paper)

        index, doc_id, body = client.put_document.call_args[0]
        assert index == "papers"
        assert doc_id == OpenSearchClient.doc_id_for(PAPER_URL)
        assert body["paper"] == "full text"
        assert body["notes"][1] == {"note": "Multi-head attention uses 8 heads.", "pageNumbers": [4]}

    def test_transport_failures_become_persistence_errors(self, client, settings, sample_notes):
        client.put_document.side_effect = requests.ConnectionError("refused")
        client.get_document.side_effect = requests.ConnectionError("refused")
        store = PaperStore(client, settings)

        with pytest.raises(PersistenceError):
            store.add_paper(Paper(url=PAPER_URL, name="n", full_text="t", notes=sample_notes))
        with pytest.raises(PersistenceError):
            store.get_paper(PAPER_URL)

    def test_save_qa_appends_log_entry(self, client, settings):
        client.add_document.return_value = "qa-1"
        record = QARecord("What?", "This.", "context", ["Why?"])

        assert PaperStore(client, settings).save_qa(record) == "qa-1"
        index, body = client.add_document.call_args[0]
        assert index == "paper_qa"
        assert body == {"question": "What?", "answer": "This.", "context": "context", "followupQuestions": ["Why?"]}


class TestVectorIndex:
    def test_segments_are_embedded_and_tagged_with_url(self, client, embedder, settings):
        client.bulk_index.return_value = 2
        segments = [
            TextSegment(content="First page", metadata={"source": "pypdf", "page_number": 1, "url": PAPER_URL}),
            TextSegment(content="   ", metadata={"source": "pypdf", "page_number": 2, "url": PAPER_URL}),
            TextSegment(content="Third page", metadata={"source": "pypdf", "page_number": 3, "url": PAPER_URL}),
        ]

        indexed = VectorIndex(client, embedder, settings).add_segments(segments)

        assert indexed == 2
        assert embedder.embed.call_count == 2
        mapping = client.ensure_index.call_args[0][1]
        assert mapping["mappings"]["properties"]["content_vector"]["dimension"] == 3
        index, documents = client.bulk_index.call_args[0]
        assert index == "paper_segments"
        assert [document["url"] for document in documents] == [PAPER_URL, PAPER_URL]
        assert [document["page_number"] for document in documents] == [1, 3]

    def test_no_embeddings_is_a_persistence_error(self, client, embedder, settings):
        embedder.embed.return_value = [[]]

        with pytest.raises(PersistenceError):
            VectorIndex(client, embedder, settings).add_segments([TextSegment(content="text", metadata={"url": PAPER_URL})])
        client.bulk_index.assert_not_called()

    def test_bulk_failure_is_a_persistence_error(self, client, embedder, settings):
        client.bulk_index.side_effect = requests.HTTPError("429 Too Many Requests")

        with pytest.raises(PersistenceError):
            VectorIndex(client, embedder, settings).add_segments([TextSegment(content="text", metadata={"url": PAPER_URL})])

    def test_bulk_with_every_item_rejected_is_a_persistence_error(self, client, embedder, settings):
        client.bulk_index.return_value = 0

        with pytest.raises(PersistenceError):
            VectorIndex(client, embedder, settings).add_segments([TextSegment(content="text", metadata={"url": PAPER_URL})])

    def test_similarity_search_is_scoped_by_url(self, client, embedder, settings):
        client.knn_search.return_value = {
            "hits": {
                "hits": [
                    {"_source": {"content": "Multi-head attention", "url": PAPER_URL, "metadata": {"page_number": 4}}},
                ]
            }
        }

        segments = VectorIndex(client, embedder, settings).similarity_search("What is attention?", 8, PAPER_URL)

        assert segments == [TextSegment(content="Multi-head attention", metadata={"page_number": 4, "url": PAPER_URL})]
        index, vector, k, filters = client.knn_search.call_args[0]
        assert (index, vector, k) == ("paper_segments", [0.1, 0.2, 0.3], 8)
        assert filters == [{"term": {"url": PAPER_URL}}]

    def test_search_failures_become_retrieval_errors(self, client, embedder, settings):
        client.knn_search.side_effect = requests.HTTPError("404 index_not_found")

        with pytest.raises(RetrievalError):
            VectorIndex(client, embedder, settings).similarity_search("q", 8, PAPER_URL)

    def test_failed_query_embedding_is_a_retrieval_error(self, client, embedder, settings):
        embedder.embed.return_value = [[]]

        with pytest.raises(RetrievalError):
            VectorIndex(client, embedder, settings).similarity_search("q", 8, PAPER_URL)
        client.knn_search.assert_not_called()


class TestOpenSearchClient:
    @patch("paper_notes.search.opensearch_client.requests.get")
    def test_missing_document_returns_none(self, mock_get, settings):
        mock_get.return_value = Mock(status_code=404)

        assert OpenSearchClient(settings).get_document("papers", "abc") is None

    @patch("paper_notes.search.opensearch_client.requests.get")
    def test_found_document_returns_source(self, mock_get, settings):
        response = Mock(status_code=200, raise_for_status=Mock())
        response.json.return_value = {"found": True, "_source": {"url": PAPER_URL}}
        mock_get.return_value = response

        assert OpenSearchClient(settings).get_document("papers", "abc") == {"url": PAPER_URL}
        assert mock_get.call_args[0][0] == "http://opensearch:9200/papers/_doc/abc"

    def test_doc_ids_are_stable_and_bounded(self):
        long_url = "https://example.com/" + "a" * 2000

        assert OpenSearchClient.doc_id_for(long_url) == OpenSearchClient.doc_id_for(long_url)
        assert len(OpenSearchClient.doc_id_for(long_url)) == 40

    @patch("paper_notes.search.opensearch_client.requests.put")
    @patch("paper_notes.search.opensearch_client.requests.head")
    def test_ensure_index_creates_missing_index_once(self, mock_head, mock_put, settings):
        mock_head.return_value = http_response(404)
        mock_put.return_value = http_response(200)
        mapping = {"mappings": {"properties": {"url": {"type": "keyword"}}}}
        client = OpenSearchClient(settings)

        client.ensure_index("paper_segments", mapping, timeout=5)
        client.ensure_index("paper_segments", mapping, timeout=5)

        assert mock_head.call_count == 1
        url = mock_put.call_args[0][0]
        kwargs = mock_put.call_args[1]
        assert url == "http://opensearch:9200/paper_segments"
        assert json.loads(kwargs["data"]) == mapping
        assert kwargs["timeout"] == 5

    @patch("paper_notes.search.opensearch_client.requests.put")
    @patch("paper_notes.search.opensearch_client.requests.head")
    def test_ensure_index_tolerates_concurrent_creation(self, mock_head, mock_put, settings):
        mock_head.return_value = http_response(404)
        mock_put.return_value = http_response(400, text='{"error":{"type":"resource_already_exists_exception"}}')

        OpenSearchClient(settings).ensure_index("paper_segments", {})

        mock_put.return_value.raise_for_status.assert_not_called()

    @patch("paper_notes.search.opensearch_client.requests.put")
    @patch("paper_notes.search.opensearch_client.requests.head")
    def test_ensure_index_raises_other_creation_errors(self, mock_head, mock_put, settings):
        mock_head.return_value = http_response(404)
        mock_put.return_value = http_response(400, text='{"error":{"type":"mapper_parsing_exception"}}')

        with pytest.raises(requests.HTTPError):
            OpenSearchClient(settings).ensure_index("paper_segments", {})

    @patch("paper_notes.search.opensearch_client.requests.post")
    def test_bulk_index_counts_accepted_items(self, mock_post, settings):
        mock_post.return_value = http_response(
            200,
            {
                "errors": True,
                "items": [
                    {"index": {"_id": "k1", "status": 201}},
                    {"index": {"_id": "k2", "status": 400, "error": {"type": "mapper_parsing_exception"}}},
                ],
            },
        )
        documents = [{"doc_key": "k1", "content": "a"}, {"doc_key": "k2", "content": "b"}]

        assert OpenSearchClient(settings).bulk_index("paper_segments", documents) == 1
        url = mock_post.call_args[0][0]
        kwargs = mock_post.call_args[1]
        assert url == "http://opensearch:9200/paper_segments/_bulk"
        assert kwargs["params"] == {"refresh": "true"}
        lines = [json.loads(line) for line in kwargs["data"].splitlines()]
        assert lines[0] == {"index": {"_index": "paper_segments", "_id": "k1"}}
        assert lines[1] == {"doc_key": "k1", "content": "a"}
        assert len(lines) == 4

    @patch("paper_notes.search.opensearch_client.requests.post")
    def test_bulk_index_without_documents_skips_the_request(self, mock_post, settings):
        assert OpenSearchClient(settings).bulk_index("paper_segments", []) == 0
        mock_post.assert_not_called()

    @patch("paper_notes.search.opensearch_client.requests.post")
    def test_knn_search_places_filter_inside_the_knn_clause(self, mock_post, settings):
        mock_post.return_value = http_response(200, {"hits": {"hits": []}})

        OpenSearchClient(settings).knn_search("paper_segments", [0.1, 0.2], 4, [{"term": {"url": PAPER_URL}}])

        assert mock_post.call_args[0][0] == "http://opensearch:9200/paper_segments/_search"
        body = json.loads(mock_post.call_args[1]["data"])
        assert body["size"] == 4
        assert body["_source"] == {"excludes": ["content_vector"]}
        assert body["query"]["knn"]["content_vector"] == {
            "vector": [0.1, 0.2],
            "k": 4,
            "filter": {"term": {"url": PAPER_URL}},
        }

    @patch("paper_notes.search.opensearch_client.requests.post")
    def test_knn_search_combines_several_filters(self, mock_post, settings):
        mock_post.return_value = http_response(200, {"hits": {"hits": []}})
        clauses = [{"term": {"url": PAPER_URL}}, {"term": {"source": "pypdf"}}]

        OpenSearchClient(settings).knn_search("paper_segments", [0.1], 2, clauses)

        body = json.loads(mock_post.call_args[1]["data"])
        assert body["query"]["knn"]["content_vector"]["filter"] == {"bool": {"filter": clauses}}

    @patch("paper_notes.search.opensearch_client.requests.post")
    def test_knn_search_propagates_http_errors(self, mock_post, settings):
        mock_post.return_value = http_response(404, text="index_not_found_exception")

        with pytest.raises(requests.HTTPError):
            OpenSearchClient(settings).knn_search("paper_segments", [0.1], 2)


class TestOllamaEmbeddingClient:
    @patch("paper_notes.search.embedding.requests.post")
    def test_switches_to_embed_endpoint_on_404_and_keeps_it(self, mock_post, settings):
        mock_post.side_effect = [
            http_response(404),
            http_response(200, {"embeddings": [[0.1, 0.2]]}),
            http_response(200, {"embeddings": [[0.3, 0.4]]}),
        ]

        vectors = OllamaEmbeddingClient(settings).embed(["first", "second"])

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        urls = [call[0][0] for call in mock_post.call_args_list]
        assert urls == [
            "http://ollama:11434/api/embeddings",
            "http://ollama:11434/api/embed",
            "http://ollama:11434/api/embed",
        ]
        assert mock_post.call_args_list[1][1]["json"] == {"model": "nomic-embed-text", "input": "first"}

    @patch("paper_notes.search.embedding.requests.post")
    def test_legacy_endpoint_payload(self, mock_post, settings):
        mock_post.return_value = http_response(200, {"embedding": [1.0, 2.0]})

        vectors = OllamaEmbeddingClient(settings).embed(["text"], timeout=3)

        assert vectors == [[1.0, 2.0]]
        kwargs = mock_post.call_args[1]
        assert kwargs["json"] == {"model": "nomic-embed-text", "prompt": "text"}
        assert kwargs["timeout"] == 3

    @patch("paper_notes.search.embedding.requests.post")
    def test_failed_request_yields_empty_vector(self, mock_post, settings):
        mock_post.side_effect = [
            requests.ConnectionError("connection refused"),
            http_response(200, {"embedding": [0.5]}),
        ]

        vectors = OllamaEmbeddingClient(settings).embed(["first", "second"])

        assert vectors == [[], [0.5]]

    @patch("paper_notes.search.embedding.requests.post")
    def test_unexpected_payload_yields_empty_vector(self, mock_post, settings):
        mock_post.return_value = http_response(200, {"model": "nomic-embed-text"})

        assert OllamaEmbeddingClient(settings).embed(["text"]) == [[]]
