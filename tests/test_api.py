"""
Tests for API Endpoints

Ingestion and search endpoints, their error mapping in legacy and precise
status modes, and the system routes.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from finance_assist.api import create_app
from finance_assist.rag_engine.errors import LLMError, StoreError

from .conftest import fake_response

PDF_PAGES = [
    "Quarterly report. Net revenue grew 8 percent on higher fee income.",
    "Outlook. Management expects stable margins next year.",
]


def _pdf_reader(pages):
    reader = MagicMock()
    reader.pages = [MagicMock(**{"extract_text.return_value": text}) for text in pages]
    return reader


def _save(client, payload):
    return client.post('/finance/assist/save', data=json.dumps(payload), content_type='application/json')


@pytest.fixture
def precise_client(assist_service, config):
    config.assist.precise_error_status = True
    app = create_app(testing=True, assist_service=assist_service, config=config)
    with app.test_client() as client:
        yield client


class TestSaveEndpoint:
    def test_save_pdf_then_search(self, client, session):
        session.get.return_value = fake_response(b"%PDF-1.4 report", "application/pdf")

        with patch("finance_assist.rag_engine.document_reader.PdfReader", return_value=_pdf_reader(PDF_PAGES)):
            response = _save(client, ["https://example.com/doc.pdf"])

        assert response.status_code == 200
        assert response.data == b""
        assert "error" not in response.headers

        response = client.get('/finance/assist/search', query_string={"question": "What is this document about?"})

        assert response.status_code == 200
        assert response.mimetype == 'text/plain'
        assert response.get_data(as_text=True).strip()

    def test_empty_list_succeeds(self, client, session):
        response = _save(client, [])

        assert response.status_code == 200
        assert response.data == b""
        session.get.assert_not_called()

    def test_invalid_url_returns_404_with_error_header(self, client, assist_service):
        response = _save(client, ["not-a-valid-url"])

        assert response.status_code == 404
        assert response.data == b""
        assert "not-a-valid-url" in response.headers["error"]
        assert response.headers["X-Error-Kind"] == "fetch_error"
        assert assist_service.vector_store.count() == 0

    def test_unreadable_content_returns_404(self, client, session):
        session.get.return_value = fake_response(b"\x89PNG\r\n\x1a\n\x00", "image/png")

        response = _save(client, ["https://example.com/logo.png"])

        assert response.status_code == 404
        assert response.headers["X-Error-Kind"] == "parse_error"

    def test_error_header_is_single_line(self, client, assist_service):
        assist_service.vector_store = MagicMock()
        assist_service.vector_store.add.side_effect = StoreError("index\nunavailable")
        assist_service.document_service = MagicMock()
        assist_service.document_service.read.return_value = []

        response = _save(client, ["https://example.com/doc.txt"])

        assert response.status_code == 404
        assert response.headers["error"] == "index unavailable"
        assert response.headers["X-Error-Kind"] == "store_error"

    @pytest.mark.parametrize("body", ['{"url": "https://example.com"}', '[1, 2]', 'not json'])
    def test_malformed_body_is_bad_request(self, client, body):
        response = client.post('/finance/assist/save', data=body, content_type='application/json')

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data["success"] is False
        assert data["error_type"] == "validation_error"

    def test_get_not_allowed(self, client):
        assert client.get('/finance/assist/save').status_code == 405

    def test_service_unavailable(self, config):
        app = create_app(testing=True, config=config)

        with app.test_client() as client:
            response = _save(client, ["https://example.com/doc.pdf"])

        assert response.status_code == 503


class TestSearchEndpoint:
    def test_search_returns_plain_text_answer(self, client, session):
        session.get.return_value = fake_response(b"Dividends are paid every quarter in cash.", "text/plain")
        _save(client, ["https://example.com/dividends.txt"])

        response = client.get('/finance/assist/search', query_string={"question": "When are dividends paid?"})

        assert response.status_code == 200
        assert "Dividends are paid every quarter" in response.get_data(as_text=True)

    def test_search_on_empty_store_still_answers(self, client):
        response = client.get('/finance/assist/search?question=anything')

        assert response.status_code == 200
        assert response.get_data(as_text=True)

    def test_missing_question_is_bad_request(self, client):
        response = client.get('/finance/assist/search')

        assert response.status_code == 400
        assert json.loads(response.data)["error_type"] == "validation_error"

    def test_llm_failure_returns_504_with_message_body(self, client, chat_model):
        chat_model.fail_with = LLMError("Chat completion failed: upstream 500")

        response = client.get('/finance/assist/search', query_string={"question": "What is the rate?"})

        assert response.status_code == 504
        assert response.get_data(as_text=True) == "Chat completion failed: upstream 500"
        assert response.headers["X-Error-Kind"] == "llm_error"

    def test_unexpected_failure_is_internal_error(self, client, chat_model):
        chat_model.fail_with = RuntimeError("boom")

        response = client.get('/finance/assist/search?question=q')

        assert response.status_code == 504
        assert response.get_data(as_text=True) == "boom"
        assert response.headers["X-Error-Kind"] == "internal_error"


class TestPreciseErrorStatus:
    def test_invalid_url_is_bad_request(self, precise_client):
        response = _save(precise_client, ["not-a-valid-url"])

        assert response.status_code == 400
        assert "not-a-valid-url" in response.headers["error"]

    def test_parse_failure_is_unprocessable(self, precise_client, session):
        session.get.return_value = fake_response(b"   ", "text/plain")

        assert _save(precise_client, ["https://example.com/blank.txt"]).status_code == 422

    def test_llm_failure_is_bad_gateway(self, precise_client, chat_model):
        chat_model.fail_with = LLMError("Chat completion failed: invalid key")

        assert precise_client.get('/finance/assist/search?question=q').status_code == 502

    def test_llm_timeout_is_gateway_timeout(self, precise_client, chat_model):
        chat_model.fail_with = LLMError("Chat completion timed out", timeout=True)

        assert precise_client.get('/finance/assist/search?question=q').status_code == 504

    def test_unexpected_failure_is_500(self, precise_client, chat_model):
        chat_model.fail_with = RuntimeError("boom")

        assert precise_client.get('/finance/assist/search?question=q').status_code == 500


class TestSystemRoutes:
    def test_root(self, client):
        data = json.loads(client.get('/').data)

        assert data["service"] == "Finance Assist"
        assert data["endpoints"]["ingest"] == "/finance/assist/save"

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["status"] == "healthy"
        assert data["vector_count"] == 0

    def test_health_without_service(self, config):
        app = create_app(testing=True, config=config)

        with app.test_client() as client:
            response = client.get('/health')

        assert response.status_code == 503
        assert json.loads(response.data)["components"]["assist_service"] == "not_initialized"

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/finance/assist/unknown')

        assert response.status_code == 404
        assert json.loads(response.data)["error_type"] == "not_found"

    def test_cors_exposes_error_headers(self, client):
        response = client.post('/finance/assist/save', data='["not-a-valid-url"]',
                               content_type='application/json', headers={"Origin": "https://app.example.com"})

        exposed = response.headers.get("Access-Control-Expose-Headers", "").lower()
        assert "error" in exposed
        assert "x-error-kind" in exposed
