"""End-to-end tests for the serving pipeline with fake model clients."""

import pytest

from statute_navigator.config import AppConfig
from statute_navigator.errors import EngineUnavailableError
from statute_navigator.extraction.extractor import TextExtractor
from statute_navigator.retrieval.retriever import HybridRetriever
from statute_navigator.retrieval.session import SessionManager
from statute_navigator.serving.context import ServiceContext
from statute_navigator.serving.pipeline import NavigatorPipeline

from tests.conftest import FakeEmbedder, axis_vector, make_record


class FakeGenerator:
    def __init__(self) -> None:
        self.prompts: list[tuple[str, str]] = []

    def generate(self, system_prompt: str, user_message: str) -> dict:
        self.prompts.append((system_prompt, user_message))
        return {"summary": "ok", "source": "NCGS Chapter 42"}


@pytest.fixture
def query_embedder() -> FakeEmbedder:
    return FakeEmbedder(default=axis_vector(0.0))


@pytest.fixture
def service(statute_store, query_embedder) -> ServiceContext:
    return ServiceContext(AppConfig(), store=statute_store, embedder=query_embedder).open()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def navigator(service, generator) -> NavigatorPipeline:
    return NavigatorPipeline(
        context=service,
        retriever=HybridRetriever(service.store, service.embedder, top_k=2),
        sessions=SessionManager(service.store, service.embedder),
        extractor=TextExtractor(),
        generator=generator,
    )


def test_ask_grounds_prompt_in_statutes(navigator, generator):
    result = navigator.ask("My landlord will not fix the heat")

    assert result.reply["summary"] == "ok"
    assert result.context.chapter == "42"
    assert result.citations == ["Chapter_42.html", "Chapter_42.html"]
    system_prompt, user_message = generator.prompts[0]
    assert "s1: landlord shall keep premises fit" in system_prompt
    assert user_message == "USER QUESTION: My landlord will not fix the heat"


def test_document_text_is_part_of_query(navigator, generator, query_embedder):
    result = navigator.ask("What is this?", document=b"Complaint in Summary Ejectment", mime_type="text/plain")

    assert result.extracted_chars == len("Complaint in Summary Ejectment")
    assert "DOCUMENT CONTENT: Complaint in Summary Ejectment" in query_embedder.calls[-1]
    assert generator.prompts[0][1].startswith("DOCUMENT CONTENT:")


def test_failed_extraction_answers_question_alone(navigator, generator, query_embedder):
    navigator.ask("Can they evict me?", document=b"PK\x03\x04", mime_type="application/zip")
    navigator.ask("Can they evict me?")

    assert query_embedder.calls[-1] == query_embedder.calls[-2]
    assert generator.prompts[0] == generator.prompts[1]


def test_trained_document_appears_after_statutes(navigator, generator):
    navigator.train("My lease requires 30 days notice.", "lease.txt", session_id="abc")

    result = navigator.ask("How much notice?", session_id="abc")

    assert result.citations[-1] == "lease.txt"
    assert "PERSONAL DOCUMENTS" in generator.prompts[0][0]
    # other sessions never see it
    assert navigator.ask("How much notice?", session_id="xyz").context.session == []


def test_train_document_extracts_upload(navigator):
    record = navigator.train_document(b"<body>Notice to Quit</body>", "text/html", "notice.html")
    assert record is not None
    assert record.text.strip() == "Notice to Quit"
    assert navigator.sessions.exists()


def test_train_document_with_unreadable_upload(navigator):
    assert navigator.train_document(b"%PDF broken", "application/pdf", "bad.pdf") is None
    assert not navigator.sessions.exists()


def test_clear_removes_personal_context(navigator):
    navigator.train("secret lease terms", "lease.txt")
    assert navigator.clear() is True

    result = navigator.ask("What does my lease say?")
    assert result.context.session == []
    assert navigator.clear() is False


def test_missing_statute_table_is_engine_unavailable(memory_store, query_embedder, generator):
    service = ServiceContext(AppConfig(), store=memory_store, embedder=query_embedder).open()
    navigator = NavigatorPipeline(
        context=service,
        retriever=HybridRetriever(service.store, service.embedder),
        sessions=SessionManager(service.store, service.embedder),
        generator=generator,
    )
    with pytest.raises(EngineUnavailableError):
        navigator.ask("anything")
    assert generator.prompts == []


def test_result_to_dict(navigator):
    payload = navigator.ask("My landlord will not fix the heat").to_dict()
    assert payload["chapter"] == "42"
    assert payload["session_passages"] == 0
    assert set(payload["latency_ms"]) == {"extraction", "retrieval", "generation", "total"}


class TestServiceContext:
    def test_statute_table_reloads_after_refresh(self, tmp_path, query_embedder):
        config = AppConfig.model_validate({"storage": {"index_dir": str(tmp_path / "index")}})
        with ServiceContext(config, embedder=query_embedder) as service:
            service.store.create_table("nc_statutes", [make_record("s1", axis_vector(0.1))], mode="overwrite")
            service.store.refresh()
            assert service.statute_table().count == 1

    def test_store_reconnects_after_close(self, tmp_path, query_embedder):
        config = AppConfig.model_validate({"storage": {"index_dir": str(tmp_path / "index")}})
        service = ServiceContext(config, embedder=query_embedder).open()
        service.close()
        assert service.store.root == tmp_path / "index"
