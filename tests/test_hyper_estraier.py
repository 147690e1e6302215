import pytest
from urllib.parse import parse_qs

import httpx

from search_do.backends.hyper_estraier import HyperEstraierBackend, DRAFT_CONTENT_TYPE
from search_do.core.exceptions import BackendError, BackendUnavailableError
from search_do.schemas.index import IndexDocument, SearchCondition
from search_do.utils.estraier_protocol import (
    UNBOUNDED_MAX,
    condition_form,
    dump_draft,
    parse_search_result,
)

BORDER = "--------[ff00ff00]--------"

SEARCH_BODY = "\n".join([
    BORDER,
    "VERSION\t1.0",
    "NODE\thttp://estraier.test:1978/node/test_articles",
    "HIT\t2",
    "HINT#1\truby\t2",
    "DOCNUM\t3",
    "TIME\t0.001",
    BORDER,
    "@id=12",
    "@uri=/Article/2",
    "db_id=2",
    "",
    "ruby and vim\truby",
    BORDER,
    "@id=11",
    "@uri=/Article/1",
    "db_id=1",
    "",
    "ruby on rails",
    BORDER + ":END",
    "",
])


def form_of(request: httpx.Request):
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, responses=None):
        self.requests = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        action = request.url.path.rsplit("/", 1)[-1]
        response = self.responses.get(action, httpx.Response(200))
        if isinstance(response, Exception):
            raise response
        # a fresh response per request
        return httpx.Response(response.status_code, content=response.content)


def make_backend(recorder):
    return HyperEstraierBackend(
        "test_articles",
        host="estraier.test",
        port=1978,
        user="admin",
        password="secret",
        transport=httpx.MockTransport(recorder),
    )


def make_document():
    doc = IndexDocument()
    doc.add_attr("db_id", "1")
    doc.add_attr("@uri", "/Article/1")
    doc.add_attr("@title", "Hello\tthere")
    doc.add_text("ruby  on\nrails")
    doc.add_text("")
    return doc


class TestDraftFormat:
    """Test document drafts."""

    def test_dump_draft(self):
        assert dump_draft(make_document()) == (
            "@title=Hello there\n"
            "@uri=/Article/1\n"
            "db_id=1\n"
            "\n"
            "ruby on rails\n"
        )


class TestSearchForm:
    """Test search request fields."""

    def test_condition_form(self):
        cond = SearchCondition(phrase="ruby AND vim", attrs=["db_id NUMGT 1", "@uri STRBW /"],
                               order="@mdate NUMD", max=10, skip=5)

        form = condition_form(cond, depth=1)

        assert form["phrase"] == "ruby AND vim"
        assert form["attr1"] == "db_id NUMGT 1"
        assert form["attr2"] == "@uri STRBW /"
        assert form["order"] == "@mdate NUMD"
        assert form["max"] == "10"
        assert form["skip"] == "5"
        assert form["options"] == str(cond.options)
        assert form["auxiliary"] == "32"
        assert form["depth"] == "1"

    def test_unbounded_max(self):
        assert condition_form(SearchCondition(max=None))["max"] == str(UNBOUNDED_MAX)
        assert condition_form(SearchCondition(max=-1))["max"] == str(UNBOUNDED_MAX)

    def test_defaults_are_omitted(self):
        form = condition_form(SearchCondition())

        assert "order" not in form
        assert "skip" not in form
        assert "depth" not in form


class TestParseSearchResult:
    """Test border-delimited search responses."""

    def test_documents_and_hints(self):
        documents, hints = parse_search_result(SEARCH_BODY)

        assert hints["HIT"] == "2"
        assert [doc.db_id for doc in documents] == ["2", "1"]
        assert documents[0].internal_id == "12"
        assert documents[0].snippet == "ruby and vim\truby\n"

    def test_empty_body(self):
        assert parse_search_result("") is None

    def test_truncated_body(self):
        assert parse_search_result(SEARCH_BODY.split(BORDER + ":END")[0]) is None


class TestHyperEstraierBackend:
    """Test the HTTP backend against a mock node."""

    def test_node_url(self):
        backend = make_backend(Recorder())
        assert backend.url == "http://estraier.test:1978/node/test_articles"

    def test_add_posts_draft(self):
        recorder = Recorder()
        backend = make_backend(recorder)

        backend.add(make_document())

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/node/test_articles/put_doc"
        assert request.headers["Content-Type"] == DRAFT_CONTENT_TYPE
        assert request.headers["Authorization"].startswith("Basic ")
        assert request.content.decode() == dump_draft(make_document())

    def test_search(self):
        recorder = Recorder({"search": httpx.Response(200, text=SEARCH_BODY)})
        backend = make_backend(recorder)

        documents = backend.search(SearchCondition(phrase="ruby", max=10))

        assert [doc.db_id for doc in documents] == ["2", "1"]
        form = form_of(recorder.requests[0])
        assert form["phrase"] == "ruby"
        assert form["max"] == "10"

    def test_count_reads_hit_hint(self):
        recorder = Recorder({"search": httpx.Response(200, text=SEARCH_BODY)})
        backend = make_backend(recorder)

        assert backend.count(SearchCondition(phrase="ruby", max=-1)) == 2
        assert form_of(recorder.requests[0])["max"] == "1"

    def test_remove_deletes_by_internal_id(self):
        recorder = Recorder({"search": httpx.Response(200, text=SEARCH_BODY)})
        backend = make_backend(recorder)

        assert backend.remove(2) is True

        search_request, out_request = recorder.requests
        assert form_of(search_request)["attr1"] == "db_id NUMEQ 2"
        assert out_request.url.path == "/node/test_articles/out_doc"
        assert form_of(out_request) == {"id": "12"}

    def test_remove_absent_record(self):
        recorder = Recorder({"search": httpx.Response(404)})
        backend = make_backend(recorder)

        assert backend.remove(2) is False
        assert len(recorder.requests) == 1

    @pytest.mark.parametrize("response", [
        httpx.Response(404),
        httpx.Response(200, text=""),
        httpx.Response(200, text=SEARCH_BODY.split(BORDER + ":END")[0]),
    ])
    def test_soft_empty_search(self, response):
        backend = make_backend(Recorder({"search": response}))

        assert backend.search(SearchCondition()) == []
        assert backend.count(SearchCondition()) == 0

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_rejected_credentials(self, status_code):
        backend = make_backend(Recorder({"search": httpx.Response(status_code)}))

        with pytest.raises(BackendUnavailableError) as exc_info:
            backend.search(SearchCondition())
        assert exc_info.value.status_code == status_code

    def test_mutation_failure(self):
        backend = make_backend(Recorder({"put_doc": httpx.Response(500)}))

        with pytest.raises(BackendError) as exc_info:
            backend.add(make_document())
        assert not isinstance(exc_info.value, BackendUnavailableError)
        assert exc_info.value.status_code == 500

    def test_search_server_error(self):
        backend = make_backend(Recorder({"search": httpx.Response(500)}))

        with pytest.raises(BackendError):
            backend.search(SearchCondition())

    @pytest.mark.parametrize("error", [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("too slow"),
    ])
    def test_transport_failures(self, error):
        backend = make_backend(Recorder({"put_doc": error}))

        with pytest.raises(BackendUnavailableError):
            backend.add(make_document())

    def test_close(self):
        backend = make_backend(Recorder())
        backend.close()
        assert backend.client.is_closed
