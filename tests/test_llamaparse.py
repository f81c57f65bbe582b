"""Tests for the LlamaParse upload/poll/fetch client."""

import httpx
import pytest
import respx

from invoicer.core.config import Settings
from invoicer.services.errors import DocumentParseError, InvoicerError
from invoicer.services.llamaparse import DocumentParser

BASE = "https://parse.example.com"


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def parser(sleeps):
    return DocumentParser(
        api_key="llx-test",
        project_id="proj-1",
        base_url=BASE,
        poll_attempts=3,
        poll_interval=0.5,
        sleep=sleeps.append,
    )


@respx.mock
def test_parse_uploads_polls_and_fetches_markdown(parser, sleeps):
    upload = respx.post(f"{BASE}/api/v1/parsing/upload").mock(return_value=httpx.Response(200, json={"id": "job-1"}))
    respx.get(f"{BASE}/api/v1/parsing/job/job-1").mock(
        side_effect=[httpx.Response(200, json={"status": "PENDING"}), httpx.Response(200, json={"status": "SUCCESS"})]
    )
    result = respx.get(f"{BASE}/api/v1/parsing/job/job-1/result/markdown").mock(
        return_value=httpx.Response(200, text="# Tax Invoice\n| Item | Amount |")
    )

    markdown = parser.parse(b"%PDF-1.4", "inv.pdf")

    assert markdown.startswith("# Tax Invoice")
    assert sleeps == [0.5]
    assert upload.calls.last.request.headers["Authorization"] == "Bearer llx-test"
    assert result.calls.last.request.headers["X-Project-ID"] == "proj-1"
    assert result.calls.last.request.headers["Accept"] == "text/markdown"


@respx.mock
def test_upload_without_job_id_fails(parser):
    respx.post(f"{BASE}/api/v1/parsing/upload").mock(return_value=httpx.Response(200, json={}))
    with pytest.raises(DocumentParseError, match="no job id"):
        parser.upload(b"x", "inv.pdf")


@respx.mock
def test_upload_with_non_json_body_fails(parser):
    respx.post(f"{BASE}/api/v1/parsing/upload").mock(return_value=httpx.Response(200, text="<html>gateway</html>"))
    with pytest.raises(DocumentParseError, match="non-JSON body"):
        parser.upload(b"x", "inv.pdf")


@respx.mock
def test_poll_with_non_object_body_fails(parser):
    respx.get(f"{BASE}/api/v1/parsing/job/job-1").mock(return_value=httpx.Response(200, json=["SUCCESS"]))
    with pytest.raises(DocumentParseError, match="unexpected JSON"):
        parser.poll_status("job-1")


@respx.mock
def test_upload_http_error_fails(parser):
    respx.post(f"{BASE}/api/v1/parsing/upload").mock(return_value=httpx.Response(401))
    with pytest.raises(DocumentParseError, match="Upload of inv.pdf failed"):
        parser.upload(b"x", "inv.pdf")


@respx.mock
def test_job_error_status_fails(parser):
    respx.get(f"{BASE}/api/v1/parsing/job/job-1").mock(return_value=httpx.Response(200, json={"status": "ERROR"}))
    with pytest.raises(DocumentParseError, match="job-1 failed"):
        parser.wait_for_job("job-1")


@respx.mock
def test_polling_gives_up_after_max_attempts(parser, sleeps):
    route = respx.get(f"{BASE}/api/v1/parsing/job/job-1").mock(
        return_value=httpx.Response(200, json={"status": "RUNNING"})
    )

    with pytest.raises(DocumentParseError, match="after 3 polls"):
        parser.wait_for_job("job-1")

    assert route.call_count == 3
    assert sleeps == [0.5, 0.5]


@respx.mock
def test_result_redirect_is_followed_without_auth(parser):
    respx.get(f"{BASE}/api/v1/parsing/job/job-1/result/markdown").mock(
        return_value=httpx.Response(307, headers={"Location": "https://bucket.example.com/result.md?sig=abc"})
    )
    presigned = respx.get("https://bucket.example.com/result.md?sig=abc").mock(return_value=httpx.Response(200, text="# Moved"))

    assert parser.fetch_result("job-1") == "# Moved"
    assert "Authorization" not in presigned.calls.last.request.headers


@respx.mock
def test_result_fetch_error_includes_status(parser):
    respx.get(f"{BASE}/api/v1/parsing/job/job-1/result/markdown").mock(
        return_value=httpx.Response(404, text="job not found")
    )
    with pytest.raises(DocumentParseError, match="Result fetch failed: 404"):
        parser.fetch_result("job-1")


def test_from_settings_requires_api_key():
    with pytest.raises(InvoicerError, match="LLAMAPARSE_API_KEY"):
        DocumentParser.from_settings(Settings(LLAMAPARSE_API_KEY=None))


def test_from_settings_trims_credentials():
    cfg = Settings(LLAMAPARSE_API_KEY=" llx-key \n", LLAMAPARSE_PROJECT_ID=" p ", LLAMAPARSE_BASE_URL="https://x.io/ ")
    parser = DocumentParser.from_settings(cfg)
    assert (parser.api_key, parser.project_id, parser.base_url) == ("llx-key", "p", "https://x.io")
