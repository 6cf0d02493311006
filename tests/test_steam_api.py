import pytest
import requests

from errors import NetworkError
from http_utils import RetryPolicy
from steam_api import SteamClient


class FakeResponse:
    def __init__(self, status_code=200, text="", chunks=(), headers=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}
        self._chunks = list(chunks)
        self.closed = False

    def iter_content(self, chunk_size=1):
        yield from self._chunks

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.headers = {}

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        pass


def make_client(outcomes, retries=2):
    client = SteamClient(policy=RetryPolicy(retries=retries, backoff=0.0), timeout=7)
    client.session = FakeSession(outcomes)
    return client


def test_fetch_page_returns_body():
    client = make_client([FakeResponse(text="<html>ok</html>")])

    assert client.fetch_page("https://steamcommunity.com/sharedfiles/filedetails/?id=1") == "<html>ok</html>"
    method, _url, kwargs = client.session.requests[0]
    assert method == "get"
    assert kwargs["timeout"] == 7


def test_fetch_page_retries_server_errors():
    client = make_client([FakeResponse(503), FakeResponse(text="fine")])

    assert client.fetch_page("https://example.test/page") == "fine"
    assert len(client.session.requests) == 2


def test_fetch_page_client_error_is_fatal():
    client = make_client([FakeResponse(404)])

    with pytest.raises(NetworkError, match="404"):
        client.fetch_page("https://example.test/page")


def test_fetch_page_connection_errors_exhaust_retries():
    errors = [requests.ConnectionError("Temporary failure in name resolution")] * 3
    client = make_client(errors, retries=2)

    with pytest.raises(NetworkError, match="DNS lookup failed"):
        client.fetch_page("https://example.test/page")
    assert len(client.session.requests) == 3


def test_download_file_writes_atomically(tmp_path):
    client = make_client(
        [FakeResponse(chunks=[b"abc", b"", b"def"], headers={"content-length": "6"})]
    )
    dest = tmp_path / "sub" / "steamcmd.zip"

    assert client.download_file("https://example.test/steamcmd.zip", dest) == dest
    assert dest.read_bytes() == b"abcdef"
    assert not dest.with_suffix(".zip.part").exists()


def test_download_file_rejects_short_body(tmp_path):
    client = make_client(
        [FakeResponse(chunks=[b"abc"], headers={"content-length": "10"})]
    )
    dest = tmp_path / "steamcmd.zip"

    with pytest.raises(NetworkError, match="Incomplete"):
        client.download_file("https://example.test/steamcmd.zip", dest)
    assert not dest.exists()
    assert not dest.with_suffix(".zip.part").exists()
