import httpx
import pytest

from dubstats.errors import DecodeError, TransportError
from dubstats.services.registry_client import RegistryClient, decode_metrics

from conftest import read_fixture


def make_client(handler) -> RegistryClient:
    return RegistryClient("https://registry.test", transport=httpx.MockTransport(handler))


def test_fetch_listing_page_sends_window_and_returns_html():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="<table></table>")

    with make_client(handler) as client:
        html = client.fetch_listing_page(20, 10)

    assert html == "<table></table>"
    params = seen[0].url.params
    assert seen[0].url.path == "/"
    assert params["sort"] == "registered"
    assert params["skip"] == "20"
    assert params["limit"] == "10"


def test_fetch_latest_version_decodes_bare_json_string():
    def handler(request):
        assert request.url.path == "/api/packages/jioc/latest"
        return httpx.Response(200, text='"1.4.2"')

    with make_client(handler) as client:
        assert client.fetch_latest_version("jioc") == "1.4.2"


def test_fetch_latest_version_rejects_non_string():
    with make_client(lambda request: httpx.Response(200, json={"version": "1.0.0"})) as client:
        with pytest.raises(DecodeError):
            client.fetch_latest_version("jioc")


def test_fetch_metrics_reads_info_and_stats():
    stats_text = read_fixture("dub_package_stats.json")
    info_text = read_fixture("dub_package_info.json")
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.path.endswith("/info"):
            return httpx.Response(200, text=info_text)
        return httpx.Response(200, text=stats_text)

    with make_client(handler) as client:
        stats, info = client.fetch_metrics("slack-d", "0.0.1")

    assert paths == ["/api/packages/slack-d/0.0.1/info", "/api/packages/slack-d/stats"]
    assert stats.downloads.total == 1
    assert stats.downloads.weekly == 3
    assert stats.repo.issues == 4
    assert stats.score == pytest.approx(0.3192428946495056)
    assert info.version == "0.0.1"
    assert info.commit_id == "18e2cb3635c3102f389f17e227b30b0a3ec72cdc"


def test_package_names_are_quoted_in_paths():
    paths = []

    def handler(request):
        paths.append(request.url.raw_path)
        return httpx.Response(200, text='"0.1.0"')

    with make_client(handler) as client:
        client.fetch_latest_version("odd/name")
    assert paths == [b"/api/packages/odd%2Fname/latest"]


def test_non_2xx_is_a_transport_error_with_status():
    with make_client(lambda request: httpx.Response(503, text="down")) as client:
        with pytest.raises(TransportError) as info:
            client.fetch_listing_page(0, 10)
    assert info.value.status_code == 503
    assert info.value.url.startswith("https://registry.test/")


def test_connection_failure_is_a_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with make_client(handler) as client:
        with pytest.raises(TransportError) as info:
            client.fetch_latest_version("jioc")
    assert info.value.status_code is None


def test_malformed_json_is_a_decode_error():
    with make_client(lambda request: httpx.Response(200, text="<html>oops</html>")) as client:
        with pytest.raises(DecodeError):
            client.fetch_metrics("jioc", "1.0.0")


def test_decode_metrics_accepts_text_and_dicts():
    stats, info = decode_metrics(read_fixture("dub_package_stats.json"), {"version": "2.0.0"})
    assert stats.repo.forks == 3
    assert info.version == "2.0.0"
    assert info.readme is None


def test_decode_metrics_rejects_wrong_shapes():
    with pytest.raises(DecodeError):
        decode_metrics({"downloads": {"total": "many"}}, {"version": "1.0.0"})
    with pytest.raises(DecodeError):
        decode_metrics({}, {"readme": "no version"})
