"""
Tests for the reverse-proxy fallback.
"""

import pytest

from hyperserve.config import ListingMode
from hyperserve.proxy import join_url_path

TARGET = "http://upstream.test:8080"


@pytest.mark.parametrize("prefix, path, expected", [
    ("", "/a/b", "/a/b"),
    ("/", "/a/b", "/a/b"),
    ("/api", "/a/b", "/api/a/b"),
    ("/api/", "/a/", "/api/a/"),
    ("/api", "/", "/api/"),
    ("/api/", "/", "/api/"),
    ("", "/", "/"),
])
def test_join_url_path(prefix, path, expected):
    assert join_url_path(prefix, path) == expected


class TestProxyFallback:
    """Requests the base directory cannot satisfy."""

    def test_forwards_missing_path(self, make_client, upstream):
        response = make_client(proxy=TARGET, upstream=upstream).get("/missing?x=1&y=2")

        assert response.status_code == 418
        assert response.content == b"from upstream"
        assert response.headers["X-Upstream"] == "yes"

        (forwarded,) = upstream.requests
        assert str(forwarded.url) == "http://upstream.test:8080/missing?x=1&y=2"
        assert forwarded.headers["Host"] == "upstream.test:8080"
        assert forwarded.headers["X-Forwarded-For"] == "unknown"
        assert forwarded.headers["User-Agent"] == "testclient"

    def test_target_path_prefix(self, make_client, upstream):
        make_client(proxy=TARGET + "/api", upstream=upstream).get("/v1/items")

        assert upstream.requests[0].url.path == "/api/v1/items"

    def test_existing_files_are_not_proxied(self, make_client, upstream):
        response = make_client(proxy=TARGET, upstream=upstream).get("/hello.txt")

        assert response.content == b"hello world"
        assert upstream.requests == []

    def test_missing_index_falls_back(self, make_client, upstream):
        client = make_client(proxy=TARGET, upstream=upstream, listing=ListingMode.AUTO_INDEX)

        response = client.get("/empty/")

        assert response.status_code == 418
        assert upstream.requests[0].url.path == "/empty/"

    def test_traversal_falls_back_without_reading_outside(self, make_client, upstream):
        response = make_client(proxy=TARGET, upstream=upstream).get("/%2e%2e/secret.txt")

        assert b"top secret" not in response.content
        assert len(upstream.requests) == 1

    def test_keeps_existing_forwarded_for(self, make_client, upstream):
        make_client(proxy=TARGET, upstream=upstream).get(
            "/missing", headers={"X-Forwarded-For": "10.0.0.1", "X-Real-Ip": "10.0.0.2"},
        )

        assert upstream.requests[0].headers["X-Forwarded-For"] == "10.0.0.1"

    def test_uses_real_ip(self, make_client, upstream):
        make_client(proxy=TARGET, upstream=upstream).get("/missing", headers={"X-Real-Ip": "10.0.0.2"})

        assert upstream.requests[0].headers["X-Forwarded-For"] == "10.0.0.2"

    def test_user_agent_override(self, make_client, upstream):
        make_client(proxy=TARGET, upstream=upstream, user_agent="hyperserve-bot").get("/missing")

        assert upstream.requests[0].headers["User-Agent"] == "hyperserve-bot"

    def test_forwards_method_and_body(self, make_client, upstream):
        response = make_client(proxy=TARGET, upstream=upstream).post(
            "/submit", content=b'{"a": 1}', headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 418
        forwarded = upstream.requests[0]
        assert forwarded.method == "POST"
        assert forwarded.content == b'{"a": 1}'
        assert forwarded.headers["Content-Type"] == "application/json"

    def test_connect_failure_is_502(self, make_client, dead_upstream):
        response = make_client(proxy=TARGET, upstream=dead_upstream).get("/missing")

        assert response.status_code == 502
        assert response.text == "Proxy Error"
        assert len(dead_upstream.requests) == 1

    def test_proxied_responses_get_cors_headers(self, make_client, upstream):
        response = make_client(proxy=TARGET, upstream=upstream, cors=True).get("/missing")

        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_auth_runs_before_proxy(self, make_client, upstream):
        response = make_client(proxy=TARGET, upstream=upstream, username="u", password="p").get("/missing")

        assert response.status_code == 401
        assert upstream.requests == []
    def test_root_keeps_trailing_slash_under_prefix(self, make_client, upstream, site):
        client = make_client(proxy=TARGET + "/api", upstream=upstream, base_dir=site / "empty")

        response = client.get("/")

        assert response.status_code == 418
        assert upstream.requests[0].url.path == "/api/"

    def test_forwards_nonstandard_method(self, make_client, upstream):
        response = make_client(proxy=TARGET, upstream=upstream, cors=True).request(
            "PROPFIND", "/dav/", headers={"Depth": "1"},
        )

        assert response.status_code == 418
        assert response.content == b"from upstream"
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        forwarded = upstream.requests[0]
        assert forwarded.method == "PROPFIND"
        assert forwarded.headers["Depth"] == "1"

    def test_streams_body_in_chunks(self, make_client, upstream):
        body = bytes(range(256)) * 64
        upstream.body = body

        response = make_client(proxy=TARGET, upstream=upstream).get("/large.bin")

        assert response.status_code == 418
        assert response.content == body
