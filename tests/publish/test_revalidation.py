"""Tests for the cache revalidation client."""

import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest
from tacklepub.config import RevalidationConfig, StoreConfig
from tacklepub.metrics import MetricsRecorder
from tacklepub.publish import RevalidationClient, paths_for


def _config(**overrides) -> RevalidationConfig:
    data = {"url": "https://example.test/api/revalidate", "secret": "s3cret", "retry_delay": 2.0}
    data.update(overrides)
    return RevalidationConfig(**data)


def _response(body: bytes = b'{"revalidated": true}') -> MagicMock:
    resp = MagicMock()
    resp.__enter__.return_value.read.return_value = body
    return resp


class TestPathsFor:
    def test_blog_paths(self, doc_factory):
        assert paths_for(doc_factory("redfish-tips")) == [
            "/blog",
            "/blog/redfish-tips",
            "/blog/category/inshore",
            "/sitemap.xml",
            "/sitemap-blog.xml",
        ]

    def test_location_paths(self, doc_factory):
        assert paths_for(doc_factory("tampa", "location")) == [
            "/locations/fl/tampa",
            "/locations/fl",
            "/locations",
            "/sitemap.xml",
        ]

    @pytest.mark.parametrize(("page_type", "route"), [("species", "/species"), ("how-to", "/how-to")])
    def test_listing_paths(self, doc_factory, page_type: str, route: str):
        assert paths_for(doc_factory("snook", page_type)) == [
            f"{route}/snook",
            route,
            "/sitemap.xml",
        ]


class TestRevalidate:
    def test_unconfigured_skips_request(self):
        client = RevalidationClient(RevalidationConfig())
        with patch("urllib.request.urlopen") as mock_urlopen:
            assert client.revalidate(["/blog"]) is False
        mock_urlopen.assert_not_called()

    def test_disabled_skips_request(self):
        client = RevalidationClient(_config(enabled=False))
        with patch("urllib.request.urlopen") as mock_urlopen:
            assert client.revalidate(["/blog"]) is False
        mock_urlopen.assert_not_called()

    def test_posts_paths_with_bearer_secret(self):
        client = RevalidationClient(_config())
        with patch("urllib.request.urlopen", return_value=_response()) as mock_urlopen:
            assert client.revalidate(["/blog", "/sitemap.xml"]) is True

        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "https://example.test/api/revalidate"
        assert req.get_method() == "POST"
        assert req.get_header("Authorization") == "Bearer s3cret"
        assert json.loads(req.data) == {"paths": ["/blog", "/sitemap.xml"]}
        assert mock_urlopen.call_args[1]["timeout"] == 5.0

    def test_retries_with_growing_delay(self):
        delays: list[float] = []
        client = RevalidationClient(_config(max_retries=2), sleep=delays.append)
        with patch(
            "urllib.request.urlopen",
            side_effect=[urllib.error.URLError("down"), TimeoutError(), _response()],
        ):
            assert client.revalidate(["/blog"]) is True
        assert delays == [2.0, 4.0]

    def test_gives_up_after_max_retries(self):
        delays: list[float] = []
        client = RevalidationClient(_config(max_retries=1), sleep=delays.append)
        with patch(
            "urllib.request.urlopen", side_effect=urllib.error.URLError("down")
        ) as mock_urlopen:
            assert client.revalidate(["/blog"]) is False
        assert mock_urlopen.call_count == 2
        assert delays == [2.0]

    def test_records_metrics(self, store_config: StoreConfig):
        metrics = MetricsRecorder(store_config)
        client = RevalidationClient(_config(max_retries=1), metrics, sleep=lambda _: None)
        with patch(
            "urllib.request.urlopen", side_effect=[urllib.error.URLError("down"), _response()]
        ):
            client.revalidate(["/blog"])

        reval = metrics.load_publish_metrics().revalidation
        assert reval.total_attempts == 2
        assert reval.total_successes == 1
        assert reval.total_failures == 1
        assert reval.recent_failures[0].paths == ["/blog"]
        assert reval.recent_failures[0].retry_attempt == 0

    def test_empty_response_body_is_success(self):
        client = RevalidationClient(_config())
        with patch("urllib.request.urlopen", return_value=_response(b"")):
            assert client.revalidate(["/blog"]) is True

    def test_revalidate_document(self, doc_factory):
        client = RevalidationClient(_config())
        with patch("urllib.request.urlopen", return_value=_response()) as mock_urlopen:
            client.revalidate_document(doc_factory("snook", "species"))

        body = json.loads(mock_urlopen.call_args[0][0].data)
        assert body["paths"][0] == "/species/snook"
