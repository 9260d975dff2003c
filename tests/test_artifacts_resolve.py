"""Tests for artifact URL resolution."""

import httpx
import pytest
import respx

from tinyhci.artifacts.resolve import (
    ArtifactResolveError,
    default_artifact_url,
    resolve_artifact_url,
    select_artifact_url,
)

TEMPLATE = "https://circleci.example.com/project/{build_num}/artifacts"
SUFFIX = ".linux-amd64.tar.gz"
LISTING = [
    {"path": "tmp/tinygo.darwin-amd64.tar.gz", "url": "https://a/darwin.tar.gz"},
    {
        "path": "tmp/tinygo.linux-amd64.tar.gz",
        "url": "https://a/tinygo.linux-amd64.tar.gz",
    },
]


class TestSelectArtifactUrl:
    """Tests for select_artifact_url."""

    def test_matches_path_suffix(self) -> None:
        assert select_artifact_url(LISTING, SUFFIX) == (
            "https://a/tinygo.linux-amd64.tar.gz"
        )

    def test_matches_url_suffix(self) -> None:
        listing = [{"url": "https://a/tinygo.linux-amd64.tar.gz"}]
        assert select_artifact_url(listing, SUFFIX) == listing[0]["url"]

    def test_no_match(self) -> None:
        assert select_artifact_url(LISTING[:1], SUFFIX) is None

    @pytest.mark.parametrize("listing", [None, {}, ["x"], [{"path": SUFFIX}]])
    def test_malformed(self, listing) -> None:
        assert select_artifact_url(listing, SUFFIX) is None


class TestResolveArtifactUrl:
    """Tests for resolve_artifact_url."""

    @respx.mock
    async def test_resolves(self) -> None:
        route = respx.get(TEMPLATE.format(build_num=42)).mock(
            return_value=httpx.Response(200, json=LISTING)
        )
        async with httpx.AsyncClient() as client:
            url = await resolve_artifact_url(client, TEMPLATE, 42, SUFFIX)
        assert url == "https://a/tinygo.linux-amd64.tar.gz"
        assert route.called

    @respx.mock
    async def test_http_error(self) -> None:
        respx.get(TEMPLATE.format(build_num=42)).mock(
            return_value=httpx.Response(404)
        )
        async with httpx.AsyncClient() as client:
            with pytest.raises(ArtifactResolveError) as exc_info:
                await resolve_artifact_url(client, TEMPLATE, 42, SUFFIX)
        assert exc_info.value.code == "http_error"

    @respx.mock
    async def test_network_error(self) -> None:
        respx.get(TEMPLATE.format(build_num=42)).mock(
            side_effect=httpx.ConnectError("refused")
        )
        async with httpx.AsyncClient() as client:
            with pytest.raises(ArtifactResolveError) as exc_info:
                await resolve_artifact_url(client, TEMPLATE, 42, SUFFIX)
        assert exc_info.value.code == "network_error"

    @respx.mock
    async def test_invalid_json(self) -> None:
        respx.get(TEMPLATE.format(build_num=42)).mock(
            return_value=httpx.Response(200, content=b"<html>")
        )
        async with httpx.AsyncClient() as client:
            with pytest.raises(ArtifactResolveError) as exc_info:
                await resolve_artifact_url(client, TEMPLATE, 42, SUFFIX)
        assert exc_info.value.code == "invalid_listing"

    @respx.mock
    async def test_missing_artifact(self) -> None:
        respx.get(TEMPLATE.format(build_num=42)).mock(
            return_value=httpx.Response(200, json=LISTING[:1])
        )
        async with httpx.AsyncClient() as client:
            with pytest.raises(ArtifactResolveError) as exc_info:
                await resolve_artifact_url(client, TEMPLATE, 42, SUFFIX)
        assert exc_info.value.code == "artifact_missing"


class TestDefaultArtifactUrl:
    """Tests for default_artifact_url."""

    def test_formats_sha(self) -> None:
        assert default_artifact_url("https://x/{sha}.tar.gz", "abc") == (
            "https://x/abc.tar.gz"
        )

    def test_unset(self) -> None:
        assert default_artifact_url("", "abc") is None
