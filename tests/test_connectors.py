"""Tests for platform connectors."""
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import json_body
from studio_integrations.connectors import (
    LinkedInConnector,
    PartialThreadError,
    PublishContent,
    RedditConnector,
    XConnector,
    YouTubeConnector,
    get_connector,
    split_into_thread,
    validate_content,
)
from studio_integrations.core.errors import (
    ProviderError,
    TransientNetworkError,
    UnknownProviderError,
    ValidationError,
)
from studio_integrations.credentials import Credential, CredentialSource
from studio_integrations.upload import UploadResult


def credential(platform: str) -> Credential:
    return Credential(platform, "ws_1", "tok", CredentialSource.OAUTH)


def fail_on_request(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


class TestThreadSplitting:
    def test_short_text_is_one_part(self):
        assert split_into_thread("Hello world.") == ["Hello world."]

    def test_splits_on_sentences(self):
        text = " ".join(["This is a sentence of moderate length."] * 20)
        parts = split_into_thread(text, 280)

        assert len(parts) > 1
        assert all(len(p) <= 280 for p in parts)
        assert all(p.endswith(".") for p in parts)
        assert " ".join(parts) == text

    def test_long_sentence_splits_on_words(self):
        text = "word " * 100
        parts = split_into_thread(text.strip(), 50)
        assert all(len(p) <= 50 for p in parts)
        assert " ".join(parts).split() == text.split()

    def test_overlong_word_is_chunked(self):
        parts = split_into_thread("a" * 600, 280)
        assert [len(p) for p in parts] == [280, 280, 40]


class TestValidateContent:
    def test_within_limit(self):
        check = validate_content("linkedin", "Post text")
        assert check.ok

    def test_over_limit(self):
        check = validate_content("linkedin", "x" * 3001)
        assert not check.character_limit_ok
        assert check.format_ok

    def test_blank_fails_format(self):
        assert not validate_content("reddit", "   ").format_ok

    def test_x_allows_threads(self):
        assert validate_content("x", "Sentence here. " * 60).character_limit_ok

    def test_x_rejects_beyond_thread_cap(self):
        assert not validate_content("x", "word " * 3000).character_limit_ok

    def test_unknown_platform_uses_default_limit(self):
        assert validate_content("mastodon", "x" * 2000).ok
        assert not validate_content("mastodon", "x" * 2001).ok


class TestDryRun:
    @pytest.mark.asyncio
    async def test_over_limit_makes_no_network_call(self, mock_http):
        client, transport = mock_http(fail_on_request)
        connector = LinkedInConnector("tok", client=client)

        result = await connector.dry_run("x" * 3500)

        assert result.success is False
        assert result.validation.character_limit_ok is False
        assert result.validation.oauth_valid is None
        assert result.estimated_reach == 500
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_valid_content_and_token(self, mock_http):
        client, transport = mock_http(lambda r: httpx.Response(200, json={"sub": "abc", "name": "Jordan"}))
        connector = LinkedInConnector("tok", client=client)

        result = await connector.dry_run("Hello LinkedIn")

        assert result.success is True
        assert result.validation.oauth_valid is True
        assert str(transport.requests[0].url) == "https://api.linkedin.com/v2/userinfo"
        assert result.to_dict()["validation"]["oauth_valid"] is True

    @pytest.mark.asyncio
    async def test_revoked_token(self, mock_http):
        client, _ = mock_http(lambda r: httpx.Response(401, text="revoked"))
        result = await XConnector("tok", client=client).dry_run("Hello X")

        assert result.success is False
        assert result.validation.oauth_valid is False

    @pytest.mark.asyncio
    async def test_no_token(self, mock_http):
        client, transport = mock_http(fail_on_request)
        result = await RedditConnector(None, client=client).dry_run("Hello Reddit")

        assert result.validation.oauth_valid is False
        assert transport.requests == []


class TestLinkedInConnector:
    @pytest.mark.asyncio
    async def test_publish(self, mock_http):
        def handler(request):
            if request.url.path == "/v2/userinfo":
                return httpx.Response(200, json={"sub": "abc123"})
            return httpx.Response(201, headers={"x-restli-id": "urn:li:share:42"})

        client, transport = mock_http(handler)
        content = PublishContent(text="Launch!", link_url="https://example.com", title="Our launch")

        result = await LinkedInConnector(client=client).publish(content, credential("linkedin"))

        post = transport.requests[1]
        body = json_body(post)
        assert post.headers["LinkedIn-Version"] == "202601"
        assert post.headers["X-Restli-Protocol-Version"] == "2.0.0"
        assert post.headers["Authorization"] == "Bearer tok"
        assert body["author"] == "urn:li:person:abc123"
        assert body["content"]["article"]["source"] == "https://example.com"
        assert result.success
        assert result.post_url == "https://www.linkedin.com/feed/update/urn:li:share:42"

    @pytest.mark.asyncio
    async def test_missing_post_id(self, mock_http):
        def handler(request):
            if request.url.path == "/v2/userinfo":
                return httpx.Response(200, json={"sub": "abc123"})
            return httpx.Response(201)

        client, _ = mock_http(handler)
        with pytest.raises(ProviderError) as exc_info:
            await LinkedInConnector(client=client).publish("Launch!", credential("linkedin"))
        assert exc_info.value.code == "EMPTY_RESPONSE"

    @pytest.mark.asyncio
    async def test_scope_error_is_classified(self, mock_http):
        client, _ = mock_http(lambda r: httpx.Response(403, text="ACCESS_DENIED: missing scope w_member_social"))
        with pytest.raises(ProviderError) as exc_info:
            await LinkedInConnector(client=client).publish("Launch!", credential("linkedin"))
        assert exc_info.value.code == "SCOPE"
        assert exc_info.value.status == 403
        assert exc_info.value.provider_id == "linkedin"

    @pytest.mark.asyncio
    async def test_over_limit_raises_before_sending(self, mock_http):
        client, transport = mock_http(fail_on_request)
        with pytest.raises(ValidationError):
            await LinkedInConnector(client=client).publish("x" * 3001, credential("linkedin"))
        assert transport.requests == []


class TestXConnector:
    @pytest.mark.asyncio
    async def test_single_tweet(self, mock_http):
        client, transport = mock_http(lambda r: httpx.Response(201, json={"data": {"id": "111"}}))

        result = await XConnector(client=client).publish("Hello X", credential("x"))

        assert json_body(transport.requests[0]) == {"text": "Hello X"}
        assert result.post_id == "111"
        assert result.post_url == "https://x.com/i/status/111"
        assert result.thread_ids == []

    @pytest.mark.asyncio
    async def test_thread_replies_to_previous_part(self, mock_http):
        ids = iter(["1", "2", "3", "4", "5"])
        client, transport = mock_http(lambda r: httpx.Response(201, json={"data": {"id": next(ids)}}))
        text = " ".join(["This sentence is part of a long thread."] * 15)

        result = await XConnector(client=client).publish(text, credential("x"))

        bodies = [json_body(r) for r in transport.requests]
        assert "reply" not in bodies[0]
        assert bodies[1]["reply"] == {"in_reply_to_tweet_id": "1"}
        assert result.post_id == "1"
        assert result.thread_ids == [str(i) for i in range(1, len(bodies) + 1)]

    @pytest.mark.asyncio
    async def test_partial_thread_failure_reports_posted_ids(self, mock_http):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 2:
                return httpx.Response(429, text="Too Many Requests")
            return httpx.Response(201, json={"data": {"id": str(len(calls))}})

        client, _ = mock_http(handler)
        text = " ".join(["This sentence is part of a long thread."] * 15)

        with pytest.raises(PartialThreadError) as exc_info:
            await XConnector(client=client).publish(text, credential("x"))
        assert exc_info.value.posted_ids == ["1"]
        assert exc_info.value.code == "RATE_LIMIT"

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, mock_http):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client, _ = mock_http(handler)
        with pytest.raises(TransientNetworkError):
            await XConnector(client=client).publish("Hello", credential("x"))


class TestRedditConnector:
    @pytest.mark.asyncio
    async def test_self_post(self, mock_http):
        client, transport = mock_http(lambda r: httpx.Response(200, json={
            "json": {"errors": [], "data": {"name": "t3_abc", "url": "https://reddit.com/r/python/abc"}}
        }))
        content = PublishContent(text="Body", title="Title", subreddit="python")

        result = await RedditConnector(client=client).publish(content, credential("reddit"))

        request = transport.requests[0]
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        assert form["kind"] == "self"
        assert form["sr"] == "python"
        assert request.headers["User-Agent"] == "studio-integrations/0.1"
        assert result.post_id == "t3_abc"

    @pytest.mark.asyncio
    async def test_errors_in_200_body(self, mock_http):
        client, _ = mock_http(lambda r: httpx.Response(200, json={
            "json": {"errors": [["SUBREDDIT_NOEXIST", "that subreddit doesn't exist", "sr"]]}
        }))
        content = PublishContent(text="Body", title="Title", subreddit="nope")

        with pytest.raises(ProviderError) as exc_info:
            await RedditConnector(client=client).publish(content, credential("reddit"))
        assert exc_info.value.code == "PAYLOAD"
        assert "SUBREDDIT_NOEXIST" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_requires_subreddit(self, mock_http):
        client, transport = mock_http(fail_on_request)
        with pytest.raises(ValidationError):
            await RedditConnector(client=client).publish(PublishContent(text="Body", title="T"), credential("reddit"))
        assert transport.requests == []


class FakeUploader:
    def __init__(self):
        self.calls = []

    async def upload(self, token, metadata, source_url):
        self.calls.append((token, metadata, source_url))
        return UploadResult(video_id="vid1", permalink="https://youtube.com/watch?v=vid1")

    async def close(self):
        pass


class TestYouTubeConnector:
    @pytest.mark.asyncio
    async def test_publish_uploads_video(self):
        uploader = FakeUploader()
        content = PublishContent(
            text="Description",
            title="T" * 120,
            media_url="https://cdn.example.com/v.mp4",
            visibility="unlisted",
        )

        result = await YouTubeConnector(uploader=uploader).publish(content, credential("youtube"))

        token, metadata, source_url = uploader.calls[0]
        assert token == "tok"
        assert len(metadata.title) == 100
        assert metadata.privacy_status == "unlisted"
        assert source_url == "https://cdn.example.com/v.mp4"
        assert result.post_url == "https://youtube.com/watch?v=vid1"

    @pytest.mark.asyncio
    async def test_requires_media_url(self):
        with pytest.raises(ValidationError):
            await YouTubeConnector(uploader=FakeUploader()).publish(
                PublishContent(text="d", title="t"), credential("youtube")
            )

    @pytest.mark.asyncio
    async def test_validate_token_needs_a_channel(self, mock_http):
        client, _ = mock_http(lambda r: httpx.Response(200, json={"items": []}))
        assert await YouTubeConnector("tok", client=client).validate_token() is False


class TestRegistry:
    def test_get_connector(self):
        connector = get_connector("LinkedIn", "tok")
        assert isinstance(connector, LinkedInConnector)
        assert connector.access_token == "tok"

    def test_unknown_platform(self):
        with pytest.raises(UnknownProviderError):
            get_connector("myspace")


def reddit_content() -> PublishContent:
    return PublishContent(text="Body", title="Title", subreddit="python")


class TestMalformedResponses:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("connector_cls,content,body,code", [
        (LinkedInConnector, "Launch!", dict(status_code=200, json={}), "INVALID_RESPONSE"),
        (LinkedInConnector, "Launch!", dict(status_code=200, text="not json"), "INVALID_RESPONSE"),
        (XConnector, "Hello", dict(status_code=201, json={}), "EMPTY_RESPONSE"),
        (XConnector, "Hello", dict(status_code=201, json={"data": ["555"]}), "EMPTY_RESPONSE"),
        (XConnector, "Hello", dict(status_code=201, text="<html></html>"), "INVALID_RESPONSE"),
        (RedditConnector, reddit_content(), dict(status_code=200, json={}), "EMPTY_RESPONSE"),
        (RedditConnector, reddit_content(), dict(status_code=200, json={"json": "ok"}), "EMPTY_RESPONSE"),
        (RedditConnector, reddit_content(), dict(status_code=200, json=["t3_abc"]), "INVALID_RESPONSE"),
    ])
    async def test_publish_raises_provider_error(self, mock_http, connector_cls, content, body, code):
        client, _ = mock_http(lambda r: httpx.Response(**body))
        connector = connector_cls(client=client)

        with pytest.raises(ProviderError) as exc_info:
            await connector.publish(content, credential(connector.platform))
        assert exc_info.value.code == code
        assert exc_info.value.provider_id == connector.platform

    @pytest.mark.asyncio
    @pytest.mark.parametrize("connector_cls", [LinkedInConnector, XConnector, RedditConnector, YouTubeConnector])
    @pytest.mark.parametrize("body", [
        dict(status_code=200, json=["not", "an", "object"]),
        dict(status_code=200, json="ok"),
        dict(status_code=200, json={"data": "u1", "items": None}),
        dict(status_code=200, text="<html>login</html>"),
    ])
    async def test_validate_token_returns_false(self, mock_http, connector_cls, body):
        client, _ = mock_http(lambda r: httpx.Response(**body))
        connector = connector_cls("tok", client=client)

        assert await connector.validate_token() is False
        assert (await connector.dry_run("Hello")).validation.oauth_valid is False
