import os

import pytest

from clipfetch.config.settings import config
from clipfetch.services.info import VideoInfoService
from clipfetch.services.platform import Platform

pytestmark = pytest.mark.skipif(os.name != "posix", reason="fake yt-dlp is a shebang script")

URL = "https://www.youtube.com/watch?v=abc123"

INFO_JSON = """
print(json.dumps({
    "id": "abc123",
    "title": "Test Video",
    "thumbnail": "https://i.ytimg.com/vi/abc123/hq.jpg",
    "duration": 212.4,
    "filesize": 1048576,
    "formats": [{"format_id": "18"}, {"format_id": "22"}]
}))
"""


@pytest.mark.asyncio
async def test_info_happy_path(client, fake_tool, tool_args):
    fake_tool(INFO_JSON)

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 200
    assert response.json() == {
        "id": "abc123",
        "title": "Test Video",
        "thumbnail": "https://i.ytimg.com/vi/abc123/hq.jpg",
        "duration": 212,
        "filesize": 1048576,
        "formats": [],
        "platform": "youtube",
    }
    args = tool_args()
    assert "--dump-json" in args
    assert "--no-playlist" in args
    assert args[-2:] == ["--", URL]
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_info_query_variant(client, fake_tool):
    fake_tool(INFO_JSON)

    response = await client.get("/api/video/info", params={"url": URL})

    assert response.status_code == 200
    assert response.json()["id"] == "abc123"


@pytest.mark.asyncio
async def test_info_url_is_sanitized_before_spawn(client, fake_tool, tool_args):
    fake_tool(INFO_JSON)

    response = await client.post("/api/video/info", json={"url": "  https://youtu.be/abc123;rm -rf  "})

    assert response.status_code == 200
    assert tool_args()[-1] == "https://youtu.be/abc123rm -rf"


@pytest.mark.asyncio
async def test_info_fallback_fields(client, fake_tool):
    fake_tool("""
    print(json.dumps({
        "display_id": "disp1",
        "thumbnails": [{"url": "https://cdn.example.com/t.jpg"}],
        "filesize_approx": 2048
    }))
    """)

    response = await client.post("/api/video/info", json={"url": "https://www.tiktok.com/@u/video/1"})

    assert response.status_code == 200
    assert response.json() == {
        "id": "disp1",
        "title": "Untitled",
        "thumbnail": "https://cdn.example.com/t.jpg",
        "duration": 0,
        "filesize": 2048,
        "formats": [],
        "platform": "tiktok",
    }


@pytest.mark.asyncio
async def test_info_filesize_omitted_when_unknown(client, fake_tool):
    fake_tool('print(json.dumps({"id": "x", "title": "t"}))\n')

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 200
    assert "filesize" not in response.json()


@pytest.mark.asyncio
async def test_info_private_video(client, fake_tool):
    fake_tool("""
    sys.stderr.write("ERROR: [youtube] abc123: Sign in to confirm your age\\n")
    sys.exit(1)
    """)

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 403
    assert response.json() == {"error": "This video is private or requires authentication"}


@pytest.mark.asyncio
async def test_info_unavailable_video(client, fake_tool):
    fake_tool("""
    sys.stderr.write("ERROR: [youtube] abc123: Video unavailable\\n")
    sys.exit(1)
    """)

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 404
    assert "unavailable" in response.json()["error"]


@pytest.mark.asyncio
async def test_info_generic_failure(client, fake_tool):
    fake_tool("""
    sys.stderr.write("ERROR: something odd happened\\n")
    sys.exit(2)
    """)

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch video info: ERROR: something odd happened"}


@pytest.mark.asyncio
async def test_info_unparseable_output(client, fake_tool):
    fake_tool('print("this is not json")\n')

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to parse video information"}


@pytest.mark.asyncio
async def test_info_non_object_output(client, fake_tool):
    fake_tool('print("[1, 2, 3]")\n')

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to parse video information"}


@pytest.mark.asyncio
async def test_info_timeout(client, fake_tool, monkeypatch):
    monkeypatch.setattr(config.metadata, "timeout_seconds", 0.5)
    fake_tool("time.sleep(30)\n")

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 504


@pytest.mark.asyncio
async def test_info_output_overflow(client, fake_tool, monkeypatch):
    monkeypatch.setattr(config.metadata, "max_output_bytes", 1024)
    fake_tool('sys.stdout.write("x" * 100000)\n')

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 500
    assert response.json() == {"error": "yt-dlp returned too much data"}


@pytest.mark.asyncio
async def test_info_unsupported_platform_never_spawns(client, fake_tool, spawn_counter):
    fake_tool(INFO_JSON)

    response = await client.post("/api/video/info", json={"url": "https://vimeo.com/12345"})

    assert response.status_code == 400
    assert response.json()["error"].startswith("Unsupported platform")
    assert spawn_counter == []


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"url": ""}, {"url": "   "}])
async def test_info_missing_url(client, spawn_counter, body):
    response = await client.post("/api/video/info", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "URL is required"}
    assert spawn_counter == []


@pytest.mark.asyncio
@pytest.mark.parametrize("url", [
    "ftp://www.youtube.com/watch?v=abc",
    "https://localhost/watch",
    "https://192.168.1.10/video",
    "not a url",
])
async def test_info_rejects_bad_urls(client, spawn_counter, url):
    response = await client.post("/api/video/info", json={"url": url})

    assert response.status_code == 400
    assert spawn_counter == []


@pytest.mark.asyncio
async def test_info_tool_missing(client, no_path_tool, spawn_counter):
    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 500
    assert "not installed" in response.json()["error"]
    assert spawn_counter == []


@pytest.mark.asyncio
async def test_info_japanese_locale(client, fake_tool):
    fake_tool("""
    sys.stderr.write("ERROR: Private video\\n")
    sys.exit(1)
    """)

    response = await client.post(
        "/api/video/info",
        json={"url": URL},
        headers={"Accept-Language": "ja-JP,ja;q=0.9"}
    )

    assert response.status_code == 403
    assert response.json() == {"error": "この動画は非公開か、認証が必要です"}


@pytest.mark.asyncio
async def test_info_malformed_body(client):
    response = await client.post(
        "/api/video/info",
        content=b"{not json",
        headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_info_non_finite_numbers_fall_back(client, fake_tool):
    fake_tool("""print('{"id": "a", "title": "T", "duration": Infinity, "filesize": NaN}')\n""")

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 200
    body = response.json()
    assert body["duration"] == 0
    assert "filesize" not in body


@pytest.mark.asyncio
async def test_info_non_string_fields_fall_back(client, fake_tool):
    fake_tool("""
    print(json.dumps({
        "id": 42,
        "title": 123,
        "thumbnail": {"url": "https://cdn.example.com/t.jpg"},
        "thumbnails": [{"url": 7}],
        "duration": "not a number"
    }))
    """)

    response = await client.post("/api/video/info", json={"url": URL})

    assert response.status_code == 200
    assert response.json() == {
        "id": "42",
        "title": "Untitled",
        "thumbnail": "",
        "duration": 0,
        "formats": [],
        "platform": "youtube",
    }


@pytest.mark.parametrize("info, field, expected", [
    ({"duration": float("inf")}, "duration", 0),
    ({"duration": float("-inf")}, "duration", 0),
    ({"duration": float("nan")}, "duration", 0),
    ({"filesize": float("inf")}, "filesize", None),
    ({"filesize_approx": float("inf")}, "filesize", None),
    ({"title": ["a", "b"]}, "title", "Untitled"),
    ({"title": ""}, "title", "Untitled"),
    ({"thumbnail": 5, "thumbnails": [{"url": "https://cdn.example.com/a.jpg"}]}, "thumbnail", "https://cdn.example.com/a.jpg"),
    ({"thumbnails": "nope"}, "thumbnail", ""),
])
def test_parse_tolerates_bad_types(info, field, expected):
    video_info = VideoInfoService.parse(info, Platform.YOUTUBE)

    assert getattr(video_info, field) == expected
