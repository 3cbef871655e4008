import asyncio
import json
import sys
import textwrap
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from clipfetch.config.settings import config
from clipfetch.main import app
from clipfetch.services.locator import tool_locator


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Empty working directory, dedicated tool directory, short grace periods"""
    workdir = tmp_path / "work"
    tooldir = tmp_path / "tools"
    workdir.mkdir()
    tooldir.mkdir()

    monkeypatch.chdir(workdir)
    monkeypatch.setattr(config.ytdlp, "tool_dir", str(tooldir))
    monkeypatch.setattr(config.ytdlp, "cache_tool_path", False)
    monkeypatch.setattr(config.download, "mode", "stream")
    monkeypatch.setattr(config.download, "kill_grace_seconds", 2.0)
    monkeypatch.setattr(config.rate_limit, "enabled", False)
    tool_locator.invalidate()
    yield tooldir
    tool_locator.invalidate()


@pytest.fixture
def fake_tool(isolated_config):
    """
    Install a fake yt-dlp (a Python script) into the tool directory.
    The script records its argv to args.json, then runs `body`.
    """
    tooldir: Path = isolated_config

    def install(body: str) -> Path:
        path = tooldir / "yt-dlp"
        args_file = tooldir / "args.json"
        header = (
            f"#!{sys.executable}\n"
            "import json, os, sys, time\n"
            f"with open({str(args_file)!r}, 'w') as f:\n"
            "    json.dump(sys.argv[1:], f)\n"
        )
        path.write_text(header + textwrap.dedent(body))
        path.chmod(0o755)
        return path

    return install


@pytest.fixture
def tool_args(isolated_config):
    """argv the fake tool was last called with"""
    def read() -> list:
        return json.loads((isolated_config / "args.json").read_text())
    return read


@pytest.fixture
def spawn_counter(monkeypatch):
    """Count asyncio subprocess spawns while still running them"""
    calls = []
    original = asyncio.create_subprocess_exec

    async def counting_exec(*args, **kwargs):
        calls.append(args)
        return await original(*args, **kwargs)

    monkeypatch.setattr(asyncio, "create_subprocess_exec", counting_exec)
    return calls


@pytest.fixture
def no_path_tool(monkeypatch):
    """Make the PATH lookup find nothing"""
    monkeypatch.setattr("clipfetch.services.locator.shutil.which", lambda name: None)


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
