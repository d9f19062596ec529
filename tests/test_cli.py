from __future__ import annotations

import io
import json
from datetime import datetime, timezone

import httpx
import pytest

from snipet.cli import CliConfig, format_error, load_config, main, save_config

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc).isoformat()
USER = {"id": "u1", "name": "alice", "avatar": None, "about": None, "created": NOW, "updated": NOW}


class Pipe(io.StringIO):
    def isatty(self) -> bool:
        return False


class Terminal(io.StringIO):
    def isatty(self) -> bool:
        return True


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "snipet" / "config.json"
    monkeypatch.setenv("SNIPET_CONFIG", str(path))
    return path


def server(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.headers.get("Authorization") != "Bearer good-token":
            return httpx.Response(401, json={"message": "The request requires valid record authorization token.", "data": {}})
        if request.url.path == "/v1/me":
            return httpx.Response(200, json=USER)
        if request.url.path == "/v1/snippets" and request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(201, json={**body, "id": "s1", "author": "u1", "created": NOW, "updated": NOW})
        return httpx.Response(404, json={"message": "not found", "data": {}})

    return httpx.MockTransport(handler)


def test_login_saves_config_and_logout_removes_it(config_file):
    out = io.StringIO()
    requests = []

    code = main(["login", "--token", "good-token", "--server", "http://snipet.test"], stdout=out, transport=server(requests))

    assert code == 0
    assert "Logged in as: alice" in out.getvalue()
    assert load_config(config_file) == CliConfig(server="http://snipet.test", token="good-token", user_id="u1", name="alice")

    assert main(["logout"], stdout=io.StringIO()) == 0
    assert not config_file.exists()


def test_login_with_bad_token_keeps_no_config(config_file):
    out = io.StringIO()

    code = main(["login", "--token", "bad-token"], stdout=out, transport=server([]))

    assert code == 1
    assert "401" in out.getvalue()
    assert not config_file.exists()


def test_post_reads_stdin_and_detects_language(config_file):
    save_config(config_file, CliConfig(server="http://snipet.test", token="good-token", user_id="u1", name="alice"))
    out = io.StringIO()
    requests = []

    code = main(
        ["--title", "Greeter", "--desc", "says hi"],
        stdin=Pipe("def greet(name):\n    return 'hi ' + name\n"),
        stdout=out,
        transport=server(requests),
    )

    assert code == 0
    sent = json.loads(requests[0].content)
    assert sent["language"] == "python"
    assert sent["visibility"] == "public"
    assert sent["description"] == "says hi"
    assert "http://snipet.test/v1/snippets/s1" in out.getvalue()


def test_post_guards(config_file):
    assert main(["--title", "T"], stdin=Terminal(), stdout=io.StringIO()) == 1
    assert main([], stdin=Pipe("x = 1"), stdout=io.StringIO()) == 1

    out = io.StringIO()
    assert main(["--title", "T"], stdin=Pipe("code here"), stdout=out) == 1
    assert "Not logged in" in out.getvalue()

    save_config(config_file, CliConfig(server="http://snipet.test", token="good-token", user_id="u1"))
    out = io.StringIO()
    assert main(["--title", "T", "--visibility", "secret"], stdin=Pipe("code here"), stdout=out) == 1
    assert "public" in out.getvalue()


def test_config_command(config_file):
    out = io.StringIO()
    assert main(["config"], stdout=out) == 1
    assert "Not logged in" in out.getvalue()

    save_config(config_file, CliConfig(server="http://snipet.test", token="good-token", user_id="u1", name="alice"))
    out = io.StringIO()
    assert main(["config"], stdout=out) == 0
    assert "User ID: u1" in out.getvalue()


def test_format_error_includes_field_details():
    payload = {"message": "Failed to validate the submitted data.", "data": {"code": "too short"}}

    assert format_error(payload) == "Failed to validate the submitted data. (code: too short)"
    assert format_error(None) == "Unknown error"
