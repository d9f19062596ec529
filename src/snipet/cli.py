from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import IO, Any, Dict, List, Optional

import httpx

from snipet.services.auth import AuthSession
from snipet.services.languages import detect_language
from snipet.services.records import User

DEFAULT_SERVER = "http://127.0.0.1:8000"


class CliError(Exception):
    pass


@dataclass
class CliConfig:
    server: str
    token: str
    user_id: str
    name: str = ""


def config_path() -> Path:
    override = os.getenv("SNIPET_CONFIG")
    if override:
        return Path(override)
    base = Path(os.getenv("XDG_CONFIG_HOME") or Path.home() / ".config")
    return base / "snipet" / "config.json"


def load_config(path: Path) -> Optional[CliConfig]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return CliConfig(**data)
    except (OSError, ValueError, TypeError):
        return None


def save_config(path: Path, config: CliConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(config), indent=2), encoding="utf-8")


def delete_config(path: Path) -> None:
    if path.exists():
        path.unlink()


def format_error(payload: Any) -> str:
    """Render an API error body: the message plus any field-level details."""
    if not isinstance(payload, dict):
        return "Unknown error"
    message = str(payload.get("message") or "Unknown error")
    data = payload.get("data")
    if isinstance(data, dict) and data:
        details = ", ".join(f"{field}: {problem}" for field, problem in data.items())
        message = f"{message} ({details})"
    return message


class SnipetClient:
    def __init__(self, server: str, token: str | None = None, transport: httpx.BaseTransport | None = None) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.Client(base_url=server.rstrip("/"), headers=headers, transport=transport, timeout=10.0)

    def close(self) -> None:
        self._client.close()

    def me(self) -> User:
        return User.model_validate(self._request("GET", "/v1/me"))

    def create_snippet(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/v1/snippets", json=fields)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            raise CliError(f"Failed to connect to server: {exc}") from exc
        if response.is_success:
            return response.json()
        try:
            body = response.json()
        except ValueError:
            body = None
        raise CliError(f"{response.status_code}: {format_error(body)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="snipet", description="Post code snippets from your terminal.")
    parser.add_argument("-t", "--title", help="Title for the snippet (required when posting)")
    parser.add_argument("-d", "--desc", default="", help="Description for the snippet")
    parser.add_argument("-l", "--lang", help="Language tag (detected from the code when omitted)")
    parser.add_argument("-v", "--visibility", default="public", help="public or private (default: public)")

    sub = parser.add_subparsers(dest="command")
    login = sub.add_parser("login", help="Verify a token and save credentials")
    login.add_argument("--token", required=True)
    login.add_argument("--server", default=DEFAULT_SERVER)
    sub.add_parser("logout", help="Remove saved credentials")
    sub.add_parser("config", help="Show the saved configuration")
    return parser


def _persist_on_change(session: AuthSession, path: Path, server: str):
    def listener(user: Optional[User]) -> None:
        if user is None:
            delete_config(path)
        else:
            save_config(path, CliConfig(server=server, token=session.token or "", user_id=user.id, name=user.name))

    return listener


def main(
    argv: Optional[List[str]] = None,
    *,
    stdin: IO[str] | None = None,
    stdout: IO[str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> int:
    stdin = stdin or sys.stdin
    out = stdout or sys.stdout
    args = build_parser().parse_args(argv)
    path = config_path()
    config = load_config(path)

    session = AuthSession()
    server = args.server if args.command == "login" else (config.server if config else DEFAULT_SERVER)
    unsubscribe = session.subscribe(_persist_on_change(session, path, server))
    try:
        if args.command == "login":
            return _login(session, args, out, transport)
        if args.command == "logout":
            session.sign_out()
            print("Logged out successfully", file=out)
            return 0
        if args.command == "config":
            return _show_config(config, out)
        return _post(config, args, stdin, out, transport)
    except CliError as exc:
        print(f"Failed: {exc}", file=out)
        return 1
    finally:
        unsubscribe()
        session.close()


def _login(session: AuthSession, args: argparse.Namespace, out: IO[str], transport) -> int:
    client = SnipetClient(args.server, args.token, transport=transport)
    try:
        user = client.me()
    finally:
        client.close()
    session.sign_in(user, args.token)
    print(f"Logged in as: {user.name or user.id}", file=out)
    print(f"Server: {args.server}", file=out)
    return 0


def _show_config(config: Optional[CliConfig], out: IO[str]) -> int:
    if config is None:
        print("Not logged in. Run: snipet login --token <TOKEN>", file=out)
        return 1
    print(f"Server: {config.server}", file=out)
    print(f"User ID: {config.user_id}", file=out)
    print(f"Name: {config.name}", file=out)
    print(f"Token: {config.token[:20]}...", file=out)
    return 0


def _post(
    config: Optional[CliConfig], args: argparse.Namespace, stdin: IO[str], out: IO[str], transport
) -> int:
    if not args.title:
        raise CliError('Title is required. Use: cat <file> | snipet --title "Your Title"')
    if stdin.isatty():
        raise CliError('No input provided. Pipe content to snipet: cat file.rs | snipet --title "My Snippet"')
    if config is None:
        raise CliError("Not logged in. First run: snipet login --token <TOKEN>")
    if args.visibility not in ("public", "private"):
        raise CliError("Visibility must be 'public' or 'private'")

    code = stdin.read()
    if not code.strip():
        raise CliError("No code provided (empty input)")
    language = args.lang or detect_language(code)

    client = SnipetClient(config.server, config.token, transport=transport)
    try:
        snippet = client.create_snippet(
            {
                "title": args.title,
                "code": code,
                "language": language,
                "description": args.desc,
                "visibility": args.visibility,
            }
        )
    finally:
        client.close()

    print(f"Title: {snippet['title']}", file=out)
    print(f"Language: {language}", file=out)
    print(f"Visibility: {args.visibility}", file=out)
    print(f"ID: {snippet['id']}", file=out)
    print(f"{config.server.rstrip('/')}/v1/snippets/{snippet['id']}", file=out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
