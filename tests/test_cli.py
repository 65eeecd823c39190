"""
Estate CLI Test Suite

In-process tests drive ``main()`` against the fake API from conftest.
The live smoke tests at the bottom run the CLI as a subprocess against a
REAL server and are skipped unless credentials are configured.

Run with: python -m pytest tests/test_cli.py -v -s
Live tests require: ESTATE_API_BASE_URL, ESTATE_EMAIL and ESTATE_PASSWORD
"""

import json
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

from estate_client import cli
from estate_client.session import ERROR_MESSAGES

TEST_BASE_URL = "http://api.test"

# =============================================================================
# In-process runner
# =============================================================================


@pytest.fixture
def run(server, tmp_path, monkeypatch, capsys):
    """Run ``estate <args>`` in-process; returns (exit_code, parsed stdout)."""
    token_file = tmp_path / "token"

    def invoke(*args: str) -> tuple[int, object]:
        argv = ["estate", "--base-url", TEST_BASE_URL, "--token-file", str(token_file), *args]
        monkeypatch.setattr(sys, "argv", argv)
        try:
            cli.main()
            code = 0
        except SystemExit as e:
            code = e.code or 0
        out = capsys.readouterr().out.strip()
        return code, json.loads(out) if out.startswith(("{", "[")) else out

    invoke.token_file = token_file
    return invoke


# =============================================================================
# Parser
# =============================================================================


class TestParser:
    def test_props_list_defaults(self):
        args = cli.create_parser().parse_args(["props", "list"])

        assert args.func is cli.cmd_props_list
        assert args.type == "all"
        assert args.price == "all"
        assert args.page == 1
        assert args.limit == 12

    def test_global_flags(self):
        args = cli.create_parser().parse_args(["--base-url", "http://x", "-v", "auth", "me"])

        assert args.base_url == "http://x"
        assert args.verbose is True
        assert args.func is cli.cmd_auth_me

    def test_review_target_is_exclusive(self):
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args(["reviews", "list", "--property", "1", "--agent", "2"])

    def test_register_requires_names(self):
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args(["auth", "register", "a@b.co"])


# =============================================================================
# Commands
# =============================================================================


class TestCommands:
    def test_props_get(self, server, run):
        server.add("GET", "/api/properties/7", {"property": {"id": 7, "title": "Villa"}})

        code, out = run("props", "get", "7")

        assert code == 0
        assert out == {"id": 7, "title": "Villa"}

    def test_props_get_not_found(self, run):
        code, out = run("props", "get", "missing")

        assert code == 1
        assert out["error"] == "not found"
        assert out["status"] == 404

    def test_props_list(self, server, run):
        server.add(
            "GET",
            "/api/properties",
            {"properties": [{"id": 1}, {"id": 2}], "pagination": {"hasMore": False}},
        )

        code, out = run("props", "list", "--type", "HOUSE")

        assert code == 0
        assert out == {"data": [{"id": 1}, {"id": 2}], "page": 1, "has_more": False}
        assert server.query() == {"propertyType": ["HOUSE"], "page": ["1"], "limit": ["12"]}

    def test_props_list_rejects_bad_page(self, server, run):
        code, out = run("props", "list", "--page", "0")

        assert code == 1
        assert out == {"error": "--page and --limit must be positive integers"}
        assert server.requests == []

    def test_props_list_later_page_shows_only_that_page(self, server, run):
        server.add_sequence(
            "GET",
            "/api/properties",
            {"properties": [{"id": 1}, {"id": 2}, {"id": 3}], "pagination": {"hasMore": True}},
            {"properties": [{"id": 4}, {"id": 5}], "pagination": {"hasMore": False}},
        )

        code, out = run("props", "list", "--page", "2", "--limit", "2")

        assert code == 0
        assert out == {"data": [{"id": 4}, {"id": 5}], "page": 2, "has_more": False}
        assert [server.query(req)["page"] for req in server.requests] == [["1"], ["2"]]

    def test_unusable_base_url_reported(self, server, run):
        code, out = run("--base-url", "api.example.com", "props", "list")

        assert code == 1
        assert out["error"].startswith("Invalid API base URL")
        assert server.requests == []

    def test_login_then_logout(self, server, run):
        server.add("POST", "/api/auth/login", {"token": "cli-token", "user": {"id": 1, "email": "jane@example.com"}})

        code, out = run("auth", "login", "jane@example.com", "--password", "secret1")

        assert code == 0
        assert out["success"] is True
        assert out["user"]["email"] == "jane@example.com"
        assert run.token_file.read_text() == "cli-token"

        code, out = run("auth", "logout")

        assert code == 0
        assert not run.token_file.exists()

    def test_login_failure_exits_non_zero(self, server, run):
        server.add("POST", "/api/auth/login", {"error": "Invalid credentials"}, status=401, reason="Unauthorized")

        code, out = run("auth", "login", "jane@example.com", "--password", "wrong1")

        assert code == 1
        assert out == {"error": ERROR_MESSAGES["INVALID_CREDENTIALS"]}
        assert not run.token_file.exists()

    def test_password_from_environment(self, server, run, monkeypatch):
        monkeypatch.setenv("ESTATE_PASSWORD", "from-env")
        server.add("POST", "/api/auth/login", {"token": "t", "user": {"id": 1, "email": "jane@example.com"}})

        code, _ = run("auth", "login", "jane@example.com")

        assert code == 0
        assert json.loads(server.last.data)["password"] == "from-env"

    def test_fav_list_requires_login(self, run):
        code, out = run("fav", "list")

        assert code == 1
        assert "Not logged in" in out["error"]

    def test_fav_toggle(self, server, run):
        run.token_file.write_text("cli-token")
        server.add("GET", "/api/auth/me", {"user": {"id": 1, "email": "jane@example.com"}})
        server.add("GET", "/api/favorites", {"favorites": []})
        server.add("POST", "/api/favorites", {"success": True})

        code, out = run("fav", "toggle", "42")

        assert code == 0
        assert out == {"property_id": "42", "favorite": True}
        assert server.last.get_header("Authorization") == "Bearer cli-token"

    def test_expired_token_is_forgotten(self, server, run):
        run.token_file.write_text("old")
        server.add("GET", "/api/auth/me", {"error": "jwt expired"}, status=401, reason="Unauthorized")

        code, out = run("auth", "me")

        assert code == 1
        assert out == {"error": ERROR_MESSAGES["TOKEN_EXPIRED"]}
        assert not run.token_file.exists()

    def test_admin_leads_filtered(self, server, run):
        run.token_file.write_text("admin-token")
        server.add("GET", "/api/auth/me", {"user": {"id": 1, "email": "a@x.io", "role": "admin"}})
        server.add("GET", "/api/admin/leads", {"leads": [{"id": 1, "status": "NEW"}, {"id": 2, "status": "CLOSED"}]})

        code, out = run("admin", "leads", "--status", "new")

        assert code == 0
        assert out == {"data": [{"id": 1, "status": "NEW"}]}

    def test_group_without_subcommand_prints_help(self, run):
        code, out = run("props")

        assert code == 0
        assert "usage: estate props" in out


# =============================================================================
# Live smoke tests
# =============================================================================

LIVE_BASE_URL = os.environ.get("ESTATE_API_BASE_URL")
LIVE_EMAIL = os.environ.get("ESTATE_EMAIL")
LIVE_PASSWORD = os.environ.get("ESTATE_PASSWORD")

CLI_TIMEOUT = 60  # Timeout in seconds for CLI commands


@dataclass
class CLIResult:
    """Result of a single CLI invocation."""

    args: list[str]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@pytest.fixture(scope="module")
def live_token_file(tmp_path_factory):
    """Skip unless a live server is configured; share one session file."""
    if not (LIVE_BASE_URL and LIVE_EMAIL and LIVE_PASSWORD):
        pytest.skip("ESTATE_API_BASE_URL, ESTATE_EMAIL and ESTATE_PASSWORD required")
    return tmp_path_factory.mktemp("live") / "token"


def run_cli(token_file: Path, *args: str) -> CLIResult:
    """Run the CLI as a subprocess against the live server."""
    cmd = [sys.executable, "-m", "estate_client.cli", "--token-file", str(token_file), *args]
    env = os.environ.copy()
    env["ESTATE_API_BASE_URL"] = LIVE_BASE_URL or ""

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            env=env,
            timeout=CLI_TIMEOUT,
            cwd=Path(__file__).resolve().parent.parent,
        )
    except subprocess.TimeoutExpired:
        return CLIResult(list(args), -1, "", f"Command timed out after {CLI_TIMEOUT} seconds")
    return CLIResult(list(args), result.returncode, result.stdout, result.stderr)


class TestLiveSmoke:
    """Exercise the main commands against a real server."""

    def test_props_list(self, live_token_file):
        result = run_cli(live_token_file, "props", "list", "--limit", "3")
        assert result.success, f"props list failed: {result.stdout or result.stderr}"
        assert "data" in json.loads(result.stdout)

    def test_props_get_invalid_id(self, live_token_file):
        result = run_cli(live_token_file, "props", "get", "invalid-property-id-12345")
        # Should fail gracefully with proper error
        assert not result.success
        assert "error" in json.loads(result.stdout)

    def test_login_me_logout(self, live_token_file):
        result = run_cli(live_token_file, "auth", "login", LIVE_EMAIL)
        assert result.success, f"login failed: {result.stdout or result.stderr}"

        result = run_cli(live_token_file, "auth", "me")
        assert result.success, f"me failed: {result.stdout or result.stderr}"
        assert json.loads(result.stdout)["email"] == LIVE_EMAIL

        result = run_cli(live_token_file, "fav", "list")
        assert result.success, f"fav list failed: {result.stdout or result.stderr}"

        result = run_cli(live_token_file, "auth", "logout")
        assert result.success
        assert not live_token_file.exists()

    def test_agents_list(self, live_token_file):
        result = run_cli(live_token_file, "agents", "list")
        assert result.success, f"agents list failed: {result.stdout or result.stderr}"
