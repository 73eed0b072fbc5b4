import argparse

import httpx
import pytest

from cli import main as cli_main
from client import HttpClient
from utils.storage import TokenStorage
from conftest import BASE_URL, envelope


@pytest.fixture
def token_file(tmp_path):
    return str(tmp_path / "tokens.json")


@pytest.fixture
def backend(monkeypatch, token_file):
    """Route CLI requests to a fake API instead of the network"""
    requests = []
    routes = {}

    def handler(request):
        requests.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        # Fresh copy per request so a route can answer more than once
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def build_client(args):
        return HttpClient(
            base_url=BASE_URL,
            storage=TokenStorage(token_file),
            transport=httpx.MockTransport(handler),
        )

    monkeypatch.setattr(cli_main, "build_client", build_client)
    monkeypatch.setattr(cli_main, "setup_logging", lambda debug: None)
    return routes, requests


def test_parse_query():
    assert cli_main.parse_query(["status=active", "q=a=b"]) == {"status": "active", "q": "a=b"}
    assert cli_main.parse_query(None) == {}
    with pytest.raises(argparse.ArgumentTypeError):
        cli_main.parse_query(["novalue"])


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        cli_main.build_parser().parse_args([])


def test_login_status_logout(backend, token_file):
    routes, requests = backend
    routes["/api/auth/logout"] = httpx.Response(200, json=envelope(None))

    assert cli_main.main(["login", "--access-token", "a1", "--refresh-token", "r1"]) == 0
    assert TokenStorage(token_file).get_access_token() == "a1"

    assert cli_main.main(["status"]) == 0

    assert cli_main.main(["logout"]) == 0
    assert TokenStorage(token_file).load_tokens() is None
    assert [r.url.path for r in requests] == ["/api/auth/logout"]


def test_get_prints_data(backend, capsys):
    routes, requests = backend
    routes["/api/services"] = httpx.Response(200, json=envelope([{"_id": "s1"}]))

    assert cli_main.main(["get", "/services", "-q", "category=wash"]) == 0

    assert requests[0].url.params["category"] == "wash"
    assert "s1" in capsys.readouterr().out


def test_get_reports_error(backend, capsys):
    assert cli_main.main(["get", "/missing"]) == 1
    assert "Not found" in capsys.readouterr().out


def test_list_walks_pages(backend):
    routes, requests = backend
    routes["/api/offers"] = httpx.Response(200, json=envelope([{"_id": "o1"}, {"_id": "o2"}], total=2))

    assert cli_main.main(["list", "/offers", "--limit", "2"]) == 0
    assert len(requests) == 1
    assert requests[0].url.params["page"] == "1"
    assert requests[0].url.params["limit"] == "2"


def test_get_still_unauthorized_after_refresh_clears_tokens(backend, token_file, capsys):
    routes, requests = backend
    routes["/api/auth/refresh-token"] = httpx.Response(
        200, json=envelope({"accessToken": "a2", "refreshToken": "r2"})
    )
    routes["/api/admin/reports"] = httpx.Response(401, json={"status": "fail", "message": "Not allowed"})
    TokenStorage(token_file).save_tokens("a1", "r1")

    assert cli_main.main(["get", "/admin/reports", "--cache-ttl", "0"]) == 1

    assert TokenStorage(token_file).load_tokens() is None
    assert "Session expired" in capsys.readouterr().out


def test_get_cache_ttl_defaults_to_setting():
    args = cli_main.build_parser().parse_args(["get", "/services"])
    assert args.cache_ttl == cli_main.settings.DEFAULT_CACHE_TTL
