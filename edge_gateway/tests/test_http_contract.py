from __future__ import annotations

import os
import socket
import subprocess
import sys
import time
from pathlib import Path
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

import pytest

ROOT = Path(__file__).resolve().parents[2]


def _free_port() -> int:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            return int(s.getsockname()[1])
    except PermissionError as exc:
        pytest.skip(f"Live HTTP tests skipped: socket operations are blocked ({exc})")


def _lower(headers) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def _request(method: str, url: str, *, headers: dict[str, str] | None = None):
    req = Request(url=url, method=method, headers=dict(headers or {}))
    try:
        with urlopen(req, timeout=10) as resp:
            return resp.status, _lower(resp.headers), resp.read().decode("utf-8")
    except HTTPError as exc:
        return exc.code, _lower(exc.headers), exc.read().decode("utf-8")


def _wait_ready(base_url: str, timeout_s: float = 15.0) -> None:
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        try:
            status, _, _ = _request("GET", f"{base_url}/health")
            if status == 200:
                return
        except (URLError, ConnectionError):
            time.sleep(0.2)
    raise RuntimeError("Server did not become ready in time")


@pytest.fixture(scope="module")
def live_server(public_pem) -> str:
    port = _free_port()
    base_url = f"http://127.0.0.1:{port}"

    env = os.environ.copy()
    env.setdefault("PYTHONUNBUFFERED", "1")
    env.update(
        {
            "EDGE_GATEWAY_PUBLIC_KEY_PEM": public_pem,
            "EDGE_GATEWAY_PRIMARY_BUCKET": "quay-primary",
            "EDGE_GATEWAY_PRIMARY_REGION": "us-east-1",
            # Unroutable so a slipped-through request can never leave the host.
            "EDGE_GATEWAY_ORIGIN_HOST_TEMPLATE": "{bucket}.invalid",
            "EDGE_GATEWAY_ORIGIN_TIMEOUT_S": "2",
        }
    )

    proc = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "uvicorn",
            "--factory",
            "edge_gateway.main:create_app",
            "--host",
            "127.0.0.1",
            "--port",
            str(port),
        ],
        cwd=str(ROOT),
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )

    try:
        _wait_ready(base_url)
        yield base_url
    finally:
        proc.terminate()
        try:
            proc.wait(timeout=10)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait(timeout=5)


def test_http_health_and_preflight(live_server: str):
    status, _, body = _request("GET", f"{live_server}/health")
    assert status == 200
    assert body == "ok"

    status, headers, _ = _request(
        "OPTIONS",
        f"{live_server}/images/foo.png",
        headers={"Access-Control-Request-Headers": "range"},
    )
    assert status == 204
    assert headers["access-control-allow-origin"] == "*"
    assert headers["access-control-allow-headers"] == "range"


def test_http_rejections(live_server: str, signer):
    status, _, body = _request("GET", f"{live_server}/images/foo.png")
    assert (status, body) == (403, "Missing query parameter")

    expired = signer.signed_query("/images/foo.png", int(time.time()) - 1)
    status, _, body = _request("GET", f"{live_server}/images/foo.png?{expired}")
    assert status == 403
    assert body.startswith("URL expired at")

    wrong = signer.signed_query("/images/bar.png", int(time.time()) + 300)
    status, _, body = _request("GET", f"{live_server}/images/foo.png?{wrong}")
    assert (status, body) == (403, "Invalid Signature")


def test_http_unreachable_origin(live_server: str, signer):
    query = signer.signed_query("/images/foo.png", int(time.time()) + 300)
    status, _, body = _request("GET", f"{live_server}/images/foo.png?{query}")
    assert status == 502
    assert body == "Origin unavailable"
