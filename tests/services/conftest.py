"""Route test fixtures — FastAPI app over the per-test Services + httpx client.

Invariants:
    - The app is built with create_app(services=...), so routes hit the same
      in-memory database and fakes the test asserts against
    - The client keeps no cookies between calls: tests send the session cookie
      explicitly, which lets one test juggle several sessions

Design Decisions:
    - ASGITransport: no server process, the lifespan is bypassed because the
      handles are prebuilt
"""

from http.cookies import SimpleCookie

import pytest
from httpx import ASGITransport, AsyncClient

from gatehouse.main import create_app
from tests.conftest import PASSWORD


@pytest.fixture
async def client(services):
    app = create_app(services=services)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c


def session_cookie(response, name: str = "sid"):
    """Parse the Set-Cookie morsel for the session cookie (or None)."""
    for header in response.headers.get_list("set-cookie"):
        jar = SimpleCookie()
        jar.load(header)
        if name in jar:
            return jar[name]
    return None


async def login(client, email: str = "ada@example.org", password: str = PASSWORD):
    """POST /login; returns (response, raw token or None). Leaves the jar empty."""
    res = await client.post(
        "/api/v1/auth/login", json={"email": email, "password": password},
    )
    morsel = session_cookie(res)
    client.cookies.clear()
    return res, (morsel.value if morsel is not None and morsel.value else None)


def auth_headers(token: str) -> dict:
    return {"Cookie": f"sid={token}"}
