"""
Back-office page stubs. Access control lives in ``SessionGuardMiddleware``;
by the time a protected handler runs, ``request.state.session_email`` is set.
"""

from __future__ import annotations

from html import escape

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

router = APIRouter(tags=["pages"], include_in_schema=False)


@router.get("/login", response_class=HTMLResponse)
async def login_page() -> str:
    return """
    <html><body>
      <h1>Admin login</h1>
      <p>Enter your email to receive a one-time login code.</p>
    </body></html>
    """


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request) -> str:
    email = escape(request.state.session_email)
    return f"""
    <html><body>
      <h1>Dashboard</h1>
      <p>Signed in as {email}</p>
    </body></html>
    """
