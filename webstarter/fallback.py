"""Catch-all 404 page.

``install_fallback()`` must run after route discovery: Starlette matches
routes in registration order, so the catch-all only answers requests no
discovered route matched.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

NOT_FOUND_PAGE: str = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>404 Page Not Found</title>
    <style>
        body {
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            font-family: Arial, sans-serif;
            background-color: #f0f0f0;
        }
        h1 {
            font-size: 24px;
            text-align: center;
        }
    </style>
</head>
<body>
    <h1>404 This Page is Not Available</h1>
</body>
</html>
"""

FALLBACK_PATH: str = "/{fallback_path:path}"


async def not_found(request: Request) -> HTMLResponse:
    """Serve the fixed 404 page."""
    return HTMLResponse(content=NOT_FOUND_PAGE, status_code=404)


def install_fallback(app: FastAPI) -> None:
    """Register the catch-all 404 route as the last route of ``app``.

    The route is registered without a method list, so it answers every HTTP
    method, including TRACE and extension methods.
    """
    app.router.add_route(
        FALLBACK_PATH,
        not_found,
        include_in_schema=False,
        name="not_found",
    )
