"""Plain OPTIONS handling for the POST-only endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers

BODY_HEADERS = {"content-length", "content-type"}


async def preflight() -> Response:
    return Response(status_code=200)


def allow_preflight(router: APIRouter) -> None:
    """Answer OPTIONS with an empty 200 on every path the router serves."""
    paths = sorted({route.path for route in router.routes})
    for path in paths:
        router.add_api_route(path, preflight, methods=["OPTIONS"], include_in_schema=False)


class PreflightCORSMiddleware(CORSMiddleware):
    """
    CORS middleware whose preflight answer matches the plain OPTIONS routes.

    Starlette replies to browser preflights itself with an "OK" body, or a 400
    for a disallowed origin. Here every preflight gets an empty 200 and keeps
    the computed CORS headers, so a disallowed origin is refused by the
    browser through the missing Access-Control-Allow-Origin header.
    """

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in BODY_HEADERS
        }
        return Response(status_code=200, headers=headers)
