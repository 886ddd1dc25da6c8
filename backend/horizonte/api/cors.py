from fastapi import Response


def preflight_response(methods: str) -> Response:
    """Answer for explicit OPTIONS requests on collection endpoints."""
    return Response(
        status_code=200,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": methods,
            "Access-Control-Allow-Headers": "Content-Type, Authorization, Cookie",
        },
    )
