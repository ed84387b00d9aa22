from typing import Dict, Optional, Union
import azure.functions as func

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def cors_response(
    body: Union[str, bytes] = b"",
    status: int = 200,
    mime: str = "text/plain",
    headers: Optional[Dict[str, str]] = None,
) -> func.HttpResponse:
    all_headers = dict(CORS_HEADERS)
    if headers:
        all_headers.update(headers)
    return func.HttpResponse(
        body=body,
        status_code=status,
        mimetype=mime,
        headers=all_headers,
    )
