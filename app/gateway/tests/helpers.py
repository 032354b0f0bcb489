"""
Test helpers shared across gateway test modules.
"""

from unittest.mock import MagicMock

import requests
from urllib3.exceptions import MaxRetryError, NewConnectionError, ProtocolError

from gateway import signing


def provider_response(body, status_code=200):
    """Fake requests.Response carrying a JSON body."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.json.return_value = body
    return response


def signed(payload, secret, scheme):
    """Return payload with its `sign` field added."""
    return {**payload, "sign": signing.sign(payload, secret, scheme)}


def connection_refused():
    """ConnectionError as requests raises it when the TCP connect fails."""
    return requests.exceptions.ConnectionError(
        MaxRetryError(None, "/", NewConnectionError(None, "Connection refused"))
    )


def connection_reset():
    """ConnectionError as requests raises it when the peer drops a sent request."""
    return requests.exceptions.ConnectionError(
        ProtocolError("Connection aborted.", ConnectionResetError(104, "Connection reset by peer"))
    )
