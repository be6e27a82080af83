import json
import logging
from http import HTTPStatus

import requests

from .results import OperationError, Result

logger = logging.getLogger(__name__)


def get_response_json(response):
    is_json = response.headers.get("Content-Type", "").startswith("application/json")
    if is_json and response.status_code != HTTPStatus.NO_CONTENT:
        return response.json()


class HttpResult(Result):
    """
    Result of an API call made with :class:`HttpClient`.

    :ivar response: The :class:`requests.Response`.
    :ivar json: Decoded JSON body, or ``None``.
    """

    def __init__(self, response, failed=False):
        self.response = response
        self.json = get_response_json(response)

        output = json.dumps(self.json, indent=2) if self.json else response.text

        if failed:
            request = response.request
            output = (
                f"API error {response.status_code} "
                f"{request.method} {request.url}\n{output}"
            )

        super().__init__(changed=True, output=output, failed=failed)


class HttpClient:
    """
    Minimal JSON API client. Any HTTP error status raises
    :class:`~dokkuhost.results.OperationError`.

    :param endpoint: Base URL, prepended to every request path.
    :param headers: Headers sent with every request.
    :param session: A :class:`requests.Session` to use instead of a new one.
    """

    def __init__(self, endpoint, headers=None, session=None, timeout=30):
        self.endpoint = endpoint
        self.session = session or requests.Session()
        self.headers = headers or {}
        self.timeout = timeout

    def request(self, method, url, **kwargs):
        kwargs["headers"] = dict(self.headers, **kwargs.pop("headers", {}))
        kwargs.setdefault("timeout", self.timeout)
        logger.debug("%s %s%s", method, self.endpoint, url)
        try:
            response = self.session.request(method, self.endpoint + url, **kwargs)

        except requests.ConnectionError as error:
            raise OperationError(
                "API unreachable",
                result=Result(failed=True, output=f"{method} {url}: {error}"),
            ) from error

        try:
            response.raise_for_status()

        except requests.HTTPError:
            raise OperationError(
                "API call failed", result=HttpResult(response, failed=True)
            )

        return HttpResult(response)

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)
