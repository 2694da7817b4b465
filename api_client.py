"""
Remote Data Client
HTTP access to the case-management backend with a shared query cache.
"""

import logging

import requests

from query_cache import QueryCache, normalize_key

logger = logging.getLogger(__name__)

UNAUTHORIZED_STATUSES = (401, 403)


class ApiError(Exception):
    """A failed backend call: network failure or a non-2xx response."""

    def __init__(self, message, status=None, server_message=None):
        super().__init__(message)
        self.status = status
        self.server_message = server_message

    @property
    def user_message(self):
        return self.server_message or str(self)


class UnauthorizedError(ApiError):
    """The session expired or the caller lacks the privilege (401/403)."""


def is_unauthorized_error(error):
    return isinstance(error, UnauthorizedError)


def key_to_path(key):
    return '/'.join(str(part) for part in normalize_key(key))


class RemoteDataClient:

    def __init__(self, base_url='', session=None, cache=None, timeout=30, token=None):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.cache = cache if cache is not None else QueryCache()
        self.timeout = timeout
        if token:
            self.session.headers['Authorization'] = f'Bearer {token}'

    @classmethod
    def from_config(cls, config, session=None):
        """Create a client from a Flask config mapping."""
        return cls(
            base_url=config['API_BASE_URL'],
            session=session,
            cache=QueryCache(stale_time=config['QUERY_STALE_SECONDS']),
            timeout=config['API_TIMEOUT_SECONDS'],
            token=config.get('API_TOKEN'),
        )

    def fetch(self, key, path=None, params=None, on_unauthorized='raise'):
        """
        Read a query, serving it from the cache while it is fresh.

        Args:
            key: query key (string or tuple); also the URL when ``path`` is omitted
            path: explicit request path when the key carries extra parts
            params: query string parameters
            on_unauthorized: 'raise' or 'return_none' for a 401 response

        Returns:
            Decoded JSON body
        """
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug('Cache hit for %s', normalize_key(key))
            return cached

        logger.debug('Cache miss for %s', normalize_key(key))
        params = {k: v for k, v in (params or {}).items() if v not in (None, '')}
        token = self.cache.begin(key)
        try:
            data = self._request('GET', path or key_to_path(key), params=params or None)
        except UnauthorizedError as e:
            if on_unauthorized == 'return_none' and e.status == 401:
                return None
            raise
        else:
            self.cache.set(key, data, token)
            return data
        finally:
            self.cache.cancel(token)

    def mutate(self, method, path, data=None):
        """Issue a state-changing request. The cache is left untouched."""
        logger.info('%s %s', method, path)
        return self._request(method, path, json=data)

    def invalidate(self, *keys):
        for key in keys:
            self.cache.invalidate(key)

    def _request(self, method, path, params=None, json=None):
        url = f'{self.base_url}{path}'
        try:
            response = self.session.request(
                method, url, params=params, json=json, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.warning('Request %s %s failed: %s', method, url, e)
            raise ApiError(f'Network error: {e}') from e

        if not response.ok:
            raise self._error_from_response(response)

        if not response.content:
            return {}
        return response.json()

    def _error_from_response(self, response):
        text = response.text or response.reason
        server_message = None
        try:
            body = response.json()
            if isinstance(body, dict):
                server_message = body.get('message')
        except ValueError:
            pass

        message = f'{response.status_code}: {text}'
        logger.warning('Backend error %s', message)
        if response.status_code in UNAUTHORIZED_STATUSES:
            return UnauthorizedError(message, response.status_code, server_message)
        return ApiError(message, response.status_code, server_message)
