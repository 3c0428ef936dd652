"""
HTTP transport and the per-endpoint client.

A :class:`Client` owns the endpoint URL, TLS settings, credentials and the
header registry, and drives one SOAP round trip per :meth:`Client.call`.
It is safe to share between threads: the only mutable state is the header
registry, an immutable tuple swapped under a lock and snapshotted once per
call.
"""
import logging
import random
import threading

import requests
from requests.auth import HTTPBasicAuth

from adsoap import envelope
from adsoap.errors import DecodingError, ProtocolError, ServiceFault, TransportError
from adsoap.wsse import UsernameToken

log = logging.getLogger(__name__)

EMPTY_RESPONSE_POLICIES = ('ignore', 'error')


class TLSConfig(object):
    def __init__(self, verify=True, ca_bundle=None, client_cert=None, insecure_skip_verify=False):
        self.verify = verify
        self.ca_bundle = ca_bundle
        self.client_cert = client_cert
        self.insecure_skip_verify = insecure_skip_verify

    @property
    def requests_verify(self):
        if self.insecure_skip_verify:
            return False
        if self.ca_bundle:
            return self.ca_bundle
        return self.verify

    def __repr__(self):
        return 'TLSConfig(verify=%r, insecure_skip_verify=%r)' % (self.requests_verify, self.insecure_skip_verify)


class BasicAuth(object):
    def __init__(self, login, password):
        self.login = login
        self.password = password

    def __repr__(self):
        return 'BasicAuth(%r, ...)' % self.login


class Client(object):
    user_agent = 'adsoap/0.1'
    dial_timeout = 30
    content_type = 'text/xml; charset="utf-8"'

    def __init__(self, url, tls=None, auth=None, user_agent=None, dial_timeout=None, timeout=None,
                 keep_alive=False, empty_response='ignore', strict=False, unknown_enums='preserve',
                 log_hook=None, session=None, rng=None):
        if empty_response not in EMPTY_RESPONSE_POLICIES:
            raise ValueError('empty_response must be one of {}'.format(EMPTY_RESPONSE_POLICIES))
        self.url = url
        self.tls = tls or TLSConfig()
        self.auth = auth
        if user_agent is not None:
            self.user_agent = user_agent
        if dial_timeout is not None:
            self.dial_timeout = dial_timeout
        self.timeout = timeout
        self.keep_alive = keep_alive
        self.empty_response = empty_response
        self.strict = strict
        self.unknown_enums = unknown_enums
        self.log_hook = log_hook
        self.session = session or requests.Session()
        self.random = rng or random.Random()
        self._headers = ()
        self._lock = threading.Lock()

    @property
    def headers(self):
        return self._headers

    def add_header(self, fragment):
        with self._lock:
            self._headers = self._headers + (fragment,)

    # older name of add_header
    set_header = add_header

    def clear_headers(self):
        with self._lock:
            self._headers = ()

    def add_security_header(self, username, password, must_understand=''):
        token = UsernameToken(username, password, must_understand, rng=self.random)
        self.add_header(token)
        return token

    @property
    def http_headers(self):
        headers = {'Content-Type': self.content_type,
                   'User-Agent': self.user_agent}
        if not self.keep_alive:
            headers['Connection'] = 'close'
        return headers

    def call(self, action, request, response, timeout=None, response_headers=()):
        """
        Send ``request`` with SOAPAction ``action`` and decode the answer into
        ``response``, which is returned.

        Raises :class:`ServiceFault` for a SOAP Fault, :class:`TransportError`
        for connection and HTTP failures, including a non-2xx status that
        carries no Fault, and :class:`ProtocolError` for anything that is not
        a usable envelope.

        ``timeout`` replaces the read timeout for this call. requests applies
        it to each socket read, not to the whole exchange, so a server that
        keeps trickling bytes can hold the call longer.
        """
        headers = self._headers
        body = envelope.marshal(request, headers, self.unknown_enums)
        self._trace('request', body)

        http_headers = self.http_headers
        http_headers['SOAPAction'] = action or ''
        try:
            res = self.session.post(
                self.url,
                data=body,
                headers=http_headers,
                timeout=(self.dial_timeout, timeout or self.timeout),
                verify=self.tls.requests_verify,
                cert=self.tls.client_cert,
                auth=HTTPBasicAuth(self.auth.login, self.auth.password) if self.auth else None,
            )
            raw = res.content
        except requests.RequestException as e:
            raise TransportError('{} failed: {}'.format(self.url, e)) from e
        self._trace('response', raw)

        if not raw.strip():
            if not res.ok:
                raise TransportError('HTTP {} with an empty body'.format(res.status_code), res.status_code)
            if self.empty_response == 'error':
                raise ProtocolError('empty response body from {}'.format(self.url))
            log.debug('empty response from %s, leaving %s unchanged', self.url, type(response).__name__)
            return response

        # under an error status only a Fault counts as an answer
        target, extra = (response, response_headers) if res.ok else (type(response)(), ())
        try:
            fault = envelope.unmarshal(raw, target, self.strict, extra)
        except DecodingError as e:
            if not res.ok:
                raise TransportError('HTTP {}: {}'.format(res.status_code, res.reason), res.status_code) from e
            raise
        if fault is not None:
            raise ServiceFault(fault)
        if not res.ok:
            raise TransportError('HTTP {}: {}'.format(res.status_code, res.reason), res.status_code)
        return response

    def _trace(self, direction, payload):
        log.debug('%s %s: %d bytes', direction, self.url, len(payload))
        if self.log_hook is not None:
            self.log_hook(direction, self.url, payload)

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self):
        return 'Client(url={!r})'.format(self.url)


class Service(object):
    """
    Base of generated service classes: one method per operation, each a thin
    wrapper over :meth:`Client.call`.
    """
    url = ''

    def __init__(self, url=None, client=None, **options):
        if client is None:
            client = Client(url or self.url, **options)
        self.client = client

    def add_header(self, fragment):
        self.client.add_header(fragment)

    set_header = add_header

    def _invoke(self, action, request_class, response_class, request, kwargs):
        if request is None:
            request = request_class(**kwargs)
        elif kwargs:
            raise TypeError('pass either a {} or keyword arguments, not both'.format(request_class.__name__))
        return self.client.call(action, request, response_class())

    def __repr__(self):
        return '{}({!r})'.format(type(self).__name__, self.client.url)
