"""
Shared pytest fixtures: fixture WSDL paths, canned HTTP responses and a
stand-in ``requests.Session``.
"""
import importlib.util
import os
import sys
from unittest.mock import Mock

import pytest
import requests

FIXTURES = os.path.join(os.path.dirname(__file__), 'fixtures')
BIDDING_WSDL = os.path.join(FIXTURES, 'BiddingStrategyService.wsdl')
ABSTRACT_WSDL = os.path.join(FIXTURES, 'abstract.wsdl')

ENV_NS = 'http://schemas.xmlsoap.org/soap/envelope/'


def envelope(body, header=''):
    """Wrap body (and header) XML text in a SOAP 1.1 envelope."""
    if header:
        header = '<soapenv:Header>%s</soapenv:Header>' % header
    return ('<?xml version="1.0" encoding="UTF-8"?>'
            '<soapenv:Envelope xmlns:soapenv="%s">%s<soapenv:Body>%s</soapenv:Body></soapenv:Envelope>'
            % (ENV_NS, header, body)).encode('utf-8')


def http_response(content=b'', status=200, reason='OK'):
    res = requests.Response()
    res.status_code = status
    res.reason = reason
    res._content = content
    return res


@pytest.fixture
def session():
    """A requests.Session whose post() answers with an empty 200 unless told otherwise."""
    mock = Mock(spec=requests.Session)
    mock.post.return_value = http_response()
    return mock


@pytest.fixture
def load_module(monkeypatch):
    """Import a generated module from a file path under a throwaway name."""
    counter = [0]

    def load(path):
        counter[0] += 1
        name = 'generated_%s_%d' % (os.path.splitext(os.path.basename(path))[0], counter[0])
        spec = importlib.util.spec_from_file_location(name, path)
        module = importlib.util.module_from_spec(spec)
        monkeypatch.setitem(sys.modules, name, module)
        spec.loader.exec_module(module)
        return module
    return load
