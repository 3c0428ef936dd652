"""WS-Security UsernameToken (profile 1.0) header fragment."""
import random
import string

from lxml import etree

WSSE = 'http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd'
WSU = 'http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-utility-1.0.xsd'
PASSWORD_TEXT = 'http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-username-token-profile-1.0#PasswordText'

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 9


def token_id(rng, length=TOKEN_LENGTH):
    return ''.join(rng.choice(TOKEN_ALPHABET) for _ in range(length))


class UsernameToken(object):
    """
    ``<wsse:Security>`` header carrying a clear-text username and password.

    The ``wsu:Id`` is drawn once, when the token is built. ``rng`` should be a
    long-lived :class:`random.Random`; the client passes its own.
    """
    def __init__(self, username, password, must_understand='', rng=None):
        self.username = username
        self.password = password
        self.must_understand = must_understand
        self.id = 'UsernameToken-' + token_id(rng or random.Random())

    def xml(self):
        security = etree.Element('{%s}Security' % WSSE, nsmap={'wsse': WSSE})
        if self.must_understand:
            security.set('mustUnderstand', str(self.must_understand))
        token = etree.SubElement(security, '{%s}UsernameToken' % WSSE, nsmap={'wsu': WSU})
        token.set('{%s}Id' % WSU, self.id)
        etree.SubElement(token, '{%s}Username' % WSSE).text = self.username
        password = etree.SubElement(token, '{%s}Password' % WSSE, Type=PASSWORD_TEXT)
        password.text = self.password
        return security

    def __repr__(self):
        return 'UsernameToken(%r, id=%r)' % (self.username, self.id)
