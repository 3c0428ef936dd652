"""
SOAP 1.1 envelope framing.

A SOAP message is an XML document that consists of a mandatory SOAP
envelope, an optional SOAP header, and a mandatory SOAP body. Only the
wrapped document/literal style is supported: the body holds exactly one
element, either the operation payload or a Fault.
"""
import copy

from lxml import etree
from lxml.builder import ElementMaker

from adsoap.codec import XSI, Decoder, Encoder
from adsoap.errors import DecodingError, EncodingError
from adsoap.schema import ComplexType, QName

ENV = 'http://schemas.xmlsoap.org/soap/envelope/'

NSMAP = {
    'soapenv': ENV,
    'xsi': XSI,
}

ENVELOPE = '{%s}Envelope' % ENV
HEADER = '{%s}Header' % ENV
BODY = '{%s}Body' % ENV
FAULT = '{%s}Fault' % ENV

PARSER = etree.XMLParser(
    resolve_entities=False, no_network=True, remove_comments=True, huge_tree=False
)

MULTIPLE_BODY_ELEMENTS = 'Found multiple elements inside SOAP body; not wrapped-document/literal WS-I compliant'


class Fault(object):
    CODES = {
        'VersionMismatch': 'SOAP Version Mismatch Error',
        'MustUnderstand': 'SOAP Must Understand Error',
        'Client': 'Client Error',
        'Server': 'Server Error',
    }

    def __init__(self, code, string, actor=None, detail=None):
        self.code = code
        self.string = string
        self.actor = actor
        self.detail = detail

    @classmethod
    def from_element(cls, elem):
        values = {}
        for child in elem:
            if isinstance(child.tag, str):
                values[etree.QName(child).localname] = child
        detail = values.get('detail')
        return cls(
            code=_text(values.get('faultcode')),
            string=_text(values.get('faultstring')),
            actor=_text(values.get('faultactor')) or None,
            detail=detail,
        )

    @property
    def kind(self):
        """The faultcode without its prefix: Client, Server, ..."""
        return (self.code or '').rsplit(':', 1)[-1]

    @property
    def description(self):
        return Fault.CODES.get(self.kind.split('.')[0], self.kind)

    def detail_as(self, record_class, strict=False):
        """
        Decode the first element of ``detail`` as ``record_class``; returns
        None when the fault has no detail.
        """
        if self.detail is None:
            return None
        for child in self.detail:
            if isinstance(child.tag, str):
                return Decoder(strict).record(child, record_class)
        return None

    def __str__(self):
        return self.string or ''

    def __repr__(self):
        return 'Fault(code=%r, string=%r)' % (self.code, self.string)


def _text(elem):
    if elem is None:
        return ''
    return ''.join(elem.itertext()).strip()


def marshal(request, headers=(), unknown_enums='preserve'):
    """Serialize ``request`` and the header fragments into an envelope."""
    if not isinstance(request, ComplexType) or request.element is None:
        raise EncodingError('request {!r} carries no element QName'.format(request))
    encoder = Encoder(unknown_enums)
    E = ElementMaker(namespace=ENV, nsmap=NSMAP)
    envelope = E.Envelope()
    if headers:
        header = etree.SubElement(envelope, HEADER)
        for fragment in headers:
            _append_header(encoder, header, fragment)
    body = etree.SubElement(envelope, BODY)
    encoder.element(body, request)
    return etree.tostring(envelope, xml_declaration=True, encoding='UTF-8')


def _append_header(encoder, header, fragment):
    if isinstance(fragment, ComplexType):
        encoder.element(header, fragment)
    elif isinstance(fragment, etree._Element):
        header.append(copy.deepcopy(fragment))
    elif callable(getattr(fragment, 'xml', None)):
        header.append(fragment.xml())
    else:
        raise EncodingError('header fragment {!r} cannot be serialized'.format(fragment))


def parse(data):
    try:
        return etree.fromstring(data, PARSER)
    except etree.XMLSyntaxError as e:
        raise DecodingError('malformed XML: {}'.format(e)) from e


def body_element(root):
    """The single payload element of an envelope's Body."""
    if root.tag != ENVELOPE:
        raise DecodingError('expected a SOAP 1.1 Envelope, got {}'.format(root.tag))
    body = root.find(BODY)
    if body is None:
        raise DecodingError('Envelope has no Body')
    children = [child for child in body if isinstance(child.tag, str)]
    if not children:
        raise DecodingError('SOAP Body is empty')
    if len(children) > 1:
        raise DecodingError(MULTIPLE_BODY_ELEMENTS)
    return children[0]


def unmarshal(data, response, strict=False, headers=()):
    """
    Decode an envelope into ``response`` in place.

    Returns the :class:`Fault` when the body holds one, leaving ``response``
    untouched; returns None after a successful decode. Records passed in
    ``headers`` are filled from the response Header elements that carry the
    same element QName.
    """
    root = parse(data)
    payload = body_element(root)
    if payload.tag == FAULT:
        return Fault.from_element(payload)
    qname = QName.of(payload)
    if response.element is not None and qname != response.element:
        raise DecodingError('expected {} in SOAP Body, got {}'.format(response.element, qname))
    decoder = Decoder(strict)
    decoded = decoder.record(payload, type(response))
    filled = [(record, decoder.record(elem, type(record)))
              for record, elem in _header_matches(root, headers)]
    response.__dict__.update(decoded.__dict__)
    for record, value in filled:
        record.__dict__.update(value.__dict__)
    return None


def _header_matches(root, records):
    header = root.find(HEADER)
    if header is None or not records:
        return []
    elements = {}
    for child in header:
        if isinstance(child.tag, str):
            elements.setdefault(QName.of(child), child)
    return [(record, elements[record.element]) for record in records
            if record.element in elements]
