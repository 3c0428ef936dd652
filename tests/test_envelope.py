import pytest
from lxml import etree

from adsoap import envelope
from adsoap.errors import DecodingError, EncodingError
from adsoap.schema import ComplexType, Field, QName
from adsoap.wsse import UsernameToken
from conftest import envelope as wrap

NS = 'https://api.example/v1'


class Selector(ComplexType):
    qname = QName(NS, 'Selector')

    fields_ = Field('fields', 'xsd:string', repeated=True)


class Page(ComplexType):
    qname = QName(NS, 'Page')

    total_num_entries = Field('totalNumEntries', 'xsd:int', optional=True)


class Get(ComplexType):
    element = QName(NS, 'get')

    selector = Field('selector', 'Selector', optional=True)


class GetResponse(ComplexType):
    element = QName(NS, 'getResponse')

    rval = Field('rval', 'Page', optional=True)


class SoapHeader(ComplexType):
    qname = QName(NS, 'SoapHeader')

    developer_token = Field('developerToken', 'xsd:string', optional=True)


class RequestHeader(SoapHeader):
    element = QName(NS, 'RequestHeader')


class ResponseHeader(ComplexType):
    element = QName(NS, 'ResponseHeader')

    request_id = Field('requestId', 'xsd:string', optional=True)


class ApiException(ComplexType):
    element = QName(NS, 'ApiExceptionFault')

    message = Field('message', 'xsd:string', optional=True)


GET_RESPONSE = '<getResponse xmlns="%s"><rval><totalNumEntries>0</totalNumEntries></rval></getResponse>' % NS
FAULT = ('<soapenv:Fault><faultcode>soap:Server</faultcode>'
         '<faultstring>AuthenticationError.AUTHENTICATION_FAILED</faultstring>'
         '<detail><ApiExceptionFault xmlns="%s"><message>bad token</message></ApiExceptionFault></detail>'
         '</soapenv:Fault>' % NS)


class TestMarshal:
    def test_envelope_shape(self):
        data = envelope.marshal(Get(selector=Selector(fields_=['Id'])))
        assert data.startswith(b"<?xml version='1.0' encoding='UTF-8'?>")
        root = etree.fromstring(data)
        assert root.tag == envelope.ENVELOPE
        assert [child.tag for child in root] == [envelope.BODY]
        get = root.find(envelope.BODY)[0]
        assert get.tag == '{%s}get' % NS
        assert get.findtext('{%s}selector/{%s}fields' % (NS, NS)) == 'Id'

    def test_headers_in_order(self):
        token = UsernameToken('alice', 's3cr3t', '1')
        raw = etree.Element('{urn:trace}Trace')
        data = envelope.marshal(Get(), [RequestHeader(developer_token='t'), token, raw])
        header = etree.fromstring(data).find(envelope.HEADER)
        assert [etree.QName(c).localname for c in header] == ['RequestHeader', 'Security', 'Trace']
        assert header[0].findtext('{%s}developerToken' % NS) == 't'

    def test_request_without_element(self):
        with pytest.raises(EncodingError):
            envelope.marshal(Selector())

    def test_unserializable_header(self):
        with pytest.raises(EncodingError):
            envelope.marshal(Get(), [object()])


class TestUnmarshal:
    def test_success(self):
        response = GetResponse()
        assert envelope.unmarshal(wrap(GET_RESPONSE), response) is None
        assert response.rval.total_num_entries == 0

    def test_fault_leaves_response_untouched(self):
        response = GetResponse()
        fault = envelope.unmarshal(wrap(FAULT), response)
        assert str(fault) == 'AuthenticationError.AUTHENTICATION_FAILED'
        assert fault.code == 'soap:Server'
        assert fault.kind == 'Server'
        assert fault.description == 'Server Error'
        assert response == GetResponse()

    def test_fault_detail(self):
        fault = envelope.unmarshal(wrap(FAULT), GetResponse())
        detail = fault.detail_as(ApiException)
        assert detail.message == 'bad token'

    def test_fault_without_detail(self):
        fault = envelope.unmarshal(wrap('<soapenv:Fault><faultcode>soap:Client</faultcode>'
                                        '<faultstring>nope</faultstring></soapenv:Fault>'), GetResponse())
        assert fault.detail_as(ApiException) is None
        assert fault.actor is None

    def test_empty_body(self):
        with pytest.raises(DecodingError):
            envelope.unmarshal(wrap(''), GetResponse())

    def test_two_body_children(self):
        with pytest.raises(DecodingError) as e:
            envelope.unmarshal(wrap(GET_RESPONSE + GET_RESPONSE), GetResponse())
        assert 'wrapped-document/literal' in str(e.value)

    def test_wrong_element(self):
        with pytest.raises(DecodingError):
            envelope.unmarshal(wrap('<other xmlns="%s"/>' % NS), GetResponse())

    def test_not_an_envelope(self):
        with pytest.raises(DecodingError):
            envelope.unmarshal(b'<html><body>502</body></html>', GetResponse())

    def test_malformed(self):
        with pytest.raises(DecodingError):
            envelope.unmarshal(b'<soapenv:Envelope', GetResponse())

    def test_failed_decode_does_not_mutate(self):
        bad = '<getResponse xmlns="%s"><rval><totalNumEntries>x</totalNumEntries></rval></getResponse>' % NS
        response = GetResponse(rval=Page(total_num_entries=9))
        with pytest.raises(DecodingError):
            envelope.unmarshal(wrap(bad), response)
        assert response.rval.total_num_entries == 9

    def test_response_headers(self):
        header = '<ResponseHeader xmlns="%s"><requestId>abc</requestId></ResponseHeader>' % NS
        response_header = ResponseHeader()
        envelope.unmarshal(wrap(GET_RESPONSE, header), GetResponse(), headers=[response_header])
        assert response_header.request_id == 'abc'

    def test_roundtrip_through_marshal(self):
        data = envelope.marshal(Get(selector=Selector(fields_=['Id', 'Name'])))
        decoded = Get()
        assert envelope.unmarshal(data, decoded) is None
        assert decoded.selector.fields_ == ['Id', 'Name']
