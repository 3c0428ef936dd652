"""
WSDL 1.1 and XML Schema loader.

Reads one or more WSDL documents with every document reachable through
``wsdl:import``, ``xsd:import`` and ``xsd:include``, and builds a
:class:`SchemaSet`: named types, top-level elements and the SOAP 1.1
document/literal operations of each service. Anything outside wrapped
document/literal is rejected with :class:`UnsupportedFeature`.
"""
import collections
import hashlib
import logging
import os
import re
import tempfile
import textwrap
from urllib.parse import urljoin, urlparse

import requests
from lxml import etree

from adsoap import xsd
from adsoap.errors import SchemaError, SourceError, UnsupportedFeature
from adsoap.schema import QName

log = logging.getLogger(__name__)

NAMESPACES = {
    'wsdl': 'http://schemas.xmlsoap.org/wsdl/',
    'soap': 'http://schemas.xmlsoap.org/wsdl/soap/',
    'soap12': 'http://schemas.xmlsoap.org/wsdl/soap12/',
    'http': 'http://schemas.xmlsoap.org/wsdl/http/',
    'mime': 'http://schemas.xmlsoap.org/wsdl/mime/',
    'soapenc': 'http://schemas.xmlsoap.org/soap/encoding/',
    'soapenv': 'http://schemas.xmlsoap.org/soap/envelope/',
    'xsi': 'http://www.w3.org/2001/XMLSchema-instance',
    'xs': xsd.XSD,
}

PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)


def tag(name):
    prefix, local = name.split(':')
    return '{%s}%s' % (NAMESPACES[prefix], local)


class OrderedSet(collections.OrderedDict):
    def add(self, key):
        self[key] = True

    def extend(self, keys):
        for key in keys:
            self.add(key)

    def __repr__(self):
        return '%s(%r)' % (self.__class__.__name__, list(self.keys()))


class XML(object):
    @staticmethod
    def findall(xmls, xpath):
        elems = OrderedSet()
        for xml in xmls:
            elems.extend(xml.xpath(xpath, namespaces=NAMESPACES))
        return list(elems)

    @staticmethod
    def type(name, elem, default=None):
        """Resolve a ``prefix:local`` reference in the scope of ``elem``."""
        try:
            return QName.parse(name, elem.nsmap, default=default or '')
        except ValueError as e:
            raise SchemaError('{} (line {})'.format(e, elem.sourceline)) from e

    @staticmethod
    def documentation(elem):
        docs = elem.xpath('xs:annotation/xs:documentation | wsdl:documentation', namespaces=NAMESPACES)
        text = '\n'.join(''.join(d.itertext()) for d in docs)
        text = textwrap.dedent(text.strip('\n')).strip()
        return re.sub(r'[ \t]+\n', '\n', text)

    @staticmethod
    def describe(elem):
        name = elem.get('name')
        local = etree.QName(elem).localname
        return '<{}{}> (line {})'.format(local, ' name="%s"' % name if name else '', elem.sourceline)


class Restriction(object):
    """Occurrence constraints of an element or attribute."""
    minOccurs = 1
    maxOccurs = 1
    nillable = False
    use = None

    def __init__(self, **kwargs):
        self.update(kwargs)

    def update(self, kwargs):
        for k, v in kwargs.items():
            if k not in Restriction.__dict__ or v is None:
                continue
            if k == 'nillable':
                v = v in ('true', '1', True)
            else:
                try:
                    v = int(v)
                except (TypeError, ValueError):
                    pass
            setattr(self, k, v)

    @property
    def required(self):
        if self.use is not None:
            return self.use == 'required'
        return self.minOccurs > 0

    @property
    def repeated(self):
        return self.maxOccurs == 'unbounded' or (isinstance(self.maxOccurs, int) and self.maxOccurs > 1)

    def __repr__(self):
        return 'Restriction(minOccurs=%r, maxOccurs=%r, nillable=%r)' % (
            self.minOccurs, self.maxOccurs, self.nillable)


class FieldDef(object):
    def __init__(self, name, type, restriction, namespace='', attribute=False, text=False,
                 documentation=''):
        self.name = name
        self.type = type
        self.restriction = restriction
        self.namespace = namespace
        self.attribute = attribute
        self.text = text
        self.documentation = documentation

    def __repr__(self):
        return 'FieldDef(%r, %s)' % (self.name, self.type)


class ComplexTypeDef(object):
    def __init__(self, qname, base=None, abstract=False, qualified=True, documentation='',
                 anonymous=False):
        self.qname = qname
        self.base = base
        self.abstract = abstract
        self.qualified = qualified
        self.documentation = documentation
        self.anonymous = anonymous
        self.fields = []

    def __repr__(self):
        return 'ComplexTypeDef(%s)' % (self.qname,)


class EnumDef(object):
    def __init__(self, qname, values, documentation=''):
        self.qname = qname
        self.values = values
        self.documentation = documentation

    def __repr__(self):
        return 'EnumDef(%s)' % (self.qname,)


class SimpleTypeDef(object):
    """A named simple type that is not an enumeration: an alias of ``base``."""
    def __init__(self, qname, base, documentation=''):
        self.qname = qname
        self.base = base
        self.documentation = documentation


class ElementDef(object):
    def __init__(self, qname, type, nillable=False):
        self.qname = qname
        self.type = type
        self.nillable = nillable


class Operation(object):
    def __init__(self, name, action, input, output, input_headers=(), output_headers=(), faults=(),
                 documentation=''):
        self.name = name
        self.action = action
        self.input = input
        self.output = output
        self.input_headers = list(input_headers)
        self.output_headers = list(output_headers)
        self.faults = list(faults)
        self.documentation = documentation

    def __repr__(self):
        return 'Operation(%r, action=%r)' % (self.name, self.action)


class Service(object):
    def __init__(self, name, namespace, url, operations, documentation=''):
        self.name = name
        self.namespace = namespace
        self.url = url
        self.operations = operations
        self.documentation = documentation

    def __repr__(self):
        return 'Service(%r, %d operations)' % (self.name, len(self.operations))


class SchemaSet(object):
    def __init__(self):
        self.types = collections.OrderedDict()
        self.elements = collections.OrderedDict()
        self.groups = {}
        self.attribute_groups = {}
        self.attributes = {}
        self.element_nodes = {}
        self.services = []

    def lookup(self, qname):
        """A named type definition, or an ``xsd.SimpleType`` for built-ins."""
        if qname.namespace == xsd.XSD:
            return xsd.lookup(str(qname))
        try:
            return self.types[qname]
        except KeyError:
            raise SchemaError('type {} is referenced but never declared'.format(qname))

    def element(self, qname):
        try:
            return self.elements[qname]
        except KeyError:
            raise SchemaError('element {} is referenced but never declared'.format(qname))

    def add_type(self, definition):
        existing = self.types.get(definition.qname)
        if existing is not None and not definition.qname.namespace == xsd.XSD:
            log.debug('type %s declared twice, keeping the first declaration', definition.qname)
            return existing
        self.types[definition.qname] = definition
        return definition


class Document(object):
    def __init__(self, location, tree):
        self.location = location
        self.tree = tree
        self.root = tree.getroot()

    @property
    def target_namespace(self):
        return self.root.get('targetNamespace', '')


class WsdlParser(object):
    """
    Loads documents (from disk, or over HTTP with an on-disk cache), then
    parses schemas and services into a :class:`SchemaSet`.
    """
    cache_directory = os.path.join(tempfile.gettempdir(), 'adsoap-wsdl')

    def __init__(self, cache_directory=None, session=None, use_cache=True):
        if cache_directory is not None:
            self.cache_directory = cache_directory
        self.session = session
        self.use_cache = use_cache
        self.documents = collections.OrderedDict()
        self.schema = SchemaSet()
        self._schemas = []
        self._wsdls = []

    # loading

    @staticmethod
    def is_url(location):
        return urlparse(location).scheme in ('http', 'https')

    @staticmethod
    def resolve(base, location):
        if WsdlParser.is_url(base) or WsdlParser.is_url(location):
            return urljoin(base, location)
        if os.path.isabs(location):
            return os.path.normpath(location)
        return os.path.normpath(os.path.join(os.path.dirname(base), location))

    def get_cache_filename(self, location):
        os.makedirs(self.cache_directory, exist_ok=True)
        return os.path.join(self.cache_directory, hashlib.sha1(location.encode()).hexdigest())

    def fetch(self, location):
        if not self.is_url(location):
            try:
                with open(location, 'rb') as f:
                    return f.read()
            except OSError as e:
                raise SourceError('cannot read {}: {}'.format(location, e)) from e

        cache_filename = self.get_cache_filename(location) if self.use_cache else None
        if cache_filename is not None and os.path.exists(cache_filename):
            with open(cache_filename, 'rb') as f:
                return f.read()
        try:
            req = (self.session or requests).get(location, timeout=30)
            req.raise_for_status()
        except requests.RequestException as e:
            raise SourceError('cannot fetch {}: {}'.format(location, e)) from e
        if cache_filename is not None:
            with open(cache_filename, 'wb') as f:
                f.write(req.content)
        return req.content

    def load(self, location):
        if location in self.documents:
            return self.documents[location]
        data = self.fetch(location)
        try:
            tree = etree.ElementTree(etree.fromstring(data, PARSER, base_url=location))
        except etree.XMLSyntaxError as e:
            raise SourceError('{} is not well-formed XML: {}'.format(location, e)) from e
        document = Document(location, tree)
        self.documents[location] = document
        log.debug('loaded %s', location)

        root = document.root
        if root.tag == tag('wsdl:definitions'):
            self._wsdls.append(document)
            for node in root.findall(tag('wsdl:import')):
                if node.get('location'):
                    self.load(self.resolve(location, node.get('location')))
            for schema in XML.findall([root], 'wsdl:types/xs:schema'):
                self._add_schema(document, schema, schema.get('targetNamespace', ''))
        elif root.tag == tag('xs:schema'):
            self._add_schema(document, root, root.get('targetNamespace', ''))
        else:
            raise SourceError('{} is neither a WSDL nor an XML Schema document'.format(location))
        return document

    def _add_schema(self, document, schema, namespace):
        self._schemas.append((schema, namespace))
        for node in schema:
            if node.tag in (tag('xs:import'), tag('xs:include')) and node.get('schemaLocation'):
                included = self.load(self.resolve(document.location, node.get('schemaLocation')))
                if node.tag == tag('xs:include') and not included.target_namespace:
                    # chameleon include takes the namespace of the including schema
                    self._schemas = [(s, namespace if s is included.root else ns)
                                     for s, ns in self._schemas]

    def parse(self, locations):
        if isinstance(locations, str):
            locations = [locations]
        for location in locations:
            self.load(location)
        for schema, namespace in self._schemas:
            self._collect_globals(schema, namespace)
        for schema, namespace in self._schemas:
            self._parse_schema(schema, namespace)
        for document in self._wsdls:
            self._parse_services(document)
        return self.schema

    # schemas

    def _collect_globals(self, schema, namespace):
        qualified = schema.get('elementFormDefault', 'unqualified') == 'qualified'
        for node in schema:
            name = node.get('name')
            if node.tag == tag('xs:group'):
                self.schema.groups[QName(namespace, name)] = (node, namespace)
            elif node.tag == tag('xs:attributeGroup'):
                self.schema.attribute_groups[QName(namespace, name)] = (node, namespace)
            elif node.tag == tag('xs:attribute'):
                self.schema.attributes[QName(namespace, name)] = node
            elif node.tag == tag('xs:element'):
                self.schema.element_nodes[QName(namespace, name)] = (node, namespace, qualified)

    def _parse_schema(self, schema, namespace):
        qualified = schema.get('elementFormDefault', 'unqualified') == 'qualified'
        for node in schema:
            if not isinstance(node.tag, str):
                continue
            name = node.get('name')
            if node.tag == tag('xs:complexType'):
                self._complex_type(node, QName(namespace, name), namespace, qualified)
            elif node.tag == tag('xs:simpleType'):
                self._simple_type(node, QName(namespace, name), namespace)
            elif node.tag == tag('xs:element'):
                self._element(node, namespace, qualified)

    def _global_element(self, qname):
        if qname not in self.schema.elements:
            try:
                node, namespace, qualified = self.schema.element_nodes[qname]
            except KeyError:
                raise SchemaError('element {} is referenced but never declared'.format(qname))
            self._element(node, namespace, qualified)
        return self.schema.elements[qname]

    def _element(self, node, namespace, qualified):
        qname = QName(namespace, node.get('name'))
        if qname in self.schema.elements:
            return self.schema.elements[qname]
        nillable = node.get('nillable') in ('true', '1')
        if node.get('type'):
            type_qname = XML.type(node.get('type'), node, namespace)
        else:
            inline = node.find(tag('xs:complexType'))
            simple = node.find(tag('xs:simpleType'))
            if inline is not None:
                self._complex_type(inline, qname, namespace, qualified, anonymous=True,
                                   documentation=XML.documentation(node))
                type_qname = qname
            elif simple is not None:
                type_qname = self._simple_type(simple, qname, namespace)
            else:
                type_qname = QName(xsd.XSD, 'anyType')
        self.schema.elements[qname] = ElementDef(qname, type_qname, nillable)
        return self.schema.elements[qname]

    def _simple_type(self, node, qname, namespace):
        documentation = XML.documentation(node)
        restriction = node.find(tag('xs:restriction'))
        if restriction is None:
            # xs:list and xs:union travel as plain text
            self.schema.add_type(SimpleTypeDef(qname, QName(xsd.XSD, 'string'), documentation=documentation))
            return qname
        base = QName(xsd.XSD, 'string')
        if restriction.get('base'):
            base = XML.type(restriction.get('base'), restriction, namespace)
        # length, pattern and range facets are not projected
        enumeration = restriction.findall(tag('xs:enumeration'))
        if enumeration:
            values = [(facet.get('value'), XML.documentation(facet)) for facet in enumeration]
            self.schema.add_type(EnumDef(qname, values, documentation))
        else:
            self.schema.add_type(SimpleTypeDef(qname, base, documentation))
        return qname

    def _complex_type(self, node, qname, namespace, qualified, anonymous=False, documentation=None):
        definition = ComplexTypeDef(
            qname,
            abstract=node.get('abstract') in ('true', '1'),
            qualified=qualified,
            documentation=documentation if documentation is not None else XML.documentation(node),
            anonymous=anonymous,
        )
        if node.get('mixed') in ('true', '1'):
            log.debug('mixed content of %s is ignored', qname)

        content = node
        complex_content = node.find(tag('xs:complexContent'))
        simple_content = node.find(tag('xs:simpleContent'))
        if complex_content is not None:
            derivation = complex_content.find(tag('xs:extension'))
            if derivation is None:
                derivation = complex_content.find(tag('xs:restriction'))
                if derivation is not None and \
                        XML.type(derivation.get('base'), derivation) == QName(NAMESPACES['soapenc'], 'Array'):
                    raise UnsupportedFeature('SOAP-encoded array', XML.describe(node))
            else:
                definition.base = XML.type(derivation.get('base'), derivation, namespace)
            content = derivation
        elif simple_content is not None:
            derivation = simple_content.find(tag('xs:extension'))
            if derivation is None:
                derivation = simple_content.find(tag('xs:restriction'))
            base = XML.type(derivation.get('base'), derivation, namespace)
            definition.fields.append(FieldDef('value', base, Restriction(minOccurs=0), text=True))
            content = derivation

        if content is not None:
            self._particles(definition, content, namespace, qualified)
            self._attributes(definition, content, namespace)
        self.schema.add_type(definition)
        return definition

    def _particles(self, definition, node, namespace, qualified, optional=False, repeated=False):
        for child in node:
            if not isinstance(child.tag, str):
                continue
            if child.tag in (tag('xs:sequence'), tag('xs:all'), tag('xs:choice')):
                restriction = Restriction(minOccurs=child.get('minOccurs'), maxOccurs=child.get('maxOccurs'))
                self._particles(definition, child, namespace, qualified,
                                optional=optional or not restriction.required or child.tag == tag('xs:choice'),
                                repeated=repeated or restriction.repeated)
            elif child.tag == tag('xs:group'):
                group, group_namespace = self._group(child, namespace)
                self._particles(definition, group, group_namespace, qualified, optional, repeated)
            elif child.tag == tag('xs:element'):
                definition.fields.append(self._local_element(definition, child, namespace, qualified,
                                                             optional, repeated))
            elif child.tag == tag('xs:any'):
                log.debug('xs:any in %s is not projected', definition.qname)

    def _group(self, node, namespace):
        ref = XML.type(node.get('ref'), node, namespace)
        try:
            group, group_namespace = self.schema.groups[ref]
        except KeyError:
            raise SchemaError('group {} is referenced but never declared'.format(ref))
        return group, group_namespace

    def _local_element(self, definition, node, namespace, qualified, optional, repeated):
        restriction = Restriction(minOccurs=node.get('minOccurs'), maxOccurs=node.get('maxOccurs'),
                                  nillable=node.get('nillable'))
        if optional:
            restriction.minOccurs = 0
        if repeated and not restriction.repeated:
            restriction.maxOccurs = 'unbounded'
        documentation = XML.documentation(node)

        if node.get('ref'):
            ref = XML.type(node.get('ref'), node, namespace)
            element = self._global_element(ref)
            restriction.nillable = restriction.nillable or element.nillable
            return FieldDef(ref.name, element.type, restriction, namespace=ref.namespace,
                            documentation=documentation)

        name = node.get('name')
        form = node.get('form')
        element_qualified = form == 'qualified' if form else qualified
        element_namespace = namespace if element_qualified else ''
        if node.get('type'):
            type_qname = XML.type(node.get('type'), node, namespace)
        else:
            inline = node.find(tag('xs:complexType'))
            simple = node.find(tag('xs:simpleType'))
            local = definition.qname.name + name[:1].upper() + name[1:]
            if inline is not None:
                type_qname = QName(namespace, local)
                self._complex_type(inline, type_qname, namespace, qualified, anonymous=True)
            elif simple is not None:
                type_qname = self._simple_type(simple, QName(namespace, local), namespace)
            else:
                type_qname = QName(xsd.XSD, 'anyType')
        return FieldDef(name, type_qname, restriction, namespace=element_namespace,
                        documentation=documentation)

    def _attributes(self, definition, node, namespace):
        for child in node:
            if child.tag == tag('xs:attribute'):
                definition.fields.append(self._attribute(child, namespace))
            elif child.tag == tag('xs:attributeGroup'):
                ref = XML.type(child.get('ref'), child, namespace)
                try:
                    group, group_namespace = self.schema.attribute_groups[ref]
                except KeyError:
                    raise SchemaError('attributeGroup {} is referenced but never declared'.format(ref))
                self._attributes(definition, group, group_namespace)

    def _attribute(self, node, namespace):
        if node.get('ref'):
            ref = XML.type(node.get('ref'), node, namespace)
            target = self.schema.attributes.get(ref)
            type_qname = XML.type(target.get('type'), target, ref.namespace) \
                if target is not None and target.get('type') else QName(xsd.XSD, 'string')
            return FieldDef(ref.name, type_qname, Restriction(use=node.get('use', 'optional')),
                            namespace=ref.namespace, attribute=True)
        if node.get('type'):
            type_qname = XML.type(node.get('type'), node, namespace)
        elif node.find(tag('xs:simpleType')) is not None:
            type_qname = self._simple_type(node.find(tag('xs:simpleType')),
                                           QName(namespace, node.get('name') + 'Attribute'), namespace)
        else:
            type_qname = QName(xsd.XSD, 'string')
        return FieldDef(node.get('name'), type_qname, Restriction(use=node.get('use', 'optional')),
                        attribute=True, documentation=XML.documentation(node))

    # services

    def _find(self, qname, xpath):
        for document in self._wsdls:
            if document.target_namespace != qname.namespace:
                continue
            found = document.root.xpath('%s[@name=$name]' % xpath, namespaces=NAMESPACES, name=qname.name)
            if found:
                return document, found[0]
        raise SchemaError('{} {} is referenced but never declared'.format(xpath.split(':')[-1], qname))

    def _parse_services(self, document):
        namespace = document.target_namespace
        for service in document.root.findall(tag('wsdl:service')):
            name = service.get('name')
            soap_ports = []
            soap12_binding = None
            for port in service.findall(tag('wsdl:port')):
                binding_qname = XML.type(port.get('binding'), port, namespace)
                _, binding = self._find(binding_qname, 'wsdl:binding')
                if binding.find(tag('soap12:binding')) is not None:
                    log.debug('skipping SOAP 1.2 port %s of %s', port.get('name'), name)
                    soap12_binding = binding
                    continue
                if binding.find(tag('soap:binding')) is None:
                    log.debug('skipping non-SOAP port %s of %s', port.get('name'), name)
                    continue
                soap_ports.append((port, binding))
            if not soap_ports:
                if soap12_binding is not None:
                    raise UnsupportedFeature('SOAP 1.2 binding', XML.describe(soap12_binding))
                raise UnsupportedFeature('service without a SOAP 1.1 port', XML.describe(service))
            port, binding = soap_ports[0]
            address = port.find(tag('soap:address'))
            operations = self._operations(binding, namespace)
            self.schema.services.append(Service(
                name, namespace, address.get('location') if address is not None else '',
                operations, XML.documentation(service)))

    def _operations(self, binding, namespace):
        soap_binding = binding.find(tag('soap:binding'))
        style = soap_binding.get('style', 'document')
        if style != 'document':
            raise UnsupportedFeature('{} style binding'.format(style), XML.describe(binding))
        port_type_doc, port_type = self._find(XML.type(binding.get('type'), binding, namespace),
                                              'wsdl:portType')

        operations = []
        for bound in binding.findall(tag('wsdl:operation')):
            name = bound.get('name')
            soap_operation = bound.find(tag('soap:operation'))
            action = ''
            if soap_operation is not None:
                action = soap_operation.get('soapAction', '')
                if soap_operation.get('style', 'document') != 'document':
                    raise UnsupportedFeature('rpc style operation', XML.describe(bound))
            abstract = port_type.xpath('wsdl:operation[@name=$name]', namespaces=NAMESPACES, name=name)
            if not abstract:
                raise SchemaError('operation {} is bound but missing from {}'.format(
                    name, XML.describe(port_type)))
            abstract = abstract[0]

            messages = {}
            headers = {'input': [], 'output': []}
            for direction in ('input', 'output'):
                bound_io = bound.find(tag('wsdl:' + direction))
                abstract_io = abstract.find(tag('wsdl:' + direction))
                if abstract_io is None:
                    messages[direction] = None
                    continue
                message_qname = XML.type(abstract_io.get('message'), abstract_io, port_type_doc.target_namespace)
                parts = None
                if bound_io is not None:
                    if bound_io.find('.//' + tag('mime:multipartRelated')) is not None:
                        raise UnsupportedFeature('MIME attachments', XML.describe(bound))
                    for header in bound_io.findall(tag('soap:header')):
                        self._check_literal(header, bound)
                        header_message = XML.type(header.get('message'), header, namespace)
                        headers[direction].append(
                            self._message_elements(header_message, bound, header.get('part'))[0])
                    body = bound_io.find(tag('soap:body'))
                    if body is not None:
                        self._check_literal(body, bound)
                        parts = body.get('parts')
                elements = self._message_elements(message_qname, bound, parts)
                if len(elements) != 1:
                    raise UnsupportedFeature('{} body parts (wrapped document/literal needs one)'.format(
                        len(elements)), XML.describe(bound))
                messages[direction] = elements[0]

            if messages['input'] is None or messages['output'] is None:
                raise UnsupportedFeature('one-way or notification operation', XML.describe(bound))

            faults = []
            for fault in abstract.findall(tag('wsdl:fault')):
                fault_message = XML.type(fault.get('message'), fault, port_type_doc.target_namespace)
                faults.extend(self._message_elements(fault_message, bound))

            operations.append(Operation(
                name, action, messages['input'], messages['output'],
                headers['input'], headers['output'], faults,
                XML.documentation(abstract) or XML.documentation(bound)))
        return operations

    def _check_literal(self, node, operation):
        if node.get('use', 'literal') != 'literal':
            raise UnsupportedFeature('use="{}"'.format(node.get('use')), XML.describe(operation))

    def _message_elements(self, message_qname, operation, part_names=None):
        _, message = self._find(message_qname, 'wsdl:message')
        wanted = part_names.split() if part_names else None
        elements = []
        for part in message.findall(tag('wsdl:part')):
            if wanted is not None and part.get('name') not in wanted:
                continue
            if not part.get('element'):
                raise UnsupportedFeature('message part without element= (not document/literal)',
                                         XML.describe(part))
            elements.append(XML.type(part.get('element'), part))
        return elements


def load(locations, cache_directory=None, session=None):
    """Parse WSDL documents into a :class:`SchemaSet`."""
    return WsdlParser(cache_directory, session).parse(locations)

