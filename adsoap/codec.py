"""
Records to lxml elements and back.

The encoder writes fields in their flattened (parent first) order and adds
``xsi:type`` when the runtime class of a value is not the declared type of
the field. The decoder routes ``xsi:type`` through the declared type's
``subtypes`` table.
"""
import decimal
import enum
import logging

from lxml import etree

from adsoap import xsd
from adsoap.errors import DecodingError, EncodingError
from adsoap.schema import (ABSENT, ComplexType, QName, UnknownValue, enum_values, is_complex,
                           is_enumeration)

log = logging.getLogger(__name__)

XSI = 'http://www.w3.org/2001/XMLSchema-instance'
XSI_TYPE = '{%s}type' % XSI
XSI_NIL = '{%s}nil' % XSI

UNKNOWN_POLICIES = ('preserve', 'unknown')


def _missing(value):
    return value is None or value is ABSENT


class Encoder(object):
    def __init__(self, unknown_enums='preserve'):
        if unknown_enums not in UNKNOWN_POLICIES:
            raise ValueError('unknown_enums must be one of {}'.format(UNKNOWN_POLICIES))
        self.unknown_enums = unknown_enums
        self._counter = 0

    def element(self, parent, record):
        """Append ``record`` to ``parent`` as its top-level element."""
        if not isinstance(record, ComplexType):
            raise EncodingError('{!r} is not a schema record'.format(record))
        qname = record.element
        if qname is None:
            raise EncodingError('{} has no element QName and cannot be sent as a message'.format(
                type(record).__name__))
        return self._complex(parent, qname, record, type(record))

    def _new_prefix(self, in_scope):
        while True:
            self._counter += 1
            prefix = 'ns%d' % self._counter
            if prefix not in in_scope:
                return prefix

    def _subelement(self, parent, qname, extra_namespaces=()):
        in_scope = parent.nsmap
        nsmap = {}
        for namespace in (qname.namespace,) + tuple(extra_namespaces):
            if namespace and namespace not in in_scope.values() and namespace not in nsmap.values():
                nsmap[self._new_prefix(set(in_scope) | set(nsmap))] = namespace
        return etree.SubElement(parent, etree.QName(qname.namespace or None, qname.name),
                                nsmap=nsmap or None)

    def _complex(self, parent, qname, value, declared):
        if not isinstance(value, ComplexType):
            raise EncodingError('{} expects a {} record, got {!r}'.format(
                qname, declared.__name__, value))
        actual = type(value)
        if actual is not declared and not actual.derives_from(declared) \
                and declared.subtypes.get(actual.qname) is not actual:
            raise EncodingError('{} is not derived from {}'.format(actual.__name__, declared.__name__))
        if actual.abstract:
            raise EncodingError('{} is abstract; send one of its derived types'.format(actual.__name__))

        typed = actual.qname is not None and actual.qname != declared.qname
        extra = (XSI, actual.qname.namespace) if typed else ()
        elem = self._subelement(parent, qname, extra)
        if typed:
            prefix = _prefix_for(elem, actual.qname.namespace)
            elem.set(XSI_TYPE, '%s:%s' % (prefix, actual.qname.name) if prefix else actual.qname.name)

        for field in actual.fields:
            v = value.__dict__.get(field.attr, field.default())
            if field.attribute:
                if not _missing(v):
                    elem.set(str(field.qname), self._text(field, v))
            elif field.text:
                if not _missing(v):
                    elem.text = self._text(field, v)
            elif field.repeated:
                for item in v or ():
                    self._value(elem, field, item)
            elif v is ABSENT:
                continue
            elif v is None:
                if field.optional and (field.absent is None or not field.nillable):
                    continue
                if not field.nillable:
                    raise EncodingError('{}.{} is required'.format(actual.__name__, field.attr))
                nil = self._subelement(elem, field.qname, (XSI,))
                nil.set(XSI_NIL, 'true')
            else:
                self._value(elem, field, v)
        return elem

    def _value(self, parent, field, value):
        if is_complex(field.type):
            return self._complex(parent, field.qname, value, field.type)
        elem = self._subelement(parent, field.qname)
        elem.text = self._text(field, value)
        return elem

    def _text(self, field, value):
        t = field.type
        if is_enumeration(t):
            return self.enum_text(t, value)
        if isinstance(t, xsd.SimpleType):
            return simple_text(t, value)
        raise EncodingError('{} cannot hold text'.format(field))

    def enum_text(self, t, value):
        if isinstance(value, UnknownValue):
            if self.unknown_enums == 'preserve':
                return value.raw
            return 'UNKNOWN'
        if isinstance(value, enum.Enum):
            value = value.value
        if value not in enum_values(t):
            raise EncodingError('{!r} is not a value of {}'.format(value, t.__name__))
        return str(value)


def simple_text(t, value):
    if isinstance(value, bool) and t.pytype is not bool:
        raise EncodingError('{!r} is not a valid {}'.format(value, t.name))
    if isinstance(value, str) and t.pytype is not str:
        try:
            value = t.parse(value)
        except (ValueError, TypeError, ArithmeticError) as e:
            raise EncodingError('{!r} is not a valid {}'.format(value, t.name)) from e
    elif not isinstance(value, t.pytype) and not (isinstance(value, int) and t.pytype in (float, decimal.Decimal)):
        raise EncodingError('{!r} is not a valid {}'.format(value, t.name))
    try:
        return t.format(value)
    except (ValueError, TypeError, ArithmeticError) as e:
        raise EncodingError('{!r} is not a valid {}'.format(value, t.name)) from e


def _prefix_for(elem, namespace):
    for prefix, uri in elem.nsmap.items():
        if uri == namespace and prefix is not None:
            return prefix
    return None


class Decoder(object):
    def __init__(self, strict=False):
        self.strict = strict

    def record(self, elem, declared):
        """Decode ``elem`` as a ``declared`` record (or one of its derived types)."""
        cls = self._resolve(elem, declared)
        value = cls.__new__(cls)
        ComplexType.__init__(value)
        seen = set()

        for field in cls.fields:
            if field.attribute:
                text = elem.get(str(field.qname))
                if text is not None:
                    value.__dict__[field.attr] = self._text(field, text)
                    seen.add(field.attr)
            elif field.text:
                value.__dict__[field.attr] = self._text(field, elem.text or '')
                seen.add(field.attr)

        for child in elem:
            if not isinstance(child.tag, str):
                continue
            qname = QName.of(child)
            field = cls.field_for(qname)
            if field is None:
                if self.strict:
                    raise DecodingError('unexpected element {} in {}'.format(qname, cls.__name__))
                log.debug('skipping unknown element %s in %s', qname, cls.__name__)
                continue
            item = self._value(child, field)
            if field.repeated:
                value.__dict__[field.attr].append(item)
            else:
                value.__dict__[field.attr] = item
            seen.add(field.attr)

        for field in cls.fields:
            if field.required and field.attr not in seen:
                raise DecodingError('missing required element {} in {}'.format(field.qname, cls.__name__))
        return value

    def _resolve(self, elem, declared):
        type_attr = elem.get(XSI_TYPE)
        if type_attr is None:
            if declared.abstract:
                raise DecodingError('{} is abstract and {} carries no xsi:type'.format(
                    declared.__name__, QName.of(elem)))
            return declared
        try:
            qname = QName.parse(type_attr, elem.nsmap)
        except ValueError as e:
            raise DecodingError(str(e)) from e
        cls = declared.subtypes.get(qname)
        if cls is None:
            if declared.abstract:
                raise DecodingError('xsi:type {} is not a known derivation of {}'.format(
                    qname, declared.__name__))
            log.debug('unresolved xsi:type %s, decoding as %s', qname, declared.__name__)
            return declared
        if cls.abstract:
            raise DecodingError('xsi:type {} names an abstract type'.format(qname))
        return cls

    def _value(self, elem, field):
        if elem.get(XSI_NIL) in ('true', '1'):
            return None
        if is_complex(field.type):
            return self.record(elem, field.type)
        return self._text(field, elem.text or '')

    def _text(self, field, text):
        t = field.type
        if is_enumeration(t):
            return enum_value(t, text)
        try:
            return t.parse(text)
        except (ValueError, TypeError, ArithmeticError) as e:
            raise DecodingError('{!r} is not a valid {} for {}'.format(text, t.name, field.name)) from e


def enum_value(t, text):
    """Map wire text to an enumeration value; unknown text becomes an UnknownValue."""
    text = text.strip()
    values = enum_values(t)
    if text in values:
        if issubclass(t, enum.Enum):
            return t(text)
        return text
    log.debug('unknown %s value %r', t.__name__, text)
    return UnknownValue(text, 'UNKNOWN' in values)
