"""
XSD built-in simple types.

Every built-in is a :class:`SimpleType` that knows how to turn wire text into
a Python value and back. Generated modules reference them by name
(``Field('id', 'xsd:long')``); the WSDL loader looks them up by QName in
:data:`BUILTINS`.
"""
import base64
import datetime
import decimal
import re

import dateutil.parser
import dateutil.relativedelta

XSD = 'http://www.w3.org/2001/XMLSchema'


class SimpleType(object):
    def __init__(self, name, pytype, parse=None, format=str):
        self.name = name
        self.pytype = pytype
        self._parse = parse or pytype
        self._format = format

    @property
    def qname(self):
        return '{%s}%s' % (XSD, self.name)

    def parse(self, text):
        return self._parse(text.strip() if self.pytype is not str else text)

    def format(self, value):
        return self._format(value)

    def __repr__(self):
        return 'xsd.%s' % self.name


def _parse_bool(val):
    if val in ('true', '1'):
        return True
    if val in ('false', '0'):
        return False
    raise ValueError('{} not a boolean'.format(val))


def _format_bool(v):
    return 'true' if v else 'false'


def _parse_float(val):
    return float({'INF': 'inf', '-INF': '-inf', 'NaN': 'nan'}.get(val, val))


def _format_float(v):
    if v != v:
        return 'NaN'
    if v in (float('inf'), float('-inf')):
        return 'INF' if v > 0 else '-INF'
    return repr(float(v))


def _format_decimal(v):
    v = decimal.Decimal(v)
    if not v.is_finite():
        raise ValueError('{} has no xsd:decimal form'.format(v))
    # xsd:decimal has no exponent notation
    return format(v, 'f')


_DURATION = re.compile(r'^(?P<negative>-)?P'
                       r'(?:(?P<years>\d+)Y)?'
                       r'(?:(?P<months>\d+)M)?'
                       r'(?:(?P<days>\d+)D)?'
                       r'(?:T'
                       r'(?:(?P<hours>\d+)H)?'
                       r'(?:(?P<minutes>\d+)M)?'
                       r'(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$')


def _parse_duration(v):
    match = _DURATION.match(v)
    if match is None:
        raise ValueError('{} not a duration'.format(v))
    kwargs = match.groupdict()
    negative = kwargs.pop('negative')
    seconds = decimal.Decimal(kwargs.pop('seconds') or 0)
    kwargs = {k: int(v) for k, v in kwargs.items() if v is not None}
    rd = dateutil.relativedelta.relativedelta(
        seconds=int(seconds), microseconds=int((seconds % 1) * 1000000), **kwargs)
    if negative:
        return -rd
    return rd


def _format_duration(v):
    v = v.normalized()
    parts = [v.years, v.months, v.days, v.hours, v.minutes, v.seconds, v.microseconds]
    sign = '-' if any(p < 0 for p in parts) else ''
    years, months, days, hours, minutes, seconds, micro = [abs(p) for p in parts]
    s = 'P'
    if years:
        s += '%dY' % years
    if months:
        s += '%dM' % months
    if days:
        s += '%dD' % days
    if hours or minutes or seconds or micro:
        s += 'T'
        if hours:
            s += '%dH' % hours
        if minutes:
            s += '%dM' % minutes
        if micro:
            s += ('%d.%06d' % (seconds, micro)).rstrip('0') + 'S'
        elif seconds:
            s += '%dS' % seconds
    if s == 'P':
        s = 'PT0S'
    return sign + s


def _parse_time(val):
    return dateutil.parser.isoparser().parse_isotime(val)


def _parse_date(val):
    return dateutil.parser.parse(val).date()


def _format_binary(v):
    return base64.b64encode(v).decode('ascii')


_types = [
    SimpleType('string', str),
    SimpleType('normalizedString', str),
    SimpleType('token', str),
    SimpleType('anyURI', str),
    SimpleType('language', str),
    SimpleType('QName', str),
    SimpleType('NCName', str),
    SimpleType('ID', str),
    SimpleType('anyType', str),
    SimpleType('anySimpleType', str),
    SimpleType('boolean', bool, _parse_bool, _format_bool),
    SimpleType('decimal', decimal.Decimal, format=_format_decimal),
    SimpleType('float', float, _parse_float, _format_float),
    SimpleType('double', float, _parse_float, _format_float),
    SimpleType('duration', dateutil.relativedelta.relativedelta, _parse_duration, _format_duration),
    SimpleType('dateTime', datetime.datetime, dateutil.parser.isoparse, datetime.datetime.isoformat),
    SimpleType('time', datetime.time, _parse_time, datetime.time.isoformat),
    SimpleType('date', datetime.date, _parse_date, datetime.date.isoformat),
    SimpleType('base64Binary', bytes, base64.b64decode, _format_binary),
    SimpleType('hexBinary', bytes, bytes.fromhex, lambda v: v.hex().upper()),
]
for _name in ('integer', 'byte', 'short', 'int', 'long', 'unsignedByte', 'unsignedShort',
              'unsignedInt', 'unsignedLong', 'negativeInteger', 'positiveInteger',
              'nonNegativeInteger', 'nonPositiveInteger'):
    _types.append(SimpleType(_name, int))

BUILTINS = {t.qname: t for t in _types}


def lookup(name):
    """
    Return the built-in for a Clark-notation QName or a bare local name
    ('long', 'xsd:long'), falling back to string.
    """
    name = str(name)
    if not name.startswith('{'):
        name = '{%s}%s' % (XSD, name.split(':')[-1])
    return BUILTINS.get(name, BUILTINS['{%s}string' % XSD])
