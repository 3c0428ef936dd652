import datetime
import decimal

import pytest
from dateutil.relativedelta import relativedelta
from dateutil.tz import tzutc

from adsoap import xsd


class TestLookup:
    def test_prefixed_and_clark_names(self):
        assert xsd.lookup('xsd:long') is xsd.lookup('{%s}long' % xsd.XSD)
        assert xsd.lookup('long').pytype is int

    def test_unknown_builtin_falls_back_to_string(self):
        assert xsd.lookup('xsd:NOTATION').name == 'string'

    def test_integer_family_is_int(self):
        for name in ('int', 'short', 'unsignedLong', 'nonNegativeInteger'):
            assert xsd.lookup(name).parse(' 42 ') == 42


class TestBoolean:
    t = xsd.lookup('boolean')

    @pytest.mark.parametrize('text,value', [('true', True), ('1', True), ('false', False), ('0', False)])
    def test_parse(self, text, value):
        assert self.t.parse(text) is value

    def test_rejects_other_words(self):
        with pytest.raises(ValueError):
            self.t.parse('yes')

    def test_format(self):
        assert self.t.format(True) == 'true'
        assert self.t.format(False) == 'false'


class TestNumbers:
    def test_decimal_keeps_precision(self):
        assert xsd.lookup('decimal').parse('0.10') == decimal.Decimal('0.10')

    def test_decimal_format_has_no_exponent(self):
        t = xsd.lookup('decimal')
        assert t.format(decimal.Decimal('1E+2')) == '100'
        assert t.format(decimal.Decimal('0.10')) == '0.10'
        assert t.format(3) == '3'
        with pytest.raises(ValueError):
            t.format(decimal.Decimal('Infinity'))

    def test_float_specials(self):
        t = xsd.lookup('double')
        assert t.parse('INF') == float('inf')
        assert t.format(float('-inf')) == '-INF'
        assert t.format(float('nan')) == 'NaN'
        assert t.format(1.5) == '1.5'


class TestTemporal:
    def test_datetime(self):
        value = xsd.lookup('dateTime').parse('2018-03-01T10:20:30Z')
        assert value == datetime.datetime(2018, 3, 1, 10, 20, 30, tzinfo=tzutc())
        assert xsd.lookup('dateTime').format(value) == '2018-03-01T10:20:30+00:00'

    def test_date_and_time(self):
        assert xsd.lookup('date').parse('2018-03-01') == datetime.date(2018, 3, 1)
        assert xsd.lookup('time').parse('10:20:30') == datetime.time(10, 20, 30)

    def test_duration(self):
        t = xsd.lookup('duration')
        value = t.parse('P1Y2M3DT4H5M6.5S')
        assert value == relativedelta(years=1, months=2, days=3, hours=4, minutes=5, seconds=6,
                                      microseconds=500000)
        assert t.format(value) == 'P1Y2M3DT4H5M6.5S'
        assert t.format(relativedelta()) == 'PT0S'
        assert t.format(t.parse('-PT30M')) == '-PT30M'

    def test_bad_duration(self):
        with pytest.raises(ValueError):
            xsd.lookup('duration').parse('1 hour')


class TestBinary:
    def test_base64(self):
        t = xsd.lookup('base64Binary')
        assert t.format(b'abc') == 'YWJj'
        assert t.parse('YWJj') == b'abc'

    def test_hex(self):
        t = xsd.lookup('hexBinary')
        assert t.format(b'\x01\xab') == '01AB'
        assert t.parse('01ab') == b'\x01\xab'
