"""
Python projection of XSD schema types.

Complex types become :class:`ComplexType` subclasses whose :class:`Field`
attributes are flattened parent first, simple enumerations become
:class:`Enumeration` subclasses (or ``str`` based :class:`enum.Enum`
classes), and abstract types keep a ``subtypes`` table so ``xsi:type`` can be
routed to the concrete class on decode.
"""
import collections
import enum
import keyword
import re
import sys

from adsoap import xsd


class QName(collections.namedtuple('QName', 'namespace name')):
    __slots__ = ()

    def __new__(cls, namespace, name):
        return super().__new__(cls, namespace or '', name)

    @classmethod
    def parse(cls, text, nsmap=None, default=''):
        """
        Accept Clark notation (``{ns}local``) or a prefixed name resolved
        against ``nsmap``.
        """
        if isinstance(text, QName):
            return text
        text = text.strip()
        if text.startswith('{'):
            namespace, name = text[1:].split('}', 1)
            return cls(namespace, name)
        if ':' in text:
            prefix, name = text.split(':', 1)
            try:
                return cls((nsmap or {})[prefix], name)
            except KeyError:
                raise ValueError('undeclared namespace prefix {!r} in {!r}'.format(prefix, text))
        return cls((nsmap or {}).get(None, default), text)

    @classmethod
    def of(cls, element):
        """QName of an lxml element's tag."""
        tag = element.tag
        if tag.startswith('{'):
            return cls.parse(tag)
        return cls('', tag)

    def __str__(self):
        if self.namespace:
            return '{%s}%s' % (self.namespace, self.name)
        return self.name


class _Absent(object):
    def __repr__(self):
        return 'ABSENT'

    def __bool__(self):
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ABSENT = _Absent()


class Field(object):
    """
    One element (or attribute) of a complex type.

    ``type`` is a :class:`ComplexType` subclass, an enumeration class, an
    ``xsd.SimpleType`` or a string: ``'xsd:long'`` names a built-in, any other
    string names a class in the module that declares the record, resolved on
    first use so that records may refer to each other in any order.
    """
    def __init__(self, name, type, optional=False, repeated=False, nillable=False,
                 attribute=False, text=False, namespace=None, absent=None):
        self.name = name
        self._type = type
        self.optional = optional
        self.repeated = repeated
        self.nillable = nillable
        self.attribute = attribute
        self.text = text
        self._namespace = namespace
        if absent is None and optional and nillable:
            # None is taken by xsi:nil
            absent = ABSENT
        self.absent = absent
        self.attr = None
        self.owner = None

    def __set_name__(self, owner, attr):
        self.owner = owner
        self.attr = attr

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return self.default()

    @property
    def required(self):
        return not (self.optional or self.repeated)

    @property
    def type(self):
        if isinstance(self._type, str):
            if self._type.startswith('xsd:'):
                self._type = xsd.lookup(self._type)
            else:
                module = sys.modules[self.owner.__module__]
                try:
                    self._type = getattr(module, self._type)
                except AttributeError:
                    raise NameError('type {!r} of field {}.{} is not defined in {}'.format(
                        self._type, self.owner.__name__, self.attr, module.__name__))
        return self._type

    @property
    def qname(self):
        if self._namespace is not None:
            return QName(self._namespace, self.name)
        owner_name = self.owner.qname or self.owner.element
        if self.attribute or not self.owner.qualified or owner_name is None:
            return QName('', self.name)
        return QName(owner_name.namespace, self.name)

    def default(self):
        if self.repeated:
            return []
        if self.optional:
            return self.absent
        return None

    def __repr__(self):
        return 'Field(%r, %r)' % (self.name, self._type)


class ComplexType(object):
    """
    Base of every generated record.

    Class attributes set by generated code:

    ``qname``     QName of the schema type
    ``element``   QName of the top-level element, for request/response/header records
    ``abstract``  the type only exists through its derivations
    ``qualified`` child elements live in the type's namespace
    ``base``      parent record when inheritance is composed rather than subclassed
    """
    qname = None
    element = None
    abstract = False
    qualified = True
    base = None

    fields = ()
    subtypes = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        parent = cls.parent()
        own = [v for v in vars(cls).values() if isinstance(v, Field)]
        inherited = list(parent.fields) if parent is not None else []
        cls.fields = tuple(inherited + own)
        cls._by_qname = {f.qname: f for f in cls.fields if not (f.attribute or f.text)}
        cls._by_local = {}
        for f in cls.fields:
            if not (f.attribute or f.text):
                cls._by_local.setdefault(f.name, f)
        cls.subtypes = {}
        if 'qname' in vars(cls) and cls.qname is not None:
            for ancestor in cls.lineage():
                ancestor.subtypes.setdefault(cls.qname, cls)

    @classmethod
    def parent(cls):
        if 'base' in vars(cls) and cls.base is not None:
            return cls.base
        for base in cls.__bases__:
            if issubclass(base, ComplexType) and base is not ComplexType:
                return base
        return None

    @classmethod
    def lineage(cls):
        """The class followed by its ancestors, nearest first."""
        while cls is not None:
            yield cls
            cls = cls.parent()

    @classmethod
    def derives_from(cls, other):
        return any(c is other for c in cls.lineage())

    @classmethod
    def field_for(cls, qname):
        return cls._by_qname.get(qname) or cls._by_local.get(qname.name)

    def __init__(self, **kwargs):
        for f in self.fields:
            self.__dict__[f.attr] = f.default()
        attrs = {f.attr for f in self.fields}
        for k, v in kwargs.items():
            if k not in attrs:
                raise TypeError('{}() got an unexpected keyword argument {!r}'.format(
                    type(self).__name__, k))
            setattr(self, k, v)

    def values(self):
        return collections.OrderedDict((f.attr, self.__dict__.get(f.attr, f.default()))
                                       for f in self.fields)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self.values() == other.values()

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    def __repr__(self):
        shown = ', '.join('%s=%r' % (k, v) for k, v in self.values().items()
                          if v is not None and v is not ABSENT and v != [])
        return '%s(%s)' % (type(self).__name__, shown)


class Enumeration(object):
    """
    String-constant enumeration. Members are the public ``str`` class
    attributes; values stay plain ``str``.
    """
    qname = None
    values = ()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.values = tuple(v for k, v in vars(cls).items()
                           if not k.startswith('_') and isinstance(v, str))


class UnknownValue(str):
    """
    An enumeration value the schema did not declare.

    It compares equal to ``'UNKNOWN'`` when the enumeration declares that
    member, and to the raw wire text otherwise; ``raw`` always holds the wire
    text.
    """
    def __new__(cls, raw, declared_unknown=True):
        self = super().__new__(cls, 'UNKNOWN' if declared_unknown else raw)
        self.raw = raw
        self.declared_unknown = declared_unknown
        return self

    def __getnewargs__(self):
        return (self.raw, self.declared_unknown)

    def __repr__(self):
        return 'UnknownValue(%r)' % self.raw


def is_enumeration(t):
    return isinstance(t, type) and (issubclass(t, Enumeration) or issubclass(t, enum.Enum))


def enum_values(t):
    if issubclass(t, enum.Enum):
        return tuple(m.value for m in t)
    return t.values


def is_complex(t):
    return isinstance(t, type) and issubclass(t, ComplexType)


RESERVED = frozenset([
    'fields', 'values', 'subtypes', 'qname', 'element', 'abstract', 'qualified',
    'base', 'parent', 'lineage', 'derives_from', 'field_for',
])

_first_cap = re.compile(r'(.)([A-Z][a-z]+)')
_all_cap = re.compile(r'([a-z0-9])([A-Z])')


def python_name(name):
    """
    snake_case attribute name for an XML name: ``enhancedCpcEnabled`` ->
    ``enhanced_cpc_enabled``, ``BiddingScheme.Type`` -> ``bidding_scheme_type``.
    """
    name = re.sub(r'[^0-9a-zA-Z_]', '_', name)
    name = _first_cap.sub(r'\1_\2', name)
    name = _all_cap.sub(r'\1_\2', name).lower()
    name = re.sub(r'_+', '_', name).strip('_') or '_'
    if name[0].isdigit():
        name = '_' + name
    if keyword.iskeyword(name) or name in RESERVED:
        name += '_'
    return name
