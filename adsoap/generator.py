"""
Python client generator.

Projects a :class:`adsoap.wsdl.SchemaSet` onto the runtime model of
:mod:`adsoap.schema` and renders one module per WSDL service. Rendering is a
pure function of the schema and the options, so running it twice yields the
same bytes.
"""
import collections
import keyword
import logging
import os
import re
import tempfile

from adsoap import xsd
from adsoap.errors import NameCollision, OptionsError, SchemaError, UnsupportedFeature
from adsoap.schema import QName, python_name
from adsoap.wsdl import ComplexTypeDef, EnumDef, SimpleTypeDef

log = logging.getLogger(__name__)

SERVICE_ATTRIBUTES = frozenset(['client', 'url', 'add_header', 'set_header'])


class GeneratorOptions(object):
    optional_styles = ('option', 'pointer', 'sentinel')
    enum_styles = ('string', 'variant')
    inheritance_styles = ('embed', 'compose')

    def __init__(self, output_dir='.', namespace_prefixes=None, modules=None, optional_style='option',
                 enum_style='string', inheritance_style='embed', target_namespace=None):
        self.output_dir = output_dir
        self.target_namespace = target_namespace
        self.namespace_prefixes = dict(namespace_prefixes or {})
        self.modules = dict(modules or {})
        self.optional_style = optional_style
        self.enum_style = enum_style
        self.inheritance_style = inheritance_style
        self.validate()

    def validate(self):
        for name, allowed in (('optional_style', self.optional_styles),
                              ('enum_style', self.enum_styles),
                              ('inheritance_style', self.inheritance_styles)):
            if getattr(self, name) not in allowed:
                raise OptionsError('{} must be one of {}, got {!r}'.format(
                    name, ', '.join(allowed), getattr(self, name)))
        for uri, prefix in self.namespace_prefixes.items():
            if not re.match(r'^[A-Za-z_][A-Za-z0-9_]*$', prefix):
                raise OptionsError('namespace prefix {!r} for {} is not an identifier'.format(prefix, uri))
        for service, module in self.modules.items():
            if not re.match(r'^[A-Za-z_][A-Za-z0-9_]*$', module) or keyword.iskeyword(module):
                raise OptionsError('module name {!r} for {} is not an identifier'.format(module, service))


def class_name(name):
    name = re.sub(r'[^0-9A-Za-z_]', '_', name)
    name = name[:1].upper() + name[1:]
    if not name or name[0].isdigit():
        name = '_' + name
    if keyword.iskeyword(name):
        name += '_'
    return name


def member_name(value):
    name = re.sub(r'[^0-9A-Za-z_]', '_', value).strip('_')
    if not name:
        return 'EMPTY'
    if name[0].isdigit():
        name = 'V_' + name
    if keyword.iskeyword(name) or name in ('qname', 'values', 'mro'):
        name += '_'
    return name


def docstring(text, indent):
    text = text.replace('\\', '\\\\').replace('"""', '\\"\\"\\"')
    lines = text.splitlines()
    if len(lines) == 1 and not lines[0].endswith('"'):
        return ['%s"""%s"""' % (indent, lines[0])]
    return ['%s"""' % indent] + [(indent + line).rstrip() for line in lines] + ['%s"""' % indent]


def comment(text, indent):
    return [(indent + '# ' + line).rstrip() for line in text.splitlines()]


class Projection(object):
    """
    Naming and reachability over a whole schema set. Names are computed once
    for every definition so that services sharing a type project it with the
    same shape and the same name.
    """
    def __init__(self, schema, options):
        self.schema = schema
        self.options = options
        self.derived = collections.defaultdict(list)
        for definition in schema.types.values():
            if isinstance(definition, ComplexTypeDef):
                self._simple_content_base(definition)
        for definition in schema.types.values():
            if isinstance(definition, ComplexTypeDef) and definition.base is not None:
                self.derived[definition.base].append(definition)
        self.names = {}
        self.element_classes = {}
        self._name_everything()

    def _name_everything(self):
        candidates = collections.defaultdict(list)
        for qname, definition in self.schema.types.items():
            if isinstance(definition, (ComplexTypeDef, EnumDef)):
                candidates[class_name(qname.name)].append(('type', qname))
        for qname, element in self.schema.elements.items():
            definition = self.schema.types.get(element.type)
            if not isinstance(definition, ComplexTypeDef) or self.is_element_type(definition):
                continue
            if class_name(qname.name) == class_name(element.type.name) and qname.namespace == element.type.namespace:
                continue
            candidates[class_name(qname.name)].append(('element', qname))

        for name, claims in sorted(candidates.items()):
            if len(claims) == 1:
                self._assign(claims[0], name)
                continue
            renamed = []
            for kind, qname in claims:
                prefix = self.options.namespace_prefixes.get(qname.namespace)
                renamed.append(((kind, qname), class_name(prefix + name) if prefix else name))
            final = collections.Counter(n for _, n in renamed)
            clashing = [claim[1] for claim, n in renamed if final[n] > 1]
            if clashing:
                raise NameCollision(name, clashing)
            for claim, n in renamed:
                self._assign(claim, n)

        taken = collections.Counter(self.names.values()) + collections.Counter(self.element_classes.values())
        clashes = [n for n, count in taken.items() if count > 1]
        if clashes:
            qnames = [q for q, n in list(self.names.items()) + list(self.element_classes.items()) if n == clashes[0]]
            raise NameCollision(clashes[0], qnames)

    def _assign(self, claim, name):
        kind, qname = claim
        if kind == 'type':
            self.names[qname] = name
        else:
            self.element_classes[qname] = name

    def _simple_content_base(self, definition):
        # simpleContent extending a complex type: its text comes from the parent
        for field in list(definition.fields):
            if field.text and isinstance(self.schema.types.get(field.type), ComplexTypeDef):
                definition.base = field.type
                definition.fields.remove(field)

    def is_element_type(self, definition):
        """True for the anonymous type declared inline by a top-level element."""
        element = self.schema.elements.get(definition.qname)
        return definition.anonymous and element is not None and element.type == definition.qname

    def element_class(self, qname):
        """Name of the record class that carries a top-level element."""
        if qname in self.element_classes:
            return self.element_classes[qname]
        element = self.schema.element(qname)
        return self.names[element.type]

    def resolve_simple(self, qname):
        """Follow simple type aliases down to a built-in or an enumeration."""
        seen = set()
        while True:
            if qname.namespace == xsd.XSD:
                return xsd.lookup(str(qname))
            definition = self.schema.lookup(qname)
            if not isinstance(definition, SimpleTypeDef):
                return definition
            if qname in seen:
                raise SchemaError('simple type {} restricts itself'.format(qname))
            seen.add(qname)
            qname = definition.base

    def reachable(self, service):
        """Complex and enum definitions a service needs, plus its element QNames."""
        elements = []
        for operation in service.operations:
            for qname in [operation.input, operation.output] + operation.input_headers \
                    + operation.output_headers + operation.faults:
                if qname not in elements:
                    elements.append(qname)

        found = collections.OrderedDict()
        pending = []
        for qname in elements:
            element = self.schema.element(qname)
            definition = self.resolve_simple(element.type)
            if not isinstance(definition, ComplexTypeDef):
                raise UnsupportedFeature('message element of simple type', str(qname))
            pending.append(definition)

        while pending:
            definition = pending.pop()
            if definition.qname in found:
                continue
            found[definition.qname] = definition
            if isinstance(definition, EnumDef):
                continue
            if definition.base is not None:
                base = self.schema.lookup(definition.base)
                if isinstance(base, ComplexTypeDef):
                    pending.append(base)
            pending.extend(self.derived.get(definition.qname, ()))
            for field in definition.fields:
                target = self.resolve_simple(field.type)
                if isinstance(target, (ComplexTypeDef, EnumDef)):
                    pending.append(target)
        return found, elements


class ModuleWriter(object):
    def __init__(self, projection, service, sources=()):
        self.projection = projection
        self.options = projection.options
        self.service = service
        self.sources = sources
        self.definitions, self.elements = projection.reachable(service)
        self.namespaces = self._namespace_constants()

    def _namespace_constants(self):
        uris = set()
        for qname in list(self.definitions) + self.elements:
            uris.add(qname.namespace)
        for definition in self.definitions.values():
            if isinstance(definition, ComplexTypeDef):
                uris.update(f.namespace for f in definition.fields if f.namespace)
        constants = {}
        used = set()
        for uri in sorted(u for u in uris if u):
            prefix = self.options.namespace_prefixes.get(uri)
            if prefix is None:
                segments = [s for s in re.split(r'[/:.#]+', uri) if s and not re.match(r'^v?\d', s)]
                prefix = segments[-1] if segments else 'ns'
            name = 'NS_' + re.sub(r'[^0-9A-Za-z]', '_', prefix).upper()
            candidate, counter = name, 1
            while candidate in used:
                counter += 1
                candidate = '%s_%d' % (name, counter)
            used.add(candidate)
            constants[uri] = candidate
        return constants

    def qname(self, qname):
        if not qname.namespace:
            return "QName('', %r)" % qname.name
        return 'QName(%s, %r)' % (self.namespaces[qname.namespace], qname.name)

    def render(self):
        lines = self._header()
        enums = sorted((d for d in self.definitions.values() if isinstance(d, EnumDef)),
                       key=lambda d: self.projection.names[d.qname])
        for definition in enums:
            lines.extend(['', ''] + self._enum(definition))
        for definition in self._ordered_records():
            lines.extend(['', ''] + self._record(definition))
        for qname in self._wrapper_elements():
            lines.extend(['', ''] + self._element_record(qname))
        lines.extend(['', ''] + self._registry())
        lines.extend(['', ''] + self._service())
        return '\n'.join(lines) + '\n'

    def _header(self):
        title = '%s client.' % self.service.name
        doc = [title, '']
        if self.service.documentation:
            doc.extend(self.service.documentation.splitlines() + [''])
        doc.append('Generated by adsoap-generate from %s; do not edit.' % ', '.join(self.sources or ['WSDL']))
        lines = docstring('\n'.join(doc), '')

        names = ['ComplexType', 'Field', 'QName']
        if self.options.optional_style == 'sentinel':
            names.append('ABSENT')
        has_enums = any(isinstance(d, EnumDef) for d in self.definitions.values())
        if has_enums and self.options.enum_style == 'string':
            names.append('Enumeration')
        if has_enums and self.options.enum_style == 'variant':
            lines.append('import enum')
            lines.append('')
        lines.append('from adsoap.schema import %s' % ', '.join(sorted(names)))
        lines.append('from adsoap.transport import Service')
        lines.append('')
        for uri, constant in sorted(self.namespaces.items(), key=lambda item: item[1]):
            lines.append('%s = %r' % (constant, uri))
        return lines

    def _enum(self, definition):
        name = self.projection.names[definition.qname]
        variant = self.options.enum_style == 'variant'
        lines = ['class %s(%s):' % (name, 'str, enum.Enum' if variant else 'Enumeration')]
        if definition.documentation:
            lines.extend(docstring(definition.documentation, '    '))
        if not variant:
            lines.append('    qname = %s' % self.qname(definition.qname))
        if not variant or definition.documentation:
            lines.append('')
        members = set()
        for value, documentation in definition.values:
            member = member_name(value)
            while member in members:
                member += '_'
            members.add(member)
            if documentation:
                lines.extend(comment(documentation, '    '))
            lines.append('    %s = %r' % (member, value))
        if 'UNKNOWN' not in (value for value, _ in definition.values) and 'UNKNOWN' not in members:
            lines.append('    # not in the schema: stands in for values added after generation')
            lines.append("    UNKNOWN = 'UNKNOWN'")
        if variant:
            lines.extend(['', '', '%s.qname = %s' % (name, self.qname(definition.qname))])
        return lines

    def _ordered_records(self):
        records = {d.qname: d for d in self.definitions.values() if isinstance(d, ComplexTypeDef)}
        ordered = []
        state = {}

        def visit(definition, trail):
            mark = state.get(definition.qname)
            if mark == 'done':
                return
            if mark == 'visiting':
                raise SchemaError('inheritance cycle through {}'.format(
                    ' -> '.join(str(q) for q in trail + [definition.qname])))
            state[definition.qname] = 'visiting'
            if definition.base in records:
                visit(records[definition.base], trail + [definition.qname])
            state[definition.qname] = 'done'
            ordered.append(definition)

        for definition in sorted(records.values(), key=lambda d: self._record_name(d)):
            visit(definition, [])
        return ordered

    def _record_name(self, definition):
        return self.projection.names[definition.qname]

    def _record(self, definition):
        name = self._record_name(definition)
        parent = None
        if definition.base is not None and definition.base in self.definitions:
            parent = self.definitions[definition.base]
        compose = self.options.inheritance_style == 'compose'
        base_class = self._record_name(parent) if parent and not compose else 'ComplexType'

        lines = ['class %s(%s):' % (name, base_class)]
        if definition.documentation:
            lines.extend(docstring(definition.documentation, '    '))
        if self.projection.is_element_type(definition):
            lines.append('    element = %s' % self.qname(definition.qname))
        else:
            lines.append('    qname = %s' % self.qname(definition.qname))
            for element in self._elements_named_like(definition):
                lines.append('    element = %s' % self.qname(element))
        if parent and compose:
            lines.append('    base = %s' % self._record_name(parent))

        # embedded records inherit the flags of their parent class
        inherited = parent if parent and not compose else None
        if definition.abstract != (inherited.abstract if inherited else False):
            lines.append('    abstract = %s' % definition.abstract)
        if definition.qualified != (inherited.qualified if inherited else True):
            lines.append('    qualified = %s' % definition.qualified)

        body = self._fields(definition)
        if body:
            lines.append('')
            lines.extend(body)
        return lines

    def _elements_named_like(self, definition):
        """Top-level elements that reuse their type's class instead of a wrapper."""
        return [q for q in self.elements
                if q not in self.projection.element_classes
                and self.projection.schema.element(q).type == definition.qname]

    def _inherited_attrs(self, definition):
        attrs = set()
        base = definition.base
        while base is not None and base in self.definitions:
            parent = self.definitions[base]
            attrs.update(python_name(f.name) for f in parent.fields)
            base = parent.base
        return attrs

    def _fields(self, definition):
        lines = []
        taken = self._inherited_attrs(definition)
        sentinel = self.options.optional_style == 'sentinel'
        for field in definition.fields:
            attr = python_name(field.name)
            if attr in taken:
                raise NameCollision(attr, [definition.qname, QName(field.namespace, field.name)])
            taken.add(attr)

            target = self.projection.resolve_simple(field.type)
            if isinstance(target, xsd.SimpleType):
                type_ref = 'xsd:%s' % target.name
            elif isinstance(target, EnumDef):
                type_ref = self.projection.names[target.qname]
            else:
                type_ref = self._record_name(target)

            args = [repr(field.name), repr(type_ref)]
            restriction = field.restriction
            optional = not restriction.required and not restriction.repeated
            if field.attribute:
                args.append('attribute=True')
            elif field.text:
                args.append('text=True')
            if restriction.repeated:
                args.append('repeated=True')
            elif optional:
                args.append('optional=True')
            if restriction.nillable:
                args.append('nillable=True')
            expected = definition.qname.namespace if definition.qualified and not field.attribute else ''
            if not field.text and field.namespace != expected:
                if field.namespace in self.namespaces:
                    args.append('namespace=%s' % self.namespaces[field.namespace])
                else:
                    args.append("namespace=''")
            if sentinel and optional:
                args.append('absent=ABSENT')

            if field.documentation:
                lines.extend(comment(field.documentation, '    '))
            lines.append('    %s = Field(%s)' % (attr, ', '.join(args)))
        return lines

    def _wrapper_elements(self):
        """Top-level elements of a named type that need a record class of their own."""
        return sorted((q for q in self.elements if q in self.projection.element_classes),
                      key=lambda q: self.projection.element_classes[q])

    def _element_record(self, qname):
        element = self.projection.schema.element(qname)
        name = self.projection.element_classes[qname]
        type_name = self.projection.names[element.type]
        if self.options.inheritance_style == 'compose':
            return ['class %s(ComplexType):' % name,
                    '    element = %s' % self.qname(qname),
                    '    base = %s' % type_name]
        return ['class %s(%s):' % (name, type_name),
                '    element = %s' % self.qname(qname)]

    def _registry(self):
        lines = ['TYPES = {']
        for qname, definition in sorted(self.definitions.items(), key=lambda item: (item[0].namespace, item[0].name)):
            if getattr(definition, 'anonymous', False):
                continue
            lines.append('    %s: %s,' % (self.qname(qname), self.projection.names[qname]))
        lines.append('}')
        return lines

    def _service(self):
        name = class_name(self.service.name)
        lines = ['class %s(Service):' % name]
        if self.service.documentation:
            lines.extend(docstring(self.service.documentation, '    '))
        lines.append('    url = %r' % self.service.url)
        methods = set()
        for operation in self.service.operations:
            method = python_name(operation.name)
            if method in SERVICE_ATTRIBUTES or method.startswith('_'):
                method += '_'
            if method in methods:
                raise NameCollision(method, [QName(self.service.namespace, operation.name)])
            methods.add(method)

            doc = operation.documentation
            if operation.faults:
                faults = ', '.join(self.projection.element_class(q) for q in operation.faults)
                doc = (doc + '\n\n' if doc else '') + 'Faults: %s' % faults
            lines.append('')
            lines.append('    def %s(self, request=None, **kwargs):' % method)
            if doc:
                lines.extend(docstring(doc, '        '))
            lines.append('        return self._invoke(%r, %s, %s, request, kwargs)' % (
                operation.action,
                self.projection.element_class(operation.input),
                self.projection.element_class(operation.output)))
        return lines


class Generator(object):
    def __init__(self, schema, options=None, sources=()):
        self.schema = schema
        self.options = options or GeneratorOptions()
        self.sources = [os.path.basename(s.rstrip('/')) for s in sources]
        self.projection = Projection(schema, self.options)

    def module_name(self, service):
        return self.options.modules.get(service.name) or python_name(service.name)

    def services(self):
        """The services to render: all of them, or those of the target namespace."""
        target = self.options.target_namespace
        if target is None:
            return list(self.schema.services)
        services = [s for s in self.schema.services if s.namespace == target]
        if not services:
            raise OptionsError('no service is declared in target namespace {}; found {}'.format(
                target, ', '.join(sorted(set(s.namespace for s in self.schema.services))) or 'none'))
        return services

    def render(self):
        """Render every service; returns ``{module name: source}``."""
        modules = collections.OrderedDict()
        for service in self.services():
            name = self.module_name(service)
            if name in modules:
                raise NameCollision(name, [QName(service.namespace, service.name)])
            log.info('rendering %s as %s', service.name, name)
            modules[name] = ModuleWriter(self.projection, service, self.sources).render()
        return modules

    def write(self):
        """Render everything first, then replace each module file atomically."""
        modules = self.render()
        os.makedirs(self.options.output_dir, exist_ok=True)
        paths = []
        for name, source in modules.items():
            path = os.path.join(self.options.output_dir, name + '.py')
            fd, tmp = tempfile.mkstemp(dir=self.options.output_dir, prefix='.' + name, suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8', newline='\n') as f:
                    f.write(source)
                os.replace(tmp, path)
            except BaseException:
                os.unlink(tmp)
                raise
            paths.append(path)
            log.info('wrote %s', path)
        return paths
