"""
adsoap-generate: WSDL documents in, one Python client module per service out.

Exit status is 0 on success, 2 when the WSDL uses something outside wrapped
document/literal SOAP 1.1 (or cannot be projected), 3 when a document cannot
be read and 4 for invalid options. Arguments can be read from a file with
``@options.txt``, one argument per line.
"""
import argparse
import logging
import sys

from adsoap import __version__, wsdl
from adsoap.errors import GeneratorError, OptionsError
from adsoap.generator import Generator, GeneratorOptions

log = logging.getLogger('adsoap.cli')


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(OptionsError.exit_code, '%s: error: %s\n' % (self.prog, message))


def mapping(text):
    key, sep, value = text.partition('=')
    if not sep or not key or not value:
        raise argparse.ArgumentTypeError('expected KEY=VALUE, got {!r}'.format(text))
    return key, value


def build_parser():
    parser = ArgumentParser(prog='adsoap-generate', fromfile_prefix_chars='@',
                            description='Generate Python SOAP clients from WSDL documents.')
    parser.add_argument('--wsdl', action='append', required=True, metavar='LOCATION',
                        help='WSDL file or URL; repeat for several services')
    parser.add_argument('--out', default='.', metavar='DIR', help='directory for the generated modules')
    parser.add_argument('--package', action='append', type=mapping, default=[], metavar='SERVICE=MODULE',
                        help='module name for a service (default: snake_case service name)')
    parser.add_argument('--namespace-prefix', action='append', type=mapping, default=[], metavar='URI=PREFIX',
                        help='prefix for class names from a namespace, used to resolve name collisions')
    parser.add_argument('--target-namespace', default=None, metavar='URI',
                        help='only generate the services of WSDLs with this targetNamespace')
    parser.add_argument('--optional-style', default='option', choices=GeneratorOptions.optional_styles)
    parser.add_argument('--enum-style', default='string', choices=GeneratorOptions.enum_styles)
    parser.add_argument('--inheritance-style', default='embed', choices=GeneratorOptions.inheritance_styles)
    parser.add_argument('--cache-dir', default=None, metavar='DIR', help='cache for WSDLs fetched over HTTP')
    parser.add_argument('--no-cache', action='store_true', help='always fetch remote WSDLs')
    parser.add_argument('-v', '--verbose', action='store_true', help='log at DEBUG level')
    parser.add_argument('--version', action='version', version='%(prog)s ' + __version__)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
    )
    try:
        options = GeneratorOptions(
            output_dir=args.out,
            namespace_prefixes=dict(args.namespace_prefix),
            modules=dict(args.package),
            optional_style=args.optional_style,
            enum_style=args.enum_style,
            inheritance_style=args.inheritance_style,
            target_namespace=args.target_namespace,
        )
        parser = wsdl.WsdlParser(args.cache_dir, use_cache=not args.no_cache)
        schema = parser.parse(args.wsdl)
        paths = Generator(schema, options, sources=args.wsdl).write()
    except GeneratorError as e:
        log.error('%s', e)
        return e.exit_code
    except OSError as e:
        log.error('cannot write output: %s', e)
        return 3
    for path in paths:
        print(path)
    return 0


if __name__ == '__main__':
    sys.exit(main())
