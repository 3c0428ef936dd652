class SoapError(Exception):
    pass


class TransportError(SoapError):
    """TCP, TLS or HTTP failure, including timeouts."""
    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class ProtocolError(SoapError):
    """The peer answered with something that is not a usable SOAP 1.1 envelope."""


class DecodingError(ProtocolError):
    pass


class EncodingError(SoapError):
    pass


class ServiceFault(SoapError):
    """A well formed SOAP Fault, raised as the error of a call."""
    def __init__(self, fault):
        super().__init__(fault.string)
        self.fault = fault

    @property
    def code(self):
        return self.fault.code

    def __str__(self):
        return self.fault.string or ''


class GeneratorError(Exception):
    exit_code = 2


class UnsupportedFeature(GeneratorError):
    def __init__(self, feature, element):
        super().__init__('unsupported WSDL feature {}: {}'.format(feature, element))
        self.feature = feature
        self.element = element


class SchemaError(GeneratorError):
    pass


class NameCollision(SchemaError):
    def __init__(self, name, qnames):
        super().__init__('identifier {!r} is claimed by {}; map one of the namespaces '
                         'with --namespace-prefix'.format(name, ', '.join(sorted(str(q) for q in qnames))))
        self.name = name
        self.qnames = qnames


class OptionsError(GeneratorError):
    exit_code = 4


class SourceError(GeneratorError):
    """A WSDL or XSD document could not be read."""
    exit_code = 3
