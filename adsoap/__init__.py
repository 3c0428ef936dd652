__version__ = '0.1.0'

from adsoap.errors import (DecodingError, EncodingError, ProtocolError, ServiceFault, SoapError,  # noqa: E402
                           TransportError)
from adsoap.schema import ABSENT, ComplexType, Enumeration, Field, QName, UnknownValue  # noqa: E402
from adsoap.transport import BasicAuth, Client, Service, TLSConfig  # noqa: E402
from adsoap.wsse import UsernameToken  # noqa: E402
