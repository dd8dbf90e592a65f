# -*- test-case-name: txconninfo.test -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Connection details for broker front ends: PROXY protocol v1/v2 decoding,
forwarding header handling and socket/TLS introspection, resolved in a fixed
precedence order into one L{ConnectionDetails} record per connection.
"""

from ._version import __version__ as version
from ._adapters import RawSocketInfo, TLSInfo
from ._constants import IPFamily, ProxyVersion, V1_SIGNATURE, V2_SIGNATURE
from ._details import ConnectionDetails
from ._exceptions import (
    IncompleteProxyHeader,
    InvalidNetworkProtocol,
    InvalidProxyHeader,
    MissingAddressData,
)
from ._info import ProxyInfo
from ._interfaces import (
    IForwardingHeaders,
    IProxyInfo,
    IProxyParser,
    IRawSocketInfo,
    ITLSInfo,
)
from ._resolver import RESOLUTION_STAGES, ResolverOptions, parseProxyHeader, resolve
from ._sniffer import awaitingHeader, classify
from ._v1parser import V1Parser
from ._v2parser import V2Parser
from ._wrapper import (
    ConnectionDetailsProtocolWrapper,
    ConnectionDetailsWrappingFactory,
    detailsEndpoint,
)

__version__ = version.short()

__all__ = [
    "ConnectionDetails",
    "ConnectionDetailsProtocolWrapper",
    "ConnectionDetailsWrappingFactory",
    "IForwardingHeaders",
    "IPFamily",
    "IProxyInfo",
    "IProxyParser",
    "IRawSocketInfo",
    "ITLSInfo",
    "IncompleteProxyHeader",
    "InvalidNetworkProtocol",
    "InvalidProxyHeader",
    "MissingAddressData",
    "ProxyInfo",
    "ProxyVersion",
    "RESOLUTION_STAGES",
    "RawSocketInfo",
    "ResolverOptions",
    "TLSInfo",
    "V1Parser",
    "V1_SIGNATURE",
    "V2Parser",
    "V2_SIGNATURE",
    "awaitingHeader",
    "classify",
    "detailsEndpoint",
    "parseProxyHeader",
    "resolve",
]
