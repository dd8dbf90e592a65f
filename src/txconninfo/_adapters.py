# -*- test-case-name: txconninfo.test.test_adapters -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Adapters from the connection, transport and request objects a server may
hold to the read-only views the resolver consumes.

Each adapter takes its snapshot once, when it is created, and turns
introspection failures on a torn-down socket into missing values.
"""

import socket
import ssl
from typing import Any, Callable, Mapping, Optional, Tuple

import attr
from constantly import ValueConstant
from OpenSSL import SSL
from zope.interface import implementer

from twisted.internet import address
from twisted.internet.abstract import isIPAddress, isIPv6Address
from twisted.internet.interfaces import (
    IAddress,
    IProtocol,
    ISSLTransport,
    ISystemHandle,
    ITransport,
)
from twisted.internet.ssl import Certificate
from twisted.logger import Logger
from twisted.python.components import registerAdapter
from twisted.web.http_headers import Headers
from twisted.web.iweb import IRequest

from ._constants import IPFamily
from ._interfaces import IForwardingHeaders, IRawSocketInfo, ITLSInfo

log = Logger()

_SOCKET_FAMILIES = {
    socket.AF_INET: IPFamily.IPV4,
    socket.AF_INET6: IPFamily.IPV6,
}


def familyOfHost(host: Optional[str]) -> ValueConstant:
    """
    Determine the address family of a textual IP address.

    @param host: An IPv4 or IPv6 address literal.

    @return: The L{IPFamily} C{host} is written in, L{IPFamily.UNKNOWN} if it
        is not an address literal at all.
    """
    if host is None:
        return IPFamily.UNKNOWN
    if isIPAddress(host):
        return IPFamily.IPV4
    if isIPv6Address(host):
        return IPFamily.IPV6
    return IPFamily.UNKNOWN


@implementer(IRawSocketInfo)
@attr.s(frozen=True, auto_attribs=True)
class RawSocketInfo:
    """
    A snapshot of a socket's endpoints.
    """

    remoteAddress: Optional[str] = None
    remotePort: Optional[int] = None
    remoteFamily: ValueConstant = IPFamily.UNKNOWN
    localAddress: Optional[str] = None
    localPort: Optional[int] = None

    @classmethod
    def fromAddresses(
        cls, peer: Optional[IAddress], host: Optional[IAddress]
    ) -> "RawSocketInfo":
        """
        Build a snapshot from Twisted address objects.  Addresses that are
        not IP addresses, such as L{address.UNIXAddress}, are ignored.
        """
        fields = {}
        if isinstance(peer, address.IPv4Address):
            fields.update(
                remoteAddress=peer.host,
                remotePort=peer.port,
                remoteFamily=IPFamily.IPV4,
            )
        elif isinstance(peer, address.IPv6Address):
            fields.update(
                remoteAddress=peer.host,
                remotePort=peer.port,
                remoteFamily=IPFamily.IPV6,
            )
        if isinstance(host, (address.IPv4Address, address.IPv6Address)):
            fields.update(localAddress=host.host, localPort=host.port)
        return cls(**fields)


@implementer(ITLSInfo)
@attr.s(frozen=True, auto_attribs=True)
class TLSInfo:
    """
    A snapshot of a TLS connection's peer authentication state.
    """

    authorized: Optional[bool] = None
    peerCertificate: Optional[Certificate] = None


def transportSocketInfo(transport: ITransport) -> RawSocketInfo:
    """
    Adapt a Twisted transport to L{IRawSocketInfo}.
    """
    return RawSocketInfo.fromAddresses(transport.getPeer(), transport.getHost())


def _socketName(
    sock: socket.socket, getName: Callable[[], Any]
) -> Tuple[Optional[str], Optional[int]]:
    try:
        name = getName()
    except OSError as e:
        log.debug("Unable to read {socket} endpoint: {error}", socket=sock, error=e)
        return None, None
    return name[0], name[1]


def socketSocketInfo(sock: socket.socket) -> RawSocketInfo:
    """
    Adapt a standard library socket to L{IRawSocketInfo}.
    """
    family = _SOCKET_FAMILIES.get(sock.family)
    if family is None:
        return RawSocketInfo()
    remoteAddress, remotePort = _socketName(sock, sock.getpeername)
    localAddress, localPort = _socketName(sock, sock.getsockname)
    return RawSocketInfo(
        remoteAddress=remoteAddress,
        remotePort=remotePort,
        remoteFamily=family if remoteAddress is not None else IPFamily.UNKNOWN,
        localAddress=localAddress,
        localPort=localPort,
    )


def protocolSocketInfo(protocol: IProtocol) -> Optional[IRawSocketInfo]:
    """
    Adapt a protocol to L{IRawSocketInfo}.

    A protocol that acts as a transport itself, like a
    L{twisted.protocols.policies.ProtocolWrapper}, answers for itself.  Any
    other protocol, such as a WebSocket protocol, answers with the
    transport underneath it.
    """
    if ITransport.providedBy(protocol):
        return transportSocketInfo(protocol)
    return IRawSocketInfo(protocol.transport, None)


def requestSocketInfo(request: IRequest) -> Optional[IRawSocketInfo]:
    """
    Adapt an HTTP request to the L{IRawSocketInfo} of the connection it was
    received on.
    """
    return IRawSocketInfo(request.transport, None)


def _verifiedChain(transport: ISSLTransport) -> Optional[bool]:
    if not ISystemHandle.providedBy(transport):
        return None
    handle = transport.getHandle()
    if not isinstance(handle, SSL.Connection):
        return None
    try:
        return handle.get_verified_chain() is not None
    except SSL.Error as e:
        log.debug("Unable to read verified chain: {error}", error=e)
        return None


def sslTransportTLSInfo(transport: ISSLTransport) -> TLSInfo:
    """
    Adapt a Twisted TLS transport to L{ITLSInfo}.
    """
    try:
        x509 = transport.getPeerCertificate()
    except SSL.Error as e:
        log.debug("Unable to read peer certificate: {error}", error=e)
        x509 = None
    return TLSInfo(
        authorized=_verifiedChain(transport),
        peerCertificate=Certificate(x509) if x509 is not None else None,
    )


def sslSocketTLSInfo(sock: ssl.SSLSocket) -> TLSInfo:
    """
    Adapt a standard library TLS socket to L{ITLSInfo}.

    The standard library only reports the decoded certificate when it was
    verified, which is what C{authorized} reflects.
    """
    try:
        der = sock.getpeercert(binary_form=True)
        verified = sock.getpeercert()
    except (OSError, ValueError) as e:
        log.debug("Unable to read peer certificate: {error}", error=e)
        return TLSInfo()
    return TLSInfo(
        authorized=bool(verified),
        peerCertificate=Certificate.load(der) if der else None,
    )


def protocolTLSInfo(protocol: IProtocol) -> Optional[ITLSInfo]:
    """
    Adapt a protocol to L{ITLSInfo}, following the same rules as
    L{protocolSocketInfo}.
    """
    if ISSLTransport.providedBy(protocol):
        return sslTransportTLSInfo(protocol)
    return ITLSInfo(protocol.transport, None)


def requestTLSInfo(request: IRequest) -> Optional[ITLSInfo]:
    """
    Adapt an HTTP request to the L{ITLSInfo} of the connection it was
    received on.
    """
    return ITLSInfo(request.transport, None)


@implementer(IForwardingHeaders)
class HeadersForwarding:
    """
    L{IForwardingHeaders} backed by a L{Headers} instance.
    """

    def __init__(self, headers: Headers) -> None:
        self._headers = headers

    def getHeader(self, name: str) -> Optional[str]:
        values = self._headers.getRawHeaders(name)
        if not values:
            return None
        return ", ".join(values)


@implementer(IForwardingHeaders)
class MappingForwarding:
    """
    L{IForwardingHeaders} backed by a plain mapping of header names to a
    value or a list of values, as produced by many HTTP servers.
    """

    def __init__(self, headers: Mapping[str, Any]) -> None:
        self._headers = {name.lower(): value for name, value in headers.items()}

    def getHeader(self, name: str) -> Optional[str]:
        value = self._headers.get(name.lower())
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            return ", ".join(value) if value else None
        return value


def requestForwarding(request: IRequest) -> HeadersForwarding:
    """
    Adapt a Twisted HTTP request to L{IForwardingHeaders}.
    """
    return HeadersForwarding(request.requestHeaders)


registerAdapter(transportSocketInfo, ITransport, IRawSocketInfo)
registerAdapter(socketSocketInfo, socket.socket, IRawSocketInfo)
registerAdapter(protocolSocketInfo, IProtocol, IRawSocketInfo)
registerAdapter(requestSocketInfo, IRequest, IRawSocketInfo)

registerAdapter(sslTransportTLSInfo, ISSLTransport, ITLSInfo)
registerAdapter(sslSocketTLSInfo, ssl.SSLSocket, ITLSInfo)
registerAdapter(protocolTLSInfo, IProtocol, ITLSInfo)
registerAdapter(requestTLSInfo, IRequest, ITLSInfo)

registerAdapter(HeadersForwarding, Headers, IForwardingHeaders)
registerAdapter(MappingForwarding, dict, IForwardingHeaders)
registerAdapter(requestForwarding, IRequest, IForwardingHeaders)
