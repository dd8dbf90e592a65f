# -*- test-case-name: txconninfo.test.test_resolver -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Resolution of a connection's L{ConnectionDetails} from its first buffer, its
socket, and the HTTP request that opened it.

Resolution is a fixed sequence of stages.  Each stage receives the record
built so far and returns a new one; the order of L{RESOLUTION_STAGES} is the
precedence order of the sources of a connection's address.
"""

from typing import Any, Callable, List, Optional, Tuple

import attr

from twisted.logger import Logger

from ._adapters import familyOfHost
from ._constants import IPFamily, ProxyVersion
from ._details import ConnectionDetails
from ._exceptions import InvalidProxyHeader
from ._info import ProxyInfo
from ._interfaces import IForwardingHeaders, IRawSocketInfo, ITLSInfo
from ._sniffer import classify
from ._v1parser import V1Parser
from ._v2parser import V2Parser

log = Logger()

PARSERS = {
    ProxyVersion.V1: V1Parser,
    ProxyVersion.V2: V2Parser,
}


@attr.s(frozen=True, auto_attribs=True)
class ResolverOptions:
    """
    Configuration of the resolver.

    @ivar trustProxy: Whether the connection is expected to come through a
        proxy.  If not, forwarding headers and PROXY headers are ignored and
        the socket is the only source of addresses.
    @ivar forwardedForHeader: The name of the header listing the chain of
        forwarding proxies.
    @ivar realIPHeader: The name of the header naming the client outright.
    """

    trustProxy: bool = True
    forwardedForHeader: str = "X-Forwarded-For"
    realIPHeader: str = "X-Real-Ip"


@attr.s(frozen=True, auto_attribs=True)
class ResolutionInputs:
    """
    Everything a resolution stage may consult, adapted once up front.

    @ivar buffer: The first bytes read from the connection.
    @ivar socketInfo: The connection's socket, if it could be adapted.
    @ivar tlsInfo: The connection's TLS state, if it is a TLS connection.
    @ivar headers: The headers of the HTTP request that opened the
        connection, if it was opened by one.
    @ivar options: The resolver configuration.
    """

    buffer: bytes
    socketInfo: Optional[IRawSocketInfo]
    tlsInfo: Optional[ITLSInfo]
    headers: Optional[IForwardingHeaders]
    options: ResolverOptions

    @classmethod
    def fromConnection(
        cls,
        connection: Any,
        buffer: bytes,
        request: Any = None,
        options: Optional[ResolverOptions] = None,
    ) -> "ResolutionInputs":
        return cls(
            buffer=buffer,
            socketInfo=IRawSocketInfo(connection, None),
            tlsInfo=ITLSInfo(connection, None),
            headers=IForwardingHeaders(request, None) if request is not None else None,
            options=options if options is not None else ResolverOptions(),
        )


Stage = Callable[[ConnectionDetails, ResolutionInputs], ConnectionDetails]


def forwardedChain(
    forwardedFor: str, peerAddress: Optional[str] = None
) -> List[str]:
    """
    List the hops an HTTP request went through, nearest first.

    @param forwardedFor: The value of an C{X-Forwarded-For} header, in which
        each proxy appended the address it received the request from.
    @param peerAddress: The address of the socket peer, which is the nearest
        hop.

    @return: C{peerAddress} followed by the header's entries from last to
        first, so the final element is the presumed original client.
    """
    entries = [entry.strip() for entry in forwardedFor.split(",")]
    chain = [entry for entry in reversed(entries) if entry]
    if peerAddress is not None:
        chain.insert(0, peerAddress)
    return chain


def forwardedForStage(
    details: ConnectionDetails, inputs: ResolutionInputs
) -> ConnectionDetails:
    """
    Take the client address from the forwarding chain of the HTTP request
    that opened the connection, and mark the connection as a WebSocket.
    """
    if inputs.headers is None:
        return details
    socketInfo = inputs.socketInfo
    if socketInfo is not None:
        details = attr.evolve(
            details,
            sourcePort=socketInfo.remotePort,
            serverPort=socketInfo.localPort,
            ipFamily=socketInfo.remoteFamily,
        )
    details = attr.evolve(details, isWebsocket=True)

    forwardedFor = inputs.headers.getHeader(inputs.options.forwardedForHeader)
    if not forwardedFor:
        return details
    chain = forwardedChain(
        forwardedFor, socketInfo.remoteAddress if socketInfo is not None else None
    )
    if not chain:
        return details
    return _withSourceAddress(
        attr.evolve(details, serverAddress=chain[0]), chain[-1], inputs
    )


def realIPStage(
    details: ConnectionDetails, inputs: ResolutionInputs
) -> ConnectionDetails:
    """
    Let the real IP header of the HTTP request override any address taken
    from the forwarding chain.
    """
    if inputs.headers is None:
        return details
    realIP = inputs.headers.getHeader(inputs.options.realIPHeader)
    if not realIP or not realIP.strip():
        return details
    return _withSourceAddress(details, realIP.strip(), inputs)


def _withSourceAddress(
    details: ConnectionDetails, sourceAddress: str, inputs: ResolutionInputs
) -> ConnectionDetails:
    family = familyOfHost(sourceAddress)
    if family is IPFamily.UNKNOWN and inputs.socketInfo is not None:
        family = inputs.socketInfo.remoteFamily
    return attr.evolve(details, sourceAddress=sourceAddress, ipFamily=family)


def parseProxyHeader(buffer: bytes) -> Tuple[Optional[ProxyInfo], bytes]:
    """
    Sniff and parse the PROXY protocol header at the start of C{buffer}.

    @param buffer: The first bytes read from a connection.

    @return: The parsed header, or L{None} if C{buffer} does not start with
        one, and the bytes following the header.

    @raises InvalidProxyHeader: If C{buffer} starts with a PROXY signature
        that is not followed by a valid header.
    """
    parser = PARSERS.get(classify(buffer))
    if parser is None:
        return None, buffer
    return parser.parse(buffer)


def proxyHeaderStage(
    details: ConnectionDetails, inputs: ResolutionInputs
) -> ConnectionDetails:
    """
    Overwrite the endpoints with those of a PROXY protocol header, and strip
    the header from the payload.
    """
    try:
        info, remaining = parseProxyHeader(inputs.buffer)
    except InvalidProxyHeader as e:
        log.debug(
            "Ignoring malformed PROXY header ({error!r}) in {length} byte buffer",
            error=e,
            length=len(inputs.buffer),
        )
        return attr.evolve(details, payload=inputs.buffer)

    details = attr.evolve(details, payload=remaining)
    if info is None or info.source is None or info.destination is None:
        return details
    if not remaining:
        log.debug("Ignoring PROXY header with no payload after it")
        return details
    return attr.evolve(
        details,
        sourceAddress=info.source.host,
        sourcePort=info.source.port,
        serverAddress=info.destination.host,
        serverPort=info.destination.port,
        ipFamily=info.family,
        proxyVersion=info.version,
    )


def rawSocketStage(
    details: ConnectionDetails, inputs: ResolutionInputs
) -> ConnectionDetails:
    """
    Fall back to the socket's own endpoints when no earlier stage found the
    client address.
    """
    if details.sourceAddress is not None or inputs.socketInfo is None:
        return details
    socketInfo = inputs.socketInfo
    return attr.evolve(
        details,
        sourceAddress=socketInfo.remoteAddress,
        sourcePort=socketInfo.remotePort,
        serverAddress=socketInfo.localAddress,
        serverPort=socketInfo.localPort,
        ipFamily=socketInfo.remoteFamily,
    )


def tlsStage(
    details: ConnectionDetails, inputs: ResolutionInputs
) -> ConnectionDetails:
    """
    Record the peer authentication state of a TLS connection.
    """
    if inputs.tlsInfo is None:
        return details
    return attr.evolve(
        details,
        isTls=True,
        certAuthorized=inputs.tlsInfo.authorized,
        peerCertificate=inputs.tlsInfo.peerCertificate,
    )


def directStage(
    details: ConnectionDetails, inputs: ResolutionInputs
) -> ConnectionDetails:
    """
    Pass the buffer on untouched, and note whether the connection was opened
    by an HTTP upgrade, without believing anything a proxy may have said.
    """
    return attr.evolve(
        details, payload=inputs.buffer, isWebsocket=inputs.headers is not None
    )


RESOLUTION_STAGES: Tuple[Stage, ...] = (
    forwardedForStage,
    realIPStage,
    proxyHeaderStage,
    rawSocketStage,
    tlsStage,
)

UNTRUSTED_STAGES: Tuple[Stage, ...] = (
    directStage,
    rawSocketStage,
    tlsStage,
)


def resolve(
    connection: Any,
    buffer: Optional[bytes],
    request: Any = None,
    options: Optional[ResolverOptions] = None,
) -> ConnectionDetails:
    """
    Work out where a connection came from.

    @param connection: The connection, adaptable to L{IRawSocketInfo} and,
        for TLS connections, L{ITLSInfo}.  Twisted transports and protocols,
        Twisted HTTP requests and standard library sockets all are.
    @param buffer: The first bytes read from the connection.  If there are
        none yet, a record with no addresses is returned and the connection
        is not consulted.
    @param request: The HTTP request that opened the connection, for
        WebSocket connections, adaptable to L{IForwardingHeaders}.
    @param options: The resolver configuration; the defaults trust proxies.

    @return: The details of the connection.
    """
    details = ConnectionDetails()
    if not buffer:
        return details
    inputs = ResolutionInputs.fromConnection(connection, buffer, request, options)
    stages = RESOLUTION_STAGES if inputs.options.trustProxy else UNTRUSTED_STAGES
    for stage in stages:
        details = stage(details, inputs)
    log.debug(
        "Resolved {source}:{port} (proxy={proxy}, websocket={websocket}, "
        "tls={tls})",
        source=details.sourceAddress,
        port=details.sourcePort,
        proxy=details.proxyVersion.value,
        websocket=details.isWebsocket,
        tls=details.isTls,
    )
    return details
