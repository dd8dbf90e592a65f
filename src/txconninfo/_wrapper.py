# -*- test-case-name: txconninfo.test.test_wrapper -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Protocol wrapper that resolves the details of each connection before the
wrapped protocol sees it.
"""

from functools import partial
from typing import Callable, Optional

from zope.interface import directlyProvides, providedBy

from twisted.internet import interfaces
from twisted.internet.endpoints import _WrapperServerEndpoint
from twisted.internet.protocol import Protocol
from twisted.logger import Logger
from twisted.protocols import policies
from twisted.python.failure import Failure

from ._constants import ProxyVersion
from ._details import ConnectionDetails
from ._exceptions import InvalidProxyHeader
from ._resolver import ResolverOptions, parseProxyHeader, resolve
from ._sniffer import awaitingHeader

log = Logger()

AdmissionHook = Callable[[ConnectionDetails], bool]


def admitAll(details: ConnectionDetails) -> bool:
    """
    The default admission hook, which admits every connection.
    """
    return True


class ConnectionDetailsProtocolWrapper(policies.ProtocolWrapper):
    """
    A protocol wrapper that resolves L{ConnectionDetails} from the first
    bytes received, asks the factory's admission hook whether to proceed,
    and only then connects the wrapped protocol.

    The wrapped protocol never sees a PROXY header: it receives the payload
    that followed it.  While the connection is proxied, C{getPeer} and
    C{getHost} return the endpoints from the PROXY header.

    @ivar connectionDetails: The resolved details, L{None} until the first
        bytes have arrived.
    """

    def __init__(
        self,
        factory: "ConnectionDetailsWrappingFactory",
        wrappedProtocol: interfaces.IProtocol,
    ) -> None:
        policies.ProtocolWrapper.__init__(self, factory, wrappedProtocol)
        self.connectionDetails: Optional[ConnectionDetails] = None
        self._buffer = b""
        self._wrappedConnected = False

    def makeConnection(self, transport: interfaces.ITransport) -> None:
        """
        Connect to C{transport} without connecting the wrapped protocol,
        which waits for the admission hook.
        """
        directlyProvides(self, providedBy(transport))
        Protocol.makeConnection(self, transport)

    def connectionMade(self) -> None:
        self.factory.registerProtocol(self)

    def dataReceived(self, data: bytes) -> None:
        if self.connectionDetails is not None:
            if self._wrappedConnected:
                self.wrappedProtocol.dataReceived(data)
            return

        self._buffer += data
        if self.factory.options.trustProxy and self._awaitingPayload():
            return
        buffer, self._buffer = self._buffer, b""

        details = resolve(self.transport, buffer, options=self.factory.options)
        self.connectionDetails = details
        if not self.factory.admit(details):
            log.info(
                "Refusing connection from {address}:{port}",
                address=details.sourceAddress,
                port=details.sourcePort,
            )
            self.loseConnection()
            return

        self._wrappedConnected = True
        self.wrappedProtocol.makeConnection(self)
        if details.payload:
            self.wrappedProtocol.dataReceived(details.payload)

    def _awaitingPayload(self) -> bool:
        """
        Whether the buffer is, or may become, a PROXY header carrying
        addresses with nothing after it yet.
        """
        if awaitingHeader(self._buffer):
            return True
        try:
            info, remaining = parseProxyHeader(self._buffer)
        except InvalidProxyHeader:
            return False
        return info is not None and info.source is not None and not remaining

    def connectionLost(self, reason: Failure) -> None:
        self.factory.unregisterProtocol(self)
        if self._wrappedConnected:
            self.wrappedProtocol.connectionLost(reason)

    def _proxied(self) -> bool:
        return (
            self.connectionDetails is not None
            and self.connectionDetails.proxyVersion is not ProxyVersion.NONE
        )

    def getPeer(self) -> interfaces.IAddress:
        if self._proxied():
            peer = self.connectionDetails.sourceIAddress()
            if peer is not None:
                return peer
        return self.transport.getPeer()

    def getHost(self) -> interfaces.IAddress:
        if self._proxied():
            host = self.connectionDetails.serverIAddress()
            if host is not None:
                return host
        return self.transport.getHost()


class ConnectionDetailsWrappingFactory(policies.WrappingFactory):
    """
    A factory wrapper that resolves the details of each connection and
    consults an admission hook before building on the wrapped factory's
    protocol.

    @ivar admit: Called with the L{ConnectionDetails} of every connection;
        a false result closes the connection.
    @ivar options: The L{ResolverOptions} used for every connection.
    """

    protocol = ConnectionDetailsProtocolWrapper

    def __init__(
        self,
        wrappedFactory: interfaces.IProtocolFactory,
        admit: Optional[AdmissionHook] = None,
        options: Optional[ResolverOptions] = None,
    ) -> None:
        policies.WrappingFactory.__init__(self, wrappedFactory)
        self.admit = admit if admit is not None else admitAll
        self.options = options if options is not None else ResolverOptions()

    def logPrefix(self) -> str:
        """
        Annotate the wrapped factory's log prefix with some text indicating
        connection details are resolved.
        """
        if interfaces.ILoggingContext.providedBy(self.wrappedFactory):
            logPrefix = self.wrappedFactory.logPrefix()
        else:
            logPrefix = self.wrappedFactory.__class__.__name__
        return f"{logPrefix} (details)"


def detailsEndpoint(
    wrappedEndpoint: interfaces.IStreamServerEndpoint,
    admit: Optional[AdmissionHook] = None,
    options: Optional[ResolverOptions] = None,
) -> interfaces.IStreamServerEndpoint:
    """
    Wrap an endpoint so that every connection it accepts has its details
    resolved and checked by C{admit} before the listening factory's protocol
    is connected.

    @param wrappedEndpoint: The underlying listening endpoint.
    @param admit: The admission hook; by default every connection is
        admitted.
    @param options: The resolver configuration.

    @return: a new listening endpoint.
    """
    return _WrapperServerEndpoint(
        wrappedEndpoint,
        partial(ConnectionDetailsWrappingFactory, admit=admit, options=options),
    )
