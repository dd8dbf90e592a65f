# -*- test-case-name: txconninfo.test.test_resolver -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
The record produced by resolving a connection's details.
"""

from typing import Optional

import attr
from constantly import ValueConstant

from twisted.internet import address
from twisted.internet.interfaces import IAddress
from twisted.internet.ssl import Certificate

from ._constants import IPFamily, ProxyVersion


def _toAddress(host: Optional[str], port: Optional[int]) -> Optional[IAddress]:
    if host is None or port is None:
        return None
    if ":" in host:
        return address.IPv6Address("TCP", host, port)
    return address.IPv4Address("TCP", host, port)


@attr.s(frozen=True, auto_attribs=True, kw_only=True)
class ConnectionDetails:
    """
    Everything known about where a connection came from, as seen by the
    connection admission hook.

    Instances are immutable; L{txconninfo.resolve} builds one by evolving
    an empty record through each of its stages.

    @ivar sourceAddress: The original client address, in the notation native
        to its family, or L{None} if it could not be determined.
    @ivar sourcePort: The original client port.
    @ivar serverAddress: The address the client believes it connected to.
    @ivar serverPort: The port the client believes it connected to.
    @ivar ipFamily: The L{IPFamily} of C{sourceAddress}.
    @ivar isWebsocket: Whether the connection arrived by an HTTP upgrade.
    @ivar proxyVersion: The L{ProxyVersion} of the header the addresses were
        taken from, L{ProxyVersion.NONE} if they were not.
    @ivar isTls: Whether TLS is terminated by this process.
    @ivar certAuthorized: Whether the TLS peer certificate verified, L{None}
        when unknown or not using TLS.
    @ivar peerCertificate: The TLS peer certificate, if one was presented.
    @ivar payload: The first buffer with any recognized PROXY header removed,
        or L{None} if no buffer was available.
    """

    sourceAddress: Optional[str] = None
    sourcePort: Optional[int] = None
    serverAddress: Optional[str] = None
    serverPort: Optional[int] = None
    ipFamily: ValueConstant = IPFamily.UNKNOWN
    isWebsocket: bool = False
    proxyVersion: ValueConstant = ProxyVersion.NONE
    isTls: bool = False
    certAuthorized: Optional[bool] = None
    peerCertificate: Optional[Certificate] = None
    payload: Optional[bytes] = None

    def sourceIAddress(self) -> Optional[IAddress]:
        """
        @return: The client endpoint as an L{IAddress}, or L{None} if either
            the address or the port is unknown.
        """
        return _toAddress(self.sourceAddress, self.sourcePort)

    def serverIAddress(self) -> Optional[IAddress]:
        """
        @return: The server endpoint as an L{IAddress}, or L{None} if either
            the address or the port is unknown.
        """
        return _toAddress(self.serverAddress, self.serverPort)
