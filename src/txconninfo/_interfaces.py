# -*- test-case-name: txconninfo.test.test_adapters -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Interfaces used by the PROXY protocol parsers and the connection details
resolver.
"""

from zope.interface import Attribute, Interface


class IProxyInfo(Interface):
    """
    Data container for PROXY protocol header data.
    """

    header = Attribute(
        "The raw bytestring that represents the PROXY protocol header.",
    )
    version = Attribute(
        "The L{txconninfo.ProxyVersion} of the header.",
    )
    family = Attribute(
        "The L{txconninfo.IPFamily} declared by the header.",
    )
    source = Attribute(
        "An L{twisted.internet.interfaces.IAddress} representing the "
        "connection source, or L{None} if the header does not carry one."
    )
    destination = Attribute(
        "An L{twisted.internet.interfaces.IAddress} representing the "
        "connection destination, or L{None} if the header does not carry one."
    )


class IProxyParser(Interface):
    """
    Parser for one version of the PROXY protocol header.
    """

    def parse(buffer: bytes) -> tuple:
        """
        Parse the PROXY protocol header at the start of C{buffer}.

        @param buffer: The first bytes received on a connection.

        @return: A two-tuple of an L{IProxyInfo} and the bytes that followed
            the header.

        @raises InvalidProxyHeader: If C{buffer} does not start with a valid
            header.
        """


class IRawSocketInfo(Interface):
    """
    Endpoint information read from the socket underneath a connection.

    Every attribute is L{None} when the socket could not report it, for
    example because it was already closed.
    """

    remoteAddress = Attribute("The peer address as a native string.")
    remotePort = Attribute("The peer port as an L{int}.")
    remoteFamily = Attribute("The L{txconninfo.IPFamily} of the peer address.")
    localAddress = Attribute("The local address as a native string.")
    localPort = Attribute("The local port as an L{int}.")


class ITLSInfo(Interface):
    """
    Peer authentication state of a TLS connection terminated in this process.
    """

    authorized = Attribute(
        "L{True} if the peer presented a certificate that verified against "
        "the configured trust roots, L{False} if not, L{None} if unknown."
    )
    peerCertificate = Attribute(
        "The peer's L{twisted.internet.ssl.Certificate}, or L{None}."
    )


class IForwardingHeaders(Interface):
    """
    Read access to the headers of the HTTP request that opened a connection.
    """

    def getHeader(name: str) -> "str | None":
        """
        Look up a header by case-insensitive name.

        @param name: The header name.

        @return: The header value, multiple occurrences joined with C{", "},
            or L{None} if the header is absent.
        """
