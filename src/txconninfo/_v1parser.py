# -*- test-case-name: txconninfo.test.test_v1parser -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
IProxyParser implementation for version one of the PROXY protocol.
"""

from typing import Tuple

from zope.interface import implementer

from twisted.internet import address
from twisted.internet.abstract import isIPAddress, isIPv6Address

from ._constants import V1_MAX_LENGTH, IPFamily, ProxyVersion
from ._exceptions import (
    IncompleteProxyHeader,
    InvalidNetworkProtocol,
    InvalidProxyHeader,
    MissingAddressData,
    convertError,
)
from ._info import ProxyInfo
from ._interfaces import IProxyParser


@implementer(IProxyParser)
class V1Parser:
    """
    PROXY protocol version one header parser.

    Version one of the PROXY protocol is a human readable format represented
    by a single, CRLF terminated line that contains all of the relevant
    source and destination data.
    """

    PROXYSTR = b"PROXY"
    TCP4_PROTO = b"TCP4"
    TCP6_PROTO = b"TCP6"
    NEWLINE = b"\r\n"

    FAMILIES = {
        TCP4_PROTO: (IPFamily.IPV4, address.IPv4Address, isIPAddress),
        TCP6_PROTO: (IPFamily.IPV6, address.IPv6Address, isIPv6Address),
    }

    @classmethod
    def parse(cls, buffer: bytes) -> Tuple[ProxyInfo, bytes]:
        """
        Split the header line off the front of C{buffer} and parse it.

        @param buffer: Bytes starting with a version one PROXY header.

        @return: The parsed L{ProxyInfo} and every byte after the CRLF.

        @raises IncompleteProxyHeader: If C{buffer} ends before the CRLF and
            is still short enough for a CRLF to follow.

        @raises InvalidProxyHeader: If C{buffer} does not start with a valid
            header line.
        """
        end = buffer.find(cls.NEWLINE, 0, V1_MAX_LENGTH)
        if end == -1:
            if len(buffer) < V1_MAX_LENGTH:
                raise IncompleteProxyHeader()
            raise InvalidProxyHeader()
        end += len(cls.NEWLINE)
        return cls.parseLine(buffer[:end]), buffer[end:]

    @classmethod
    def parseLine(cls, line: bytes) -> ProxyInfo:
        """
        Parse a bytestring as a full PROXY protocol header line.

        @param line: A bytestring that represents a valid HAProxy PROXY
            protocol header line, with or without its CRLF.

        @return: A L{ProxyInfo} containing the parsed data.  Networks other
            than TCP4 and TCP6 produce one without addresses.

        @raises InvalidProxyHeader: If the bytestring does not represent a
            valid PROXY header.

        @raises InvalidNetworkProtocol: When no protocol can be parsed.

        @raises MissingAddressData: When the protocol is TCP* but the header
            does not contain a complete set of addresses and ports.
        """
        tokens = line.split()
        if not tokens or tokens[0] != cls.PROXYSTR:
            raise InvalidProxyHeader()
        if len(tokens) < 2:
            raise InvalidNetworkProtocol()

        networkProtocol = tokens[1]
        if networkProtocol not in cls.FAMILIES:
            return ProxyInfo(line, ProxyVersion.V1)

        if len(tokens) != 6:
            raise MissingAddressData()

        family, addrCls, isValid = cls.FAMILIES[networkProtocol]
        with convertError(UnicodeDecodeError, InvalidProxyHeader):
            sourceAddr, destAddr = (token.decode("ascii") for token in tokens[2:4])
        if not (isValid(sourceAddr) and isValid(destAddr)):
            raise InvalidProxyHeader()

        return ProxyInfo(
            line,
            ProxyVersion.V1,
            family,
            addrCls("TCP", sourceAddr, cls._parsePort(tokens[4])),
            addrCls("TCP", destAddr, cls._parsePort(tokens[5])),
        )

    @staticmethod
    def _parsePort(token: bytes) -> int:
        if not token.isdigit():
            raise MissingAddressData()
        port = int(token)
        if port > 0xFFFF:
            raise InvalidProxyHeader()
        return port
