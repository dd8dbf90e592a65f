# -*- test-case-name: txconninfo.test.test_v2parser -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
IProxyParser implementation for version two of the PROXY protocol.
"""

import struct
from typing import Tuple

from zope.interface import implementer

from twisted.internet import address

from ._constants import V2_FIXED_LENGTH, V2_SIGNATURE, IPFamily, ProxyVersion
from ._exceptions import IncompleteProxyHeader, InvalidProxyHeader, MissingAddressData
from ._info import ProxyInfo
from ._interfaces import IProxyParser

_HIGH = 0b11110000
_LOW = 0b00001111
_LOCALCOMMAND = "LOCAL"
_PROXYCOMMAND = "PROXY"


def _bytesToIPv4(bytestring: bytes) -> str:
    """
    Convert packed 32-bit IPv4 address bytes into a dotted-quad string.

    @param bytestring: 4 octets representing an IPv4 address.

    @return: a dotted-quad notation IPv4 address.
    """
    return ".".join("%i" % (octet,) for octet in bytestring)


def _bytesToIPv6(bytestring: bytes) -> str:
    """
    Convert packed 128-bit IPv6 address bytes into a colon-separated string.

    Each 16-bit group is written in hex without leading zeros, and the first
    run of zero groups is collapsed to C{::}.

    @param bytestring: 16 octets representing an IPv6 address.

    @return: a colon-hex notation IPv6 address.
    """
    groups = ["%x" % (group,) for group in struct.unpack("!8H", bytestring)]
    if "0" not in groups:
        return ":".join(groups)
    start = end = groups.index("0")
    while end < len(groups) and groups[end] == "0":
        end += 1
    return ":".join(groups[:start]) + "::" + ":".join(groups[end:])


@implementer(IProxyParser)
class V2Parser:
    """
    PROXY protocol version two header parser.

    Version two of the PROXY protocol is a binary format.  Only the IPv4 and
    IPv6 address blocks are decoded; any other address block, and any TLV
    vectors following a decoded one, are skipped using the declared length.
    """

    PREFIX = V2_SIGNATURE
    VERSIONS = (0x20,)
    COMMANDS = {0x00: _LOCALCOMMAND, 0x01: _PROXYCOMMAND}
    NETPROTOCOLS = {
        0x01: "TCP",
        0x02: "UDP",
    }
    NETFAMILIES = {
        0x10: (IPFamily.IPV4, address.IPv4Address, _bytesToIPv4, "!4s4sHH"),
        0x20: (IPFamily.IPV6, address.IPv6Address, _bytesToIPv6, "!16s16sHH"),
    }

    @classmethod
    def parse(cls, buffer: bytes) -> Tuple[ProxyInfo, bytes]:
        """
        Split the header off the front of C{buffer} and parse it.

        @param buffer: Bytes starting with a version two PROXY header.

        @return: The parsed L{ProxyInfo} and every byte after the address
            block declared by the header.

        @raises IncompleteProxyHeader: If C{buffer} ends before the declared
            end of the header.

        @raises InvalidProxyHeader: If C{buffer} does not start with a valid
            header.

        @raises MissingAddressData: If the address block is too short for
            the address family it declares.
        """
        if not buffer.startswith(cls.PREFIX):
            if buffer and cls.PREFIX.startswith(buffer):
                raise IncompleteProxyHeader()
            raise InvalidProxyHeader()
        if len(buffer) < V2_FIXED_LENGTH:
            raise IncompleteProxyHeader()

        versionCommand, familyProto, length = struct.unpack(
            "!BBH", buffer[len(cls.PREFIX) : V2_FIXED_LENGTH]
        )
        version, command = versionCommand & _HIGH, versionCommand & _LOW
        if version not in cls.VERSIONS or command not in cls.COMMANDS:
            raise InvalidProxyHeader()

        end = V2_FIXED_LENGTH + length
        if len(buffer) < end:
            raise IncompleteProxyHeader()
        header, remaining = buffer[:end], buffer[end:]

        if cls.COMMANDS[command] == _LOCALCOMMAND:
            return ProxyInfo(header, ProxyVersion.V2), remaining

        family, netproto = familyProto & _HIGH, familyProto & _LOW
        if family not in cls.NETFAMILIES or netproto not in cls.NETPROTOCOLS:
            return ProxyInfo(header, ProxyVersion.V2), remaining

        ipFamily, addrCls, addrParser, addressFormat = cls.NETFAMILIES[family]
        addrType = cls.NETPROTOCOLS[netproto]
        size = struct.calcsize(addressFormat)
        if length < size:
            raise MissingAddressData()
        source, dest, sPort, dPort = struct.unpack(
            addressFormat, buffer[V2_FIXED_LENGTH : V2_FIXED_LENGTH + size]
        )

        return (
            ProxyInfo(
                header,
                ProxyVersion.V2,
                ipFamily,
                addrCls(addrType, addrParser(source), sPort),
                addrCls(addrType, addrParser(dest), dPort),
            ),
            remaining,
        )
