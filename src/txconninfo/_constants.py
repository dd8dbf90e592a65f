# -*- test-case-name: txconninfo.test.test_sniffer -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Symbolic constants shared by the PROXY protocol parsers and the connection
details resolver.
"""

from constantly import ValueConstant, Values


class IPFamily(Values):
    """
    The address family of a resolved connection endpoint.

    The values are the IP version numbers, C{0} meaning the family could not
    be determined.
    """

    UNKNOWN = ValueConstant(0)
    IPV4 = ValueConstant(4)
    IPV6 = ValueConstant(6)


class ProxyVersion(Values):
    """
    The PROXY protocol framing, if any, found at the start of a connection.
    """

    NONE = ValueConstant(0)
    V1 = ValueConstant(1)
    V2 = ValueConstant(2)


V1_SIGNATURE = b"PROXY "
V2_SIGNATURE = b"\x0D\x0A\x0D\x0A\x00\x0D\x0A\x51\x55\x49\x54\x0A"

# The longest possible version one header line, CRLF included.
V1_MAX_LENGTH = 107

# Signature, version/command, family/transport and the 16-bit length.
V2_FIXED_LENGTH = 16
