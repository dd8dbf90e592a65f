# -*- test-case-name: txconninfo.test.test_sniffer -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Classification of the first bytes of a connection by PROXY protocol version.
"""

import struct

from constantly import ValueConstant

from ._constants import (
    V1_MAX_LENGTH,
    V1_SIGNATURE,
    V2_FIXED_LENGTH,
    V2_SIGNATURE,
    ProxyVersion,
)


def classify(buffer: bytes) -> ValueConstant:
    """
    Determine which PROXY protocol header, if any, C{buffer} starts with.

    @param buffer: The first bytes read from a connection.  It may be empty
        or shorter than either signature.

    @return: L{ProxyVersion.V1}, L{ProxyVersion.V2} or L{ProxyVersion.NONE}.
    """
    if buffer[: len(V1_SIGNATURE)] == V1_SIGNATURE:
        return ProxyVersion.V1
    if buffer[: len(V2_SIGNATURE)] == V2_SIGNATURE:
        return ProxyVersion.V2
    return ProxyVersion.NONE


def awaitingHeader(buffer: bytes) -> bool:
    """
    Determine whether C{buffer} could be the beginning of a PROXY protocol
    header that has not been completely received yet.

    A transport uses this to decide whether to keep reading before handing
    the buffer to L{txconninfo.resolve}.

    @param buffer: Every byte received on the connection so far.

    @return: L{True} if more bytes are needed to tell, L{False} if C{buffer}
        holds a complete header or is certainly not (or never will be) one.
    """
    version = classify(buffer)
    if version is ProxyVersion.V1:
        return len(buffer) < V1_MAX_LENGTH and b"\r\n" not in buffer
    if version is ProxyVersion.V2:
        if len(buffer) < V2_FIXED_LENGTH:
            return True
        (length,) = struct.unpack("!H", buffer[14:V2_FIXED_LENGTH])
        return len(buffer) < V2_FIXED_LENGTH + length
    return V1_SIGNATURE.startswith(buffer) or V2_SIGNATURE.startswith(buffer)
