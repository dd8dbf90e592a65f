# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
IProxyInfo implementation.
"""

from typing import Optional

import attr
from constantly import ValueConstant
from zope.interface import implementer

from twisted.internet.interfaces import IAddress

from ._constants import IPFamily
from ._interfaces import IProxyInfo


@implementer(IProxyInfo)
@attr.s(frozen=True, auto_attribs=True)
class ProxyInfo:
    """
    A data container for parsed PROXY protocol information.

    @ivar header: The raw header bytes extracted from the connection.
    @ivar version: The L{ProxyVersion} the header was framed with.
    @ivar family: The L{IPFamily} declared by the header.
    @ivar source: The connection source address.
    @ivar destination: The connection destination address.
    """

    header: bytes
    version: ValueConstant
    family: ValueConstant = IPFamily.UNKNOWN
    source: Optional[IAddress] = None
    destination: Optional[IAddress] = None
