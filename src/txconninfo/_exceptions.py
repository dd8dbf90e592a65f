# -*- test-case-name: txconninfo.test.test_v1parser -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Exceptions raised while decoding PROXY protocol headers.
"""

import contextlib
from typing import Iterator, Tuple, Type, Union


class InvalidProxyHeader(Exception):
    """
    The provided PROXY protocol header is invalid.
    """


class IncompleteProxyHeader(InvalidProxyHeader):
    """
    The buffer starts like a PROXY protocol header but ends before the
    header does.  More bytes may make it valid.
    """


class InvalidNetworkProtocol(InvalidProxyHeader):
    """
    The network protocol was not one of TCP4 TCP6 or UNKNOWN.
    """


class MissingAddressData(InvalidProxyHeader):
    """
    The address data is missing or incomplete.
    """


@contextlib.contextmanager
def convertError(
    sourceType: Union[Type[BaseException], Tuple[Type[BaseException], ...]],
    targetType: Type[InvalidProxyHeader],
) -> Iterator[None]:
    """
    Convert an error into a different error type.

    @param sourceType: The type of exception that should be caught and
        converted.

    @param targetType: The type of exception to which the original should be
        converted.
    """
    try:
        yield
    except sourceType as e:
        raise targetType() from e
