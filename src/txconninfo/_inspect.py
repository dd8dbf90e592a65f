# -*- test-case-name: txconninfo.test.test_inspect -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Command line tool printing the details the resolver extracts from a captured
first buffer.
"""

import binascii
import sys
from typing import IO, List, Optional

from twisted.logger import globalLogBeginner, textFileLogObserver
from twisted.python import usage

from ._details import ConnectionDetails
from ._resolver import ResolverOptions, resolve
from ._sniffer import classify


class Options(usage.Options):
    """
    Options for the txconninfo capture inspector.
    """

    synopsis = "[options] [capture]"
    longdesc = (
        "Decode the first buffer read from a connection, as captured in "
        "<capture> ('-', the default, for standard input), and print the "
        "PROXY protocol details found in it."
    )
    optFlags = [
        ["hex", "x", "The capture is hexadecimal text rather than raw bytes."],
        ["untrusted", "u", "Ignore PROXY headers, as for a direct listener."],
        ["verbose", "v", "Log resolver events to standard error."],
    ]

    def parseArgs(self, capture: str = "-") -> None:
        self["capture"] = capture


def readCapture(config: Options, stdin: IO[bytes]) -> bytes:
    """
    Read the capture named by C{config}.

    @raises usage.UsageError: If the capture is not valid hexadecimal text
        when C{--hex} was given.
    """
    if config["capture"] == "-":
        data = stdin.read()
    else:
        with open(config["capture"], "rb") as f:
            data = f.read()
    if not config["hex"]:
        return data
    try:
        return binascii.unhexlify(b"".join(data.split()))
    except (binascii.Error, ValueError) as e:
        raise usage.UsageError(f"Capture is not hexadecimal: {e}")


def _endpoint(host: Optional[str], port: Optional[int]) -> str:
    if host is None:
        return "-"
    if ":" in host:
        host = f"[{host}]"
    return f"{host}:{port}" if port is not None else host


def describe(buffer: bytes, details: ConnectionDetails) -> List[str]:
    """
    Render the details resolved from C{buffer} as lines of text.
    """
    payload = details.payload if details.payload is not None else b""
    return [
        f"signature: {classify(buffer).name}",
        f"proxyVersion: {details.proxyVersion.value}",
        f"ipFamily: {details.ipFamily.value}",
        f"source: {_endpoint(details.sourceAddress, details.sourcePort)}",
        f"server: {_endpoint(details.serverAddress, details.serverPort)}",
        f"header: {len(buffer) - len(payload)} bytes",
        f"payload: {len(payload)} bytes",
    ]


def run(
    argv: Optional[List[str]] = None,
    stdin: Optional[IO[bytes]] = None,
    stdout: Optional[IO[str]] = None,
) -> int:
    """
    Run the tool.

    @return: The process exit status.
    """
    if argv is None:
        argv = sys.argv[1:]
    if stdin is None:
        stdin = sys.stdin.buffer
    if stdout is None:
        stdout = sys.stdout

    config = Options()
    try:
        config.parseOptions(argv)
        buffer = readCapture(config, stdin)
    except (usage.UsageError, OSError) as e:
        stdout.write(f"{config}\n{e}\n")
        return 1

    if config["verbose"]:
        globalLogBeginner.beginLoggingTo([textFileLogObserver(sys.stderr)])

    options = ResolverOptions(trustProxy=not config["untrusted"])
    details = resolve(None, buffer, options=options)
    for line in describe(buffer, details):
        stdout.write(line + "\n")
    return 0
