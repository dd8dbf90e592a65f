# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Helpers for building PROXY headers, fake transports and certificates in the
txconninfo tests.
"""

import datetime
import socket
import struct
from typing import Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from zope.interface import implementer

from twisted.internet import address
from twisted.internet.interfaces import ISSLTransport, ISystemHandle
from twisted.internet.protocol import Protocol
from twisted.internet.ssl import Certificate, PrivateCertificate
from twisted.internet.testing import StringTransport
from twisted.web.http_headers import Headers
from twisted.web.iweb import IRequest

from txconninfo import V2_SIGNATURE

# An MQTT 3.1.1 CONNECT packet for client id "my-client", keepalive 0.
MQTT_CONNECT = (
    b"\x10\x15\x00\x04MQTT\x04\x02\x00\x00\x00\x09my-client"
)

CLIENT_ADDRESS = address.IPv4Address("TCP", "10.0.0.2", 40000)
SERVER_ADDRESS = address.IPv4Address("TCP", "127.0.0.1", 1883)


def v1Header(
    source: str,
    destination: str,
    sourcePort: int,
    destinationPort: int,
    protocol: str = "TCP4",
) -> bytes:
    """
    Build a version one PROXY header line.
    """
    return b"PROXY %s %s %s %d %d\r\n" % (
        protocol.encode("ascii"),
        source.encode("ascii"),
        destination.encode("ascii"),
        sourcePort,
        destinationPort,
    )


def ipv4Block(
    source: str, destination: str, sourcePort: int, destinationPort: int
) -> bytes:
    return (
        socket.inet_pton(socket.AF_INET, source)
        + socket.inet_pton(socket.AF_INET, destination)
        + struct.pack("!HH", sourcePort, destinationPort)
    )


def ipv6Block(
    source: str, destination: str, sourcePort: int, destinationPort: int
) -> bytes:
    return (
        socket.inet_pton(socket.AF_INET6, source)
        + socket.inet_pton(socket.AF_INET6, destination)
        + struct.pack("!HH", sourcePort, destinationPort)
    )


def v2Header(
    addressBlock: bytes = b"",
    versionCommand: int = 0x21,
    familyProto: int = 0x11,
) -> bytes:
    """
    Build a version two PROXY header.

    @param addressBlock: Everything following the fixed part of the header,
        TLVs included.
    @param versionCommand: Version 2, command PROXY by default.
    @param familyProto: AF_INET over STREAM by default.
    """
    return (
        V2_SIGNATURE
        + struct.pack("!BBH", versionCommand, familyProto, len(addressBlock))
        + addressBlock
    )


def serverTransport(
    peer: Optional[address.IPv4Address] = None,
    host: Optional[address.IPv4Address] = None,
) -> StringTransport:
    """
    A transport for a connection accepted from C{peer} on C{host}.
    """
    return StringTransport(
        hostAddress=host if host is not None else SERVER_ADDRESS,
        peerAddress=peer if peer is not None else CLIENT_ADDRESS,
    )


@implementer(ISSLTransport, ISystemHandle)
class FakeTLSTransport(StringTransport):
    """
    A L{StringTransport} that claims TLS is terminated on it.
    """

    def __init__(self, peerCertificate=None, handle=None, error=None, **kwargs):
        StringTransport.__init__(self, **kwargs)
        self._peerCertificate = peerCertificate
        self._handle = handle
        self._error = error

    def getPeerCertificate(self):
        if self._error is not None:
            raise self._error
        return self._peerCertificate

    def getHandle(self):
        return self._handle


@implementer(IRequest)
class FakeRequest:
    """
    The parts of an HTTP upgrade request the resolver reads.
    """

    def __init__(self, transport, headers=None):
        self.transport = transport
        self.requestHeaders = Headers(headers or {})


class RecordingProtocol(Protocol):
    """
    A protocol remembering everything that happened to it.

    @ivar made: How many times C{connectionMade} was called.
    """

    made = 0
    lostReason = None

    def __init__(self):
        self.received = []

    def connectionMade(self):
        self.made += 1

    def dataReceived(self, data):
        self.received.append(data)

    def connectionLost(self, reason):
        self.lostReason = reason


def _name(organization: str, commonName: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
            x509.NameAttribute(NameOID.COMMON_NAME, commonName),
        ]
    )


def _issue(subject, key, issuer, issuerKey, serial, isCA):
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(serial)
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=isCA, path_length=None), critical=True)
        .sign(issuerKey, hashes.SHA256())
    )


def _private(cert, key) -> PrivateCertificate:
    return PrivateCertificate.loadPEM(
        cert.public_bytes(serialization.Encoding.PEM)
        + key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )


CA_ORGANIZATION = "txconninfo Test CA"


def makeCertificates() -> Tuple[Certificate, PrivateCertificate, PrivateCertificate]:
    """
    Create a certificate authority and a server and a client certificate
    signed by it.

    @return: The authority's certificate, and the server's and the client's
        certificates with their private keys.
    """
    caKey = ec.generate_private_key(ec.SECP256R1())
    caName = _name(CA_ORGANIZATION, "Test CA")
    caCert = _issue(caName, caKey, caName, caKey, 1, True)

    serverKey = ec.generate_private_key(ec.SECP256R1())
    serverCert = _issue(
        _name("txconninfo", "localhost"), serverKey, caName, caKey, 2, False
    )

    clientKey = ec.generate_private_key(ec.SECP256R1())
    clientCert = _issue(
        _name("txconninfo clients", "client-1"), clientKey, caName, caKey, 3, False
    )

    return (
        Certificate.loadPEM(caCert.public_bytes(serialization.Encoding.PEM)),
        _private(serverCert, serverKey),
        _private(clientCert, clientKey),
    )
