# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Tests for L{txconninfo._wrapper}.
"""

from zope.interface import implementer

from twisted.internet import address, defer
from twisted.internet.interfaces import IStreamServerEndpoint
from twisted.internet.protocol import Factory
from twisted.internet.testing import StringTransportWithDisconnection
from twisted.trial import unittest

from txconninfo import (
    ConnectionDetailsProtocolWrapper,
    ConnectionDetailsWrappingFactory,
    ProxyVersion,
    ResolverOptions,
    detailsEndpoint,
)
from txconninfo.test.helpers import (
    CLIENT_ADDRESS,
    MQTT_CONNECT,
    SERVER_ADDRESS,
    RecordingProtocol,
    ipv4Block,
    v1Header,
    v2Header,
)


class PeerRecordingProtocol(RecordingProtocol):
    """
    A L{RecordingProtocol} that also records its transport's peer when
    connected.
    """

    def __init__(self):
        RecordingProtocol.__init__(self)
        self.peers = []

    def connectionMade(self):
        RecordingProtocol.connectionMade(self)
        self.peers.append(self.transport.getPeer())


@implementer(IStreamServerEndpoint)
class RecordingEndpoint:
    """
    A listening endpoint that records the factory it was asked to listen
    with.
    """

    factory = None

    def listen(self, protocolFactory):
        self.factory = protocolFactory
        return defer.succeed(protocolFactory)


class ConnectionDetailsWrapperTests(unittest.SynchronousTestCase):
    """
    Test L{ConnectionDetailsProtocolWrapper} behaviour.
    """

    def connect(self, admit=None, options=None, protocol=RecordingProtocol):
        """
        Connect a L{RecordingProtocol} through a
        L{ConnectionDetailsWrappingFactory}.

        @return: The wrapping protocol, the wrapped protocol and the
            factory.
        """
        factory = ConnectionDetailsWrappingFactory(
            Factory.forProtocol(protocol), admit=admit, options=options
        )
        proto = factory.buildProtocol(CLIENT_ADDRESS)
        transport = StringTransportWithDisconnection(
            hostAddress=SERVER_ADDRESS, peerAddress=CLIENT_ADDRESS
        )
        transport.protocol = proto
        proto.makeConnection(transport)
        return proto, proto.wrappedProtocol, factory

    def test_wrappedProtocolWaitsForData(self) -> None:
        """
        The wrapped protocol is not connected before any data has arrived.
        """
        proto, wrapped, factory = self.connect()
        self.assertIsInstance(proto, ConnectionDetailsProtocolWrapper)
        self.assertEqual(wrapped.made, 0)
        self.assertIsNone(wrapped.transport)
        self.assertIsNone(proto.connectionDetails)
        self.assertIn(proto, factory.protocols)

    def test_v1Header(self) -> None:
        """
        The header is stripped and its addresses are reported by the
        wrapping transport.
        """
        proto, wrapped, _ = self.connect()
        proto.dataReceived(
            v1Header("192.168.0.1", "192.168.0.11", 56324, 443) + MQTT_CONNECT
        )
        self.assertEqual(wrapped.made, 1)
        self.assertEqual(wrapped.received, [MQTT_CONNECT])
        self.assertIs(wrapped.transport, proto)
        self.assertIs(
            wrapped.transport.connectionDetails.proxyVersion, ProxyVersion.V1
        )
        self.assertEqual(
            proto.getPeer(), address.IPv4Address("TCP", "192.168.0.1", 56324)
        )
        self.assertEqual(
            proto.getHost(), address.IPv4Address("TCP", "192.168.0.11", 443)
        )

    def test_headerInPieces(self) -> None:
        """
        A header split over several reads is reassembled before it is
        resolved.
        """
        proto, wrapped, _ = self.connect()
        data = v2Header(ipv4Block("192.168.0.140", "127.0.0.1", 12345, 1883))
        for i in range(len(data) - 1):
            proto.dataReceived(data[i : i + 1])
            self.assertFalse(wrapped.made)
        proto.dataReceived(data[-1:] + MQTT_CONNECT)
        self.assertEqual(wrapped.made, 1)
        self.assertEqual(wrapped.received, [MQTT_CONNECT])
        self.assertEqual(proto.connectionDetails.sourceAddress, "192.168.0.140")

    def test_headerAloneWaits(self) -> None:
        """
        A complete header with nothing after it yet is held until the first
        bytes of payload arrive.
        """
        proto, wrapped, _ = self.connect()
        proto.dataReceived(v1Header("192.168.0.1", "192.168.0.11", 56324, 443))
        self.assertFalse(wrapped.made)
        proto.dataReceived(MQTT_CONNECT)
        self.assertEqual(wrapped.received, [MQTT_CONNECT])
        self.assertIs(proto.connectionDetails.proxyVersion, ProxyVersion.V1)

    def test_laterDataPassesThrough(self) -> None:
        """
        Once the details are resolved, data is delivered as it arrives.
        """
        proto, wrapped, _ = self.connect()
        proto.dataReceived(
            v1Header("192.168.0.1", "192.168.0.11", 56324, 443) + MQTT_CONNECT
        )
        proto.dataReceived(b"PROXY later")
        self.assertEqual(wrapped.received, [MQTT_CONNECT, b"PROXY later"])

    def test_notProxied(self) -> None:
        """
        Data that cannot start a PROXY header is delivered at once, and the
        socket's endpoints are reported.
        """
        proto, wrapped, _ = self.connect()
        proto.dataReceived(MQTT_CONNECT)
        self.assertEqual(wrapped.received, [MQTT_CONNECT])
        self.assertIs(proto.connectionDetails.proxyVersion, ProxyVersion.NONE)
        self.assertEqual(proto.getPeer(), CLIENT_ADDRESS)
        self.assertEqual(proto.getHost(), SERVER_ADDRESS)

    def test_untrustedDoesNotWait(self) -> None:
        """
        A listener not expecting proxies delivers a partial PROXY signature
        without waiting for more.
        """
        proto, wrapped, _ = self.connect(options=ResolverOptions(trustProxy=False))
        proto.dataReceived(b"PROX")
        self.assertEqual(wrapped.received, [b"PROX"])
        self.assertEqual(proto.getPeer(), CLIENT_ADDRESS)

    def test_admitReceivesDetails(self) -> None:
        """
        The admission hook is called once with the resolved details.
        """
        seen = []

        def admit(details):
            seen.append(details)
            return True

        proto, wrapped, _ = self.connect(admit=admit)
        proto.dataReceived(
            v1Header("192.168.0.1", "192.168.0.11", 56324, 443) + MQTT_CONNECT
        )
        proto.dataReceived(MQTT_CONNECT)
        self.assertEqual(seen, [proto.connectionDetails])
        self.assertEqual(seen[0].sourceAddress, "192.168.0.1")
        self.assertEqual(wrapped.made, 1)

    def test_refused(self) -> None:
        """
        A connection refused by the admission hook is closed without the
        wrapped protocol ever seeing it.
        """
        proto, wrapped, factory = self.connect(admit=lambda details: False)
        proto.dataReceived(MQTT_CONNECT)
        self.assertEqual(wrapped.made, 0)
        self.assertIsNone(wrapped.transport)
        self.assertEqual(wrapped.received, [])
        self.assertIsNone(wrapped.lostReason)
        self.assertFalse(proto.transport.connected)
        self.assertNotIn(proto, factory.protocols)

    def test_refusedLaterData(self) -> None:
        """
        Data arriving after a refusal, such as TLS records decrypted before
        the connection closed, is discarded.
        """
        proto, wrapped, _ = self.connect(admit=lambda details: False)
        proto.dataReceived(MQTT_CONNECT)
        proto.dataReceived(b"\x30\x05\x00\x01tX")
        self.assertEqual(wrapped.received, [])
        self.assertEqual(wrapped.made, 0)

    def test_peerKnownWhenConnected(self) -> None:
        """
        The wrapped protocol is connected once, after resolution, so the
        client address from the header is already visible in its
        C{connectionMade}.
        """
        proto, wrapped, _ = self.connect(protocol=PeerRecordingProtocol)
        self.assertEqual(wrapped.peers, [])
        proto.dataReceived(
            v1Header("192.168.0.1", "192.168.0.11", 56324, 443) + MQTT_CONNECT
        )
        self.assertEqual(
            wrapped.peers, [address.IPv4Address("TCP", "192.168.0.1", 56324)]
        )

    def test_localHeaderAlone(self) -> None:
        """
        A complete header without addresses, like a health check's LOCAL
        header, is resolved without waiting for payload.
        """
        proto, wrapped, _ = self.connect()
        proto.dataReceived(v2Header(versionCommand=0x20))
        self.assertEqual(wrapped.made, 1)
        self.assertEqual(wrapped.received, [])
        self.assertIs(proto.connectionDetails.proxyVersion, ProxyVersion.NONE)
        self.assertEqual(proto.getPeer(), CLIENT_ADDRESS)

    def test_connectionLost(self) -> None:
        """
        Losing an admitted connection is reported to the wrapped protocol.
        """
        proto, wrapped, factory = self.connect()
        proto.dataReceived(MQTT_CONNECT)
        proto.transport.loseConnection()
        self.assertIsNotNone(wrapped.lostReason)
        self.assertNotIn(proto, factory.protocols)

    def test_connectionLostBeforeData(self) -> None:
        """
        Losing a connection before any data arrived is not reported to the
        wrapped protocol, which was never connected.
        """
        proto, wrapped, factory = self.connect()
        proto.transport.loseConnection()
        self.assertIsNone(wrapped.lostReason)
        self.assertNotIn(proto, factory.protocols)


class WrappingFactoryTests(unittest.SynchronousTestCase):
    """
    Tests for L{ConnectionDetailsWrappingFactory}.
    """

    def test_logPrefix(self) -> None:
        factory = ConnectionDetailsWrappingFactory(
            Factory.forProtocol(RecordingProtocol)
        )
        self.assertEqual(factory.logPrefix(), "Factory (details)")

    def test_logPrefixWithoutContext(self) -> None:
        """
        A wrapped factory that does not provide a log prefix is named by its
        class.
        """

        class Bare:
            def buildProtocol(self, addr):
                return RecordingProtocol()

        factory = ConnectionDetailsWrappingFactory(Bare())
        self.assertEqual(factory.logPrefix(), "Bare (details)")

    def test_defaults(self) -> None:
        factory = ConnectionDetailsWrappingFactory(
            Factory.forProtocol(RecordingProtocol)
        )
        self.assertEqual(factory.options, ResolverOptions())
        self.assertTrue(factory.admit(None))


class DetailsEndpointTests(unittest.SynchronousTestCase):
    """
    Tests for L{detailsEndpoint}.
    """

    def test_listenWraps(self) -> None:
        """
        The wrapped endpoint listens with a
        L{ConnectionDetailsWrappingFactory} carrying the given hook and
        options.
        """
        wrapped = RecordingEndpoint()
        admit = lambda details: False
        options = ResolverOptions(trustProxy=False)
        listening = Factory.forProtocol(RecordingProtocol)

        result = self.successResultOf(
            detailsEndpoint(wrapped, admit, options).listen(listening)
        )

        self.assertIs(result, wrapped.factory)
        self.assertIsInstance(wrapped.factory, ConnectionDetailsWrappingFactory)
        self.assertIs(wrapped.factory.wrappedFactory, listening)
        self.assertIs(wrapped.factory.admit, admit)
        self.assertIs(wrapped.factory.options, options)
