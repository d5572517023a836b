"""Tests of the server protocol."""

from __future__ import annotations

import socket

import pytest

from helpers import make_spectrum
from pyspd import network, packing
from pyspd.dsp.containers import AmpPhaseOptions
from pyspd.errors import CodecError, NetworkError
from pyspd.network import (
    FRAME_HEADER, ClientType, Request, RequestType, Response, ResponseType,
    ServerConnection, ServerType
)


class ChunkedSocket:
    """Socket handing out prepared data a few bytes at a time."""

    def __init__(self, data: bytes, chunk: int = 3) -> None:
        self.data = data
        self.chunk = chunk
        self.sent = b''

    def recv(self, count: int) -> bytes:
        piece = self.data[:min(count, self.chunk)]
        self.data = self.data[len(piece):]
        return piece

    def sendall(self, data: bytes) -> None:
        self.sent += data

    def close(self) -> None:
        pass


def _frame(payload: bytes) -> bytes:
    return FRAME_HEADER.pack(len(payload)) + payload


def test_spectrum_mjd_request_carries_the_options() -> None:
    request = Request(
        RequestType.SPECTRUM_MJD, 'abc123', 'observer', ClientType.NSPD,
        mjd=58000.25, options=[AmpPhaseOptions(delay_averaging=[2])]
    )

    decoded = network.decode_request(network.encode_request(request))

    assert decoded.request_type == RequestType.SPECTRUM_MJD
    assert decoded.client_id == 'abc123'
    assert decoded.client_username == 'observer'
    assert decoded.mjd == 58000.25
    assert decoded.options[0].delay_averaging == [2]


def test_plain_requests_have_only_the_header() -> None:
    request = Request(RequestType.CYCLE_TIMES, 'abc123', client_type=ClientType.NVIS)

    payload = network.encode_request(request)
    decoded = network.decode_request(payload)

    assert decoded.mjd is None
    assert decoded.options == []
    assert decoded.client_type == ClientType.NVIS
    mjd_request = Request(RequestType.MJD_SPECTRUM, 'abc123', mjd=58000.5)
    assert len(network.encode_request(mjd_request)) > len(payload)


def test_cycle_times_are_sorted() -> None:
    response = Response(ResponseType.CYCLE_TIMES, 'abc123',
                        cycle_times=[58000.02, 58000.0, 58000.01])

    decoded = network.decode_response(network.encode_response(response))

    assert decoded.client_id == 'abc123'
    assert decoded.cycle_times == [58000.0, 58000.01, 58000.02]


def test_server_type_and_time_range() -> None:
    server = network.decode_response(network.encode_response(
        Response(ResponseType.SERVERTYPE, server_type=ServerType.SIMULATOR)
    ))
    time_range = network.decode_response(network.encode_response(
        Response(ResponseType.TIMERANGE, time_range=(0.01, 58000.0, 58001.0))
    ))

    assert server.server_type == ServerType.SIMULATOR
    assert time_range.time_range == (0.01, 58000.0, 58001.0)


def test_spectrum_response() -> None:
    response = Response(ResponseType.LOADED_SPECTRUM, spectrum=make_spectrum())

    decoded = network.decode_response(network.encode_response(response))

    assert decoded.spectrum.mjd == pytest.approx(58000.01)


def test_spectrum_response_needs_data() -> None:
    with pytest.raises(CodecError):
        network.encode_response(Response(ResponseType.CURRENT_SPECTRUM))


def test_unknown_response_type() -> None:
    packer = packing.Packer()
    packer.pack_int(99)
    packer.pack_string('abc123')

    with pytest.raises(CodecError, match='Unknown ResponseType 99'):
        network.decode_response(packer.getvalue())


def test_recv_exact_joins_partial_reads() -> None:
    sock = ChunkedSocket(b'0123456789')

    assert ServerConnection._recv_exact(sock, 7) == b'0123456'


def test_recv_exact_on_closed_connection() -> None:
    with pytest.raises(NetworkError, match='closed'):
        ServerConnection._recv_exact(ChunkedSocket(b'01'), 4)


def test_receive_reads_one_frame() -> None:
    payload = network.encode_response(Response(ResponseType.SHUTDOWN, 'abc123'))
    connection = ServerConnection('localhost', 8880, 'abc123')
    connection._socket = ChunkedSocket(_frame(payload) + _frame(payload))

    assert connection.receive().response_type == ResponseType.SHUTDOWN
    assert connection.receive().client_id == 'abc123'


def test_send_request_frames_the_payload() -> None:
    connection = ServerConnection('localhost', 8880, 'abc123', 'observer')
    sock = ChunkedSocket(b'')
    connection._socket = sock

    connection.send_request(RequestType.SPECTRUM_MJD, mjd=58000.5, options=[])

    (length,) = FRAME_HEADER.unpack(sock.sent[:FRAME_HEADER.size])
    assert length == len(sock.sent) - FRAME_HEADER.size
    request = network.decode_request(sock.sent[FRAME_HEADER.size:])
    assert request.client_username == 'observer'
    assert request.mjd == 58000.5


def test_not_connected() -> None:
    connection = ServerConnection('localhost', 8880, 'abc123')

    assert not connection.connected
    with pytest.raises(NetworkError, match='Not connected'):
        connection.send_request(RequestType.SERVERTYPE)


def test_connect_failure(monkeypatch) -> None:
    def refuse(address, timeout=None):
        raise ConnectionRefusedError('refused')

    monkeypatch.setattr(socket, 'create_connection', refuse)
    connection = ServerConnection('localhost', 8880, 'abc123')

    with pytest.raises(NetworkError, match='Cannot connect to localhost:8880'):
        connection.connect()
    assert not connection.connected
