"""Client side of the correlator server protocol.

Every message travels as one frame: an 8-byte native-order length
followed by a MessagePack payload. Requests start with a header
identifying the client; responses start with the response type and
the id of the client that caused them.
"""

from dataclasses import dataclass, field
from enum import IntEnum
import socket
import struct
from typing import Final

import numpy as np

from pyspd import get_logger
from pyspd import packing
from pyspd.dsp.containers import AmpPhaseOptions, SpectrumData, VisData
from pyspd.errors import CodecError, NetworkError


log = get_logger(__name__)

FRAME_HEADER: Final[struct.Struct] = struct.Struct('=Q')
"""Length prefix of a frame."""

DEFAULT_TIMEOUT: Final[float] = 10.0
"""Seconds to wait when connecting."""


class RequestType(IntEnum):
    """Kinds of request a client sends."""

    CURRENT_SPECTRUM = 1
    SERVERTYPE = 2
    SPECTRUM_MJD = 3
    MJD_SPECTRUM = 4
    TIMERANGE = 5
    CYCLE_TIMES = 6
    CURRENT_VISDATA = 7


class ResponseType(IntEnum):
    """Kinds of response the server sends."""

    CURRENT_SPECTRUM = 183
    SERVERTYPE = 184
    LOADED_SPECTRUM = 185
    SPECTRUM_OUTSIDERANGE = 186
    SPECTRUM_LOADED = 187
    TIMERANGE = 188
    CYCLE_TIMES = 189
    USERREQUEST_VISDATA = 190
    USERNAME_EXISTS = 191
    SHUTDOWN = 192
    CURRENT_VISDATA = 193


class ServerType(IntEnum):
    """Kinds of server."""

    CORRELATOR = 1
    SIMULATOR = 2


class ClientType(IntEnum):
    """Kinds of client."""

    NSPD = 1
    NVIS = 2


@dataclass
class Request:
    """A request sent to the server."""

    request_type: RequestType
    client_id: str
    client_username: str = ''
    client_type: ClientType = ClientType.NSPD
    mjd: float | None = None
    """Requested MJD for SPECTRUM_MJD and MJD_SPECTRUM."""

    options: list[AmpPhaseOptions] = field(default_factory=list)
    """Options sent with SPECTRUM_MJD; empty to adopt the server's."""


@dataclass
class Response:
    """A response received from the server."""

    response_type: ResponseType
    client_id: str = ''
    server_type: ServerType | None = None
    spectrum: SpectrumData | None = None
    vis_data: VisData | None = None
    time_range: tuple[float, float, float] | None = None
    """Cycle time, earliest and latest MJD."""

    cycle_times: list[float] = field(default_factory=list)
    """MJDs of all cycles the server knows."""


def encode_request(request: Request) -> bytes:
    packer = packing.Packer()
    packer.pack_int(request.request_type)
    packer.pack_string(request.client_id)
    packer.pack_string(request.client_username)
    packer.pack_int(request.client_type)
    if request.request_type in (RequestType.SPECTRUM_MJD, RequestType.MJD_SPECTRUM):
        packer.pack_float(request.mjd if request.mjd is not None else 0.0)
    if request.request_type == RequestType.SPECTRUM_MJD:
        packing.pack_options_table(packer, request.options)
    return packer.getvalue()


def decode_request(payload: bytes) -> Request:
    unpacker = packing.Unpacker(payload)
    request_type = _enum_value(RequestType, unpacker.unpack_int())
    request = Request(
        request_type,
        unpacker.unpack_string(),
        unpacker.unpack_string(),
        _enum_value(ClientType, unpacker.unpack_int()),
    )
    if request_type in (RequestType.SPECTRUM_MJD, RequestType.MJD_SPECTRUM):
        request.mjd = unpacker.unpack_float()
    if request_type == RequestType.SPECTRUM_MJD:
        request.options = packing.unpack_options_table(unpacker)
    return request


def encode_response(response: Response) -> bytes:
    packer = packing.Packer()
    packer.pack_int(response.response_type)
    packer.pack_string(response.client_id)
    kind = response.response_type
    if kind == ResponseType.SERVERTYPE:
        packer.pack_int(response.server_type or ServerType.CORRELATOR)
    elif kind in (ResponseType.CURRENT_SPECTRUM, ResponseType.LOADED_SPECTRUM):
        if response.spectrum is None:
            raise CodecError(f'{kind.name} response needs spectrum data')
        packing.pack_spectrum_data(packer, response.spectrum)
    elif kind == ResponseType.CURRENT_VISDATA:
        if response.vis_data is None:
            raise CodecError(f'{kind.name} response needs visibility data')
        packing.pack_vis_data(packer, response.vis_data)
    elif kind == ResponseType.TIMERANGE:
        for value in response.time_range or (0.0, 0.0, 0.0):
            packer.pack_float(value)
    elif kind == ResponseType.CYCLE_TIMES:
        packer.pack_float_array(response.cycle_times)
    return packer.getvalue()


def decode_response(payload: bytes) -> Response:
    """Decodes a response payload.

    Raises:
        CodecError: The payload is malformed or of an unknown type.
    """
    unpacker = packing.Unpacker(payload)
    response = Response(
        _enum_value(ResponseType, unpacker.unpack_int()),
        unpacker.unpack_string()
    )
    kind = response.response_type
    if kind == ResponseType.SERVERTYPE:
        response.server_type = _enum_value(ServerType, unpacker.unpack_int())
    elif kind in (ResponseType.CURRENT_SPECTRUM, ResponseType.LOADED_SPECTRUM):
        response.spectrum = packing.unpack_spectrum_data(unpacker)
    elif kind == ResponseType.CURRENT_VISDATA:
        response.vis_data = packing.unpack_vis_data(unpacker)
    elif kind == ResponseType.TIMERANGE:
        response.time_range = (
            unpacker.unpack_float(), unpacker.unpack_float(), unpacker.unpack_float()
        )
    elif kind == ResponseType.CYCLE_TIMES:
        response.cycle_times = np.sort(unpacker.unpack_float_array()).tolist()
    return response


def _enum_value(enum_type, value: int):
    try:
        return enum_type(value)
    except ValueError:
        raise CodecError(f'Unknown {enum_type.__name__} {value}') from None


class ServerConnection:
    """Framed connection to the correlator server."""

    def __init__(
        self,
        host: str,
        port: int,
        client_id: str,
        username: str = '',
        client_type: ClientType = ClientType.NSPD,
        timeout: float = DEFAULT_TIMEOUT
    ) -> None:
        self.host = host
        self.port = port
        self.client_id = client_id
        self.username = username
        self.client_type = client_type
        self.timeout = timeout
        self._socket: socket.socket | None = None

    def __enter__(self) -> 'ServerConnection':
        self.connect()
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return self._socket is not None

    def connect(self) -> None:
        if self._socket is not None:
            return
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as ex:
            raise NetworkError(f'Cannot connect to {self.host}:{self.port}: {ex}') from ex
        sock.settimeout(None)
        self._socket = sock
        log.info('Connected to %s:%d', self.host, self.port)

    def close(self) -> None:
        if self._socket is None:
            return
        try:
            self._socket.close()
        finally:
            self._socket = None

    def fileno(self) -> int:
        return self._ensure_connected().fileno()

    def send_request(
        self,
        request_type: RequestType,
        mjd: float | None = None,
        options: list[AmpPhaseOptions] | None = None
    ) -> None:
        """Sends a request with this client's header."""
        request = Request(
            request_type, self.client_id, self.username, self.client_type,
            mjd, list(options or [])
        )
        log.debug('Sending %s request', request_type.name)
        self._send_frame(encode_request(request))

    def receive(self) -> Response:
        """Blocks until a whole response has arrived and decodes it.

        Raises:
            NetworkError: The connection failed or was closed.
            CodecError: The response is malformed.
        """
        sock = self._ensure_connected()
        (length,) = FRAME_HEADER.unpack(self._recv_exact(sock, FRAME_HEADER.size))
        response = decode_response(self._recv_exact(sock, length))
        log.debug('Received %s response', response.response_type.name)
        return response

    def _send_frame(self, payload: bytes) -> None:
        sock = self._ensure_connected()
        try:
            sock.sendall(FRAME_HEADER.pack(len(payload)) + payload)
        except OSError as ex:
            raise NetworkError(f'Cannot send to server: {ex}') from ex

    def _ensure_connected(self) -> socket.socket:
        if self._socket is None:
            raise NetworkError('Not connected to a server')
        return self._socket

    @staticmethod
    def _recv_exact(sock: socket.socket, count: int) -> bytes:
        data = bytearray()
        while len(data) < count:
            try:
                chunk = sock.recv(count - len(data))
            except OSError as ex:
                raise NetworkError(f'Cannot receive from server: {ex}') from ex
            if not chunk:
                raise NetworkError('Connection closed by server')
            data.extend(chunk)
        return bytes(data)
