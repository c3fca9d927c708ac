# Copyright (C) 2025  sandftp contributors
#
# This program is free software; you can redistribute it and/or
# modify it under the terms of the GNU General Public License
# as published by the Free Software Foundation; either version 2
# of the License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program; if not, write to the Free Software
# Foundation, Inc.,
# 51 Franklin Street, Fifth Floor, Boston, MA  02110-1301, USA.

import gevent
from gevent import socket
import pytest

from sandftp.protocols.ftp.ftp_utils import (
    FTPDataConnectionError,
    encode_pasv_address,
    format_reply,
    parse_pasv_response,
    parse_reply,
)
from sandftp.protocols.ftp.passive import PassiveEndpoint, bind_first_available

PORT_MIN, PORT_MAX = 40150, 40170


@pytest.mark.parametrize(
    "ip, port, expected",
    (
        ("192.168.1.10", 1024, "(192,168,1,10,4,0)"),
        ("127.0.0.1", 1048, "(127,0,0,1,4,24)"),
        ("10.0.0.1", 65535, "(10,0,0,1,255,255)"),
    ),
)
def test_encode_pasv_address(ip, port, expected):
    assert encode_pasv_address(ip, port) == expected


def test_encode_pasv_address_needs_ipv4():
    with pytest.raises(ValueError):
        encode_pasv_address("::1", 1024)


def test_parse_pasv_response():
    assert parse_pasv_response("Entering Passive Mode (192,168,1,10,4,1)") == (
        "192.168.1.10",
        1025,
    )


@pytest.mark.parametrize(
    "msg",
    ("Entering Passive Mode", "(1,2,3,4,5)", "(1,2,3,4,5,x)", "(1,2,3,300,4,0)"),
)
def test_parse_pasv_response_invalid(msg):
    with pytest.raises(ValueError):
        parse_pasv_response(msg)


def test_reply_format():
    assert format_reply("220", "Hello from FTP server!") == "220 | Hello from FTP server!\r\n"
    assert parse_reply(b"226 | File sent ok, 3 bytes.\r\n") == ("226", "File sent ok, 3 bytes.")


def test_bind_first_available_skips_taken_ports():
    first = bind_first_available("127.0.0.1", PORT_MIN, PORT_MAX)
    second = bind_first_available("127.0.0.1", PORT_MIN, PORT_MAX)
    try:
        assert PORT_MIN <= first.getsockname()[1] <= PORT_MAX
        assert PORT_MIN <= second.getsockname()[1] <= PORT_MAX
        assert first.getsockname()[1] != second.getsockname()[1]
    finally:
        first.close()
        second.close()


def test_bind_first_available_exhausted():
    taken = bind_first_available("127.0.0.1", PORT_MIN, PORT_MAX)
    port = taken.getsockname()[1]
    try:
        with pytest.raises(FTPDataConnectionError):
            bind_first_available("127.0.0.1", port, port)
    finally:
        taken.close()


def open_endpoint():
    endpoint = PassiveEndpoint.open("127.0.0.1", PORT_MIN, PORT_MAX, bind_host="127.0.0.1")
    endpoint.start()
    return endpoint


def test_endpoint_handoff():
    endpoint = open_endpoint()
    client = socket.create_connection(("127.0.0.1", endpoint.port))
    try:
        data_sock = endpoint.wait(timeout=5)
        client.sendall(b"ping")
        assert data_sock.recv(4) == b"ping"
        assert endpoint.consumed
    finally:
        client.close()
        endpoint.close()
    assert endpoint.closed


def test_endpoint_connection_before_wait():
    endpoint = open_endpoint()
    client = socket.create_connection(("127.0.0.1", endpoint.port))
    try:
        # the acceptor runs without anybody waiting for it
        gevent.sleep(0.1)
        assert endpoint.wait(timeout=0.1) is not None
    finally:
        client.close()
        endpoint.close()


def test_endpoint_timeout():
    endpoint = open_endpoint()
    try:
        with pytest.raises(FTPDataConnectionError):
            endpoint.wait(timeout=0.2)
    finally:
        endpoint.close()


def test_endpoint_is_single_use():
    endpoint = open_endpoint()
    client = socket.create_connection(("127.0.0.1", endpoint.port))
    try:
        endpoint.wait(timeout=5)
        with pytest.raises(FTPDataConnectionError):
            endpoint.wait(timeout=0.1)
    finally:
        client.close()
        endpoint.close()


def test_closed_endpoint_releases_port():
    endpoint = open_endpoint()
    port = endpoint.port
    endpoint.close()
    with pytest.raises(FTPDataConnectionError):
        endpoint.wait(timeout=0.1)
    reuse = bind_first_available("127.0.0.1", port, port)
    reuse.close()


def test_close_unpicked_connection():
    endpoint = open_endpoint()
    client = socket.create_connection(("127.0.0.1", endpoint.port))
    try:
        gevent.sleep(0.1)
        endpoint.close()
        # server side was closed without anyone waiting for it
        client.settimeout(2)
        assert client.recv(1) == b""
    finally:
        client.close()
