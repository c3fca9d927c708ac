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

import logging

import gevent
from gevent import socket
from gevent.event import AsyncResult

from sandftp.protocols.ftp.ftp_utils import FTPDataConnectionError, encode_pasv_address

logger = logging.getLogger(__name__)


def bind_first_available(host, port_min, port_max, backlog=1):
    """
    Linear probe of [port_min, port_max]: the first port that binds wins.
    The socket is bound and listening before this returns, so a port handed to one session can't be handed to
    another one in the meantime.
    """
    for port in range(port_min, port_max + 1):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
            sock.listen(backlog)
        except socket.error as se:
            logger.debug("Passive port {} not available: {}".format(port, se))
            sock.close()
            continue
        return sock
    raise FTPDataConnectionError(
        "no available port found in {}-{}".format(port_min, port_max)
    )


class PassiveEndpoint(object):
    """
    Listener for exactly one inbound data connection.

    start() spawns a greenlet that performs a single accept() and delivers the result through a one-shot AsyncResult:
    the accepted socket on success, None when accept failed. wait() blocks on that handoff - optionally bounded by a
    timeout - and close() releases the listener and any delivered socket. An endpoint is never reused.
    """

    def __init__(self, listener, advertised_ip):
        self.listener = listener
        self.port = listener.getsockname()[1]
        self.advertised_ip = advertised_ip
        self.data_sock = None
        self.peer = None
        self._handoff = AsyncResult()
        self._acceptor = None
        self._consumed = False
        self.closed = False

    @classmethod
    def open(cls, advertised_ip, port_min, port_max, bind_host=""):
        listener = bind_first_available(bind_host, port_min, port_max)
        return cls(listener, advertised_ip)

    def __repr__(self):
        return "<PassiveEndpoint {}:{} ({})>".format(
            self.advertised_ip, self.port, "closed" if self.closed else "open"
        )

    @property
    def address(self):
        """The '(o1,o2,o3,o4,p1,p2)' form sent with the 227 reply."""
        return encode_pasv_address(self.advertised_ip, self.port)

    @property
    def consumed(self):
        return self._consumed

    def start(self):
        self._acceptor = gevent.spawn(self._accept_once)
        return self._acceptor

    def _accept_once(self):
        try:
            sock, peer = self.listener.accept()
        except (socket.error, OSError) as se:
            logger.info("Error accepting data connection on port {}: {}".format(self.port, se))
            self._handoff.set(None)
            return
        self.peer = peer
        logger.info("Data connection established with {}:{}".format(peer[0], peer[1]))
        self._handoff.set(sock)

    def wait(self, timeout=None):
        """
        Block until the acceptor delivers.
        :param timeout: seconds to wait, None waits forever.
        :return: the connected data socket
        :raises FTPDataConnectionError: accept failed, the wait timed out or the endpoint was already used.
        """
        if self._consumed or self.closed:
            raise FTPDataConnectionError("passive endpoint already used")
        self._consumed = True
        try:
            sock = self._handoff.get(timeout=timeout)
        except gevent.Timeout:
            raise FTPDataConnectionError(
                "timed out after {} secs waiting for data connection".format(timeout)
            )
        if sock is None:
            raise FTPDataConnectionError("data connection is not established")
        self.data_sock = sock
        return sock

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._consumed = True
        if self.listener.fileno() != -1:
            self.listener.close()
        if self._acceptor is not None and not self._acceptor.dead:
            self._acceptor.kill()
        if self.data_sock is None and self._handoff.ready():
            # delivered but never picked up
            self.data_sock = self._handoff.value
        if self.data_sock is not None and self.data_sock.fileno() != -1:
            self.data_sock.close()
        logger.debug("Closed passive endpoint on port {}".format(self.port))
