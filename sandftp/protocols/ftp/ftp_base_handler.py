# Copyright (C) 2018  Abhinav Saxena <xandfury@gmail.com>
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
import time
from datetime import datetime

from gevent import socket

import sandftp.core as sandftp_core
from sandftp.protocols.ftp.ftp_utils import (
    COMMAND_ARGS_ERROR,
    COMMAND_NOT_DEFINED,
    SERVICE_NOT_AVAILABLE,
    SERVICE_READY,
    format_reply,
)

logger = logging.getLogger(__name__)

# -----------------------------------------------------------
# Implementation Note: one greenlet per control connection. Commands are read and answered strictly in turn - the
# reply to a command is written before the next line is read. The only other greenlet a session owns is the one-shot
# passive acceptor (see passive.py). Subclasses implement dispatch() and are free of socket handling.
# -----------------------------------------------------------


class FTPMetrics(object):
    """Simple class to track total bytes transferred, login attempts etc."""

    def __init__(self):
        self.start_time = time.time()
        self.data_channel_bytes_recv = 0
        self.data_channel_bytes_send = 0
        self.command_chanel_bytes_send = 0
        self.command_chanel_bytes_recv = 0
        self.last_active = self.start_time

    def get_elapsed_time(self):
        return self.last_active - self.start_time

    def __repr__(self):
        tot = (
            self.data_channel_bytes_recv
            + self.data_channel_bytes_send
            + self.command_chanel_bytes_recv
            + self.command_chanel_bytes_send
        )
        s = """
        Total data transferred      : {}  (bytes)
        Command channel sent        : {}  (bytes)
        Command channel received    : {}  (bytes)
        Data channel sent           : {}  (bytes)
        Data channel received       : {}  (bytes)""".format(
            tot,
            self.command_chanel_bytes_send,
            self.command_chanel_bytes_recv,
            self.data_channel_bytes_send,
            self.data_channel_bytes_recv,
        )
        return s

    def get_metrics(self, user_name, failed_login_attempts, client_address):
        s = """
        FTP statistics for client     : {}
        ----------------------------------
        Logged in as user             : {}
        Failed login attempts         : {}
        Start time                    : {}
        Last active on                : {}
        ----------------------------------
        """.format(
            client_address,
            user_name,
            failed_login_attempts,
            datetime.fromtimestamp(self.start_time).ctime(),
            datetime.fromtimestamp(self.last_active).ctime(),
        )
        s += self.__repr__()
        return s


class FTPHandlerBase(object):
    """Base class for a control connection: reads command lines and writes replies."""

    config = None  # Config of FTP server. FTPConfig class instance.
    host, port = None, None  # FTP Sever's host and port.
    buffer_limit = 2048  # command channel would not accept more data than this for one command.

    def __init__(self, client_sock, client_address):
        self.client_sock = client_sock
        self.client_address = client_address
        # sandftp session - event log of this connection
        self.session = None
        # Username of the current user
        self.username = None
        # tracking login attempts
        self.invalid_login_attempt = 0
        self.disconnect_client = False
        self.metrics = FTPMetrics()
        self._rfile = None

    # -- Wrappers for gevent StreamServer -------

    @classmethod
    def stream_server_handle(cls, sock, address):
        """Translate this class for use in a StreamServer"""
        _ftp = cls(sock, address)
        try:
            _ftp.setup()
            _ftp.handle()
        except socket.error as se:
            logger.warning(
                "Unexpected socket error from client {}: {}".format(address, se)
            )
            if _ftp.session:
                _ftp.session.add_event({"type": "CONNECTION_LOST"})
        finally:
            _ftp.finish()

    def setup(self):
        """Connect incoming connection to a FTP session"""
        _local = self.client_sock.getsockname()
        self.session = sandftp_core.get_session(
            "ftp",
            self.client_address[0],
            self.client_address[1],
            _local[0],
            _local[1],
        )
        self.session.public_ip = self.config.public_ip
        logger.info(
            "New FTP connection from {}:{}. ({})".format(
                self.client_address[0], self.client_address[1], self.session.id
            )
        )
        self.session.add_event({"type": "NEW_CONNECTION"})
        if self.config.timeout:
            self.client_sock.settimeout(self.config.timeout)
        self._rfile = self.client_sock.makefile("rb")
        self.respond(SERVICE_READY, self.config.banner)

    def finish(self):
        """End this client session"""
        if self.disconnect_client:
            logger.debug("Client {} already disconnected.".format(self.client_address))
            return
        self.disconnect_client = True
        self.close_data_channel()
        if self._rfile is not None:
            self._rfile.close()
        if self.client_sock.fileno() != -1:
            self.client_sock.close()
        if self.session:
            sandftp_core.end_session(self.session)
            logger.info(
                "FTP client {} disconnected. ({})".format(
                    self.client_address, self.session.id
                )
            )
        logger.info(
            "{}".format(
                self.metrics.get_metrics(
                    client_address=self.client_address,
                    user_name=self.identity,
                    failed_login_attempts=self.invalid_login_attempt,
                )
            )
        )

    # -- FTP Command Channel ------------

    def respond(self, code, msg):
        """Send a reply line to the client"""
        response = format_reply(code, msg).encode("utf-8")
        logger.debug("Sending {} to client {}".format(response, self.client_address))
        self.client_sock.sendall(response)
        self.metrics.command_chanel_bytes_send += len(response)
        return response

    def read_command(self):
        """
        Read the next command line. Returns None when the client went away.
        Raises ValueError for lines longer than the buffer limit, UnicodeDecodeError for undecodable ones.
        """
        line = self._rfile.readline(self.buffer_limit + 1)
        if not line:
            return None
        self.metrics.command_chanel_bytes_recv += len(line)
        self.metrics.last_active = time.time()
        if len(line) > self.buffer_limit and not line.endswith(b"\n"):
            # swallow the rest of the over-long line
            while line and not line.endswith(b"\n"):
                line = self._rfile.readline(self.buffer_limit + 1)
            raise ValueError("command too long")
        return line.decode("utf-8").strip()

    def handle(self):
        """Actual FTP service to which the user has connected."""
        while not self.disconnect_client:
            try:
                line = self.read_command()
            except socket.timeout:
                logger.info(
                    "FTP connection timeout, remote: {}. ({}). Disconnecting client".format(
                        self.client_address, self.session.id
                    )
                )
                self.session.add_event({"type": "CONNECTION_TIMEOUT"})
                self.respond(SERVICE_NOT_AVAILABLE, "Timeout.")
                return
            except ValueError as err:
                if isinstance(err, UnicodeDecodeError):
                    # RFC-2640 doesn't mention what to do in this case. So we'll just return 501
                    self.respond(COMMAND_ARGS_ERROR, "Can't decode command.")
                else:
                    logger.info(
                        "FTP command input exceeded buffer from client {}".format(
                            self.client_address
                        )
                    )
                    self.respond(COMMAND_NOT_DEFINED, "Command too long.")
                continue
            if line is None:
                logger.info(
                    "FTP client {} closed the control connection. ({})".format(
                        self.client_address, self.session.id
                    )
                )
                self.session.add_event({"type": "CONNECTION_TERMINATED"})
                return
            fields = line.split()
            if not fields:
                continue
            verb, args = fields[0].lower(), fields[1:]
            logger.info(
                "Received command {} from FTP client {}: {}".format(
                    line, self.client_address, self.session.id
                )
            )
            ok, code, msg = self.dispatch(verb, args)
            if not ok:
                logger.info(
                    "Command {} failed for client {}: {} {}".format(
                        verb, self.client_address, code, msg
                    )
                )
            response = self.respond(code, msg)
            self.session.add_event({"request": line, "response": response.strip()})

    @property
    def identity(self):
        """Name the session is logged in as, None before a successful login."""
        return None

    def dispatch(self, verb, args):
        raise NotImplementedError

    def close_data_channel(self):
        raise NotImplementedError
