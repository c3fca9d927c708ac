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

"""
Client side of the sandftp control protocol.

Every data command opens a fresh passive endpoint first: the client sends 'passive', connects to the address in the
227 reply and only then issues the data command. Replies are read strictly in turn with the commands.
"""

import logging
import os
import re

from gevent import socket

from sandftp.core.fs_utils import copy_files
from sandftp.protocols.ftp.ftp_utils import (
    CLOSING_DATA_CONNECTION,
    COMMAND_RUN_FAIL,
    COMMAND_RUN_SUCCESS,
    DATA_CONNECTION_OPEN,
    ENTERING_PASSIVE_MODE,
    FILE_COMMAND_RUN_SUCCESS,
    NEED_PASSWORD,
    NEED_USERNAME,
    parse_pasv_response,
    parse_reply,
)

logger = logging.getLogger(__name__)

DOWNLOAD_PATH = "./Downloads"
MAX_RENAME_TRIES = 1000

_suffix_re = re.compile(r"^(.+?)(?:\((\d+)\)|-(\d+))$")


class FTPClientError(Exception):
    """Server answered with an unexpected reply code."""

    def __init__(self, code, msg):
        self.code = code
        self.msg = msg
        super(FTPClientError, self).__init__("{} | {}".format(code, msg))


def rename_file_path(file_path, max_tries=MAX_RENAME_TRIES):
    """
    Return a path that does not exist yet. 'file.txt' becomes 'file(1).txt', an existing numeric suffix
    ('file(3).txt' or 'file-3.txt') is counted up from.
    :raises OSError: no free name within max_tries
    """
    if not os.path.exists(file_path):
        return file_path
    dirname, filename = os.path.split(file_path)
    base_name, ext = os.path.splitext(filename)
    match = _suffix_re.match(base_name)
    if match:
        base_name = match.group(1)
        start = int(match.group(2) or match.group(3)) + 1
    else:
        start = 1
    for i in range(start, max_tries):
        new_path = os.path.join(dirname, "{}({}){}".format(base_name, i, ext))
        if not os.path.exists(new_path):
            return new_path
    raise OSError("rename file failed: {}".format(file_path))


class FTPClient(object):
    buffer_size = 65536

    def __init__(self, host, port=21, timeout=30, download_dir=DOWNLOAD_PATH):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.download_dir = download_dir
        self.sock = None
        self.welcome = None
        self._rfile = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def connect(self):
        self.sock = socket.create_connection((self.host, self.port), self.timeout)
        self._rfile = self.sock.makefile("rb")
        self.welcome = self.getresp()
        logger.info("Connected to {}:{}: {}".format(self.host, self.port, self.welcome[1]))
        return self.welcome

    def close(self):
        if self._rfile is not None:
            self._rfile.close()
            self._rfile = None
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    # -- control channel ------------

    def getresp(self):
        """Read one reply line: (code, message)."""
        line = self._rfile.readline()
        if not line:
            raise EOFError("server closed the control connection")
        code, msg = parse_reply(line)
        logger.debug("<- {} | {}".format(code, msg))
        return code, msg

    def sendcmd(self, *fields):
        """Send a command line and return its reply."""
        line = " ".join(str(i) for i in fields)
        logger.debug("-> {}".format(line))
        self.sock.sendall("{}\r\n".format(line).encode("utf-8"))
        return self.getresp()

    def _expect(self, reply, *codes):
        if reply[0] not in codes:
            raise FTPClientError(*reply)
        return reply

    # -- commands ------------

    def help(self, verb=None):
        if verb:
            return self.sendcmd("help", verb)
        return self.sendcmd("help")

    def login(self, user, password):
        code, msg = self.sendcmd("login")
        if code == COMMAND_RUN_FAIL:
            # already logged in
            return code, msg
        self._expect((code, msg), NEED_USERNAME)
        self._expect(self.sendcmd("username", user), NEED_PASSWORD)
        return self._expect(self.sendcmd("password", password), COMMAND_RUN_SUCCESS)

    def pwd(self):
        _, msg = self._expect(self.sendcmd("pwd"), FILE_COMMAND_RUN_SUCCESS)
        return msg.rsplit(" ", 1)[-1]

    def cwd(self, path):
        return self._expect(self.sendcmd("cwd", path), FILE_COMMAND_RUN_SUCCESS)

    def pasv(self):
        """Ask for a passive endpoint and connect to it. Returns the connected data socket."""
        _, msg = self._expect(self.sendcmd("passive"), ENTERING_PASSIVE_MODE)
        host, port = parse_pasv_response(msg)
        logger.info("Opening data connection to {}:{}".format(host, port))
        return socket.create_connection((host, port), self.timeout)

    def list(self, path="/", limit=99, page=0):
        """Return the listing text of one page, empty when the page holds no entries."""
        data_sock = self.pasv()
        try:
            reply = self._expect(
                self.sendcmd("list", path, limit, page),
                DATA_CONNECTION_OPEN,
                FILE_COMMAND_RUN_SUCCESS,
            )
            if reply[0] == FILE_COMMAND_RUN_SUCCESS:
                return ""
            chunks = []
            while True:
                chunk = data_sock.recv(self.buffer_size)
                if not chunk:
                    break
                chunks.append(chunk)
        finally:
            data_sock.close()
        self._expect(self.getresp(), CLOSING_DATA_CONNECTION)
        return b"".join(chunks).decode("utf-8")

    def stor(self, local_path, remote_name=None):
        """Upload a local file, by default under its base name. Returns the number of bytes sent."""
        remote_name = remote_name or os.path.basename(local_path)
        with open(local_path, "rb") as _file:
            data_sock = self.pasv()
            try:
                self._expect(self.sendcmd("stor", remote_name), DATA_CONNECTION_OPEN)
                with data_sock.makefile("wb") as dest:
                    sent = copy_files(_file, dest, buffer_size=self.buffer_size)
            finally:
                data_sock.close()
        self._expect(self.getresp(), CLOSING_DATA_CONNECTION)
        logger.info("{} bytes sent.".format(sent))
        return sent

    def retr(self, remote_path, local_path=None):
        """
        Download a file. Without local_path the file lands in the download directory under its base name, renamed
        if that name is taken. Returns the local path written.
        """
        if local_path is None:
            os.makedirs(self.download_dir, exist_ok=True)
            local_path = rename_file_path(
                os.path.join(self.download_dir, os.path.basename(remote_path))
            )
        data_sock = self.pasv()
        try:
            self._expect(self.sendcmd("retr", remote_path), DATA_CONNECTION_OPEN)
            with open(local_path, "wb") as _file:
                with data_sock.makefile("rb") as source:
                    received = copy_files(source, _file, buffer_size=self.buffer_size)
        finally:
            data_sock.close()
        self._expect(self.getresp(), CLOSING_DATA_CONNECTION)
        logger.info("{} bytes received.".format(received))
        return local_path
