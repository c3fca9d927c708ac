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

import re


class FTPException(Exception):
    """General FTP related exceptions. """

    pass


class FTPDataConnectionError(FTPException):
    """Passive listener could not be opened or the data connection never arrived."""

    pass


# -- reply codes --
DATA_CONNECTION_OPEN = "150"
COMMAND_RUN_SUCCESS = "200"
COMMAND_RUN_FAIL = "202"
SERVICE_READY = "220"
CLOSING_DATA_CONNECTION = "226"
ENTERING_PASSIVE_MODE = "227"
FILE_COMMAND_RUN_SUCCESS = "250"

NEED_PASSWORD = "331"
NEED_USERNAME = "332"

SERVICE_NOT_AVAILABLE = "421"
CANNOT_OPEN_DATA_CONNECTION = "425"
TRANSFER_ABORTED = "426"

COMMAND_NOT_DEFINED = "500"
COMMAND_ARGS_ERROR = "501"
NOT_LOGGED_IN = "530"
PATH_INVALID = "550"

# separator between reply code and message on the control channel
REPLY_SEPARATOR = " | "


# all commands:
# auth  - command needs an authorized session
# nargs - exact number of arguments, None when optional
# data  - command consumes the pending passive data connection
ftp_commands = {
    "help": dict(
        auth=False, nargs=None, data=False, help="Syntax: help [<SP> verb] (show help)."
    ),
    "login": dict(
        auth=False, nargs=0, data=False, help="Syntax: login (start a login sequence)."
    ),
    "username": dict(
        auth=False,
        nargs=1,
        data=False,
        help="Syntax: username <SP> user-name (set username).",
    ),
    "password": dict(
        auth=False,
        nargs=1,
        data=False,
        help="Syntax: password <SP> password (set user password).",
    ),
    "passive": dict(
        auth=True,
        nargs=0,
        data=False,
        help="Syntax: passive (open passive data connection).",
    ),
    "cwd": dict(
        auth=True,
        nargs=1,
        data=False,
        help="Syntax: cwd <SP> dir-name (change working directory).",
    ),
    "pwd": dict(
        auth=True,
        nargs=0,
        data=False,
        help="Syntax: pwd (get current working directory).",
    ),
    "list": dict(
        auth=True,
        nargs=3,
        data=True,
        help="Syntax: list <SP> path <SP> limit <SP> page (list files).",
    ),
    "stor": dict(
        auth=True,
        nargs=1,
        data=True,
        help="Syntax: stor <SP> file-name (store a file).",
    ),
    "retr": dict(
        auth=True,
        nargs=1,
        data=True,
        help="Syntax: retr <SP> file-name (retrieve a file).",
    ),
}


def format_reply(code, msg):
    """Render one control channel reply line."""
    return "{}{}{}\r\n".format(code, REPLY_SEPARATOR, msg)


def parse_reply(line):
    """Split a reply line into its (code, message) parts."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.rstrip("\r\n")
    code, sep, msg = line.partition(REPLY_SEPARATOR)
    if not sep:
        code, _, msg = line.partition(" ")
    return code.strip(), msg


def encode_pasv_address(ip, port):
    """
    Encode ip and port the way the 227 reply carries them: (o1,o2,o3,o4,p1,p2) where port = p1 * 256 + p2.
    :param ip: dotted quad IPv4 address
    :param port: port number
    """
    octets = ip.split(".")
    if len(octets) != 4:
        raise ValueError("Not an IPv4 address: {}".format(ip))
    return "({},{},{})".format(",".join(octets), port // 256, port % 256)


_pasv_re = re.compile(r"\((\d+),(\d+),(\d+),(\d+),(\d+),(\d+)\)")


def parse_pasv_response(msg):
    """Return (ip, port) from a 227 reply message."""
    match = _pasv_re.search(msg)
    if not match:
        raise ValueError("invalid PASV response format")
    parts = [int(i) for i in match.groups()]
    if any(i > 255 for i in parts):
        raise ValueError("invalid PASV response format")
    ip = ".".join(str(i) for i in parts[:4])
    return ip, parts[4] * 256 + parts[5]
