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

"""
Path arithmetic for the per-user sandbox.

Every path a client sends is mapped to an absolute server side path with the functions below. Nothing here touches
the disk: the check is purely lexical (no symlink resolution), done with pyfilesystem2's path helpers so that '.'
and '..' collapse exactly like a path-cleaning routine and the root test compares whole path segments.
"""
from collections import namedtuple
from enum import Enum
import logging

import fs
import fs.errors
from fs import path as fspath

logger = logging.getLogger(__name__)


class FSOperationNotPermitted(fs.errors.FSError):
    """Custom class for filesystem-related exceptions."""


class SandboxViolation(FSOperationNotPermitted):
    """Resolved path is outside the user's root directory."""

    default_message = "access denied: attempt to access outside of designated directory"

    def __init__(self, path=None, msg=None):
        self.path = path
        super(SandboxViolation, self).__init__(msg=msg)


class Role(Enum):
    ADMIN = "admin"
    USER = "user"


# what a session has been granted - the identity is bound at grant time.
Authorization = namedtuple("Authorization", ["role", "identity"])


def user_root(role, root_dir, identity=None):
    """
    Sandbox root for a role.
    :param role: Role.ADMIN gets the server root, Role.USER gets root_dir/identity
    :param root_dir: absolute server root directory
    :param identity: user name, only used for Role.USER
    """
    if role is Role.ADMIN:
        return fspath.normpath(root_dir)
    if role is Role.USER:
        if not identity or "/" in identity or identity in (".", ".."):
            raise SandboxViolation(msg="invalid identity {!r}".format(identity))
        return fspath.normpath(fspath.join(root_dir, identity))
    raise FSOperationNotPermitted(msg="user not logged in")


def resolve_path(role, root_dir, identity, work_dir, client_path):
    """
    Map a client supplied path to an absolute path inside the user's sandbox.

    Paths starting with '/' are taken from the user root, anything else from the current working directory. The
    result is accepted only when the user root is a segment-wise prefix of it - '/srv/root2' is *not* inside
    '/srv/root'. The user root itself is a valid result.

    :param role: Role of the authorized session
    :param root_dir: absolute server root directory
    :param identity: identity the authorization was granted to
    :param work_dir: virtual working directory, always absolute relative to the user root
    :param client_path: path as typed by the client
    :return: absolute, normalized path
    :raises SandboxViolation: when the path escapes the user root
    """
    home = user_root(role, root_dir, identity)
    if client_path.startswith("/"):
        base = home
    else:
        base = fspath.join(home, fspath.relpath(work_dir))
    try:
        candidate = fspath.normpath(
            "/".join([base.rstrip("/"), fspath.relpath(client_path)])
        )
    except fs.errors.IllegalBackReference:
        raise SandboxViolation(path=client_path)
    if not fspath.isbase(home, candidate):
        logger.info(
            "Path {} resolved to {} which is outside of {}".format(
                client_path, candidate, home
            )
        )
        raise SandboxViolation(path=client_path)
    return candidate


def to_virtual_path(home, abs_path):
    """Express an absolute path inside home the way the client sees it ('/' is home)."""
    if not fspath.isbase(home, abs_path):
        raise SandboxViolation(path=abs_path)
    return fspath.abspath(fspath.relativefrom(home, abs_path))


def copy_files(source, dest, buffer_size=1024 * 1024, callback=None):
    """
    Copy a file from source to dest. source and dest must be file-like objects.
    callback, if given, is called with the size of every chunk written.
    Returns the number of bytes copied.
    """
    copied = 0
    while True:
        copy_buffer = source.read(buffer_size)
        if not copy_buffer:
            break
        dest.write(copy_buffer)
        copied += len(copy_buffer)
        if callback:
            callback(len(copy_buffer))
    return copied
