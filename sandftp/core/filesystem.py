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
import os

from fs import path as fspath
from fs.osfs import OSFS

from sandftp.core.fs_utils import SandboxViolation

logger = logging.getLogger(__name__)


class ServerFS(object):
    """
    The server root directory on disk. Handlers pass absolute paths produced by the path resolver; they are translated
    to paths inside the OSFS rooted at the server root, so nothing outside that directory can ever be opened even if
    a caller forgets to resolve first.
    """

    def __init__(self, root_path, create=True):
        self.root_path = os.path.abspath(root_path)
        # raises fs.errors.CreateFailed - fatal at startup.
        self._fs = OSFS(self.root_path, create=create)
        logger.debug("Serving file system at {}".format(self.root_path))

    def __str__(self):
        return "<ServerFS '{}'>".format(self.root_path)

    def _to_fs_path(self, sys_path):
        if not fspath.isbase(self.root_path, sys_path):
            raise SandboxViolation(path=sys_path)
        return fspath.abspath(fspath.relativefrom(self.root_path, sys_path))

    def makedirs(self, sys_path):
        """Create a directory (and its parents) if it does not exist yet."""
        return self._fs.makedirs(self._to_fs_path(sys_path), recreate=True)

    def exists(self, sys_path):
        return self._fs.exists(self._to_fs_path(sys_path))

    def isdir(self, sys_path):
        return self._fs.isdir(self._to_fs_path(sys_path))

    def isfile(self, sys_path):
        return self._fs.isfile(self._to_fs_path(sys_path))

    def listdir(self, sys_path):
        """Names of the entries in a directory, in whatever order the OS enumerates them."""
        return self._fs.listdir(self._to_fs_path(sys_path))

    def openbin(self, sys_path, mode="r"):
        return self._fs.openbin(self._to_fs_path(sys_path), mode=mode)

    def getsize(self, sys_path):
        return self._fs.getsize(self._to_fs_path(sys_path))

    def close(self):
        self._fs.close()
