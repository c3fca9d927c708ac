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

import fs.errors
from gevent.server import StreamServer
from lxml import etree

from sandftp.core.filesystem import ServerFS
from sandftp.core.fs_utils import Role
from sandftp.protocols.ftp.ftp_handler import FTPCommandChannel
from sandftp.protocols.ftp.ftp_utils import FTPException, ftp_commands
from sandftp.utils.ext_ip import get_ext_ip, get_local_ip

logger = logging.getLogger(__name__)


def _text(dom, xpath, default=None):
    values = dom.xpath(xpath)
    if not values or not values[0].strip():
        return default
    return values[0].strip()


class FTPConfig(object):
    def __init__(self, template, root_path=None, public_ip=None, data_timeout=None):
        self.user_db = dict()  # user_db[uname] = (password, Role)
        dom = etree.parse(template)
        self.COMMANDS = dict(ftp_commands)
        self.banner = _text(dom, "//ftp/device_info/banner/text()", "FTP server ready.")
        # idle timeout of the control connection, defaults to 300 secs.
        self.timeout = float(_text(dom, "//ftp/device_info/server_timeout/text()", 300))
        if data_timeout is None:
            data_timeout = float(_text(dom, "//ftp/device_info/data_timeout/text()", 0))
        # 0 (or less) - data commands wait for the passive connection forever.
        self.data_timeout = data_timeout if data_timeout > 0 else None

        # -- users, in memory only.
        for i in dom.xpath("//ftp/ftp_users/user"):
            role = Role(i.attrib.get("role", "user").lower())
            uname = i.xpath("./uname/text()")[0].strip()
            password = _text(i, "./password/text()", "")
            self.user_db[uname] = (password, role)
        if not self.user_db:
            raise FTPException("FTP template does not declare any user")

        # -- passive mode
        self.port_min = int(_text(dom, "//ftp/passive/port_min/text()", 1024))
        self.port_max = int(_text(dom, "//ftp/passive/port_max/text()", 1048))
        if not 0 < self.port_min <= self.port_max <= 65535:
            raise FTPException(
                "Invalid passive port range {}-{}".format(self.port_min, self.port_max)
            )
        self.bind_host = _text(dom, "//ftp/passive/bind_host/text()", "")
        self.public_ip = public_ip or _text(dom, "//ftp/passive/public_ip/text()")
        _fetch = dom.xpath("//ftp/passive/fetch_public_ip")
        self.fetch_public_ip = bool(_fetch) and _fetch[0].attrib.get(
            "enabled", "False"
        ).lower() in ("true", "1", "yes")
        self.fetch_public_ip_urls = [
            u.strip() for u in dom.xpath("//ftp/passive/fetch_public_ip/url/text()")
        ]

        # As a last step, get the file system.
        self.root_path = root_path or _text(dom, "//ftp/ftp_vfs/path/text()", "ftp_root")
        self._init_fs()

    def _init_fs(self):
        try:
            self.fs = ServerFS(self.root_path, create=True)
        except fs.errors.CreateFailed as err:
            raise FTPException(
                "Cannot create FTP root {}: {}".format(self.root_path, err)
            )
        self.root_path = self.fs.root_path
        logger.info("FTP serving file system at {}".format(self.root_path))

    def check_credentials(self, uname, password):
        """Role granted to the uname/password pair, None on mismatch."""
        try:
            _password, role = self.user_db[uname]
        except KeyError:
            return None
        if _password != password:
            return None
        return role

    def init_public_ip(self):
        """Ask the configured URLs for the public address, once, unless one was given explicitly."""
        if not self.public_ip and self.fetch_public_ip and self.fetch_public_ip_urls:
            self.public_ip = get_ext_ip(urls=self.fetch_public_ip_urls)
        return self.public_ip

    def advertised_ip(self):
        """Address sent in the 227 reply: the public ip if known else the first non-loopback IPv4 of this host."""
        return self.public_ip or get_local_ip()


class FTPServer(object):
    def __init__(self, template, template_directory, args):
        self.template = template
        self.server = None  # Initialize later
        self.handler = FTPCommandChannel
        self.handler.config = FTPConfig(
            self.template,
            root_path=getattr(args, "root", None),
            public_ip=getattr(args, "public_ip", None),
            data_timeout=getattr(args, "data_timeout", None),
        )
        self.handler.config.init_public_ip()

    @property
    def config(self):
        return self.handler.config

    def start(self, host, port):
        self.handler.host, self.handler.port = host, port
        connection = (self.handler.host, self.handler.port)
        self.server = StreamServer(connection, self.handler.stream_server_handle)
        logger.info("FTP server started on: {}".format(connection))
        self.server.serve_forever()

    def stop(self):
        logger.debug("Stopping FTP server")
        if self.server:
            self.server.stop()
        self.handler.config.fs.close()
