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

import os
import shutil
import tempfile
import unittest

from sandftp.core.fs_utils import Role
from sandftp.protocols.ftp.ftp_server import FTPConfig
from sandftp.protocols.ftp.ftp_utils import FTPException
from sandftp.tests.helpers.ftp_server import TEST_TEMPLATE
from sandftp.utils.greenlet import template_path


class TestFTPConfig(unittest.TestCase):
    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.configs = []

    def tearDown(self):
        for config in self.configs:
            config.fs.close()
        shutil.rmtree(self.root)

    def load(self, template, **kwargs):
        kwargs.setdefault("root_path", self.root)
        config = FTPConfig(template, **kwargs)
        self.configs.append(config)
        return config

    def write_template(self, body):
        path = os.path.join(self.root, "ftp.xml")
        with open(path, "w") as f:
            f.write(body)
        return path

    def test_default_template(self):
        _, template = template_path()
        config = self.load(template)
        self.assertEqual(config.banner, "Hello from FTP server!")
        self.assertEqual((config.port_min, config.port_max), (1024, 1048))
        self.assertIsNone(config.data_timeout)
        self.assertEqual(config.timeout, 300)
        self.assertEqual(config.check_credentials("admin", "123456"), Role.ADMIN)
        self.assertFalse(config.fetch_public_ip)

    def test_credentials(self):
        config = self.load(TEST_TEMPLATE)
        self.assertEqual(config.check_credentials("alice", "wonderland"), Role.USER)
        self.assertIsNone(config.check_credentials("alice", "123456"))
        self.assertIsNone(config.check_credentials("nobody", "wonderland"))

    def test_overrides(self):
        config = self.load(TEST_TEMPLATE, public_ip="10.0.0.1", data_timeout=2.5)
        self.assertEqual(config.public_ip, "10.0.0.1")
        self.assertEqual(config.advertised_ip(), "10.0.0.1")
        self.assertEqual(config.data_timeout, 2.5)
        config.data_timeout = 0.1
        self.assertEqual(config.data_timeout, 0.1)

    def test_root_is_created(self):
        root = os.path.join(self.root, "a", "b")
        config = self.load(TEST_TEMPLATE, root_path=root)
        self.assertTrue(os.path.isdir(root))
        self.assertEqual(config.root_path, root)

    def test_root_cannot_be_created(self):
        blocker = os.path.join(self.root, "file")
        open(blocker, "w").close()
        with self.assertRaises(FTPException):
            self.load(TEST_TEMPLATE, root_path=os.path.join(blocker, "root"))

    def test_invalid_port_range(self):
        template = self.write_template(
            "<ftp><ftp_users><user role='admin'><uname>a</uname><password>b</password></user></ftp_users>"
            "<passive><port_min>2000</port_min><port_max>1000</port_max></passive></ftp>"
        )
        with self.assertRaises(FTPException):
            self.load(template)

    def test_template_without_users(self):
        template = self.write_template("<ftp><device_info/></ftp>")
        with self.assertRaises(FTPException):
            self.load(template)
