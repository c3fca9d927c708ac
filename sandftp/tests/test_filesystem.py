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

import fs.errors

from sandftp.core.filesystem import ServerFS
from sandftp.core.fs_utils import SandboxViolation, copy_files


class TestServerFS(unittest.TestCase):
    def setUp(self):
        self.base = tempfile.mkdtemp()
        self.root = os.path.join(self.base, "root")
        self.fs = ServerFS(self.root)

    def tearDown(self):
        self.fs.close()
        shutil.rmtree(self.base)

    def test_root_created(self):
        self.assertTrue(os.path.isdir(self.root))
        self.assertTrue(self.fs.isdir(self.root))

    def test_makedirs_and_listdir(self):
        self.fs.makedirs(self.root + "/a/b")
        self.fs.makedirs(self.root + "/a/b")
        self.assertEqual(self.fs.listdir(self.root + "/a"), ["b"])

    def test_read_write(self):
        path = self.root + "/data.bin"
        with self.fs.openbin(path, "w") as f:
            f.write(b"hello")
        self.assertTrue(self.fs.isfile(path))
        self.assertEqual(self.fs.getsize(path), 5)
        with self.fs.openbin(path) as f:
            self.assertEqual(f.read(), b"hello")

    def test_missing(self):
        self.assertFalse(self.fs.exists(self.root + "/nope"))
        with self.assertRaises(fs.errors.ResourceNotFound):
            self.fs.openbin(self.root + "/nope")
        with self.assertRaises(fs.errors.ResourceNotFound):
            self.fs.listdir(self.root + "/nope")

    def test_paths_outside_root(self):
        os.makedirs(self.root + "2")
        for path in (self.base, self.root + "2", "/etc/passwd"):
            with self.assertRaises(SandboxViolation):
                self.fs.exists(path)
        with self.assertRaises(SandboxViolation):
            self.fs.openbin(self.base + "/escape.txt", "w")
        self.assertFalse(os.path.exists(self.base + "/escape.txt"))

    def test_copy_files(self):
        src = self.root + "/src.bin"
        with self.fs.openbin(src, "w") as f:
            f.write(b"x" * 10000)
        chunks = []
        with self.fs.openbin(src) as source, self.fs.openbin(self.root + "/dst.bin", "w") as dest:
            copied = copy_files(source, dest, buffer_size=4096, callback=chunks.append)
        self.assertEqual(copied, 10000)
        self.assertEqual(chunks, [4096, 4096, 1808])
        self.assertEqual(self.fs.getsize(self.root + "/dst.bin"), 10000)
