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

import pytest

from sandftp.core.fs_utils import (
    FSOperationNotPermitted,
    Role,
    SandboxViolation,
    resolve_path,
    to_virtual_path,
    user_root,
)

ROOT = "/srv/ftp_root"


def test_admin_root_is_server_root():
    assert user_root(Role.ADMIN, ROOT) == ROOT
    assert user_root(Role.ADMIN, ROOT + "/") == ROOT


def test_user_root_is_identity_directory():
    assert user_root(Role.USER, ROOT, "alice") == ROOT + "/alice"


@pytest.mark.parametrize("identity", ("", None, "..", ".", "a/b"))
def test_user_root_rejects_unusable_identity(identity):
    with pytest.raises(SandboxViolation):
        user_root(Role.USER, ROOT, identity)


def test_user_root_needs_a_role():
    with pytest.raises(FSOperationNotPermitted):
        user_root(None, ROOT)


@pytest.mark.parametrize(
    "work_dir, client_path, expected",
    (
        ("/", "docs", ROOT + "/docs"),
        ("/docs", "a", ROOT + "/docs/a"),
        ("/docs", "/a", ROOT + "/a"),
        ("/docs", "..", ROOT),
        ("/docs", ".", ROOT + "/docs"),
        ("/", "/", ROOT),
        ("/", "a/./b/../c", ROOT + "/a/c"),
        ("/", "a//b/", ROOT + "/a/b"),
    ),
)
def test_resolve_admin(work_dir, client_path, expected):
    assert resolve_path(Role.ADMIN, ROOT, "admin", work_dir, client_path) == expected


@pytest.mark.parametrize(
    "work_dir, client_path",
    (
        ("/", ".."),
        ("/", "../etc/passwd"),
        ("/docs", "../../etc"),
        ("/", "/../../.."),
        ("/", "a/../../b"),
        ("/", "../ftp_root2"),
    ),
)
def test_resolve_rejects_escapes(work_dir, client_path):
    with pytest.raises(SandboxViolation):
        resolve_path(Role.ADMIN, ROOT, "admin", work_dir, client_path)


def test_resolve_user_stays_in_identity_directory():
    home = ROOT + "/alice"
    assert resolve_path(Role.USER, ROOT, "alice", "/", "notes.txt") == home + "/notes.txt"
    assert resolve_path(Role.USER, ROOT, "alice", "/sub", "/") == home
    with pytest.raises(SandboxViolation):
        resolve_path(Role.USER, ROOT, "alice", "/", "../bob/notes.txt")


def test_resolve_segment_prefix_is_not_inside():
    # '/srv/ftp_root/alice2' shares a string prefix with '/srv/ftp_root/alice' but not a path prefix
    with pytest.raises(SandboxViolation):
        resolve_path(Role.USER, ROOT, "alice", "/", "../alice2")


@pytest.mark.parametrize(
    "work_dir, client_path",
    (("/", "docs"), ("/docs", "../a/b"), ("/", "/"), ("/x/y", "z")),
)
def test_resolve_is_idempotent(work_dir, client_path):
    first = resolve_path(Role.ADMIN, ROOT, "admin", work_dir, client_path)
    assert resolve_path(Role.ADMIN, ROOT, "admin", "/", first[len(ROOT):] or "/") == first


def test_violation_message_does_not_leak_the_path():
    with pytest.raises(SandboxViolation) as exc_info:
        resolve_path(Role.ADMIN, ROOT, "admin", "/", "../../etc")
    assert ROOT not in str(exc_info.value)


def test_to_virtual_path():
    assert to_virtual_path(ROOT, ROOT) == "/"
    assert to_virtual_path(ROOT, ROOT + "/a/b") == "/a/b"
    with pytest.raises(SandboxViolation):
        to_virtual_path(ROOT + "/alice", ROOT + "/bob")
