# Copyright (C) 2014 Johnny Vestergaard <jkv@unixcluster.dk>
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

from gevent.queue import Queue

from sandftp.core.client_session import ClientSession


# one instance only
class SessionManager:
    def __init__(self):
        self._sessions = []
        self.log_queue = Queue()

    @property
    def sessions(self):
        return list(self._sessions)

    def get_session(
        self,
        protocol,
        source_ip,
        source_port,
        destination_ip=None,
        destination_port=None,
    ):
        # every control connection gets its own session, even from the same address
        client_session = ClientSession(
            protocol,
            source_ip,
            source_port,
            destination_ip,
            destination_port,
            self.log_queue,
        )
        self._sessions.append(client_session)
        return client_session

    def end_session(self, client_session):
        client_session.set_ended()
        if client_session in self._sessions:
            self._sessions.remove(client_session)

    def purge_sessions(self):
        self._sessions = []
        # live sessions keep a reference to this queue, empty it in place
        while not self.log_queue.empty():
            self.log_queue.get_nowait()
