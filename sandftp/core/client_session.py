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

import logging
import uuid

from datetime import datetime

logger = logging.getLogger(__name__)


class ClientSession(object):
    """Event record of one control connection. Handlers add events, the log worker consumes them."""

    def __init__(
        self,
        protocol,
        source_ip,
        source_port,
        destination_ip,
        destination_port,
        log_queue,
    ):
        self.log_queue = log_queue
        self.id = uuid.uuid4()
        logger.info("New %s session from %s (%s)", protocol, source_ip, self.id)
        self.protocol = protocol
        self.source_ip = source_ip
        self.source_port = source_port
        self.destination_ip = destination_ip
        self.destination_port = destination_port
        self.timestamp = datetime.utcnow()
        self.ended_at = None
        self.public_ip = None
        # identity the session was authorized as, None until a successful password
        self.identity = None
        self.data = dict()

    def _dump_data(self, data):
        return {
            "id": self.id,
            "remote": (self.source_ip, self.source_port),
            "local": (self.destination_ip, self.destination_port),
            "data_type": self.protocol,
            "timestamp": self.timestamp,
            "public_ip": self.public_ip,
            "identity": self.identity,
            "data": data,
        }

    def add_event(self, event_data):
        # events are keyed by milliseconds since the session started
        elapse_ms = int((datetime.utcnow() - self.timestamp).total_seconds() * 1000)
        while elapse_ms in self.data:
            elapse_ms += 1
        self.data[elapse_ms] = event_data
        self.log_queue.put(self._dump_data(event_data))

    def dump(self):
        return self._dump_data(self.data)

    @property
    def ended(self):
        return self.ended_at is not None

    @property
    def duration(self):
        end = self.ended_at or datetime.utcnow()
        return (end - self.timestamp).total_seconds()

    def set_ended(self):
        if self.ended_at is None:
            self.ended_at = datetime.utcnow()
            logger.debug(
                "%s session %s ended after %.2f secs",
                self.protocol,
                self.id,
                self.duration,
            )
