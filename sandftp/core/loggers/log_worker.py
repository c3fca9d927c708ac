# Copyright (C) 2014 Lukas Rist <glaslos@gmail.com>
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

from gevent.queue import Empty

from sandftp.core.loggers.json_log import JsonLogger

logger = logging.getLogger(__name__)


class LogWorker(object):
    """Drain the session manager's event queue into the configured event loggers."""

    def __init__(self, session_manager, json_filename=None, sensorid="default", public_ip=None):
        self.session_manager = session_manager
        self.public_ip = public_ip
        self.json_logger = None
        if json_filename:
            self.json_logger = JsonLogger(json_filename, sensorid, public_ip)
            logger.info("Logging session events as JSON to %s", json_filename)
        self.enabled = True

    def handle_event(self, event):
        if self.public_ip:
            event["public_ip"] = self.public_ip
        if self.json_logger:
            self.json_logger.log(event)

    def start(self):
        self.enabled = True
        while self.enabled:
            try:
                event = self.session_manager.log_queue.get(timeout=2)
            except Empty:
                continue
            else:
                self.handle_event(event)

    def stop(self):
        self.enabled = False
        if self.json_logger:
            self.json_logger.close()
