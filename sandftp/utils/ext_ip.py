# Copyright (C) 2014  Lukas Rist <glaslos@gmail.com>
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

import ipaddress
import logging
import socket

import requests
from requests.exceptions import Timeout, ConnectionError


logger = logging.getLogger(__name__)


def _verify_address(addr):
    try:
        socket.inet_aton(addr)
        return True
    except (socket.error, UnicodeEncodeError, TypeError):
        return False


def _is_usable_ipv4(addr):
    try:
        ip = ipaddress.IPv4Address(addr)
    except (ipaddress.AddressValueError, ValueError):
        return False
    return not (ip.is_loopback or ip.is_unspecified or ip.is_link_local)


def _fetch_data(urls):
    # we only want warning+ messages from the requests module
    logging.getLogger("requests").setLevel(logging.WARNING)
    for url in urls:
        try:
            req = requests.get(url, timeout=5)
            if req.status_code == 200:
                data = req.text.strip()
                if data is None or not _verify_address(data):
                    continue
                else:
                    return data
            else:
                raise ConnectionError
        except (Timeout, ConnectionError):
            logger.warning("Could not fetch public ip from %s", url)
    return None


def get_ext_ip(urls):
    """Ask the given URLs, in order, for this host's public IPv4 address."""
    public_ip = _fetch_data(urls)
    if public_ip:
        logger.info("Fetched %s as external ip.", public_ip)
    else:
        logger.warning("Could not fetch public ip: %s", public_ip)
    return public_ip


def get_interface_ip(destination_ip: str):
    # returns interface ip from socket in case direct udp socket access not possible
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect((destination_ip, 80))
        return s.getsockname()[0]
    finally:
        s.close()


def get_local_ip():
    """
    First non-loopback IPv4 address of this host, or None.
    Addresses bound to the host name are tried first, then the address of the interface that routes outwards.
    """
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except socket.gaierror:
        infos = []
    for info in infos:
        addr = info[4][0]
        if _is_usable_ipv4(addr):
            return addr
    try:
        # no packet is sent, connect() on a datagram socket only picks a route
        addr = get_interface_ip("8.8.8.8")
    except OSError:
        return None
    return addr if _is_usable_ipv4(addr) else None
