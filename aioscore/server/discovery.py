"""Advertise the server on the local network via mDNS."""

import logging
import socket

from zeroconf import IPVersion, NonUniqueNameException
from zeroconf.asyncio import AsyncServiceInfo, AsyncZeroconf

SERVICE_TYPE = "_aioscore._tcp.local."

logger = logging.getLogger(__name__)


def _local_addresses() -> list[str]:
    """Best effort list of IPv4 addresses of this host."""
    addresses: set[str] = set()
    try:
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            addresses.add(str(info[4][0]))
    except OSError:
        logger.debug("Could not resolve own hostname")
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            # No packet is sent, this only selects the outgoing interface
            sock.connect(("10.255.255.255", 1))
            addresses.add(sock.getsockname()[0])
        except OSError:
            logger.debug("No route to determine the outgoing interface")
    addresses.discard("127.0.0.1")
    return sorted(addresses) or ["127.0.0.1"]


class ServiceAdvertiser:
    """Registers the WebSocket endpoint of a ScoreServer with zeroconf."""

    def __init__(self, server_id: str, server_name: str, port: int, ws_path: str) -> None:
        """Initialize the advertiser, call start() to register."""
        self._info = AsyncServiceInfo(
            SERVICE_TYPE,
            f"{server_name}.{SERVICE_TYPE}",
            parsed_addresses=_local_addresses(),
            port=port,
            properties={"path": ws_path, "server_id": server_id},
            server=f"{socket.gethostname()}.local.",
        )
        self._zeroconf: AsyncZeroconf | None = None

    async def start(self) -> bool:
        """
        Register the service.

        Returns False if the registration failed; the failure is logged and
        clients can still connect with an explicit address.
        """
        self._zeroconf = AsyncZeroconf(ip_version=IPVersion.V4Only)
        try:
            await self._zeroconf.async_register_service(self._info)
        except (OSError, NonUniqueNameException):
            logger.exception("Could not advertise %s via mDNS", self._info.name)
            await self.stop()
            return False
        logger.info("Advertising %s on port %s", self._info.name, self._info.port)
        return True

    async def stop(self) -> None:
        """Unregister the service and close zeroconf."""
        if self._zeroconf is None:
            return
        try:
            await self._zeroconf.async_unregister_all_services()
        finally:
            await self._zeroconf.async_close()
            self._zeroconf = None
