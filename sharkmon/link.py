"""
Async Modbus TCP link to a Shark 100S power meter.

Holds exactly one :class:`~pymodbus.client.AsyncModbusTcpClient` session and
reads every register group defined in registers.py on demand.  Unlike a
fire-and-forget poll, failures are surfaced to the caller as exceptions so
that the aggregator can decide whether to retry, skip, or reconnect:

- :class:`DeviceConnectionError` when a session cannot be established.
- :class:`ReadError` when a single read fails once a session exists.

Every network wait is bounded: connects by ``connect_timeout_s`` and a whole
read, across all register groups, by ``read_timeout_s``.  pymodbus retries
are disabled so its own timeout never outlasts that bound.  A stuck meter
therefore cannot stall the polling loop for longer than one read timeout.

CHANGELOG:
- 2026-10-18: Bound the whole read, not each group, by read_timeout_s
- 2026-10-18: Keep a persistent session instead of one client per poll
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from sharkmon.registers import ALL_GROUPS

if TYPE_CHECKING:
    from sharkmon.registers import RegisterGroup

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

READ_TIMEOUT_S: float = 0.5
"""Default bound on a single register read, a fraction of the poll interval."""

CONNECT_TIMEOUT_S: float = 3.0
"""Default bound on establishing a TCP session."""

_TRANSPORT_ERRORS = (ModbusException, OSError, TimeoutError)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DeviceConnectionError(ConnectionError):
    """A session with the meter could not be established."""


class ReadError(Exception):
    """A single read from the meter failed or returned malformed data."""


# ---------------------------------------------------------------------------
# Link
# ---------------------------------------------------------------------------


class MeterLink:
    """Single persistent Modbus TCP session to the meter.

    Args:
        host: Meter IP address or hostname.
        port: Modbus TCP port (default 502).
        slave_id: Modbus unit ID (default 1).
        read_timeout_s: Upper bound for each register group read.
        connect_timeout_s: Upper bound for establishing the session.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 502,
        slave_id: int = 1,
        read_timeout_s: float = READ_TIMEOUT_S,
        connect_timeout_s: float = CONNECT_TIMEOUT_S,
    ) -> None:
        self._host = host
        self._port = port
        self._slave_id = slave_id
        self._read_timeout_s = read_timeout_s
        self._connect_timeout_s = connect_timeout_s
        self._client: AsyncModbusTcpClient | None = None

    @property
    def address(self) -> str:
        return f"{self._host}:{self._port}"

    @property
    def connected(self) -> bool:
        """True while a session is held."""
        return self._client is not None

    async def connect(self) -> None:
        """Open a fresh session, discarding any existing one.

        Raises:
            DeviceConnectionError: If the meter refuses, is unreachable, or
                does not answer within ``connect_timeout_s``.
        """
        await self.close()

        client = AsyncModbusTcpClient(
            self._host,
            port=self._port,
            timeout=self._read_timeout_s,
            retries=0,
        )
        try:
            ok = await asyncio.wait_for(
                client.connect(), timeout=self._connect_timeout_s
            )
        except _TRANSPORT_ERRORS as exc:
            client.close()
            raise DeviceConnectionError(
                f"Failed to connect to meter at {self.address}: {exc!r}"
            ) from exc

        if not ok:
            client.close()
            raise DeviceConnectionError(
                f"Failed to connect to meter at {self.address} "
                "(connect returned False)"
            )

        self._client = client
        logger.info("Connected to meter at %s", self.address)

    async def read(self) -> dict[str, list[int]]:
        """Read every register group and return raw words per register.

        The whole read, across all groups, is bounded by ``read_timeout_s``.

        Returns:
            A dict of ``{register_name: [raw_word, ...]}``.

        Raises:
            ReadError: If there is no session, the read times out, the meter
                answers with a Modbus exception, or a response is short.
        """
        client = self._client
        if client is None:
            raise ReadError(f"No session with meter at {self.address}")

        try:
            return await asyncio.wait_for(
                self._read_groups(client), timeout=self._read_timeout_s
            )
        except TimeoutError as exc:
            raise ReadError(
                f"Read from meter at {self.address} exceeded "
                f"{self._read_timeout_s}s"
            ) from exc

    async def _read_groups(self, client: AsyncModbusTcpClient) -> dict[str, list[int]]:
        result: dict[str, list[int]] = {}
        for group in ALL_GROUPS:
            try:
                response = await client.read_holding_registers(
                    group.start_address,
                    count=group.count,
                    device_id=self._slave_id,
                )
            except (ModbusException, OSError) as exc:
                raise ReadError(
                    f"Reading group '{group.group_name}' "
                    f"(address={group.start_address}) failed: {exc!r}"
                ) from exc

            if response.isError():
                raise ReadError(
                    f"Modbus error reading group '{group.group_name}' "
                    f"(address={group.start_address}, count={group.count}): "
                    f"{response}"
                )

            _extract_register_values(group, list(response.registers), result)

        return result

    async def close(self) -> None:
        """Drop the current session, if any."""
        client, self._client = self._client, None
        if client is not None:
            client.close()
            logger.info("Closed session with meter at %s", self.address)


def _extract_register_values(
    group: RegisterGroup,
    raw_words: list[int],
    out: dict[str, list[int]],
) -> None:
    """Slice group-level raw words into per-register word lists.

    Raises:
        ReadError: If the response carries fewer words than the group needs.
    """
    if len(raw_words) < group.count:
        raise ReadError(
            f"Group '{group.group_name}': expected {group.count} words, "
            f"got {len(raw_words)}"
        )
    for reg in group.registers:
        offset = reg.address - group.start_address
        out[reg.name] = raw_words[offset : offset + reg.word_count]
