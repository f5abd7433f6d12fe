"""
Pure converter from raw Modbus register words to a PowerSample.

Takes the dict of raw register word lists returned by the link, applies
big-endian float32 decoding, scaling factors, and range validation,
then returns a frozen PowerSample model.

This is a pure function: no side effects, no I/O, no clock.  Malformed
input is reported as :class:`~sharkmon.link.ReadError` so the aggregator
treats it exactly like a failed read.

CHANGELOG:
- 2026-10-18: Drop integer decoders; the Shark map is float32 only
- 2026-10-18: Add big-endian float32 decoding for Shark primary readings
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
import struct

from sharkmon.link import ReadError
from sharkmon.models import PowerSample
from sharkmon.registers import ALL_REGISTERS, RegisterDef

# ---------------------------------------------------------------------------
# Mapping from PowerSample field names to register names.
# ---------------------------------------------------------------------------

_FIELD_MAP: dict[str, str] = {
    "watts": "watts_total",
    "volts": "volts_an",
    "frequency": "frequency",
}
"""Maps PowerSample field name -> register name in ALL_REGISTERS."""


# ---------------------------------------------------------------------------
# Type conversion helpers
# ---------------------------------------------------------------------------


def _convert_f32(hi: int, lo: int) -> float:
    """Reinterpret two U16 registers (high word first) as an IEEE-754 float."""
    return struct.unpack(">f", struct.pack(">HH", hi & 0xFFFF, lo & 0xFFFF))[0]


# ---------------------------------------------------------------------------
# Core: extract a single register value from the raw dict
# ---------------------------------------------------------------------------


def _extract_value(reg_def: RegisterDef, raw: dict[str, list[int]]) -> float:
    """Extract, type-convert, scale, and range-check one register value.

    Raises:
        ReadError: If the register is missing, has too few words, decodes to
            a non-finite number, or falls outside its valid range.
    """
    name = reg_def.name
    reg_type = reg_def.reg_type

    words = raw.get(name)
    if words is None:
        raise ReadError(f"Register '{name}': missing from raw data")

    if len(words) < reg_def.word_count:
        raise ReadError(
            f"Register '{name}': expected {reg_def.word_count} words "
            f"for {reg_type}, got {len(words)}"
        )

    if reg_type != "F32":
        raise ReadError(f"Register '{name}': unsupported type '{reg_type}'")
    value = _convert_f32(words[0], words[1])

    if not math.isfinite(value):
        raise ReadError(f"Register '{name}': non-finite value (raw words={words})")

    scaled = value * reg_def.scale

    if reg_def.valid_range is not None:
        lo, hi = reg_def.valid_range
        if not (lo <= scaled <= hi):
            raise ReadError(
                f"Register '{name}': scaled value {scaled:.4g} "
                f"(raw words={words}) outside valid range ({lo}, {hi})"
            )

    return scaled


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def convert(raw: dict[str, list[int]]) -> PowerSample:
    """Convert raw Modbus register words into a PowerSample.

    Args:
        raw: Dict mapping register names to lists of raw 16-bit words, as
            returned by :meth:`~sharkmon.link.MeterLink.read`.

    Returns:
        The decoded :class:`PowerSample` in engineering units.

    Raises:
        ReadError: If any required register is missing or malformed.
    """
    fields = {
        field_name: _extract_value(ALL_REGISTERS[reg_name], raw)
        for field_name, reg_name in _FIELD_MAP.items()
    }
    return PowerSample(**fields)
