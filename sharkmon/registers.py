"""
Shark 100S Modbus TCP register map -- single source of truth.

Defines the holding registers read from an Electro Industries Shark 100S
power meter (port 502, unit ID 1, function code 0x03), together with their
data types, scaling factors, units, and valid value ranges.

The meter publishes its primary readings as IEEE-754 32-bit floats spread
over two consecutive 16-bit registers, high word first.  Each reading lives
at its own address, so every register forms a group of its own and the link
issues one ``read_holding_registers`` call per group.

References:
    - Electro Industries Shark 100/100T Modbus map (primary readings block)

CHANGELOG:
- 2026-10-18: Initial creation for Shark 100S (watts, volts, frequency)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RegisterDef:
    """Definition of a single Modbus holding register.

    Attributes:
        address: Modbus holding register start address (zero-based PDU
            address).
        name: Unique human-readable identifier used as dict key.
        reg_type: Data type. Only ``"F32"`` (IEEE-754 float over two words,
            high word first) is used by the Shark primary readings.
        unit: Engineering unit string (e.g. ``"W"``, ``"V"``, ``"Hz"``).
        scale: Multiplicative scaling factor applied to the decoded value
            to obtain the engineering value.
        valid_range: Optional ``(min, max)`` tuple for the *scaled* value.
            ``None`` when no range check is applicable.
        description: Free-text description of the register.
        word_count: Number of 16-bit Modbus words this register occupies.
            Derived from *reg_type* when not set explicitly.
    """

    address: int
    name: str
    reg_type: str
    unit: str
    scale: float = 1.0
    valid_range: tuple[float, float] | None = None
    description: str = ""
    word_count: int = field(default=0, repr=False)

    def __post_init__(self) -> None:  # noqa: D105
        if self.word_count == 0:
            wc = _DEFAULT_WORD_COUNTS.get(self.reg_type)
            if wc is None:
                msg = (
                    f"Register '{self.name}': word_count must be set "
                    f"explicitly for type '{self.reg_type}'"
                )
                raise ValueError(msg)
            # frozen=True requires object.__setattr__
            object.__setattr__(self, "word_count", wc)


_DEFAULT_WORD_COUNTS: dict[str, int] = {
    "F32": 2,
}


@dataclass(frozen=True, slots=True)
class RegisterGroup:
    """A contiguous range of Modbus registers that can be read in one call.

    Attributes:
        group_name: Human-readable group identifier (e.g. ``"power"``).
        start_address: First Modbus register address in the batch.
        count: Total number of 16-bit words to read.
        registers: Ordered list of :class:`RegisterDef` within this range.
    """

    group_name: str
    start_address: int
    count: int
    registers: list[RegisterDef]


def _single(group_name: str, reg: RegisterDef) -> RegisterGroup:
    """Wrap a lone register in a group covering exactly its words."""
    return RegisterGroup(
        group_name=group_name,
        start_address=reg.address,
        count=reg.word_count,
        registers=[reg],
    )


# ---------------------------------------------------------------------------
# Primary readings
# ---------------------------------------------------------------------------

WATTS_REGISTER = RegisterDef(
    address=0x0383,
    name="watts_total",
    reg_type="F32",
    unit="W",
    scale=1.0,
    valid_range=None,
    description="Total real power, all phases. Negative when exporting.",
)

VOLTS_REGISTER = RegisterDef(
    address=0x03ED,
    name="volts_an",
    reg_type="F32",
    unit="V",
    scale=1.0,
    valid_range=(0, 1000),
    description="Phase A to neutral voltage",
)

FREQUENCY_REGISTER = RegisterDef(
    address=0x0401,
    name="frequency",
    reg_type="F32",
    unit="Hz",
    scale=1.0,
    valid_range=(0, 100),
    description="Line frequency",
)

POWER_GROUP = _single("power", WATTS_REGISTER)
VOLTAGE_GROUP = _single("voltage", VOLTS_REGISTER)
FREQUENCY_GROUP = _single("frequency", FREQUENCY_REGISTER)

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

ALL_GROUPS: list[RegisterGroup] = [
    POWER_GROUP,
    VOLTAGE_GROUP,
    FREQUENCY_GROUP,
]
"""All register groups in read order."""

ALL_REGISTERS: dict[str, RegisterDef] = {
    reg.name: reg for group in ALL_GROUPS for reg in group.registers
}
"""Flat lookup of every register by name."""
