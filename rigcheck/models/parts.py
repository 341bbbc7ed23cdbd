"""Part categories, part records, and build selections."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field


# ──────────────────────────────────────────────
# Enums — Shared Vocabulary
# ──────────────────────────────────────────────


class PartCategory(str, Enum):
    """Hardware part categories a build can hold (one part each)."""

    CPU = "cpu"
    GPU = "gpu"
    MOTHERBOARD = "motherboard"
    RAM = "ram"
    STORAGE = "storage"
    PSU = "psu"
    CASE = "case"
    COOLING = "cooling"


# Fields admins usually reference per category. Informational only:
# rules may name any key present in a part's specifications.
PART_FIELDS: Dict[PartCategory, List[str]] = {
    PartCategory.CPU: [
        "socket", "cores", "threads", "base_clock_ghz", "boost_clock_ghz",
        "tdp_watts", "integrated_graphics",
    ],
    PartCategory.GPU: [
        "interface", "vram_gb", "vram_type", "length_mm", "tdp_watts",
        "recommended_psu_watts", "slots_occupied",
    ],
    PartCategory.MOTHERBOARD: [
        "socket", "form_factor", "chipset", "ram_type", "ram_slots",
        "max_ram_gb", "m2_slots", "pcie_x16_slots",
    ],
    PartCategory.RAM: [
        "type", "speed_mhz", "capacity_gb", "modules", "total_capacity_gb",
        "cas_latency",
    ],
    PartCategory.STORAGE: [
        "type", "interface", "capacity_gb", "read_speed_mbps",
        "write_speed_mbps", "form_factor",
    ],
    PartCategory.PSU: ["wattage", "efficiency_rating", "modular", "form_factor"],
    PartCategory.CASE: [
        "form_factor", "supported_motherboards", "max_gpu_length_mm",
        "max_cooler_height_mm", "max_psu_length_mm", "drive_bays_3_5",
        "drive_bays_2_5", "included_fans", "radiator_support",
    ],
    PartCategory.COOLING: [
        "type", "socket_compatibility", "radiator_size_mm", "height_mm",
        "fan_count", "tdp_rating_watts",
    ],
}


def category_slug(category_name: str) -> str:
    """Turn a display name ("CPU Cooler") into its slug ("cpu-cooler")."""
    return re.sub(r"\s+", "-", category_name.strip().lower())


# ──────────────────────────────────────────────
# Part Data Models
# ──────────────────────────────────────────────

SpecValue = Union[bool, int, float, str, List[str], None]


class Part(BaseModel):
    """A catalog part as authored by an administrator.

    `specifications` varies by category (see PART_FIELDS).
    CPU: {"socket": "AM5", "tdp_watts": 105, ...}
    Case: {"supported_motherboards": ["ATX", "mATX"], ...}
    """

    id: str
    category: PartCategory
    brand: str = ""
    model: str = ""
    name: str = ""
    price: float = Field(default=0.0, ge=0)
    specifications: Dict[str, SpecValue] = Field(default_factory=dict)


# A build selection: category slug → Part, or any Part-like mapping
# that carries a "specifications" mapping. None means "not chosen yet".
Selection = Mapping[str, Optional[Union[Part, Mapping[str, Any]]]]
