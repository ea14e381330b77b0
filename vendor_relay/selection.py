import itertools
import random
from typing import Callable, Optional, Sequence

from vendor_relay.models import VendorType

VendorSelector = Callable[[], VendorType]

VENDORS = (VendorType.IMMEDIATE, VendorType.DELAYED)


def random_selector(rng: Optional[random.Random] = None) -> VendorSelector:
    """Uniform coin flip between the vendors"""
    rng = rng or random.Random()
    return lambda: rng.choice(VENDORS)


def round_robin_selector(vendors: Sequence[VendorType] = VENDORS) -> VendorSelector:
    cycle = itertools.cycle(vendors)
    return lambda: next(cycle)


def fixed_selector(vendor: VendorType) -> VendorSelector:
    return lambda: vendor


def build_selector(name: str) -> VendorSelector:
    """Selector from its config name: random, round_robin, or a vendor id"""
    if name == "random":
        return random_selector()
    if name == "round_robin":
        return round_robin_selector()
    try:
        return fixed_selector(VendorType(name))
    except ValueError:
        raise ValueError(f"Unknown vendor selection strategy: {name}") from None
