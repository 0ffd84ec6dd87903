# PATH: dex/venues.py
"""
Venue configuration parsed from config/venues.yaml.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config import load_venues
from core.constants import V2_FEE_TIER, V3_FEE_TIERS, VenueKind
from core.exceptions import ConfigError


@dataclass(frozen=True)
class VenueConfig:
    """One venue: where to read prices and how it charges."""
    name: str
    kind: VenueKind
    priority: int
    factory: str
    quoter: Optional[str] = None
    fee_tiers: Tuple[int, ...] = ()
    fee_rate: Decimal = Decimal("0.003")

    @property
    def polled_fee_tiers(self) -> Tuple[Optional[int], ...]:
        """Fee tiers to poll; constant-fee venues have a single None tier."""
        if self.kind == VenueKind.UNISWAP_V2:
            return (None,)
        return self.fee_tiers

    def fee_rate_for(self, fee_tier: Optional[int]) -> Decimal:
        """Swap fee as a fraction for a tier (hundredths of a bip)."""
        if fee_tier is None:
            return self.fee_rate
        return Decimal(fee_tier) / Decimal(1_000_000)


@dataclass
class VenueRegistry:
    venues: Dict[str, VenueConfig] = field(default_factory=dict)

    @classmethod
    def from_config(cls, data: Dict[str, Any]) -> "VenueRegistry":
        venues = {}
        for name, spec in data.items():
            try:
                kind = VenueKind(spec["kind"])
            except (KeyError, ValueError, TypeError):
                raise ConfigError(f"Venue {name} has an unknown kind", {"venue": name})

            fee_tiers = tuple(int(t) for t in spec.get("fee_tiers", []))
            if kind == VenueKind.UNISWAP_V3:
                bad = [t for t in fee_tiers if t not in V3_FEE_TIERS]
                if not fee_tiers or bad:
                    raise ConfigError(f"Venue {name} has invalid fee tiers", {"fee_tiers": list(fee_tiers)})
                if not spec.get("quoter"):
                    raise ConfigError(f"Venue {name} needs a quoter address")

            try:
                fee_rate = Decimal(str(spec.get("fee_rate", Decimal(V2_FEE_TIER) / Decimal(1_000_000))))
            except InvalidOperation:
                raise ConfigError(f"Venue {name} has an invalid fee_rate")

            if "factory" not in spec:
                raise ConfigError(f"Venue {name} needs a factory address")

            venues[name] = VenueConfig(
                name=name,
                kind=kind,
                priority=int(spec.get("priority", len(venues))),
                factory=str(spec["factory"]),
                quoter=spec.get("quoter"),
                fee_tiers=fee_tiers,
                fee_rate=fee_rate,
            )
        return cls(venues)

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> "VenueRegistry":
        return cls.from_config(load_venues(config_dir))

    def get(self, name: str) -> VenueConfig:
        if name not in self.venues:
            raise ConfigError(f"Unknown venue: {name}")
        return self.venues[name]

    def ordered(self) -> List[VenueConfig]:
        return sorted(self.venues.values(), key=lambda v: (v.priority, v.name))

    def priorities(self) -> Dict[str, int]:
        return {v.name: v.priority for v in self.venues.values()}
