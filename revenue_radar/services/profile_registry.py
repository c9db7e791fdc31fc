"""Read-only lookup of trade and photographer-niche scoring profiles."""

import logging
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Tuple

from revenue_radar.core.photo_niches import DEFAULT_NICHE_PROFILES, GENERAL_NICHE_ID
from revenue_radar.core.trade_profiles import DEFAULT_TRADE_PROFILES, GENERAL_TRADE_ID
from revenue_radar.schemas.profile import (
    NicheProfile,
    ProfileCatalog,
    ProfileSummary,
    TradeProfile,
)

logger = logging.getLogger(__name__)


class ProfileRegistry:
    """Immutable registry of trade and niche profiles.

    Lookups never fail: an unknown id resolves to the designated general
    profile. Build alternate registries in tests instead of patching the
    default tables.
    """

    def __init__(
        self,
        trades: Iterable[TradeProfile],
        niches: Iterable[NicheProfile],
        default_trade: str = GENERAL_TRADE_ID,
        default_niche: str = GENERAL_NICHE_ID,
    ) -> None:
        self._trades: Mapping[str, TradeProfile] = MappingProxyType(
            {t.id: t for t in trades}
        )
        self._niches: Mapping[str, NicheProfile] = MappingProxyType(
            {n.id: n for n in niches}
        )
        if default_trade not in self._trades:
            raise ValueError(f"Fallback trade profile {default_trade!r} is missing")
        if default_niche not in self._niches:
            raise ValueError(f"Fallback niche profile {default_niche!r} is missing")
        self._default_trade = default_trade
        self._default_niche = default_niche

    @classmethod
    def from_tables(
        cls,
        trade_rows: Iterable[Dict[str, Any]],
        niche_rows: Iterable[Dict[str, Any]],
        **kwargs: Any,
    ) -> "ProfileRegistry":
        return cls(
            [TradeProfile.model_validate(row) for row in trade_rows],
            [NicheProfile.model_validate(row) for row in niche_rows],
            **kwargs,
        )

    @property
    def trades(self) -> Tuple[TradeProfile, ...]:
        return tuple(self._trades.values())

    @property
    def niches(self) -> Tuple[NicheProfile, ...]:
        return tuple(self._niches.values())

    def trade_for(self, trade_id: str) -> TradeProfile:
        profile = self._trades.get(trade_id)
        if profile is None:
            logger.debug("Unknown trade %r, using %s", trade_id, self._default_trade)
            return self._trades[self._default_trade]
        return profile

    def niche_for(self, niche_id: str) -> NicheProfile:
        profile = self._niches.get(niche_id)
        if profile is None:
            logger.debug("Unknown niche %r, using %s", niche_id, self._default_niche)
            return self._niches[self._default_niche]
        return profile

    def catalog(self) -> ProfileCatalog:
        return ProfileCatalog(
            trades=[
                ProfileSummary(id=t.id, label=t.label, description=t.description)
                for t in self.trades
            ],
            niches=[
                ProfileSummary(id=n.id, label=n.label, description=n.description)
                for n in self.niches
            ],
        )


@lru_cache(maxsize=1)
def load_default_registry() -> ProfileRegistry:
    """Registry built once from the bundled profile tables."""
    return ProfileRegistry.from_tables(DEFAULT_TRADE_PROFILES, DEFAULT_NICHE_PROFILES)
