"""
Portfolio Model - Exposure Resolution.

============================================================
PURPOSE
============================================================
Phase one of netting: map each venue-local exposure to the global
instrument it trades.

    (slab_index, instrument_index)
        -> registry entry slab_index      -> slab address
        -> slab header instrument table   -> instrument key

`resolve_exposures` is pure and works over snapshots already read.
`PortfolioResolver` performs the reads, then calls it.

An exposure that cannot be resolved is logged and skipped; it never
fails the whole portfolio.

============================================================
"""

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Tuple

from account_codec.decoders import (
    decode_portfolio,
    decode_position_details,
    decode_registry,
    decode_slab,
)
from account_codec.pubkey import PublicKey
from account_codec.records import Portfolio, PositionDetails, SlabHeader, VenueRegistry
from core.config import get_config
from core.exceptions import DecodeError
from core.logging_setup import short_key
from quote_aggregator.gateway import LedgerGateway

from .models import ResolvedExposure


logger = logging.getLogger(__name__)


PositionKey = Tuple[int, int]


def resolve_exposures(
    portfolio: Portfolio,
    registry: VenueRegistry,
    slab_headers: Mapping[PublicKey, SlabHeader],
    position_details: Optional[Mapping[PositionKey, PositionDetails]] = None,
) -> List[ResolvedExposure]:
    """
    Resolve every non-zero exposure to its instrument key.

    Args:
        portfolio: Decoded portfolio
        registry: Registry snapshot; entry position is the slab index
        slab_headers: Decoded headers by slab address
        position_details: PositionDetails by (slab_index, instrument_index)

    Returns:
        Resolved exposures in portfolio order
    """
    details = position_details or {}
    resolved: List[ResolvedExposure] = []

    for exposure in portfolio.exposures:
        if exposure.quantity == 0:
            continue

        entry = registry.entry(exposure.slab_index)
        if entry is None:
            logger.warning(
                f"Skipping exposure {exposure.key}: slab index outside registry "
                f"({len(registry.entries)} entries)"
            )
            continue

        header = slab_headers.get(entry.slab_id)
        if header is None:
            logger.warning(
                f"Skipping exposure {exposure.key}: header for {short_key(entry.slab_id)} unavailable"
            )
            continue

        instrument = header.instrument_at(exposure.instrument_index)
        if instrument is None:
            logger.warning(
                f"Skipping exposure {exposure.key}: instrument index not listed "
                f"by {short_key(entry.slab_id)}"
            )
            continue

        resolved.append(ResolvedExposure(
            instrument=instrument,
            slab=entry.slab_id,
            slab_index=exposure.slab_index,
            instrument_index=exposure.instrument_index,
            quantity=exposure.quantity,
            details=details.get(exposure.key),
            mark_price=header.mark_px,
        ))

    return resolved


class PortfolioResolver:
    """
    Reads everything needed to resolve a portfolio.

    Slab headers and PositionDetails are read concurrently. PositionDetails
    addresses are supplied by the caller, who derives them with the same
    signing layer that submits transactions.
    """

    def __init__(self, gateway: LedgerGateway) -> None:
        self.gateway = gateway

    async def read_portfolio(self, address: PublicKey) -> Portfolio:
        return decode_portfolio(await self.gateway.read_account(address), address)

    async def read_registry(self, address: Optional[PublicKey] = None) -> VenueRegistry:
        """Read the venue registry, defaulting to the configured address."""
        if address is None:
            address = PublicKey(get_config().require("registry_address"))
        return decode_registry(await self.gateway.read_account(address), address)

    async def read_slab_headers(
        self,
        addresses: List[PublicKey],
    ) -> Dict[PublicKey, SlabHeader]:
        """Headers that could be read; failures are logged and left out."""
        unique = list(dict.fromkeys(addresses))
        results = await asyncio.gather(
            *(self.gateway.read_account(address) for address in unique),
            return_exceptions=True,
        )

        headers: Dict[PublicKey, SlabHeader] = {}
        for address, result in zip(unique, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"[{short_key(address)}] Slab header read failed: {result}")
                continue
            try:
                headers[address] = decode_slab(result, address).header
            except DecodeError as e:
                logger.warning(f"[{short_key(address)}] Slab header decode failed: {e}")
        return headers

    async def read_position_details(
        self,
        addresses: Mapping[PositionKey, PublicKey],
    ) -> Dict[PositionKey, PositionDetails]:
        """PositionDetails by key; missing or undecodable records are left out."""
        keys = list(addresses)
        results = await asyncio.gather(
            *(self.gateway.read_account(addresses[key]) for key in keys),
            return_exceptions=True,
        )

        details: Dict[PositionKey, PositionDetails] = {}
        for key, result in zip(keys, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.debug(f"No PositionDetails for {key}: {result}")
                continue
            try:
                details[key] = decode_position_details(result, addresses[key])
            except DecodeError as e:
                logger.warning(f"PositionDetails {key} decode failed: {e}")
        return details

    async def resolve(
        self,
        portfolio: Portfolio,
        registry: VenueRegistry,
        details_addresses: Optional[Mapping[PositionKey, PublicKey]] = None,
    ) -> List[ResolvedExposure]:
        """Read slab headers and PositionDetails, then resolve."""
        slab_addresses = [
            entry.slab_id
            for entry in (registry.entry(e.slab_index) for e in portfolio.exposures)
            if entry is not None
        ]

        headers, details = await asyncio.gather(
            self.read_slab_headers(slab_addresses),
            self.read_position_details(details_addresses or {}),
        )

        resolved = resolve_exposures(portfolio, registry, headers, details)
        logger.info(
            f"Resolved {len(resolved)}/{len(portfolio.exposures)} exposures "
            f"for {short_key(portfolio.user)}"
        )
        return resolved
