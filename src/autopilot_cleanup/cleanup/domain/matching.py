"""Suffix matching of local serial numbers against the registry.

Locally recorded serials are often truncated or miss leading characters
that the registry keeps, e.g. "6923-30" for
"7243-2648-3107-2818-2556-6923-30". A registry serial matches a local
serial when it ends with it.
"""

import logging
from typing import Iterable

from ...api.exceptions import AmbiguousMatchError
from .entities import MatchedSerial, MatchPolicy, MatchResult, normalize_serial

logger = logging.getLogger(__name__)


def match_serials(
    local_serials: Iterable[str],
    registry_serials: Iterable[str],
    policy: MatchPolicy = MatchPolicy.FIRST,
) -> MatchResult:
    """Partition local serials into matched and unmatched.

    Comparison ignores case and surrounding whitespace. Matched entries
    carry the registry spelling of the serial, which is what every later
    step uses.

    Args:
        local_serials: Serials from the input file (already de-duplicated)
        registry_serials: Serials in registry listing order
        policy: Tie-break when several distinct registry serials share
            the suffix

    Returns:
        MatchResult; ambiguous local serials are also listed in
        MatchResult.ambiguous with every candidate

    Raises:
        AmbiguousMatchError: Under MatchPolicy.STRICT, on the first
            local serial with more than one candidate
    """
    # Identities sharing one serial are a single candidate
    registry: dict[str, str] = {}
    for serial in registry_serials:
        if serial and serial.strip():
            registry.setdefault(normalize_serial(serial), serial)
    result = MatchResult()

    for local in local_serials:
        key = normalize_serial(local)
        candidates = [original for normalized, original in registry.items() if normalized.endswith(key)] if key else []

        if not candidates:
            result.unmatched.append(local)
            continue

        if len(candidates) > 1:
            if policy == MatchPolicy.STRICT:
                raise AmbiguousMatchError(local, candidates)
            logger.warning(
                f"Serial {local} matches {len(candidates)} registry records "
                f"({', '.join(candidates)}); using {candidates[0]}"
            )
            result.ambiguous[local] = candidates

        result.matched.append(MatchedSerial(local_serial=local, resolved_serial=candidates[0]))

    logger.info(
        f"Matched {len(result.matched)} of {result.total} serial(s), "
        f"{len(result.unmatched)} not found"
    )
    return result
