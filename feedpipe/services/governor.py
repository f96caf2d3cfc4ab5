"""
Concurrency Governor - seriell oder parallel, je nach Tier des Batches

Browser-Instanzen sind teuer: wenn ein Batch den Browser-Tier benutzen
darf, läuft er strikt seriell (max. eine Browser-Session gleichzeitig).
Sonst werden alle Items parallel gestartet.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_batch(items: Sequence[T], use_expensive_tier: bool,
                    worker: Callable[[T], Awaitable[R]],
                    return_exceptions: bool = False) -> List[Union[R, BaseException]]:
    """
    Führt worker für alle items aus; das Ergebnis hat immer die Reihenfolge der Eingabe.

    Args:
        items: Eingaben
        use_expensive_tier: True = strikt seriell in Eingabe-Reihenfolge
        worker: Async Callable pro Item
        return_exceptions: Exceptions einzelner Items an ihrer Position
            zurückgeben statt den Batch abzubrechen

    Returns:
        Liste der Ergebnisse in Eingabe-Reihenfolge
    """
    if not items:
        return []

    if use_expensive_tier:
        logger.info(f"Running batch of {len(items)} sequentially (expensive tier enabled)")
        results: List[Union[R, BaseException]] = []
        for item in items:
            try:
                results.append(await worker(item))
            except Exception as e:
                if not return_exceptions:
                    raise
                results.append(e)
        return results

    logger.info(f"Running batch of {len(items)} concurrently")
    return list(await asyncio.gather(*(worker(item) for item in items),
                                     return_exceptions=return_exceptions))
