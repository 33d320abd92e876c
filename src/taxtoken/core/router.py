"""
taxtoken - Exchange Router Interface

The fee engine does not implement an automated market maker. It consumes
the narrow capability below from an external router: quote, swap a
prepaid amount of the ledger asset for the settlement asset with a
minimum-out floor, and report pool reserves.

Using Protocol (from typing) allows any router implementation, including
test doubles, to be plugged in without inheritance.
"""

from __future__ import annotations

from typing import Protocol, Sequence, Tuple, runtime_checkable


@runtime_checkable
class ExchangeRouter(Protocol):
    """
    Protocol for the external exchange router.

    Failures (minimum output not met, expired deadline, missing liquidity)
    MUST be reported by raising ``ExchangeError``; the swap adapter surfaces
    them as ``SwapFailedError``.
    """

    @property
    def address(self) -> str:
        """Router address; pool addresses are derived from it."""
        ...

    @property
    def settlement_asset_address(self) -> str:
        """Address of the asset accrued fees are converted into."""
        ...

    def get_reserves(self, token_a: str, token_b: str) -> Tuple[int, int]:
        """
        Reserves of the ``token_a``/``token_b`` pool, ordered as the
        arguments. Returns ``(0, 0)`` for a pool that does not exist.
        """
        ...

    def get_amounts_out(self, amount_in: int, path: Sequence[str]) -> list[int]:
        """Read-only quote; one amount per hop of ``path``."""
        ...

    def swap_exact_tokens_for_settlement(
        self,
        amount_in: int,
        min_out: int,
        path: Sequence[str],
        recipient: str,
        deadline: int,
    ) -> int:
        """
        Swap ``amount_in`` of ``path[0]`` for ``path[-1]``.

        The input must already have been delivered to the pool by the
        caller. Returns the settlement amount paid to ``recipient``, which
        is at least ``min_out``.
        """
        ...
