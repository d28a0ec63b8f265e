"""Token registry reconciliation.

Builds the deduplicated contract-address -> Token mapping for a batch of
filtered transfer events. Persistence is the store's job (insert-or-ignore),
so tokens already known keep their original metadata.
"""

from collections.abc import Iterable

from indexer.exceptions import ParseError
from indexer.logging import get_logger
from indexer.models import Token, TransferEvent

logger = get_logger(__name__)


def parse_decimals(raw: str | int | None) -> int:
    """Parse a token decimal precision reported by the explorer.

    Raises:
        ParseError: If the value is missing, non-numeric or negative.
    """
    if raw is None:
        raise ParseError("token decimals missing")
    try:
        decimals = int(str(raw).strip())
    except ValueError as e:
        raise ParseError(f"invalid token decimals {raw!r}") from e
    if decimals < 0:
        raise ParseError(f"negative token decimals {raw!r}")
    return decimals


def build_token_registry(
    events: Iterable[TransferEvent],
    default_decimals: int = 18,
) -> dict[str, Token]:
    """Return one Token per distinct contract address in ``events``.

    Later events overwrite earlier ones for the same contract; all events of a
    contract carry the same metadata so the order does not matter.
    """
    registry: dict[str, Token] = {}

    for event in events:
        addr = event.contract_addr.lower()
        try:
            decimals = parse_decimals(event.token_decimal)
        except ParseError as e:
            logger.warning(
                "token_decimals_defaulted",
                contract_addr=addr,
                raw=event.token_decimal,
                default=default_decimals,
                error=str(e),
            )
            decimals = default_decimals

        registry[addr] = Token(
            contract_addr=addr,
            token_name=event.token_name,
            token_sym=event.token_symbol,
            decimals=decimals,
        )

    logger.debug("token_registry_built", tokens=len(registry))
    return registry
