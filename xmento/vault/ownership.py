"""Transferable ownership handles of positions.

- ERC-721 like: one unique handle per live position, id equals the position id
- Whoever holds the handle may withdraw the position and is credited for it in
  :py:meth:`xmento.vault.vault.XmentoVault.get_user_balance`
- Moving a handle never touches the position record itself
"""

from dataclasses import dataclass, field

from eth_typing import HexAddress

from xmento.address import ZERO_ADDRESS, is_zero_address
from xmento.errors import AuthorizationError, NotFoundError, ValidationError
from xmento.events import HandleTransferred


@dataclass(slots=True)
class HandleTable:
    """Handle bookkeeping, lives in the vault storage."""

    #: position id -> holder
    holders: dict[int, HexAddress] = field(default_factory=dict)

    #: holder -> number of handles held
    balances: dict[HexAddress, int] = field(default_factory=dict)

    def owner_of(self, position_id: int) -> HexAddress:
        holder = self.holders.get(position_id)
        if holder is None:
            raise NotFoundError(f"Invalid position handle #{position_id}", position_id=position_id)
        return holder

    def exists(self, position_id: int) -> bool:
        return position_id in self.holders

    def balance_of(self, holder: HexAddress) -> int:
        return self.balances.get(holder, 0)

    def handles_of(self, holder: HexAddress) -> list[int]:
        """Position ids held, in mint order."""
        return [position_id for position_id, h in self.holders.items() if h == holder]

    def mint(self, to: HexAddress, position_id: int) -> HandleTransferred:
        assert position_id not in self.holders, f"Handle #{position_id} already minted"
        if is_zero_address(to):
            raise ValidationError("Cannot mint a handle to the zero address", position_id=position_id)
        self.holders[position_id] = to
        self._credit(to)
        return HandleTransferred(from_=ZERO_ADDRESS, to=to, position_id=position_id)

    def burn(self, position_id: int) -> HandleTransferred:
        holder = self.owner_of(position_id)
        del self.holders[position_id]
        self._debit(holder)
        return HandleTransferred(from_=holder, to=ZERO_ADDRESS, position_id=position_id)

    def transfer(self, sender: HexAddress, to: HexAddress, position_id: int) -> HandleTransferred:
        """Move a handle to a new holder.

        :raise AuthorizationError:
            Sender does not hold the handle
        """
        holder = self.owner_of(position_id)
        if holder != sender:
            raise AuthorizationError(f"{sender} does not hold position #{position_id}", position_id=position_id, sender=sender, holder=holder)
        if is_zero_address(to):
            raise ValidationError("Cannot transfer a handle to the zero address", position_id=position_id)
        self.holders[position_id] = to
        self._debit(holder)
        self._credit(to)
        return HandleTransferred(from_=holder, to=to, position_id=position_id)

    def _credit(self, holder: HexAddress):
        self.balances[holder] = self.balances.get(holder, 0) + 1

    def _debit(self, holder: HexAddress):
        count = self.balances[holder] - 1
        if count:
            self.balances[holder] = count
        else:
            del self.balances[holder]
