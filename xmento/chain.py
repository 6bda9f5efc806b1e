"""In-process execution substrate.

- Hosts contracts (tokens, collaborators, vaults, the registry) by address

- Commits every mutating operation as one atomic step: :py:meth:`Chain.transaction`
  snapshots all contract storage and reverts it if the operation raises,
  in the same manner as `evm_snapshot` and `evm_revert` on Anvil

- Contract storage must be plain deep-copyable data; contracts reference each other by address,
  never by holding the other contract object in storage

Example:

.. code-block:: python

    chain = Chain()
    token = create_token(chain, deployer, "Celo Dollar", "cUSD", 1_000 * 10**18)

    snapshot_id = chain.snapshot()
    token.transfer(deployer, user, 10 * 10**18)
    chain.revert(snapshot_id)
    assert token.balance_of(user) == 0
"""

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, TypeVar

from eth_typing import HexAddress

from xmento.address import compute_contract_address, normalise_address
from xmento.config import DEFAULT_CHAIN_ID
from xmento.errors import NotFoundError
from xmento.events import LogEntry

logger = logging.getLogger(__name__)


ContractT = TypeVar("ContractT", bound="Contract")


class Contract:
    """Base class for everything deployed on a :py:class:`Chain`.

    - :py:attr:`storage` is the only state reverted on failure
    - :py:attr:`entered` is the reentrancy busy flag, see :py:mod:`xmento.guard`
    """

    def __init__(self, chain: "Chain", address: HexAddress):
        assert isinstance(chain, Chain), f"Got {type(chain)}"
        self.chain = chain
        self.address = address
        self.storage = None
        self.entered = False

    def __repr__(self):
        return f"<{self.__class__.__name__} at {self.address}>"

    def emit(self, event: object):
        """Append an event to the chain log."""
        self.chain.append_log(self.address, event)

    def get_events(self, event_type: type | None = None) -> list:
        """Read back events this contract has emitted, oldest first."""
        return [entry.event for entry in self.chain.get_logs(address=self.address, event_type=event_type)]


@dataclass(slots=True)
class _Snapshot:
    storages: dict[HexAddress, object]
    contracts: set[HexAddress]
    nonces: dict[HexAddress, int]
    log_count: int


@dataclass
class Chain:
    """Contract host with snapshot/revert.

    - Operations on the same chain are serialised by the caller, there is no threading support
    """

    #: Chain id, informative
    chain_id: int = DEFAULT_CHAIN_ID

    #: Deployed contracts by checksummed address
    contracts: dict[HexAddress, Contract] = field(default_factory=dict)

    #: Per deployer deployment counters
    nonces: dict[HexAddress, int] = field(default_factory=dict)

    #: Append-only event log
    logs: list[LogEntry] = field(default_factory=list)

    _snapshots: dict[int, _Snapshot] = field(default_factory=dict, repr=False)
    _next_snapshot_id: int = field(default=1, repr=False)
    _transaction_depth: int = field(default=0, repr=False)

    def deploy(self, deployer: HexAddress | str, contract_class: type[ContractT], *args, **kwargs) -> ContractT:
        """Deploy a new contract.

        :param deployer:
            Account or contract deploying, determines the address together with its nonce

        :param contract_class:
            :py:class:`Contract` subclass, constructed as `contract_class(chain, address, *args, **kwargs)`

        :return:
            The deployed contract
        """
        assert issubclass(contract_class, Contract), f"Not a contract class: {contract_class}"
        deployer = normalise_address(deployer, "deployer")
        nonce = self.nonces.get(deployer, 0)
        address = compute_contract_address(deployer, nonce)
        assert address not in self.contracts, f"Address collision at {address}"
        self.nonces[deployer] = nonce + 1
        contract = contract_class(self, address, *args, **kwargs)
        self.contracts[address] = contract
        logger.debug("Deployed %s at %s by %s", contract_class.__name__, address, deployer)
        return contract

    def get_contract(self, address: HexAddress | str, expected_type: type[ContractT] = Contract) -> ContractT:
        """Resolve a deployed contract.

        :raise NotFoundError:
            Nothing deployed at the address, or the contract is not of the expected type
        """
        address = normalise_address(address)
        contract = self.contracts.get(address)
        if contract is None:
            raise NotFoundError(f"No contract at {address}", address=address)
        if not isinstance(contract, expected_type):
            raise NotFoundError(f"Contract at {address} is {type(contract).__name__}, not {expected_type.__name__}", address=address)
        return contract

    def has_contract(self, address: HexAddress | str) -> bool:
        return normalise_address(address) in self.contracts

    def append_log(self, address: HexAddress, event: object):
        self.logs.append(LogEntry(address=address, log_index=len(self.logs), event=event))

    def get_logs(self, address: HexAddress | str | None = None, event_type: type | None = None) -> list[LogEntry]:
        """Filter the event log by emitter and event class."""
        if address is not None:
            address = normalise_address(address)
        return [entry for entry in self.logs if (address is None or entry.address == address) and (event_type is None or isinstance(entry.event, event_type))]

    def snapshot(self) -> int:
        """Take a snapshot of the whole chain state.

        :return:
            Snapshot id for :py:meth:`revert`
        """
        snapshot_id = self._next_snapshot_id
        self._next_snapshot_id += 1
        self._snapshots[snapshot_id] = _Snapshot(
            storages={address: copy.deepcopy(contract.storage) for address, contract in self.contracts.items()},
            contracts=set(self.contracts.keys()),
            nonces=dict(self.nonces),
            log_count=len(self.logs),
        )
        return snapshot_id

    def revert(self, snapshot_id: int) -> bool:
        """Roll the chain back to a snapshot.

        - The snapshot and all snapshots taken after it are consumed

        :return:
            True if a snapshot was reverted
        """
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            return False

        for address in list(self.contracts.keys()):
            if address not in snapshot.contracts:
                del self.contracts[address]

        for address, storage in snapshot.storages.items():
            self.contracts[address].storage = storage

        self.nonces = snapshot.nonces
        del self.logs[snapshot.log_count :]

        for later_id in [i for i in self._snapshots if i >= snapshot_id]:
            del self._snapshots[later_id]
        return True

    def release(self, snapshot_id: int):
        """Drop a snapshot that is no longer needed."""
        self._snapshots.pop(snapshot_id, None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the block as one atomic step.

        - The outermost transaction snapshots the chain and reverts it on any exception,
          then re-raises
        - Nested transactions join the outermost one
        """
        if self._transaction_depth > 0:
            self._transaction_depth += 1
            try:
                yield
            finally:
                self._transaction_depth -= 1
            return

        snapshot_id = self.snapshot()
        self._transaction_depth = 1
        try:
            yield
        except BaseException:
            self.revert(snapshot_id)
            raise
        else:
            self.release(snapshot_id)
        finally:
            self._transaction_depth = 0

    def is_in_transaction(self) -> bool:
        return self._transaction_depth > 0
