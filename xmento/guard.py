"""Reentrancy guard for contract entry points.

- A per-contract busy flag is set before the entry point body runs and any external call happens
- Any nested call into a guarded entry point of the same contract fails with :py:class:`~xmento.errors.ReentrancyError`
- The flag is cleared on every exit path
- The body runs inside :py:meth:`xmento.chain.Chain.transaction`, so a failure reverts all state it touched
"""

import functools
from contextlib import contextmanager
from typing import Callable, Iterator

from xmento.chain import Contract
from xmento.errors import ReentrancyError


def get_guarded_contract(obj) -> Contract:
    """Find whose busy flag protects this object.

    - Registry logic classes run against the storage of the proxy contract,
      and share its flag through their `proxy` attribute
    """
    proxy = getattr(obj, "proxy", None)
    if proxy is not None:
        return proxy
    assert isinstance(obj, Contract), f"Cannot guard {type(obj)}"
    return obj


@contextmanager
def reentrancy_guard(contract: Contract, function_name: str) -> Iterator[None]:
    """Hold the busy flag of a contract for the duration of one atomic step.

    :raise ReentrancyError:
        If the contract is already executing a guarded entry point
    """
    if contract.entered:
        raise ReentrancyError(contract.address, function_name)

    contract.entered = True
    try:
        with contract.chain.transaction():
            yield
    finally:
        contract.entered = False


def non_reentrant(func: Callable) -> Callable:
    """Decorate a contract method as a guarded entry point.

    Example:

    .. code-block:: python

        class XmentoVault(Contract):

            @non_reentrant
            def deposit(self, sender, asset, amount) -> int:
                ...
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        with reentrancy_guard(get_guarded_contract(self), func.__name__):
            return func(self, *args, **kwargs)

    return wrapper
