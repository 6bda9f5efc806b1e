"""Vault and registry failure taxonomy.

- Every failure aborts the whole operation, the state is reverted by :py:meth:`xmento.chain.Chain.transaction`

- Each exception carries the failure kind (the class) and :py:attr:`VaultError.context`
  so the calling layer can present a specific message

- Exceptions raised by external collaborators (tokens, yield oracle, exchange)
  are wrapped in :py:class:`ExternalCallError`
"""


class VaultError(Exception):
    """Base class for all vault and registry failures."""

    def __init__(self, message: str, **context):
        super().__init__(message)

        #: Extra diagnostics, e.g. position id, asset, sender
        self.context = context


class ValidationError(VaultError):
    """Unsupported asset, non-positive amount or malformed address."""


class AuthorizationError(VaultError):
    """Caller is not the ownership handle holder, or not the registry operator."""


class NotFoundError(VaultError):
    """Unknown vault, principal vault index or position."""


class StateError(VaultError):
    """Operation is not valid for the current schema version or contract state."""


class ReentrancyError(VaultError):
    """Nested entry into a guarded entry point of the same contract."""

    def __init__(self, contract_address: str, function_name: str):
        super().__init__(
            f"Reentrant call to {function_name}() on {contract_address}",
            contract=contract_address,
            function=function_name,
        )


class ExternalCallError(VaultError):
    """Yield oracle, exchange or asset transfer failed, or replied inconsistently with the request."""
