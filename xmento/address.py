"""Ethereum address headache tools.

- Everything stored by the vaults and the registry uses checksummed addresses,
  callers may pass lowercased ones
"""

from eth_typing import HexAddress
from eth_utils import is_address, to_checksum_address
from web3 import Web3

from xmento.errors import ValidationError

#: The zero address, used as the empty side of handle mint/burn events
ZERO_ADDRESS: HexAddress = "0x0000000000000000000000000000000000000000"


def normalise_address(value: HexAddress | str, name: str = "address") -> HexAddress:
    """Convert any address input to checksummed form.

    :param name:
        Human readable argument name for the error message

    :raise ValidationError:
        If the value is not an address
    """
    if not isinstance(value, str) or not is_address(value):
        raise ValidationError(f"Not a valid {name}: {value!r}", value=value)
    return to_checksum_address(value)


def is_zero_address(value: HexAddress | str) -> bool:
    return int(value, 16) == 0


def compute_contract_address(deployer: HexAddress | str, nonce: int) -> HexAddress:
    """Derive a deterministic contract address for a deployment.

    - Same deployer and nonce always give the same address

    :param deployer:
        Account or contract doing the deployment

    :param nonce:
        Deployer's running deployment counter
    """
    assert type(nonce) == int and nonce >= 0, f"Bad nonce: {nonce}"
    deployer = normalise_address(deployer, "deployer")
    payload = bytes.fromhex(deployer[2:]) + nonce.to_bytes(32, "big")
    return to_checksum_address(Web3.keccak(payload)[-20:])
