"""
Rholang terms used by the wallet.

Addresses are interpolated verbatim, so they are validated as base58 first.
"""
import re

_ADDRESS_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]+$")

BALANCE_TERM = """
new return, rl(`rho:registry:lookup`), ASIVaultCh, vaultCh in {
  rl!(`rho:rchain:asiVault`, *ASIVaultCh) |
  for (@(_, ASIVault) <- ASIVaultCh) {
    @ASIVault!("findOrCreate", "%(address)s", *vaultCh) |
    for (@maybeVault <- vaultCh) {
      match maybeVault {
        (true, vault) => @vault!("balance", *return)
        (false, err)  => return!(err)
      }
    }
  }
}
"""

TRANSFER_TERM = """
new
  deployerId(`rho:rchain:deployerId`),
  stdout(`rho:io:stdout`),
  rl(`rho:registry:lookup`),
  ASIVaultCh,
  vaultCh,
  toVaultCh,
  asiVaultkeyCh,
  resultCh
in {
  rl!(`rho:rchain:asiVault`, *ASIVaultCh) |
  for (@(_, ASIVault) <- ASIVaultCh) {
    @ASIVault!("findOrCreate", "%(from_address)s", *vaultCh) |
    @ASIVault!("findOrCreate", "%(to_address)s", *toVaultCh) |
    @ASIVault!("deployerAuthKey", *deployerId, *asiVaultkeyCh) |
    for (@(true, vault) <- vaultCh; key <- asiVaultkeyCh; @(true, toVault) <- toVaultCh) {
      @vault!("transfer", "%(to_address)s", %(amount)d, *key, *resultCh) |
      for (@result <- resultCh) {
        match result {
          (true, Nil) => {
            stdout!(("Transfer successful:", %(amount)d, "ASI"))
          }
          (false, reason) => {
            stdout!(("Transfer failed:", reason))
          }
        }
      }
    } |
    for (@(false, errorMsg) <- vaultCh) {
      stdout!(("Sender vault error:", errorMsg))
    } |
    for (@(false, errorMsg) <- toVaultCh) {
      stdout!(("Destination vault error:", errorMsg))
    }
  }
}
"""


def _check_address(address: str) -> str:
    if not address or not _ADDRESS_PATTERN.match(address):
        raise ValueError(f"Invalid ASI address: {address!r}")
    return address


def balance_term(address: str) -> str:
    """Term whose result is the vault balance of ``address`` in atomic units"""
    return BALANCE_TERM % {"address": _check_address(address)}


def transfer_term(from_address: str, to_address: str, amount: int) -> str:
    """
    Term moving ``amount`` atomic units between two vaults.

    Raises:
        ValueError: If an address is malformed or the amount is not positive
    """
    if amount <= 0:
        raise ValueError("Transfer amount must be positive")
    return TRANSFER_TERM % {
        "from_address": _check_address(from_address),
        "to_address": _check_address(to_address),
        "amount": amount,
    }
