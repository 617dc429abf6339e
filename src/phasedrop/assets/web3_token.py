"""ERC-20 asset ledger backed by an Ethereum node.

The distributor's holdings live in an externally owned account whose
key signs every payout. balance_of() is a plain contract call;
transfer() sends a signed `transfer` transaction and waits for one
confirmation. A reverted transaction (receipt status 0) is reported as
a failed transfer so the distributor undoes the claim it recorded.
Anything that goes wrong after the transaction has been sent, such as
a receipt timeout, raises TransferPending: the transfer may still land,
so the claim must stay recorded.

web3 and eth-account are imported when the ledger is constructed, so
the rest of the package works without a node.
"""

from __future__ import annotations

import logging
from typing import Any

from phasedrop.crypto.identity import normalize_account
from phasedrop.errors import TransferPending

logger = logging.getLogger(__name__)

ERC20_ABI: list[dict[str, Any]] = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


class Web3TokenLedger:
    """AssetLedger over an ERC-20 token contract.

    Args:
        rpc_url: Ethereum RPC endpoint URL.
        token_address: ERC-20 contract address.
        private_key: Hex-encoded key of the account holding the funds.
        chain_id: Network chain ID (default: 11155111 = Sepolia).
        gas: Gas limit per transfer.
        gas_price_gwei: Gas price in gwei.
        receipt_timeout: Seconds to wait for a confirmation.
    """

    def __init__(
        self,
        rpc_url: str,
        token_address: str,
        private_key: str,
        chain_id: int = 11155111,
        gas: int = 100_000,
        gas_price_gwei: str = "2",
        receipt_timeout: int = 300,
    ) -> None:
        from web3 import Web3, HTTPProvider
        from eth_account import Account

        self._w3 = Web3(HTTPProvider(rpc_url))
        self._account = Account.from_key(private_key)
        self._token_address = normalize_account(token_address)
        self._contract = self._w3.eth.contract(
            address=self._token_address, abi=ERC20_ABI,
        )
        self._chain_id = chain_id
        self._gas = gas
        self._gas_price = self._w3.to_wei(gas_price_gwei, "gwei")
        self._receipt_timeout = receipt_timeout

    @property
    def asset_id(self) -> str:
        return self._token_address

    @property
    def holder(self) -> str:
        """Address whose key signs payouts; use it as the distributor address."""
        return normalize_account(self._account.address)

    def balance_of(self, account: str) -> int:
        return int(self._contract.functions.balanceOf(normalize_account(account)).call())

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if normalize_account(sender) != self.holder:
            raise ValueError(
                f"Can only transfer from the signing account {self.holder}, not {sender}"
            )
        nonce = self._w3.eth.get_transaction_count(self.holder)
        tx = self._contract.functions.transfer(
            normalize_account(recipient), amount,
        ).build_transaction({
            "from": self.holder,
            "gas": self._gas,
            "gasPrice": self._gas_price,
            "nonce": nonce,
            "chainId": self._chain_id,
        })
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("sent transfer of %d to %s: %s", amount, recipient, tx_hash.hex())

        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout,
            )
        except Exception as e:
            raise TransferPending(
                f"Transfer {tx_hash.hex()} was sent but not confirmed: {e}",
                tx_hash=tx_hash.hex(),
            ) from e
        if receipt.status != 1:
            logger.warning("transfer %s reverted in block %s", tx_hash.hex(), receipt.blockNumber)
            return False
        return True
