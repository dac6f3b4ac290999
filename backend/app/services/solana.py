"""
Solana ledger service.

Sends SPL token transfers (TransferChecked) from the treasury wallet's
associated token account, creating the destination ATA when missing.
"""

import base58
import logging
import struct
from typing import Optional

import httpx
from solders.instruction import Instruction, AccountMeta
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.core import RPCException

from app.core.config import settings
from app.services.ledger import (
    LedgerSubmissionError,
    LedgerSubmissionService,
    PreparedTransfer,
    TransferUnconfirmedError,
)

logger = logging.getLogger(__name__)

# Program IDs
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

# SPL token instruction tags
TRANSFER_CHECKED_IX = 12
# Associated token program: CreateIdempotent
CREATE_ATA_IDEMPOTENT_IX = 1


def get_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    ata, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return ata


def build_create_ata_ix(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    ata = get_associated_token_address(owner, mint)
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, bytes([CREATE_ATA_IDEMPOTENT_IX]), accounts)


def build_transfer_checked_ix(
    source: Pubkey,
    mint: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    amount: int,
    decimals: int,
) -> Instruction:
    # Encode args: tag(u8) + amount(u64) + decimals(u8)
    ix_data = bytearray()
    ix_data.append(TRANSFER_CHECKED_IX)
    ix_data.extend(struct.pack("<Q", amount))
    ix_data.append(decimals)

    accounts = [
        AccountMeta(pubkey=source, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
        AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
    ]
    return Instruction(TOKEN_PROGRAM_ID, bytes(ix_data), accounts)


def classify_send_error(prepared: PreparedTransfer, error: Exception) -> LedgerSubmissionError:
    """
    Map a send_transaction failure to a ledger error.

    Only a refused connection or an RPC error response (preflight rejection)
    proves the transaction was not applied. Any other transport error may have
    happened after the node received it, so the outcome is left to reconciliation.
    """
    sig = prepared.signature
    # solana-py wraps transport errors in SolanaRpcException
    cause = error.__cause__ if isinstance(error, SolanaRpcException) and error.__cause__ else error

    if isinstance(cause, (httpx.ConnectError, RPCException)):
        return LedgerSubmissionError(
            f"send failed for {prepared.label or prepared.destination}: {cause}"
        )
    return TransferUnconfirmedError(sig, f"send outcome unknown for {sig}: {cause}")


class SolanaLedgerService(LedgerSubmissionService):
    """Submits treasury payouts on Solana."""

    def __init__(self):
        self._client: Optional[AsyncClient] = None
        self._keypair: Optional[Keypair] = None

    @property
    def treasury_keypair(self) -> Keypair:
        if self._keypair is None:
            if not settings.treasury_private_key:
                raise ValueError("TREASURY_PRIVATE_KEY not configured")
            secret_key = base58.b58decode(settings.treasury_private_key)
            self._keypair = Keypair.from_bytes(secret_key)
        return self._keypair

    @property
    def token_mint(self) -> Pubkey:
        if not settings.token_mint:
            raise ValueError("TOKEN_MINT not configured")
        return Pubkey.from_string(settings.token_mint)

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(settings.solana_rpc_url)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    async def is_connected(self) -> bool:
        try:
            client = await self._get_client()
            await client.get_health()
            return True
        except Exception:
            return False

    async def prepare_transfer(
        self, destination: str, amount: int, label: str = ""
    ) -> PreparedTransfer:
        if amount <= 0:
            raise LedgerSubmissionError(f"refusing to send non-positive amount {amount}")

        try:
            client = await self._get_client()
            treasury = self.treasury_keypair
            mint = self.token_mint
            dest_owner = Pubkey.from_string(destination)

            source_ata = get_associated_token_address(treasury.pubkey(), mint)
            dest_ata = get_associated_token_address(dest_owner, mint)

            ixs = [
                build_create_ata_ix(treasury.pubkey(), dest_owner, mint),
                build_transfer_checked_ix(
                    source_ata,
                    mint,
                    dest_ata,
                    treasury.pubkey(),
                    amount,
                    settings.token_decimals,
                ),
            ]

            blockhash_resp = await client.get_latest_blockhash()
            recent_blockhash = blockhash_resp.value.blockhash

            msg = Message.new_with_blockhash(ixs, treasury.pubkey(), recent_blockhash)
            tx = Transaction.new_unsigned(msg)
            tx.sign([treasury], recent_blockhash)
        except Exception as e:
            raise LedgerSubmissionError(f"could not build transfer to {destination}: {e}") from e

        return PreparedTransfer(
            signature=str(tx.signatures[0]),
            destination=destination,
            amount=amount,
            label=label,
            payload=tx,
        )

    async def submit(self, prepared: PreparedTransfer) -> str:
        client = await self._get_client()
        sig = prepared.signature
        try:
            resp = await client.send_transaction(prepared.payload)
        except Exception as e:
            raise classify_send_error(prepared, e) from e
        logger.info(
            f"transfer tx sent: {sig} {prepared.label} "
            f"amount={prepared.amount} to={prepared.destination}"
        )

        try:
            await client.confirm_transaction(resp.value, commitment="confirmed")
        except Exception as e:
            raise TransferUnconfirmedError(sig, f"confirmation failed for {sig}: {e}") from e
        logger.info(f"transfer tx confirmed: {sig}")

        return sig

    async def get_transfer_status(self, signature: str) -> Optional[bool]:
        client = await self._get_client()
        resp = await client.get_signature_statuses(
            [Signature.from_string(signature)], search_transaction_history=True
        )
        status = resp.value[0]
        if status is None:
            return None
        if status.err is not None:
            return False
        if status.confirmation_status in (
            TransactionConfirmationStatus.Confirmed,
            TransactionConfirmationStatus.Finalized,
        ):
            return True
        return None


# Singleton instance
solana_ledger = SolanaLedgerService()
