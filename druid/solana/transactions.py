"""System-program SOL transfers built, signed and checked with ``solders``."""

import json
import struct
from dataclasses import dataclass

import base58
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
_TRANSFER_INDEX = 2  # SystemInstruction::Transfer


class InvalidTransaction(Exception):
    pass


@dataclass
class TransferDetails:
    source: str
    destination: str
    lamports: int
    signature: str
    signed: bool


def parse_pubkey(address: str) -> Pubkey:
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidTransaction(f"Invalid address: {address!r}") from e


def load_keypair(secret: str) -> Keypair:
    """Keypair from a base58 secret or a ``solana-keygen`` JSON byte array."""
    secret = secret.strip()
    try:
        if secret.startswith("["):
            raw = bytes(json.loads(secret))
        else:
            raw = base58.b58decode(secret)
        return Keypair.from_bytes(raw)
    except (ValueError, TypeError) as e:
        raise InvalidTransaction("Invalid keypair secret") from e


def transfer_message(source: str, destination: str, lamports: int, blockhash: str) -> Message:
    """Single-instruction transfer message; *source* is also the fee payer."""
    payer = parse_pubkey(source)
    ix = transfer(
        TransferParams(
            from_pubkey=payer,
            to_pubkey=parse_pubkey(destination),
            lamports=lamports,
        )
    )
    return Message.new_with_blockhash([ix], payer, Hash.from_string(blockhash))


def build_unsigned_transfer(source: str, destination: str, lamports: int, blockhash: str) -> bytes:
    """Serialized transaction with an empty signature slot, for a wallet to sign."""
    message = transfer_message(source, destination, lamports, blockhash)
    return bytes(Transaction.new_unsigned(message))


def sign_transfer(keypair: Keypair, destination: str, lamports: int, blockhash: str) -> bytes:
    message = transfer_message(str(keypair.pubkey()), destination, lamports, blockhash)
    tx = Transaction([keypair], message, Hash.from_string(blockhash))
    return bytes(tx)


def decode_transfer(raw: bytes) -> TransferDetails:
    """Read back source, destination and amount of a single SOL transfer."""
    try:
        tx = Transaction.from_bytes(raw)
    except ValueError as e:
        raise InvalidTransaction("Transaction could not be decoded") from e

    message = tx.message
    if len(message.instructions) != 1:
        raise InvalidTransaction("Expected exactly one instruction")
    ix = message.instructions[0]
    keys = message.account_keys
    if keys[ix.program_id_index] != SYSTEM_PROGRAM_ID:
        raise InvalidTransaction("Not a system program instruction")
    data = bytes(ix.data)
    if len(data) != 12:
        raise InvalidTransaction("Unexpected instruction data")
    index, lamports = struct.unpack("<IQ", data)
    if index != _TRANSFER_INDEX:
        raise InvalidTransaction("Not a transfer instruction")
    accounts = bytes(ix.accounts)

    signature = tx.signatures[0] if tx.signatures else Signature.default()
    return TransferDetails(
        source=str(keys[accounts[0]]),
        destination=str(keys[accounts[1]]),
        lamports=lamports,
        signature=str(signature),
        signed=signature != Signature.default(),
    )


def verify_signed_transfer(raw: bytes, expected: bytes) -> str:
    """Check a wallet-signed transaction against the unsigned one we handed out.

    The message must be byte-identical and the fee payer's signature valid.
    Returns the transaction signature (base58).
    """
    try:
        tx = Transaction.from_bytes(raw)
        prepared = Transaction.from_bytes(expected)
    except ValueError as e:
        raise InvalidTransaction("Transaction could not be decoded") from e

    if bytes(tx.message) != bytes(prepared.message):
        raise InvalidTransaction("Signed transaction does not match the prepared payment")
    if not tx.signatures:
        raise InvalidTransaction("Transaction is not signed")

    signature = tx.signatures[0]
    payer = tx.message.account_keys[0]
    if not signature.verify(payer, bytes(tx.message)):
        raise InvalidTransaction("Invalid wallet signature")
    return str(signature)
