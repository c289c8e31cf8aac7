"""Instructions, messages and multi-signer transactions.

Keys are xrpl-py wallets. A message is signed over its canonical JSON
encoding; the fee payer's signature comes first and doubles as the
transaction id.
"""

import base64
import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from xrpl import CryptoAlgorithm, XRPLException
from xrpl.core.addresscodec import decode_seed
from xrpl.core.keypairs import derive_classic_address, is_valid_message, sign
from xrpl.wallet import Wallet

from payout.constants import StakeAuthorize
from payout.errors import InputError


@dataclass(frozen=True, slots=True)
class Transfer:
    from_address: str
    to_address: str
    lamports: int

    def signer_addresses(self) -> list[str]:
        return [self.from_address]


@dataclass(frozen=True, slots=True)
class SplitStake:
    stake_account: str
    authority: str
    lamports: int
    new_stake_account: str

    def signer_addresses(self) -> list[str]:
        return [self.authority, self.new_stake_account]


@dataclass(frozen=True, slots=True)
class AuthorizeStake:
    stake_account: str
    authority: str
    new_authority: str
    stake_authorize: StakeAuthorize

    def signer_addresses(self) -> list[str]:
        return [self.authority]


Instruction = Transfer | SplitStake | AuthorizeStake

_INSTRUCTION_TYPES: dict[str, type] = {cls.__name__: cls for cls in (Transfer, SplitStake, AuthorizeStake)}


def instruction_to_dict(instruction: Instruction) -> dict:
    data = {name: getattr(instruction, name) for name in instruction.__slots__}
    data["type"] = type(instruction).__name__
    return data


def instruction_from_dict(data: dict) -> Instruction:
    data = dict(data)
    cls = _INSTRUCTION_TYPES.get(data.pop("type", None))
    if cls is None:
        raise ValueError(f"Unsupported instruction: {data!r}")
    if cls is AuthorizeStake:
        data["stake_authorize"] = StakeAuthorize(data["stake_authorize"])
    return cls(**data)


def transfer(from_address: str, to_address: str, lamports: int) -> Transfer:
    return Transfer(from_address, to_address, lamports)


def split(stake_account: str, authority: str, lamports: int, new_stake_account: str) -> list[Instruction]:
    return [SplitStake(stake_account, authority, lamports, new_stake_account)]


def authorize(
    stake_account: str, authority: str, new_authority: str, stake_authorize: StakeAuthorize
) -> AuthorizeStake:
    return AuthorizeStake(stake_account, authority, new_authority, stake_authorize)


def _unique(addresses: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(addresses))


@dataclass(frozen=True)
class Message:
    fee_payer: str
    recent_blockhash: str
    instructions: tuple[Instruction, ...]

    @classmethod
    def new_with_payer(cls, instructions: Sequence[Instruction], payer: str, blockhash: str) -> "Message":
        return cls(fee_payer=payer, recent_blockhash=blockhash, instructions=tuple(instructions))

    def signer_addresses(self) -> list[str]:
        """Required signers, fee payer first."""
        return _unique([self.fee_payer, *(a for ix in self.instructions for a in ix.signer_addresses())])

    def to_dict(self) -> dict:
        return {
            "fee_payer": self.fee_payer,
            "recent_blockhash": self.recent_blockhash,
            "instructions": [instruction_to_dict(ix) for ix in self.instructions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            fee_payer=data["fee_payer"],
            recent_blockhash=data["recent_blockhash"],
            instructions=tuple(instruction_from_dict(ix) for ix in data["instructions"]),
        )

    def serialize(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode()


@dataclass
class SignatureEntry:
    public_key: str
    signature: str


@dataclass
class Transaction:
    message: Message
    signatures: dict[str, SignatureEntry] = field(default_factory=dict)

    @classmethod
    def new(cls, signers: Sequence[Wallet], message: Message) -> "Transaction":
        by_address = {w.address: w for w in signers}
        required = message.signer_addresses()
        missing = [a for a in required if a not in by_address]
        if missing:
            raise ValueError(f"Missing signers: {missing}")
        extra = [a for a in by_address if a not in required]
        if extra:
            raise ValueError(f"Unexpected signers: {extra}")

        payload = message.serialize()
        signatures = {
            address: SignatureEntry(by_address[address].public_key, sign(payload, by_address[address].private_key))
            for address in required
        }
        return cls(message=message, signatures=signatures)

    @property
    def signature(self) -> str:
        return self.signatures[self.message.fee_payer].signature

    def verify(self) -> bool:
        """Every required signer signed the message with the key behind its address."""
        payload = self.message.serialize()
        for address in self.message.signer_addresses():
            entry = self.signatures.get(address)
            if entry is None or derive_classic_address(entry.public_key) != address:
                return False
            try:
                if not is_valid_message(payload, bytes.fromhex(entry.signature), entry.public_key):
                    return False
            except (ValueError, XRPLException):
                return False
        return True

    def to_dict(self) -> dict:
        return {
            "message": self.message.to_dict(),
            "signatures": {
                a: {"public_key": e.public_key, "signature": e.signature} for a, e in self.signatures.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        return cls(
            message=Message.from_dict(data["message"]),
            signatures={a: SignatureEntry(**e) for a, e in data["signatures"].items()},
        )

    def serialize(self) -> str:
        """Wire form: base64 of the canonical JSON encoding."""
        raw = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode()
        return base64.b64encode(raw).decode()

    @classmethod
    def deserialize(cls, wire: str) -> "Transaction":
        return cls.from_dict(json.loads(base64.b64decode(wire)))


def unique_signers(signers: Iterable[Wallet]) -> list[Wallet]:
    unique: dict[str, Wallet] = {}
    for wallet in signers:
        unique.setdefault(wallet.address, wallet)
    return list(unique.values())


def new_keypair() -> Wallet:
    return Wallet.create(algorithm=CryptoAlgorithm.ED25519)


def read_keypair_file(path: str | Path) -> Wallet:
    """Load a wallet from a file whose first non-empty line is its seed."""
    try:
        lines = [ln.strip() for ln in Path(path).read_text().splitlines() if ln.strip()]
    except OSError as e:
        raise InputError(f"Cannot read keypair file {path}: {e}") from e
    if not lines:
        raise InputError(f"Keypair file {path} is empty")
    seed = lines[0]
    try:
        _, algorithm = decode_seed(seed)
        return Wallet.from_seed(seed, algorithm=algorithm)
    except (ValueError, XRPLException) as e:
        raise InputError(f"Invalid seed in {path}: {e}") from e
