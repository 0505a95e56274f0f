# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Tsar Studio
# Part of LedgerChat — see LICENSE and TRADEMARKS.md
# Refs: see REFERENCES.md
from __future__ import annotations

import os, json, hashlib
from typing import Dict, Optional

from bech32 import bech32_decode, bech32_encode, convertbits
from mnemonic import Mnemonic
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..core.errors import SubmissionError
from ..utils import config as CFG

# ---------------- Logger ----------------
from ..utils.chat_logging import get_ctx_logger
log = get_ctx_logger("ledgerchat.wallet(signer)")

# secp256k1 group order
_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


# ---------------- Address helpers ----------------

def pubkey_hash(pub: bytes) -> bytes:
    return hashlib.sha256(pub).digest()[:20]

def pubkey_to_address(pub: bytes) -> str:
    data = [0] + convertbits(pubkey_hash(pub), 8, 5, True)
    return bech32_encode(CFG.ADDRESS_PREFIX, data)

def is_valid_address(address: str) -> bool:
    if not isinstance(address, str) or not address:
        return False
    hrp, data = bech32_decode(address.strip().lower())
    if hrp != CFG.ADDRESS_PREFIX or not data or data[0] != 0:
        return False
    prog = convertbits(data[1:], 5, 8, False)
    return prog is not None and len(prog) == 20


# ---------------- Signer ----------------

class WalletSigner:
    """secp256k1 key used to authorize chat mutations; ``sign`` raises SubmissionError when keyless."""

    def __init__(self, priv_hex: Optional[str]) -> None:
        self._sk: Optional[ec.EllipticCurvePrivateKey] = None
        if priv_hex:
            k = int.from_bytes(bytes.fromhex(priv_hex), "big")
            if not 0 < k < _N:
                raise ValueError("private key out of range")
            self._sk = ec.derive_private_key(k, ec.SECP256K1())

    @classmethod
    def generate(cls) -> "WalletSigner":
        while True:
            raw = os.urandom(32)
            if 0 < int.from_bytes(raw, "big") < _N:
                return cls(raw.hex())

    @classmethod
    def from_mnemonic(cls, phrase: str) -> "WalletSigner":
        m = Mnemonic("english")
        words = " ".join((phrase or "").split())
        if not m.check(words):
            raise ValueError("invalid recovery phrase")
        return cls(bytes(m.to_entropy(words)).hex())

    def to_mnemonic(self) -> str:
        return Mnemonic("english").to_mnemonic(bytes.fromhex(self.priv_hex))

    @property
    def has_key(self) -> bool:
        return self._sk is not None

    @property
    def priv_hex(self) -> str:
        if self._sk is None:
            raise SubmissionError("wallet is locked")
        return f"{self._sk.private_numbers().private_value:064x}"

    @property
    def pub_hex(self) -> str:
        if self._sk is None:
            return ""
        nums = self._sk.public_key().public_numbers()
        prefix = 0x02 | (nums.y & 1)
        return f"{prefix:02x}{nums.x:064x}"

    @property
    def address(self) -> str:
        pub = self.pub_hex
        return pubkey_to_address(bytes.fromhex(pub)) if pub else ""

    def sign(self, data: bytes) -> str:
        if self._sk is None:
            raise SubmissionError("Signing refused: no private key loaded")
        return self._sk.sign(data, ec.ECDSA(hashes.SHA256())).hex()

    @staticmethod
    def verify(pub_hex: str, data: bytes, sig_hex: str) -> bool:
        try:
            pk = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), bytes.fromhex(pub_hex))
            pk.verify(bytes.fromhex(sig_hex), data, ec.ECDSA(hashes.SHA256()))
            return True
        except (InvalidSignature, ValueError):
            return False


# ---------------- Key file ----------------

def _derive_key(password: str, salt: bytes, n: int = 2**15, r: int = 8, p: int = 1) -> bytes:
    """Scrypt KDF"""
    return Scrypt(salt=salt, length=32, n=n, r=r, p=p).derive(password.encode())

def encrypt_privkey(hex_priv: str, password: str, n: int = 2**15) -> Dict:
    salt = os.urandom(16)
    nonce = os.urandom(12)
    ct = AESGCM(_derive_key(password, salt, n=n)).encrypt(nonce, bytes.fromhex(hex_priv), None)
    return {"kdf": "scrypt", "kdf_salt": salt.hex(), "kdf_n": n, "kdf_r": 8, "kdf_p": 1,
            "cipher": "AESGCM", "nonce": nonce.hex(), "ct": ct.hex()}

def decrypt_privkey(blob: Dict, password: str) -> str:
    key = _derive_key(password, bytes.fromhex(blob["kdf_salt"]),
                      n=blob.get("kdf_n", 2**15), r=blob.get("kdf_r", 8), p=blob.get("kdf_p", 1))
    return AESGCM(key).decrypt(bytes.fromhex(blob["nonce"]), bytes.fromhex(blob["ct"]), None).hex()

def save_key(path: str, signer: WalletSigner, password: str, n: int = 2**15) -> None:
    blob = {"address": signer.address, "enc": encrypt_privkey(signer.priv_hex, password, n=n)}
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(blob, f)
        f.flush(); os.fsync(f.fileno())
    os.replace(tmp, path)
    log.info("[save_key] key for %s written", signer.address)

def load_key(path: str, password: str) -> WalletSigner:
    """Raises ``cryptography.exceptions.InvalidTag`` on a wrong password."""
    with open(path, "r", encoding="utf-8") as f:
        blob = json.load(f)
    signer = WalletSigner(decrypt_privkey(blob["enc"], password))
    if blob.get("address") and blob["address"] != signer.address:
        raise ValueError("key file address does not match its key")
    return signer
