"""
Deploy signing and address derivation.

Everything in this module is pure: no network access, no state, and no
logging of key material, since private keys only pass through momentarily.
"""
import hashlib
from typing import Union

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    encode_dss_signature,
)
from eth_keys import keys
from eth_utils import keccak

from .exceptions import SigningError
from .models import Deploy, SignedDeploy
from .proto import serialize_deploy

SIG_ALGORITHM = "secp256k1"

# Order of the secp256k1 group
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# coin id + version prepended to REV/ASI addresses
_REV_PREFIX = "000000" + "00"

PrivateKeyLike = Union[str, bytes]


def _load_private_key(private_key: PrivateKeyLike) -> keys.PrivateKey:
    if isinstance(private_key, str):
        text = private_key.strip()
        if text.startswith(("0x", "0X")):
            text = text[2:]
        try:
            key_bytes = bytes.fromhex(text)
        except ValueError:
            raise SigningError("Invalid private key: not a hex string")
    elif isinstance(private_key, bytes):
        key_bytes = private_key
    else:
        raise SigningError(f"Invalid private key type: {type(private_key).__name__}")

    if len(key_bytes) != 32:
        raise SigningError(f"Invalid private key: expected 32 bytes, got {len(key_bytes)}")
    if not 0 < int.from_bytes(key_bytes, "big") < SECP256K1_N:
        raise SigningError("Invalid private key: out of range for secp256k1")
    return keys.PrivateKey(key_bytes)


def deploy_digest(deploy: Deploy) -> bytes:
    """BLAKE2b-256 of the protobuf-serialized deploy"""
    return hashlib.blake2b(serialize_deploy(deploy), digest_size=32).digest()


def sign(deploy: Deploy, private_key: PrivateKeyLike) -> SignedDeploy:
    """
    Sign a deploy.

    The signature is deterministic (RFC 6979) and low-S canonical, DER encoded.

    Args:
        deploy: Deploy to sign
        private_key: secp256k1 private key, hex string or 32 raw bytes

    Returns:
        SignedDeploy carrying the uncompressed public key as ``deployer``

    Raises:
        SigningError: If the private key is malformed
    """
    key = _load_private_key(private_key)
    signature = key.sign_msg_hash(deploy_digest(deploy))

    s = signature.s if signature.s * 2 < SECP256K1_N else SECP256K1_N - signature.s
    der = encode_dss_signature(signature.r, s)

    return SignedDeploy(
        deploy=deploy,
        deployer="04" + key.public_key.to_bytes().hex(),
        signature=der.hex(),
        sig_algorithm=SIG_ALGORITHM,
    )


def verify(signed: SignedDeploy) -> bool:
    """Check the signature of a signed deploy against its ``deployer`` key"""
    if signed.sig_algorithm != SIG_ALGORITHM:
        return False
    try:
        public_key = ec.EllipticCurvePublicKey.from_encoded_point(
            ec.SECP256K1(), bytes.fromhex(signed.deployer)
        )
        # Prehashed only checks the digest length; BLAKE2b-256 is 32 bytes like SHA-256
        public_key.verify(
            bytes.fromhex(signed.signature),
            deploy_digest(signed.deploy),
            ec.ECDSA(Prehashed(hashes.SHA256())),
        )
        return True
    except (InvalidSignature, ValueError):
        return False


def public_key_from_private_key(private_key: PrivateKeyLike) -> str:
    """Uncompressed public key (``04`` prefixed) as hex"""
    return "04" + _load_private_key(private_key).public_key.to_bytes().hex()


def eth_address_from_public_key(public_key: str) -> str:
    """
    Derive the Ethereum-style address of a public key.

    Args:
        public_key: Uncompressed public key hex, with or without the ``04`` prefix
    """
    key_bytes = bytes.fromhex(public_key)
    if len(key_bytes) == 65:
        key_bytes = key_bytes[1:]
    if len(key_bytes) != 64:
        raise ValueError("Public key must be an uncompressed secp256k1 key")
    return "0x" + keccak(key_bytes)[-20:].hex()


def rev_address_from_eth_address(eth_address: str) -> str:
    """
    Derive the ASI (REV) address from an Ethereum-style address.

    Raises:
        ValueError: If the address is not 20 bytes of hex
    """
    eth_hex = eth_address[2:] if eth_address.startswith("0x") else eth_address
    if len(eth_hex) != 40:
        raise ValueError("Invalid ETH address length")

    payload = _REV_PREFIX + keccak(bytes.fromhex(eth_hex)).hex()
    checksum = hashlib.blake2b(bytes.fromhex(payload), digest_size=32).hexdigest()[:8]
    return base58.b58encode(bytes.fromhex(payload + checksum)).decode("ascii")


def address_from_private_key(private_key: PrivateKeyLike) -> str:
    """ASI address owned by a private key"""
    return rev_address_from_eth_address(
        eth_address_from_public_key(public_key_from_private_key(private_key))
    )
