"""
Tests for deploy signing and address derivation.
"""
import hashlib

import base58
import pytest
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from hypothesis import given, settings, strategies as st

from asichain_sdk.exceptions import SigningError
from asichain_sdk.models import Deploy
from asichain_sdk.proto import serialize_deploy
from asichain_sdk.signer import (
    SECP256K1_N,
    address_from_private_key,
    eth_address_from_public_key,
    public_key_from_private_key,
    rev_address_from_eth_address,
    sign,
    verify,
)
from conftest import TEST_OTHER_PRIV_KEY, TEST_PRIV_KEY


def make_deploy(**overrides):
    fields = dict(
        term='new x in { x!("hello") }',
        phlo_limit=500000,
        phlo_price=1,
        valid_after_block_number=42,
        timestamp=1700000000000,
        shard_id="root",
    )
    fields.update(overrides)
    return Deploy(**fields)


class TestSerialization:
    """Protobuf encoding of the signed deploy data."""

    def test_known_encoding(self):
        """Fields are emitted in field-number order and defaults are skipped."""
        deploy = make_deploy(
            term="x", timestamp=1, phlo_price=1, phlo_limit=1,
            valid_after_block_number=0, shard_id="",
        )
        assert serialize_deploy(deploy) == b"\x12\x01x\x18\x01\x38\x01\x40\x01"

    def test_shard_and_block_number_are_encoded(self):
        deploy = make_deploy(term="", timestamp=0, phlo_price=0, phlo_limit=0,
                             valid_after_block_number=5, shard_id="root")
        assert serialize_deploy(deploy) == b"\x50\x05\x5a\x04root"


class TestSign:
    """Signing behaviour."""

    def test_sign_is_deterministic(self):
        deploy = make_deploy()
        first = sign(deploy, TEST_PRIV_KEY)
        second = sign(deploy, TEST_PRIV_KEY)

        assert first.signature == second.signature
        assert first.deployer == second.deployer
        assert first.sig_algorithm == "secp256k1"

    def test_signature_verifies(self):
        signed = sign(make_deploy(), TEST_PRIV_KEY)
        assert verify(signed)

    def test_signature_is_low_s(self):
        signed = sign(make_deploy(), TEST_PRIV_KEY)
        _, s = decode_dss_signature(bytes.fromhex(signed.signature))
        assert s <= SECP256K1_N // 2

    def test_deployer_is_uncompressed_public_key(self):
        signed = sign(make_deploy(), TEST_PRIV_KEY)
        assert signed.deployer.startswith("04")
        assert len(signed.deployer) == 130
        assert signed.deployer == public_key_from_private_key(TEST_PRIV_KEY)

    def test_accepts_prefixed_hex_and_bytes(self):
        deploy = make_deploy()
        plain = sign(deploy, TEST_PRIV_KEY)
        assert sign(deploy, "0x" + TEST_PRIV_KEY).signature == plain.signature
        assert sign(deploy, bytes.fromhex(TEST_PRIV_KEY)).signature == plain.signature

    def test_tampered_deploy_fails_verification(self):
        signed = sign(make_deploy(), TEST_PRIV_KEY)
        tampered = signed.model_copy(update={"deploy": make_deploy(phlo_limit=1)})
        assert not verify(tampered)

    def test_other_key_fails_verification(self):
        signed = sign(make_deploy(), TEST_PRIV_KEY)
        other = sign(make_deploy(), TEST_OTHER_PRIV_KEY)
        forged = signed.model_copy(update={"deployer": other.deployer})
        assert not verify(forged)

    def test_garbage_signature_does_not_raise(self):
        signed = sign(make_deploy(), TEST_PRIV_KEY)
        assert not verify(signed.model_copy(update={"signature": "00ff"}))

    @pytest.mark.parametrize("bad_key", [
        "",
        "not-hex",
        "ab" * 31,
        "00" * 32,
        format(SECP256K1_N, "064x"),
    ])
    def test_malformed_key_raises_signing_error(self, bad_key):
        with pytest.raises(SigningError):
            sign(make_deploy(), bad_key)

    def test_wire_payload_shape(self):
        signed = sign(make_deploy(), TEST_PRIV_KEY)
        wire = signed.to_wire()

        assert set(wire) == {"data", "sigAlgorithm", "signature", "deployer"}
        assert wire["data"] == {
            "term": 'new x in { x!("hello") }',
            "timestamp": 1700000000000,
            "phloPrice": 1,
            "phloLimit": 500000,
            "validAfterBlockNumber": 42,
            "shardId": "root",
        }


@settings(max_examples=25, deadline=None)
@given(term=st.text(max_size=200), block=st.integers(min_value=0, max_value=2**40))
def test_any_deploy_signs_and_verifies(term, block):
    """Every well-formed deploy produces a verifiable signature."""
    signed = sign(make_deploy(term=term, valid_after_block_number=block), TEST_PRIV_KEY)
    assert verify(signed)


class TestAddresses:
    """Address derivation."""

    def test_eth_address_of_key_one(self):
        public_key = public_key_from_private_key("00" * 31 + "01")
        assert eth_address_from_public_key(public_key) == "0x7e5f4552091a69125d5dfcb7b8c2659029395bdf"

    def test_eth_address_accepts_key_without_prefix(self):
        public_key = public_key_from_private_key(TEST_PRIV_KEY)
        assert eth_address_from_public_key(public_key[2:]) == eth_address_from_public_key(public_key)

    def test_rev_address_structure(self):
        address = address_from_private_key(TEST_PRIV_KEY)
        raw = base58.b58decode(address)

        # 4 prefix bytes, 32 byte keccak hash, 4 byte checksum
        assert len(raw) == 40
        assert address.startswith("1111")
        payload, checksum = raw[:-4], raw[-4:]
        assert hashlib.blake2b(payload, digest_size=32).digest()[:4] == checksum

    def test_rev_address_rejects_bad_length(self):
        with pytest.raises(ValueError):
            rev_address_from_eth_address("0x1234")

    def test_distinct_keys_give_distinct_addresses(self):
        assert address_from_private_key(TEST_PRIV_KEY) != address_from_private_key(TEST_OTHER_PRIV_KEY)
