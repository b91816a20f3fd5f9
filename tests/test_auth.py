"""Tests for exchange bearer-token signing (ES256 / EdDSA)."""

import base64

import jwt
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from exchange.auth import AuthTokenSigner, normalize_key_material
from exchange.errors import InvalidKeyMaterial

KEY_NAME = "organizations/org-1/apiKeys/key-1"
NOW = 1_700_000_000
FILLS_PATH = "/api/v3/brokerage/orders/historical/fills?order_ids=a&order_ids=b"
NO_TIME_CHECKS = {"verify_exp": False, "verify_nbf": False}


def _b64url_decode(part: str) -> bytes:
    return base64.urlsafe_b64decode(part + "=" * (-len(part) % 4))


def _pem(key, fmt=serialization.PrivateFormat.TraditionalOpenSSL) -> str:
    return key.private_bytes(serialization.Encoding.PEM, fmt, serialization.NoEncryption()).decode()


@pytest.fixture
def ec_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def ed_key() -> ed25519.Ed25519PrivateKey:
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture
def es_signer(ec_key) -> AuthTokenSigner:
    return AuthTokenSigner(KEY_NAME, _pem(ec_key), "ES256", clock=lambda: NOW, nonce_factory=lambda: "ab" * 16)


class TestES256:
    def test_claims_and_header(self, es_signer: AuthTokenSigner, ec_key) -> None:
        token = es_signer.build_token("GET", FILLS_PATH)
        header = jwt.get_unverified_header(token)
        assert header == {"alg": "ES256", "kid": KEY_NAME, "nonce": "ab" * 16, "typ": "JWT"}

        claims = jwt.decode(token, ec_key.public_key(), algorithms=["ES256"], options=NO_TIME_CHECKS)
        assert claims == {
            "iss": "cdp",
            "sub": KEY_NAME,
            "nbf": NOW,
            "exp": NOW + 60,
            "uri": f"GET api.coinbase.com{FILLS_PATH}",
        }

    def test_signature_is_raw_r_s(self, es_signer: AuthTokenSigner, ec_key) -> None:
        token = es_signer.build_token("GET", "/api/v3/brokerage/accounts")
        header_b64, payload_b64, sig_b64 = token.split(".")
        sig = _b64url_decode(sig_b64)
        assert len(sig) == 64

        r = int.from_bytes(sig[:32], "big")
        s = int.from_bytes(sig[32:], "big")
        ec_key.public_key().verify(
            encode_dss_signature(r, s),
            f"{header_b64}.{payload_b64}".encode(),
            ec.ECDSA(hashes.SHA256()),
        )

    def test_der_signature_rejected(self, es_signer: AuthTokenSigner, ec_key) -> None:
        token = es_signer.build_token("GET", "/api/v3/brokerage/accounts")
        header_b64, payload_b64, _ = token.split(".")
        der = ec_key.sign(f"{header_b64}.{payload_b64}".encode(), ec.ECDSA(hashes.SHA256()))
        forged = f"{header_b64}.{payload_b64}.{base64.urlsafe_b64encode(der).rstrip(b'=').decode()}"
        with pytest.raises(jwt.InvalidSignatureError):
            jwt.decode(forged, ec_key.public_key(), algorithms=["ES256"], options=NO_TIME_CHECKS)

    def test_fresh_nonce_per_token(self, ec_key) -> None:
        signer = AuthTokenSigner(KEY_NAME, _pem(ec_key))
        first = jwt.get_unverified_header(signer.build_token("GET", "/a"))["nonce"]
        second = jwt.get_unverified_header(signer.build_token("GET", "/a"))["nonce"]
        assert first != second
        assert len(first) == 32
        int(first, 16)

    def test_pkcs8_and_escaped_newlines(self, ec_key) -> None:
        mangled = '"' + _pem(ec_key, serialization.PrivateFormat.PKCS8).replace("\n", "\\n") + '"'
        signer = AuthTokenSigner(KEY_NAME, mangled, clock=lambda: NOW)
        token = signer.build_token("GET", "/x")
        jwt.decode(token, ec_key.public_key(), algorithms=["ES256"], options=NO_TIME_CHECKS)

    def test_wrong_curve(self) -> None:
        p384 = ec.generate_private_key(ec.SECP384R1())
        with pytest.raises(InvalidKeyMaterial, match="P-256"):
            AuthTokenSigner(KEY_NAME, _pem(p384))


class TestEdDSA:
    def test_pem_key(self, ed_key) -> None:
        pem = _pem(ed_key, serialization.PrivateFormat.PKCS8)
        signer = AuthTokenSigner(KEY_NAME, pem, "EdDSA", clock=lambda: NOW)
        token = signer.build_token("get", "/api/v3/brokerage/accounts")
        assert jwt.get_unverified_header(token)["alg"] == "EdDSA"
        claims = jwt.decode(token, ed_key.public_key(), algorithms=["EdDSA"], options=NO_TIME_CHECKS)
        assert claims["uri"] == "GET api.coinbase.com/api/v3/brokerage/accounts"

    @pytest.mark.parametrize("with_public", [False, True])
    def test_base64_seed(self, ed_key, with_public: bool) -> None:
        seed = ed_key.private_bytes(
            serialization.Encoding.Raw, serialization.PrivateFormat.Raw, serialization.NoEncryption()
        )
        if with_public:
            seed += ed_key.public_key().public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        signer = AuthTokenSigner(KEY_NAME, base64.b64encode(seed).decode(), "eddsa", clock=lambda: NOW)
        token = signer.build_token("GET", "/x")
        jwt.decode(token, ed_key.public_key(), algorithms=["EdDSA"], options=NO_TIME_CHECKS)

    def test_mismatched_public_half(self, ed_key) -> None:
        seed = ed_key.private_bytes(
            serialization.Encoding.Raw, serialization.PrivateFormat.Raw, serialization.NoEncryption()
        )
        other = ed25519.Ed25519PrivateKey.generate().public_key()
        material = seed + other.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        with pytest.raises(InvalidKeyMaterial, match="public half"):
            AuthTokenSigner(KEY_NAME, base64.b64encode(material).decode(), "EdDSA")

    def test_bad_seed_length(self) -> None:
        with pytest.raises(InvalidKeyMaterial, match="32 or 64"):
            AuthTokenSigner(KEY_NAME, base64.b64encode(b"x" * 16).decode(), "EdDSA")


class TestKeyErrors:
    def test_garbage_key(self) -> None:
        with pytest.raises(InvalidKeyMaterial):
            AuthTokenSigner(KEY_NAME, "not a key")

    def test_empty_key(self) -> None:
        with pytest.raises(InvalidKeyMaterial):
            AuthTokenSigner(KEY_NAME, "")

    def test_ed25519_key_for_es256(self, ed_key) -> None:
        with pytest.raises(InvalidKeyMaterial, match="EC private key"):
            AuthTokenSigner(KEY_NAME, _pem(ed_key, serialization.PrivateFormat.PKCS8), "ES256")

    def test_unknown_algorithm(self, ec_key) -> None:
        with pytest.raises(InvalidKeyMaterial, match="unsupported"):
            AuthTokenSigner(KEY_NAME, _pem(ec_key), "RS256")

    def test_missing_key_name(self, ec_key) -> None:
        with pytest.raises(InvalidKeyMaterial):
            AuthTokenSigner("  ", _pem(ec_key))

    def test_is_value_error(self) -> None:
        assert issubclass(InvalidKeyMaterial, ValueError)


class TestUri:
    def test_host_scheme_stripped(self, ec_key) -> None:
        signer = AuthTokenSigner(KEY_NAME, _pem(ec_key), host="https://api.coinbase.com")
        assert signer.build_uri("get", "/api/v3/brokerage/accounts") == "GET api.coinbase.com/api/v3/brokerage/accounts"

    def test_query_kept_verbatim(self, es_signer: AuthTokenSigner) -> None:
        assert es_signer.build_uri("GET", FILLS_PATH).endswith("fills?order_ids=a&order_ids=b")

    def test_leading_slash_added(self, es_signer: AuthTokenSigner) -> None:
        assert es_signer.build_uri("GET", "v2/x") == "GET api.coinbase.com/v2/x"


def test_normalize_key_material() -> None:
    assert normalize_key_material("'a\\nb'") == "a\nb"
    assert normalize_key_material("a\r\nb\n") == "a\nb"
    assert normalize_key_material(None) == ""
