from urllib.parse import parse_qs, urlsplit

import pytest

from streamcore.delivery import (
    StreamURLBuilder,
    compute_signature,
    sign_stream_url,
    sign_url,
    validate_signature,
)
from streamcore.exceptions import ConfigurationError, SigningError

SECRET = "s3cret"
NOW = 1_700_000_000


def _query(url: str) -> dict:
    return {name: values[0] for name, values in parse_qs(urlsplit(url).query).items()}


def test_signed_url_round_trip() -> None:
    url = sign_url("https://cdn.example.com", SECRET, "/stream/ch1/seg.ts", NOW + 900)
    parts = urlsplit(url)
    params = _query(url)

    assert parts.netloc == "cdn.example.com"
    assert parts.path == "/stream/ch1/seg.ts"
    assert params["expires"] == str(NOW + 900)
    assert validate_signature(SECRET, parts.path, params["expires"], params["sig"], now=lambda: NOW) is True


def test_signature_is_hmac_sha256_hex_of_path_and_expiry() -> None:
    sig = compute_signature(SECRET, "/stream/ch1/seg.ts", NOW)

    assert len(sig) == 64
    assert sig == compute_signature(SECRET, "/stream/ch1/seg.ts", NOW)
    assert sig != compute_signature(SECRET, "/stream/ch1/seg.ts", NOW + 1)


def test_tampering_with_any_input_invalidates_signature() -> None:
    expires = NOW + 900
    sig = compute_signature(SECRET, "/stream/ch1/seg.ts", expires)
    clock = lambda: NOW  # noqa: E731

    assert validate_signature(SECRET, "/stream/ch2/seg.ts", expires, sig, now=clock) is False
    assert validate_signature("other", "/stream/ch1/seg.ts", expires, sig, now=clock) is False
    assert validate_signature(SECRET, "/stream/ch1/seg.ts", expires + 60, sig, now=clock) is False
    flipped = sig[:-1] + ("1" if sig[-1] == "0" else "0")
    assert validate_signature(SECRET, "/stream/ch1/seg.ts", expires, flipped, now=clock) is False


def test_expiry_boundary() -> None:
    expires = NOW + 10
    sig = compute_signature(SECRET, "/p", expires)

    assert validate_signature(SECRET, "/p", expires, sig, now=lambda: expires - 1) is True
    assert validate_signature(SECRET, "/p", expires, sig, now=lambda: expires) is False
    assert validate_signature(SECRET, "/p", expires, sig, now=lambda: expires + 1) is False


def test_empty_or_malformed_inputs_are_rejected() -> None:
    sig = compute_signature(SECRET, "/p", NOW + 10)
    clock = lambda: NOW  # noqa: E731

    assert validate_signature("", "/p", NOW + 10, sig, now=clock) is False
    assert validate_signature(SECRET, "", NOW + 10, sig, now=clock) is False
    assert validate_signature(SECRET, "/p", NOW + 10, "", now=clock) is False
    assert validate_signature(SECRET, "/p", None, sig, now=clock) is False
    assert validate_signature(SECRET, "/p", "soon", sig, now=clock) is False


def test_sign_url_never_doubles_slashes() -> None:
    url = sign_url("https://cdn.example.com/", SECRET, "/stream/ch1/seg.ts", NOW)

    assert url.startswith("https://cdn.example.com/stream/ch1/seg.ts?")
    assert "//stream" not in url


@pytest.mark.parametrize(
    "path",
    ["/stream/ch1/seg.ts", "/stream/ch1/720p/index.m3u8", "/stream/ch1/key/20240101"],
)
def test_signed_path_validates_exactly_as_given(path: str) -> None:
    params = _query(sign_url("https://cdn.example.com", SECRET, path, NOW + 60))

    assert validate_signature(SECRET, path, params["expires"], params["sig"], now=lambda: NOW) is True


@pytest.mark.parametrize(
    "path",
    ["stream/ch1/seg.ts", " /stream/ch1/seg.ts", "/stream/ch1/seg.ts ", "/stream/ch1/seg.ts?x=1", "/seg.ts#t=1"],
)
def test_sign_url_refuses_paths_a_client_would_not_send(path: str) -> None:
    with pytest.raises(SigningError):
        sign_url("https://cdn.example.com", SECRET, path, NOW + 60)


def test_sign_url_requires_secret_and_path() -> None:
    with pytest.raises(SigningError):
        sign_url("https://cdn", "", "/p", NOW)
    with pytest.raises(SigningError):
        sign_url("https://cdn", SECRET, "", NOW)
    with pytest.raises(ValueError):
        sign_url("https://cdn", "", "/p", NOW)


def test_sign_stream_url_uses_fifteen_minute_default() -> None:
    url = sign_stream_url("https://cdn", SECRET, "ch1", "seg-1.ts", now=lambda: NOW)

    assert urlsplit(url).path == "/stream/ch1/seg-1.ts"
    assert _query(url)["expires"] == str(NOW + 900)


def test_url_builder_private_mode_returns_origin_urls() -> None:
    builder = StreamURLBuilder(mode="private", origin_base="http://origin:8090/")

    assert builder.segment_url("ch1", "seg.ts") == "http://origin:8090/stream/ch1/seg.ts"
    assert builder.key_url("ch1", "20240101") == "http://origin:8090/stream/ch1/key/20240101"


def test_url_builder_public_mode_signs_cdn_urls() -> None:
    builder = StreamURLBuilder(
        mode="public",
        cdn_base="https://cdn.example.com",
        secret=SECRET,
        clock=lambda: NOW,
    )
    url = builder.playlist_url("ch1")
    params = _query(url)

    assert url.startswith("https://cdn.example.com/stream/ch1/stream.m3u8?")
    assert validate_signature(SECRET, "/stream/ch1/stream.m3u8", params["expires"], params["sig"], now=lambda: NOW)


def test_url_builder_public_mode_requires_secret() -> None:
    with pytest.raises(ConfigurationError):
        StreamURLBuilder(mode="public", cdn_base="https://cdn")
    with pytest.raises(ConfigurationError):
        StreamURLBuilder(mode="sideways")
