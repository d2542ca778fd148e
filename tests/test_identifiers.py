"""Tests for the identifier codec."""

import uuid

import pytest

from schemaledger.exceptions import InvalidLength, MalformedIdentifier
from schemaledger.identifiers import canonical, decode, encode, is_valid, new_id


def test_encode_reorders_time_fields():
    text = "aabbccdd-eeff-1122-3344-556677889900"
    assert encode(text).hex() == "1122eeffaabbccdd3344556677889900"


def test_decode_restores_canonical_text():
    assert decode(bytes.fromhex("1122eeffaabbccdd3344556677889900")) == (
        "aabbccdd-eeff-1122-3344-556677889900"
    )


def test_matches_mysql_uuid_to_bin_swap():
    # Reference value from the MySQL UUID_TO_BIN(x, 1) documentation.
    text = "6ccd780c-baba-1026-9564-5b8c656024db"
    assert encode(text).hex() == "1026baba6ccd780c95645b8c656024db"


def test_round_trip_many_generated_ids():
    for _ in range(200):
        value = new_id()
        assert decode(encode(value)) == value
    for _ in range(200):
        value = str(uuid.uuid4())
        assert decode(encode(value)) == value


def test_encode_is_sixteen_bytes():
    assert len(encode(new_id())) == 16


def test_encode_accepts_uuid_instance_and_upper_case():
    value = uuid.uuid1()
    assert encode(value) == encode(str(value))
    assert decode(encode(str(value).upper())) == str(value)


def test_round_trip_returns_canonical_lowercase():
    mixed = "6BA7B810-9dad-11D1-80b4-00C04FD430C8"
    assert canonical(mixed) == mixed.lower()
    assert decode(encode(mixed)) == canonical(mixed)
    assert encode(mixed) == encode(mixed.lower())


def test_canonical_rejects_malformed():
    with pytest.raises(MalformedIdentifier):
        canonical("6ba7b810-9dad-11d1-80b4")


def test_time_ordered_ids_sort_in_storage_form():
    first = "00000001-0000-11ef-8000-000000000000"
    later_low = "ffffffff-0000-11ef-8000-000000000000"
    later_high = "00000000-0000-11f0-8000-000000000000"
    assert encode(first) < encode(later_low) < encode(later_high)


@pytest.mark.parametrize("bad", [
    "",
    "not-a-uuid",
    "aabbccdd-eeff-1122-3344-55667788990",      # short node
    "aabbccdd-eeff-1122-3344-5566778899000",    # long node
    "aabbccddeeff112233445566778899aa",         # no hyphens
    "{aabbccdd-eeff-1122-3344-556677889900}",   # braces
    "aabbccdd-eeff-1122-3344-55667788990g",     # non-hex
    "aabbccdd-eeff-1122-3344-556677889900\n",   # trailing newline
    None,
    42,
    b"aabbccdd-eeff-1122-3344-556677889900",
])
def test_encode_rejects_malformed(bad):
    with pytest.raises(MalformedIdentifier):
        encode(bad)


@pytest.mark.parametrize("length", [0, 1, 15, 17, 32])
def test_decode_rejects_wrong_length(length):
    with pytest.raises(InvalidLength) as exc:
        decode(b"\x00" * length)
    assert exc.value.length == length


def test_decode_rejects_non_bytes():
    with pytest.raises(InvalidLength):
        decode("00" * 16)


def test_decode_accepts_bytearray_and_memoryview():
    raw = encode("aabbccdd-eeff-1122-3344-556677889900")
    assert decode(bytearray(raw)) == decode(memoryview(raw)) == decode(raw)


def test_is_valid():
    assert is_valid(new_id())
    assert not is_valid("nope")
    assert not is_valid(None)
