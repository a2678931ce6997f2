"""
Test capability key generation and comparison
"""

import re

import pytest

from tether.utils import SessionCredentials, keys_match, new_session_credentials, random_key

HEX = re.compile(r'^[0-9a-f]+$')


class TestRandomKey:

    @pytest.mark.parametrize("byte_length", [1, 4, 8, 32])
    def test_length_is_twice_bytes(self, byte_length):
        key = random_key(byte_length)
        assert len(key) == 2 * byte_length
        assert HEX.match(key)

    @pytest.mark.parametrize("byte_length", [0, -1])
    def test_rejects_non_positive_length(self, byte_length):
        with pytest.raises(ValueError):
            random_key(byte_length)

    def test_keys_do_not_repeat(self):
        keys = {random_key(8) for _ in range(1000)}
        assert len(keys) == 1000


class TestSessionCredentials:

    def test_shape(self):
        credentials = new_session_credentials()

        assert isinstance(credentials, SessionCredentials)
        assert re.match(r'^[0-9a-f]{8}$', credentials.session_id)
        assert re.match(r'^[0-9a-f]{16}$', credentials.write_key)
        assert re.match(r'^[0-9a-f]{16}$', credentials.read_key)

    def test_write_and_read_keys_differ(self):
        for _ in range(1000):
            credentials = new_session_credentials()
            assert credentials.write_key != credentials.read_key

    def test_read_key_redrawn_on_collision(self, monkeypatch):
        draws = iter(["aaaaaaaaaaaaaaaa", "aaaaaaaaaaaaaaaa", "bbbbbbbbbbbbbbbb", "01234567"])
        monkeypatch.setattr("tether.utils.keys.random_key", lambda _n: next(draws))

        credentials = new_session_credentials()
        assert credentials.write_key == "aaaaaaaaaaaaaaaa"
        assert credentials.read_key == "bbbbbbbbbbbbbbbb"
        assert credentials.session_id == "01234567"


class TestKeysMatch:

    def test_equal_keys(self):
        assert keys_match("1111222233334444", "1111222233334444")

    @pytest.mark.parametrize("supplied", ["", "1111222233334445", "111122223333444", "11112222333344440", None])
    def test_mismatches(self, supplied):
        assert not keys_match(supplied, "1111222233334444")

    def test_non_ascii_input(self):
        assert not keys_match("ключ", "1111222233334444")
