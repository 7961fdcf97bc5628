"""Tests for password hashing and secret comparison."""

import pytest

from ephemera.security import PasswordHasher, constant_time_equals


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


class TestPasswordHasher:
    def test_round_trip(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("correct horse")
        assert hashed.startswith("$2")
        assert hasher.verify("correct horse", hashed)
        assert not hasher.verify("battery staple", hashed)

    def test_salted(self, hasher: PasswordHasher) -> None:
        assert hasher.hash("same") != hasher.hash("same")

    def test_empty_password(self, hasher: PasswordHasher) -> None:
        with pytest.raises(ValueError):
            hasher.hash("")
        assert not hasher.verify("", hasher.hash("x"))

    def test_malformed_hash_denies(self, hasher: PasswordHasher) -> None:
        assert not hasher.verify("anything", "not-a-bcrypt-hash")

    def test_long_passwords_truncated(self, hasher: PasswordHasher) -> None:
        base = "a" * 72
        hashed = hasher.hash(base + "tail")
        assert hasher.verify(base + "different tail", hashed)

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_rounds_validated(self, rounds: int) -> None:
        with pytest.raises(ValueError, match="Rounds must be between"):
            PasswordHasher(rounds=rounds)

    async def test_async_wrappers(self, hasher: PasswordHasher) -> None:
        hashed = await hasher.hash_async("pw")
        assert await hasher.verify_async("pw", hashed)
        assert not await hasher.verify_async("nope", hashed)


def test_constant_time_equals() -> None:
    assert constant_time_equals("Bearer abc", "Bearer abc")
    assert not constant_time_equals("Bearer abd", "Bearer abc")
    assert not constant_time_equals("", "Bearer abc")
