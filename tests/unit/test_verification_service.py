"""
Unit tests for VerificationCodeManager.

Covers issuance, supersession of older codes, expiry, rate limiting and
single-use consumption under concurrency.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from identity.config import AuthPolicy
from identity.errors import (
    CodeInvalid,
    CodeExpired,
    CodeAlreadyUsed,
    RateLimited,
    InvalidRequest,
)
from identity.services import VerificationCodeManager
from identity.storage import SQLiteStorage


class TestIssue:

    @pytest.mark.unit
    def test_issue_code(self, codes, sample_user, clock):
        handle = codes.issue(sample_user, "email")

        assert handle.user_id == sample_user.user_id
        assert handle.channel == "email"
        assert handle.destination == sample_user.email
        assert len(handle.code) == 6
        assert handle.code.isdigit()
        assert handle.expires_at == clock.now + 600

    @pytest.mark.unit
    def test_code_not_stored_in_plaintext(self, codes, storage, sample_user):
        handle = codes.issue(sample_user, "email")

        stored = storage.get_active_code(sample_user.user_id, "email")
        assert stored.code_hash != handle.code

    @pytest.mark.unit
    def test_code_hidden_from_repr(self, codes, sample_user):
        handle = codes.issue(sample_user, "email")

        assert handle.code not in repr(handle)

    @pytest.mark.unit
    def test_phone_channels_use_phone(self, codes, sample_user):
        assert codes.issue(sample_user, "sms").destination == sample_user.phone
        assert codes.issue(sample_user, "chat").destination == sample_user.phone

    @pytest.mark.unit
    def test_code_length_follows_policy(self, storage, digester, clock, sample_user):
        manager = VerificationCodeManager(
            storage, digester, AuthPolicy(secret_key="k", code_length=8), clock=clock
        )

        assert len(manager.issue(sample_user, "email").code) == 8

    @pytest.mark.unit
    def test_unknown_channel(self, codes, sample_user):
        with pytest.raises(InvalidRequest):
            codes.issue(sample_user, "pigeon")

    @pytest.mark.unit
    def test_missing_destination(self, codes, credentials, test_config):
        user = credentials.create(email="nophone@example.com", password=test_config["test_password"])

        with pytest.raises(InvalidRequest):
            codes.issue(user, "sms")


class TestConsume:

    @pytest.mark.unit
    def test_consume_valid_code(self, codes, sample_user):
        handle = codes.issue(sample_user, "email")

        codes.consume(sample_user.user_id, "email", handle.code)

    @pytest.mark.unit
    def test_consume_strips_whitespace(self, codes, sample_user):
        handle = codes.issue(sample_user, "email")

        codes.consume(sample_user.user_id, "email", f" {handle.code}\n")

    @pytest.mark.unit
    def test_wrong_code(self, codes, sample_user):
        handle = codes.issue(sample_user, "email")
        wrong = "0" * 6 if handle.code != "0" * 6 else "1" * 6

        with pytest.raises(CodeInvalid):
            codes.consume(sample_user.user_id, "email", wrong)

        # A wrong guess does not burn the code
        codes.consume(sample_user.user_id, "email", handle.code)

    @pytest.mark.unit
    def test_no_code_issued(self, codes, sample_user):
        with pytest.raises(CodeInvalid):
            codes.consume(sample_user.user_id, "email", "123456")

    @pytest.mark.unit
    def test_code_scoped_to_channel(self, codes, sample_user):
        handle = codes.issue(sample_user, "email")

        with pytest.raises(CodeInvalid):
            codes.consume(sample_user.user_id, "sms", handle.code)

    @pytest.mark.unit
    def test_second_use(self, codes, sample_user):
        handle = codes.issue(sample_user, "email")
        codes.consume(sample_user.user_id, "email", handle.code)

        with pytest.raises(CodeAlreadyUsed):
            codes.consume(sample_user.user_id, "email", handle.code)

    @pytest.mark.unit
    def test_stale_code_after_reissue(self, codes, sample_user):
        """Issuing a new code invalidates the previous unused one."""
        first = codes.issue(sample_user, "email")
        second = codes.issue(sample_user, "email")

        if first.code != second.code:
            with pytest.raises(CodeInvalid):
                codes.consume(sample_user.user_id, "email", first.code)

        codes.consume(sample_user.user_id, "email", second.code)

    @pytest.mark.unit
    def test_expired_code(self, codes, sample_user, clock):
        handle = codes.issue(sample_user, "email")
        clock.advance(600)

        with pytest.raises(CodeExpired):
            codes.consume(sample_user.user_id, "email", handle.code)

    @pytest.mark.unit
    def test_valid_just_before_expiry(self, codes, sample_user, clock):
        handle = codes.issue(sample_user, "email")
        clock.advance(599)

        codes.consume(sample_user.user_id, "email", handle.code)

    @pytest.mark.unit
    def test_reissue_after_expiry(self, codes, sample_user, clock):
        codes.issue(sample_user, "email")
        clock.advance(601)

        handle = codes.issue(sample_user, "email")
        codes.consume(sample_user.user_id, "email", handle.code)


class TestRateLimit:

    @pytest.mark.unit
    def test_rate_limited_after_max(self, codes, sample_user, clock):
        for _ in range(5):
            codes.issue(sample_user, "email")
            clock.advance(10)

        with pytest.raises(RateLimited) as exc_info:
            codes.issue(sample_user, "email")

        # Oldest code was issued 50s ago in a 900s window
        assert exc_info.value.retry_after == 850

    @pytest.mark.unit
    def test_rate_limit_is_per_channel(self, codes, sample_user):
        for _ in range(5):
            codes.issue(sample_user, "email")

        assert codes.issue(sample_user, "sms").channel == "sms"

    @pytest.mark.unit
    def test_rate_limit_window_expires(self, codes, sample_user, clock):
        for _ in range(5):
            codes.issue(sample_user, "email")

        clock.advance(901)

        assert codes.issue(sample_user, "email") is not None

    @pytest.mark.unit
    def test_rate_limited_keeps_active_code(self, codes, sample_user):
        handles = [codes.issue(sample_user, "email") for _ in range(5)]

        with pytest.raises(RateLimited):
            codes.issue(sample_user, "email")

        codes.consume(sample_user.user_id, "email", handles[-1].code)


class TestConcurrentConsume:

    def _race(self, manager, user_id, code, workers=16):
        def attempt(_):
            try:
                manager.consume(user_id, "email", code)
                return "ok"
            except CodeAlreadyUsed:
                return "used"

        with ThreadPoolExecutor(max_workers=8) as pool:
            return list(pool.map(attempt, range(workers)))

    @pytest.mark.unit
    def test_single_success_in_memory(self, codes, sample_user):
        handle = codes.issue(sample_user, "email")

        outcomes = self._race(codes, sample_user.user_id, handle.code)

        assert outcomes.count("ok") == 1
        assert outcomes.count("used") == len(outcomes) - 1

    @pytest.mark.unit
    def test_single_success_in_sqlite(self, tmp_path, digester, policy, clock, password_handler, test_config):
        from identity.services import CredentialStore

        storage = SQLiteStorage(str(tmp_path / "identity.db"))
        user = CredentialStore(storage, password_handler).create(
            email=test_config["test_email"], password=test_config["test_password"]
        )
        manager = VerificationCodeManager(storage, digester, policy, clock=clock)
        handle = manager.issue(user, "email")

        outcomes = self._race(manager, user.user_id, handle.code)

        assert outcomes.count("ok") == 1
        storage.close()
