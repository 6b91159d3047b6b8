import asyncio
import re
from collections.abc import Iterator
from datetime import timedelta

import pytest

from identity.auth import otp
from identity.auth.constants import OTPStatus
from identity.auth.otp import InMemoryOTPLedger, generate_code

EMAIL = "a@x.com"


@pytest.fixture
def fixed_codes(monkeypatch: pytest.MonkeyPatch) -> Iterator[list[str]]:
    """Make issue() hand out 1111, 2222, 3333, ... in order."""
    codes = [str(d) * 4 for d in range(1, 10)]
    issued = iter(codes)
    monkeypatch.setattr(otp, "generate_code", lambda: next(issued))
    yield codes


def test_generate_code_is_four_digits_in_range() -> None:
    for _ in range(500):
        code = generate_code()
        assert re.fullmatch(r"\d{4}", code)
        assert 1000 <= int(code) <= 9999


@pytest.mark.asyncio
async def test_issue_then_verify_is_valid(ledger: InMemoryOTPLedger) -> None:
    code = await ledger.issue(EMAIL)
    assert await ledger.verify(EMAIL, code) is OTPStatus.VALID


@pytest.mark.asyncio
async def test_valid_verify_keeps_record_and_marks_it_verified(
    ledger: InMemoryOTPLedger, clock
) -> None:
    code = await ledger.issue(EMAIL)
    await ledger.verify(EMAIL, code)

    record = await ledger.peek(EMAIL)
    assert record is not None
    assert record.verified_at == clock.now
    # Still verifiable: the record is only removed by consume()
    assert await ledger.verify(EMAIL, code) is OTPStatus.VALID


@pytest.mark.asyncio
async def test_verify_unknown_email_is_not_found(ledger: InMemoryOTPLedger) -> None:
    assert await ledger.verify("nobody@x.com", "1234") is OTPStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_mismatch_keeps_record_for_retry(
    ledger: InMemoryOTPLedger, fixed_codes: list[str]
) -> None:
    await ledger.issue(EMAIL)
    assert await ledger.verify(EMAIL, "9876") is OTPStatus.MISMATCH

    record = await ledger.peek(EMAIL)
    assert record is not None
    assert record.verified_at is None
    assert await ledger.verify(EMAIL, fixed_codes[0]) is OTPStatus.VALID


@pytest.mark.asyncio
async def test_expired_code_is_removed(ledger: InMemoryOTPLedger, clock) -> None:
    code = await ledger.issue(EMAIL)
    clock.advance(minutes=10, seconds=1)

    assert await ledger.verify(EMAIL, code) is OTPStatus.EXPIRED
    assert await ledger.verify(EMAIL, code) is OTPStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_code_still_valid_at_end_of_window(ledger: InMemoryOTPLedger, clock) -> None:
    code = await ledger.issue(EMAIL)
    clock.advance(minutes=10)
    assert await ledger.verify(EMAIL, code) is OTPStatus.VALID


@pytest.mark.asyncio
async def test_peek_hides_expired_record(ledger: InMemoryOTPLedger, clock) -> None:
    await ledger.issue(EMAIL)
    clock.advance(minutes=11)
    assert await ledger.peek(EMAIL) is None


@pytest.mark.asyncio
async def test_second_issue_replaces_first_code(
    ledger: InMemoryOTPLedger, fixed_codes: list[str]
) -> None:
    first = await ledger.issue(EMAIL)
    second = await ledger.issue(EMAIL)

    assert await ledger.verify(EMAIL, first) is OTPStatus.MISMATCH
    assert await ledger.verify(EMAIL, second) is OTPStatus.VALID


@pytest.mark.asyncio
async def test_reissue_clears_verified_state(ledger: InMemoryOTPLedger) -> None:
    code = await ledger.issue(EMAIL)
    await ledger.verify(EMAIL, code)
    await ledger.issue(EMAIL)

    record = await ledger.peek(EMAIL)
    assert record is not None
    assert record.verified_at is None


@pytest.mark.asyncio
async def test_consume_removes_record(ledger: InMemoryOTPLedger) -> None:
    code = await ledger.issue(EMAIL)
    await ledger.consume(EMAIL)

    assert await ledger.peek(EMAIL) is None
    assert await ledger.verify(EMAIL, code) is OTPStatus.NOT_FOUND
    # Consuming again is a no-op
    await ledger.consume(EMAIL)


@pytest.mark.asyncio
async def test_records_are_per_email(ledger: InMemoryOTPLedger, fixed_codes) -> None:
    a = await ledger.issue("a@x.com")
    b = await ledger.issue("b@x.com")

    assert await ledger.verify("a@x.com", b) is OTPStatus.MISMATCH
    assert await ledger.verify("b@x.com", b) is OTPStatus.VALID
    assert await ledger.verify("a@x.com", a) is OTPStatus.VALID


@pytest.mark.asyncio
async def test_sweep_drops_only_expired(ledger: InMemoryOTPLedger, clock) -> None:
    await ledger.issue("old@x.com")
    clock.advance(minutes=6)
    await ledger.issue("new@x.com")
    clock.advance(minutes=5)

    assert await ledger.sweep() == 1
    assert await ledger.peek("old@x.com") is None
    assert await ledger.peek("new@x.com") is not None


def test_verified_window(clock) -> None:
    record = otp.OTPRecord(
        email=EMAIL,
        code="1234",
        expires_at=clock.now + timedelta(minutes=10),
        verified_at=clock.now,
    )
    assert record.is_verified(clock.now, window_seconds=300)
    clock.advance(minutes=5, seconds=1)
    assert not record.is_verified(clock.now, window_seconds=300)


@pytest.mark.asyncio
async def test_concurrent_issues_leave_one_live_code(
    ledger: InMemoryOTPLedger, fixed_codes: list[str]
) -> None:
    codes = await asyncio.gather(ledger.issue(EMAIL), ledger.issue(EMAIL))
    record = await ledger.peek(EMAIL)
    assert record is not None

    live = record.code
    stale = next(c for c in codes if c != live)
    assert await ledger.verify(EMAIL, stale) is OTPStatus.MISMATCH
    assert await ledger.verify(EMAIL, live) is OTPStatus.VALID


@pytest.mark.asyncio
async def test_verify_racing_reissue_never_accepts_old_code_afterwards(
    ledger: InMemoryOTPLedger, fixed_codes: list[str]
) -> None:
    old = await ledger.issue(EMAIL)
    _, new = await asyncio.gather(ledger.verify(EMAIL, old), ledger.issue(EMAIL))

    assert await ledger.verify(EMAIL, old) is OTPStatus.MISMATCH
    assert await ledger.verify(EMAIL, new) is OTPStatus.VALID


@pytest.mark.asyncio
async def test_sweeper_loop_can_be_cancelled(ledger: InMemoryOTPLedger, clock) -> None:
    await ledger.issue(EMAIL)
    clock.advance(minutes=11)

    task = asyncio.create_task(ledger.run_sweeper(0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert await ledger.verify(EMAIL, "1111") is OTPStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_non_ascii_candidate_is_a_mismatch(
    ledger: InMemoryOTPLedger, fixed_codes: list[str]
) -> None:
    await ledger.issue(EMAIL)
    assert await ledger.verify(EMAIL, "١١١١") is OTPStatus.MISMATCH
    assert await ledger.verify(EMAIL, fixed_codes[0]) is OTPStatus.VALID
