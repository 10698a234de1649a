"""Tests for backoff policies, cancellation tokens, fingerprints and the in-flight registry."""

from __future__ import annotations

import asyncio

import pytest

from backend.inflight import InFlightRegistry
from backend.utils import (
    CancellationToken,
    exponential_backoff,
    fixed_backoff,
    mask_credential,
    request_fingerprint,
)


class TestBackoff:
    def test_fixed(self):
        backoff = fixed_backoff(1.0)
        assert [backoff(n) for n in range(1, 5)] == [1.0, 1.0, 1.0, 1.0]

    def test_exponential(self):
        backoff = exponential_backoff(1.0, 2.0)
        assert [backoff(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 8.0]

    def test_exponential_capped(self):
        backoff = exponential_backoff(1.0, 3.0, max_delay=5.0)
        assert [backoff(n) for n in range(1, 4)] == [1.0, 3.0, 5.0]


class TestCancellationToken:
    def test_starts_uncancelled(self):
        assert CancellationToken().cancelled is False

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled is True


class TestFingerprint:
    def test_stable(self):
        assert request_fingerprint("p", "k") == request_fingerprint("p", "k")

    def test_differs_by_prompt_and_credential(self):
        base = request_fingerprint("p", "k")
        assert request_fingerprint("q", "k") != base
        assert request_fingerprint("p", "other") != base

    def test_credential_not_embedded(self):
        assert "supersecret" not in request_fingerprint("p", "supersecret")

    def test_mask_credential(self):
        assert mask_credential("r8_abcdef") == "r8...ef"
        assert mask_credential("abc") == "****"


class TestInFlightRegistry:
    def test_second_caller_joins_first(self):
        registry = InFlightRegistry()
        calls = []

        async def work():
            calls.append(1)
            await asyncio.sleep(0)
            return "done"

        async def scenario():
            return await asyncio.gather(
                registry.run("k", work),
                registry.run("k", work),
            )

        assert asyncio.run(scenario()) == ["done", "done"]
        assert calls == [1]
        assert len(registry) == 0

    def test_different_keys_run_separately(self):
        registry = InFlightRegistry()
        calls = []

        async def work():
            calls.append(1)
            return len(calls)

        async def scenario():
            return await asyncio.gather(registry.run("a", work), registry.run("b", work))

        assert sorted(asyncio.run(scenario())) == [1, 2]

    def test_failure_shared_and_key_released(self):
        registry = InFlightRegistry()

        async def boom():
            await asyncio.sleep(0)
            raise RuntimeError("nope")

        async def scenario():
            results = await asyncio.gather(
                registry.run("k", boom), registry.run("k", boom), return_exceptions=True
            )
            return results, "k" in registry

        results, still_registered = asyncio.run(scenario())
        assert all(isinstance(r, RuntimeError) for r in results)
        assert still_registered is False

    def test_sequential_calls_start_new_work(self):
        registry = InFlightRegistry()
        calls = []

        async def work():
            calls.append(1)
            return "ok"

        async def scenario():
            await registry.run("k", work)
            await registry.run("k", work)

        asyncio.run(scenario())
        assert calls == [1, 1]


@pytest.mark.parametrize("interval", [0.25, 1.0, 3.0])
def test_fixed_backoff_ignores_attempt(interval):
    backoff = fixed_backoff(interval)
    assert backoff(1) == backoff(50) == interval


class TestFingerprintServiceScope:
    def test_differs_by_base_url(self):
        assert request_fingerprint("p", "k", "http://a") != request_fingerprint("p", "k", "http://b")


class TestCancellationTokenWait:
    def test_wait_returns_after_cancel(self):
        token = CancellationToken()

        async def scenario():
            waiter = asyncio.ensure_future(token.wait())
            await asyncio.sleep(0)
            assert not waiter.done()
            token.cancel()
            await asyncio.wait_for(waiter, timeout=1)
            return waiter.done()

        assert asyncio.run(scenario()) is True

    def test_wait_on_already_cancelled_token(self):
        token = CancellationToken()
        token.cancel()

        asyncio.run(asyncio.wait_for(token.wait(), timeout=1))


class TestInFlightRegistryParticipants:
    def test_task_survives_while_a_participant_remains(self):
        registry = InFlightRegistry()

        async def scenario():
            release = asyncio.Event()

            async def work():
                await release.wait()
                return "ok"

            first = registry.join("k", work)
            second = registry.join("k", work)
            assert first is second

            registry.leave("k", first)
            await asyncio.sleep(0)
            assert not first.cancelled()

            release.set()
            result = await first
            registry.leave("k", second)
            return result

        assert asyncio.run(scenario()) == "ok"

    def test_last_participant_leaving_cancels_task(self):
        registry = InFlightRegistry()

        async def scenario():
            async def work():
                await asyncio.Event().wait()

            task = registry.join("k", work)
            registry.leave("k", task)
            assert "k" not in registry
            with pytest.raises(asyncio.CancelledError):
                await task
            return task.cancelled()

        assert asyncio.run(scenario()) is True
