"""Tests for the batch scheduler."""

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest
from web3.exceptions import ContractLogicError

from gasless_relay.core.config import RelayConfig
from gasless_relay.services.contract import BatchReceipt
from gasless_relay.services.errors import ContractUnavailableError
from gasless_relay.services.relay import RelayRuntime
from gasless_relay.services.scheduler import CycleStatus
from gasless_relay.services.submitter import SubmissionOutcome
from gasless_relay.services.vote_queue import RelayState
from tests.conftest import make_intent


async def _enqueue(runtime: RelayRuntime, count: int, start: int = 0) -> list:
    intents = [make_intent(voter_index=i) for i in range(start, start + count)]
    for intent in intents:
        await runtime.queue.enqueue(intent)
    return intents


@pytest.mark.asyncio
async def test_empty_queue_cycle_is_noop(runtime: RelayRuntime, mock_contract: AsyncMock) -> None:
    report = await runtime.scheduler.run_cycle()

    assert report.status is CycleStatus.EMPTY
    mock_contract.submit_votes_batch.assert_not_awaited()
    assert runtime.queue.state is RelayState.IDLE


@pytest.mark.asyncio
async def test_cycle_takes_at_most_batch_size(runtime: RelayRuntime) -> None:
    intents = await _enqueue(runtime, 5)

    report = await runtime.scheduler.run_cycle()

    assert report.status is CycleStatus.SUBMITTED
    assert report.confirmed
    assert runtime.queue.snapshot() == intents[3:]
    assert runtime.queue.state is RelayState.IDLE


@pytest.mark.asyncio
async def test_network_failure_scenario_keeps_three_votes_in_order(
    runtime: RelayRuntime, mock_contract: AsyncMock
) -> None:
    intents = await _enqueue(runtime, 3)
    mock_contract.submit_votes_batch.side_effect = ContractUnavailableError("ECONNREFUSED")

    report = await runtime.scheduler.run_cycle()

    assert report.result is not None
    assert report.result.outcome is SubmissionOutcome.NETWORK_FAILURE
    assert runtime.queue.snapshot() == intents
    assert runtime.queue.state is RelayState.IDLE


@pytest.mark.asyncio
async def test_concurrent_triggers_yield_single_submission(
    runtime: RelayRuntime, mock_contract: AsyncMock
) -> None:
    await _enqueue(runtime, 3)
    release = asyncio.Event()
    in_flight = 0
    max_in_flight = 0

    async def slow_submit(*args: object) -> BatchReceipt:
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await release.wait()
        in_flight -= 1
        return BatchReceipt(tx_hash="0xaa", block_number=1, gas_used=1)

    mock_contract.submit_votes_batch.side_effect = slow_submit

    tasks = [asyncio.create_task(runtime.scheduler.run_cycle()) for _ in range(5)]
    await asyncio.sleep(0.05)
    release.set()
    reports = await asyncio.gather(*tasks)

    statuses = [r.status for r in reports]
    assert statuses.count(CycleStatus.SUBMITTED) == 1
    assert statuses.count(CycleStatus.BUSY) == 4
    assert max_in_flight == 1
    assert mock_contract.submit_votes_batch.await_count == 1


@pytest.mark.asyncio
async def test_token_released_when_submission_raises_unexpectedly(
    runtime: RelayRuntime, mock_contract: AsyncMock
) -> None:
    await _enqueue(runtime, 1)
    mock_contract.submit_votes_batch.side_effect = TypeError("boom")

    with pytest.raises(TypeError):
        await runtime.scheduler.run_cycle()

    assert runtime.queue.state is RelayState.IDLE
    assert len(runtime.queue) == 1


@pytest.mark.asyncio
async def test_notify_triggers_cycle_without_waiting_for_timer(
    runtime: RelayRuntime, mock_contract: AsyncMock
) -> None:
    await runtime.scheduler.start()
    try:
        await _enqueue(runtime, 3)
        runtime.scheduler.notify()
        for _ in range(100):
            if len(runtime.queue) == 0:
                break
            await asyncio.sleep(0.01)
    finally:
        await runtime.scheduler.stop(drain=False)

    assert len(runtime.queue) == 0
    assert mock_contract.submit_votes_batch.await_count == 1


@pytest.mark.asyncio
async def test_timer_fires_cycles(relay_config: RelayConfig, mock_contract: AsyncMock) -> None:
    runtime = RelayRuntime(
        config=replace(relay_config, batch_interval_ms=20), client=mock_contract
    )
    await _enqueue(runtime, 1)

    await runtime.scheduler.start()
    try:
        for _ in range(100):
            if len(runtime.queue) == 0:
                break
            await asyncio.sleep(0.01)
    finally:
        await runtime.scheduler.stop(drain=False)

    assert len(runtime.queue) == 0


@pytest.mark.asyncio
async def test_scheduler_does_not_start_without_configuration(
    runtime: RelayRuntime, mock_contract: AsyncMock
) -> None:
    mock_contract.enabled = False

    await runtime.scheduler.start()

    assert not runtime.scheduler.running


@pytest.mark.asyncio
async def test_stop_drains_pending_votes(runtime: RelayRuntime, mock_contract: AsyncMock) -> None:
    await runtime.scheduler.start()
    await _enqueue(runtime, 2)

    await runtime.scheduler.stop(drain=True)

    assert not runtime.scheduler.running
    assert len(runtime.queue) == 0
    assert mock_contract.submit_votes_batch.await_count == 1


@pytest.mark.asyncio
async def test_drain_stops_after_failed_batch(
    runtime: RelayRuntime, mock_contract: AsyncMock
) -> None:
    intents = await _enqueue(runtime, 5)
    mock_contract.submit_votes_batch.side_effect = ContractUnavailableError("down")

    await runtime.scheduler.stop(drain=True)

    assert runtime.queue.snapshot() == intents
    assert mock_contract.submit_votes_batch.await_count == 1


@pytest.mark.asyncio
async def test_drain_bounded_by_shutdown_timeout(
    relay_config: RelayConfig, mock_contract: AsyncMock
) -> None:
    runtime = RelayRuntime(
        config=replace(relay_config, shutdown_timeout_seconds=0.05), client=mock_contract
    )
    intents = await _enqueue(runtime, 2)

    async def hang(*args: object) -> BatchReceipt:
        await asyncio.sleep(10)
        raise AssertionError("unreachable")

    mock_contract.submit_votes_batch.side_effect = hang

    await runtime.scheduler.stop(drain=True)

    assert runtime.queue.snapshot() == intents
    assert runtime.queue.state is RelayState.IDLE


@pytest.mark.asyncio
async def test_loop_survives_reverted_status_reads(
    relay_config: RelayConfig, mock_contract: AsyncMock
) -> None:
    runtime = RelayRuntime(
        config=replace(relay_config, batch_interval_ms=20), client=mock_contract
    )
    mock_contract.has_voted.side_effect = ContractLogicError("execution reverted")
    await _enqueue(runtime, 1)

    await runtime.scheduler.start()
    try:
        for _ in range(100):
            if len(runtime.queue) == 0:
                break
            await asyncio.sleep(0.01)
        assert runtime.scheduler.running
    finally:
        await runtime.scheduler.stop(drain=False)

    assert len(runtime.queue) == 0


@pytest.mark.asyncio
async def test_loop_survives_unexpected_cycle_errors(
    relay_config: RelayConfig, mock_contract: AsyncMock
) -> None:
    runtime = RelayRuntime(
        config=replace(relay_config, batch_interval_ms=20), client=mock_contract
    )
    mock_contract.submit_votes_batch.side_effect = RuntimeError("provider exploded")
    intents = await _enqueue(runtime, 1)

    await runtime.scheduler.start()
    try:
        for _ in range(100):
            if mock_contract.submit_votes_batch.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        assert runtime.scheduler.running
    finally:
        await runtime.scheduler.stop(drain=False)

    assert mock_contract.submit_votes_batch.await_count >= 2
    assert runtime.queue.snapshot() == intents
    assert runtime.queue.state is RelayState.IDLE
