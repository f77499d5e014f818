"""Tests for the per-task upload state machine."""

import asyncio
import threading

import httpx
import pytest

from mediaferry.errors import (
    ChunkRejectedError,
    EmptyFileError,
    NetworkError,
    PolicyError,
    RetriesExhaustedError,
    ServerError,
    TaskTimeoutError,
)
from mediaferry.models import StrategyKind, TaskState
from mediaferry.pipeline.orchestrator import UploadOrchestrator
from mediaferry.pipeline.progress import ProgressAggregator

from conftest import MiB, UPLOAD_URL, FakeStorage, make_task


def orchestrator(api, config, storage, sleep, snapshots=None):
    progress = ProgressAggregator(snapshots.append if snapshots is not None else None)
    return UploadOrchestrator(api, config, storage, progress, sleep=sleep)


class TestStrategySelection:
    """Tests for select_strategy() and the fallback chain."""

    async def test_large_payload_goes_chunked(self, api, config, storage, sleep):
        orch = orchestrator(api, config, storage, sleep)
        assert await orch.select_strategy(make_task(config.chunk_threshold + 1)) is StrategyKind.CHUNKED

    async def test_threshold_itself_is_not_chunked(self, api, config, storage, sleep):
        orch = orchestrator(api, config, storage, sleep)
        assert await orch.select_strategy(make_task(config.chunk_threshold)) is StrategyKind.DIRECT

    async def test_chunking_can_be_disabled(self, api, config, storage, sleep):
        config.chunked_upload = False
        orch = orchestrator(api, config, storage, sleep)
        assert await orch.select_strategy(make_task(config.chunk_threshold + 1)) is StrategyKind.DIRECT

    async def test_proxy_without_storage(self, api, config, sleep):
        orch = orchestrator(api, config, None, sleep)
        assert await orch.select_strategy(make_task(10)) is StrategyKind.PROXY
        assert await orch.next_strategy(StrategyKind.CHUNKED) is StrategyKind.PROXY

    async def test_probe_runs_once(self, api, config, sleep):
        storage = FakeStorage(available=False)
        orch = orchestrator(api, config, storage, sleep)
        await orch.select_strategy(make_task(10))
        await orch.select_strategy(make_task(10))
        assert storage.probe_calls == 1

    async def test_probe_runs_off_the_event_loop(self, api, config, sleep):
        """The SDK probe touches the filesystem, so it runs in a worker thread."""

        class ThreadRecordingStorage(FakeStorage):
            def available(self):
                self.thread = threading.get_ident()
                return super().available()

        storage = ThreadRecordingStorage()
        assert await orchestrator(api, config, storage, sleep).direct_available()
        assert storage.thread != threading.get_ident()

    def test_chunked_ceiling_applies_to_chunked_tasks(self, api, config, storage, sleep):
        orch = orchestrator(api, config, storage, sleep)
        task = make_task(10)
        task.strategy = StrategyKind.CHUNKED
        assert orch.timeout_for(task) == config.chunked_task_timeout
        task.strategy = StrategyKind.DIRECT
        assert orch.timeout_for(task) == config.task_timeout


class TestDirectUploads:
    async def test_single_small_file_first_try(self, api, config, storage, server, sleep):
        """A 2 MiB file uploads directly on the first attempt."""
        task = make_task(2 * MiB, name="IMG_0001.jpg")
        result = await orchestrator(api, config, storage, sleep).run(task)

        assert result.address == "https://cdn.test/jobs/42/raw/IMG_0001.jpg"
        assert result.storage_path == "jobs/42/raw/IMG_0001.jpg"
        assert result.strategy is StrategyKind.DIRECT
        assert task.attempts == 1
        assert task.state is TaskState.SUCCEEDED
        assert storage.objects["jobs/42/raw/IMG_0001.jpg"] == task.payload
        assert len(server.calls("POST", "/process-file")) == 1

    async def test_server_errors_then_success(self, api, config, storage, server, sleep):
        """Two 500s from prepare-transfer, then success on the third attempt."""
        server.script(
            "POST",
            "/api/jobs/42/upload",
            httpx.Response(500),
            httpx.Response(500),
            httpx.Response(200, json={"destinationPath": "jobs/42/raw/a.jpg"}),
        )
        task = make_task(2 * MiB, name="a.jpg")
        result = await orchestrator(api, config, storage, sleep).run(task)

        assert result.attempts == 3
        assert task.attempts == 3
        assert sleep.delays == [1.0, 2.0]
        assert len(server.calls("POST", "/process-file")) == 1

    async def test_policy_rejection_switches_to_proxy(self, api, config, server, sleep):
        """A storage policy rejection falls back to proxy without spending an attempt."""
        storage = FakeStorage(errors=[PolicyError("blocked", status_code=403)])
        task = make_task(2 * MiB)
        result = await orchestrator(api, config, storage, sleep).run(task)

        assert result.strategy is StrategyKind.PROXY
        assert task.attempts == 1
        assert sleep.delays == []
        assert len(server.calls("POST", "/upload-file")) == 1
        # the proxy call finalizes server-side
        assert server.calls("POST", "/process-file") == []

    async def test_finalize_rejection_does_not_fall_back(self, api, config, storage, server, sleep):
        """An auth failure from finalize fails the task instead of re-uploading through the proxy."""
        server.script("POST", "/api/jobs/42/process-file", httpx.Response(403))
        task = make_task(1000, name="a.jpg")

        with pytest.raises(PolicyError):
            await orchestrator(api, config, storage, sleep).run(task)

        assert task.strategy is StrategyKind.DIRECT
        assert task.attempts == 1
        assert task.state is TaskState.FAILED
        assert list(storage.objects) == ["jobs/42/raw/a.jpg"]
        assert server.calls("POST", "/upload-file") == []

    async def test_fallback_keeps_progress_from_going_down(self, api, config, server, sleep):
        """Switching strategy mid-attempt never lowers the reported percentage."""

        class HalfThenRejectStorage(FakeStorage):
            async def upload(self, path, payload, content_type, on_progress=None):
                self.upload_calls += 1
                on_progress(len(payload) // 2)
                raise PolicyError("blocked", status_code=403)

        snapshots = []
        task = make_task(1000)
        result = await orchestrator(api, config, HalfThenRejectStorage(), sleep, snapshots).run(task)

        assert result.strategy is StrategyKind.PROXY
        assert task.attempts == 1
        percentages = [s.percentage for s in snapshots]
        assert percentages == sorted(percentages)
        assert 50 in percentages
        assert percentages[-1] == 100
        assert {s.attempt for s in snapshots} == {1}
        # the proxy relay is reported as indeterminate before completion
        assert snapshots[-2].indeterminate

    async def test_network_error_retries_same_strategy(self, api, config, server, sleep):
        storage = FakeStorage(errors=[NetworkError("reset")])
        task = make_task(1000)
        result = await orchestrator(api, config, storage, sleep).run(task)

        assert result.strategy is StrategyKind.DIRECT
        assert task.attempts == 2
        assert storage.upload_calls == 2

    async def test_exhausted_retries_fail_task(self, api, config, storage, server, sleep):
        server.script("POST", "/api/jobs/42/upload", httpx.Response(502))
        task = make_task(1000)

        with pytest.raises(RetriesExhaustedError):
            await orchestrator(api, config, storage, sleep).run(task)
        assert task.attempts == config.max_attempts
        assert task.state is TaskState.FAILED
        assert isinstance(task.error.last_error, ServerError)

    async def test_unavailable_prepare_falls_back_to_proxy(self, api, config, storage, server, sleep):
        server.script("POST", "/api/jobs/42/upload", httpx.Response(503))
        result = await orchestrator(api, config, storage, sleep).run(make_task(1000))
        assert result.strategy is StrategyKind.PROXY

    async def test_proxy_policy_error_is_terminal(self, api, config, server, sleep):
        server.script("POST", "/api/jobs/42/upload-file", httpx.Response(403))
        task = make_task(1000)

        with pytest.raises(PolicyError):
            await orchestrator(api, config, None, sleep).run(task)
        assert task.attempts == 1

    async def test_progress_monotonic_and_100_only_on_success(self, api, config, storage, sleep):
        snapshots = []
        task = make_task(2 * MiB)
        await orchestrator(api, config, storage, sleep, snapshots).run(task)

        percentages = [s.percentage for s in snapshots]
        assert percentages == sorted(percentages)
        assert percentages[-1] == 100
        assert percentages.count(100) == 1
        assert all(s.task_id == task.task_id for s in snapshots)


class TestChunkedUploads:
    async def test_twenty_mib_in_four_sequential_chunks(self, api, config, storage, server, sleep):
        """A 20 MiB file is sent as four PUTs in index order."""
        task = make_task(20 * MiB, name="big.nef")
        result = await orchestrator(api, config, storage, sleep).run(task)

        puts = server.calls("PUT", "/upload/session-1")
        assert [p.headers["Content-Range"] for p in puts] == [
            f"bytes {i * 5 * MiB}-{(i + 1) * 5 * MiB - 1}/{20 * MiB}" for i in range(4)
        ]
        assert result.strategy is StrategyKind.CHUNKED
        assert result.address == "https://cdn.test/jobs/42/raw/big.nef"
        assert task.attempts == 1
        finalize = server.calls("POST", "/process-file")
        assert len(finalize) == 1
        assert b'"storageKey":"jobs/42/raw/big.nef"' in finalize[0].content.replace(b" ", b"")

    async def test_rejected_chunk_retried_alone(self, api, config, storage, server, sleep):
        """A failed chunk is retried without re-sending earlier chunks or bumping task attempts."""
        calls = {"n": 0}

        def flaky_put(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 2:
                return httpx.Response(500)
            return server.default(request)

        server.script("PUT", "/upload/session-1", flaky_put)
        task = make_task(12 * MiB, name="big.nef")
        await orchestrator(api, config, storage, sleep).run(task)

        ranges = [p.headers["Content-Range"].split("/")[0] for p in server.calls("PUT", "/upload/session-1")]
        assert ranges == [
            f"bytes 0-{5 * MiB - 1}",
            f"bytes {5 * MiB}-{10 * MiB - 1}",
            f"bytes {5 * MiB}-{10 * MiB - 1}",
            f"bytes {10 * MiB}-{12 * MiB - 1}",
        ]
        assert task.attempts == 1
        assert sleep.delays == [1.0]

    async def test_chunk_that_keeps_failing_fails_the_task(self, api, config, storage, server, sleep):
        """A chunk out of retries is terminal: no new task attempt and no finalize."""
        server.script("PUT", "/upload/session-1", httpx.Response(500))
        task = make_task(6 * MiB, name="big.nef")

        with pytest.raises(RetriesExhaustedError) as excinfo:
            await orchestrator(api, config, storage, sleep).run(task)

        assert isinstance(excinfo.value.last_error, ChunkRejectedError)
        assert task.attempts == 1
        assert len(server.calls("PUT", "/upload/session-1")) == config.max_attempts
        assert server.calls("POST", "/process-file") == []

    async def test_chunk_progress_includes_in_flight_bytes(self, api, config, storage, sleep):
        snapshots = []
        task = make_task(6 * MiB, name="big.nef")
        await orchestrator(api, config, storage, sleep, snapshots).run(task)

        transferred = [s.bytes_transferred for s in snapshots]
        assert transferred == sorted(transferred)
        # some snapshot lands inside the first chunk
        assert any(0 < n < 5 * MiB for n in transferred)
        assert snapshots[-1].percentage == 100

    async def test_missing_presign_endpoint_falls_back_to_direct(self, api, config, storage, server, sleep):
        server.script("POST", "/api/jobs/42/generate-signed-url", httpx.Response(404))
        result = await orchestrator(api, config, storage, sleep).run(make_task(6 * MiB, name="big.nef"))

        assert result.strategy is StrategyKind.DIRECT
        assert server.calls("PUT", "/upload/session-1") == []

    async def test_address_from_prepare_without_storage(self, api, config, server, sleep):
        server.script(
            "POST",
            "/api/jobs/42/generate-signed-url",
            httpx.Response(200, json={"uploadUrl": UPLOAD_URL, "storageKey": "k", "downloadUrl": "https://dl.test/k"}),
        )
        result = await orchestrator(api, config, None, sleep).run(make_task(6 * MiB, name="big.nef"))
        assert result.address == "https://dl.test/k"


class TestTaskLevelFailures:
    async def test_empty_file_rejected_before_network(self, api, config, storage, server, sleep):
        task = make_task(0)
        with pytest.raises(EmptyFileError):
            await orchestrator(api, config, storage, sleep).run(task)
        assert server.requests == []
        assert task.state is TaskState.FAILED
        assert task.attempts == 0

    async def test_task_deadline(self, api, config, sleep):
        """A hung transfer fails with TaskTimeoutError regardless of attempts left."""

        class HangingStorage(FakeStorage):
            async def upload(self, *args, **kwargs):
                await asyncio.Event().wait()

        config.task_timeout = 0.05
        task = make_task(1000)
        with pytest.raises(TaskTimeoutError):
            await orchestrator(api, config, HangingStorage(), sleep).run(task)
        assert task.state is TaskState.FAILED
        assert task.attempts == 1
