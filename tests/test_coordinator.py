import asyncio

from conftest import REPO_ID, StubResponse, StubSession

from hfmd.core.coordinator import TransferCoordinator
from hfmd.models.entry import EntryKind, FileDescriptor, TransferJob, TransferState


def make_job(tmp_path, *paths, **kwargs):
    files = [FileDescriptor(path=p) for p in paths]
    return TransferJob(dest_root=tmp_path, repo_id=REPO_ID, files=files, **kwargs)


async def wait_until(predicate, timeout=5.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


async def test_two_files_from_offset_zero(hub, config, tmp_path):
    hub.add("a.bin", b"A" * 10)
    hub.add("b.bin", b"B" * 20)
    job = TransferJob(
        dest_root=tmp_path,
        repo_id=REPO_ID,
        files=[
            FileDescriptor(path="a.bin", size_bytes=10),
            FileDescriptor(path="b.bin", size_bytes=20),
        ],
    )
    coordinator = TransferCoordinator(config)

    outcomes = await coordinator.run(job)

    assert list(outcomes) == ["a.bin", "b.bin"]
    assert all(o.state is TransferState.COMPLETED for o in outcomes.values())
    assert (tmp_path / "a.bin").read_bytes() == b"A" * 10
    assert (tmp_path / "b.bin").read_bytes() == b"B" * 20
    assert list(tmp_path.glob("*.part")) == []
    assert coordinator.stats.files_completed == 2
    assert coordinator.stats.bytes_transferred == 30


async def test_second_run_skips_everything(hub, config, tmp_path):
    hub.add("a.bin", b"A" * 10)
    hub.add("nested/b.bin", b"B" * 20)

    await TransferCoordinator(config).run(make_job(tmp_path, "a.bin", "nested/b.bin"))
    requests_after_first_run = len(hub.requests)
    coordinator = TransferCoordinator(config)
    outcomes = await coordinator.run(make_job(tmp_path, "a.bin", "nested/b.bin"))

    assert all(o.state is TransferState.SKIPPED for o in outcomes.values())
    assert len(hub.requests) == requests_after_first_run
    assert coordinator.stats.files_skipped == 2
    assert coordinator.stats.bytes_transferred == 0


async def test_one_failure_does_not_affect_siblings(hub, config, tmp_path):
    hub.add("a.bin", b"a" * 5000)
    hub.add("b.bin", b"b" * 5000)
    hub.add("c.bin", b"c" * 5000)
    hub.modes["b.bin"] = "no_length"

    coordinator = TransferCoordinator(config)
    outcomes = await coordinator.run(make_job(tmp_path, "a.bin", "b.bin", "c.bin"))

    assert outcomes["a.bin"].state is TransferState.COMPLETED
    assert outcomes["c.bin"].state is TransferState.COMPLETED
    assert outcomes["b.bin"].state is TransferState.FAILED
    assert outcomes["b.bin"].error_type == "MissingLengthHeaderError"
    assert not (tmp_path / "b.bin").exists()
    assert coordinator.stats.files_failed == 1


async def test_worker_cap_bounds_concurrency(hub, config, tmp_path):
    paths = [f"shard-{i}.bin" for i in range(6)]
    for path in paths:
        hub.add(path, path.encode() * 100)
    hub.delay = 0.05
    config.max_workers = 2

    outcomes = await TransferCoordinator(config).run(make_job(tmp_path, *paths))

    assert all(o.state is TransferState.COMPLETED for o in outcomes.values())
    assert 1 <= hub.peak_active <= 2


async def test_small_selection_runs_unbounded(hub, config, tmp_path):
    paths = [f"f{i}.txt" for i in range(4)]
    for path in paths:
        hub.add(path, b"x" * 10)
    hub.block_downloads = True

    running = asyncio.create_task(
        TransferCoordinator(config).run(make_job(tmp_path, *paths))
    )
    await wait_until(lambda: hub.active == 4)
    hub.release.set()
    outcomes = await asyncio.wait_for(running, timeout=5)

    assert all(o.state is TransferState.COMPLETED for o in outcomes.values())


async def test_cancel_reaches_every_transfer(config, sink, tmp_path):
    session = StubSession(
        *(StubResponse(200, 100, [b"0123456789"], hang=True) for _ in range(3))
    )
    job = make_job(tmp_path, "a.bin", "b.bin", "c.bin")
    coordinator = TransferCoordinator(config, sink, session=session)

    running = asyncio.create_task(coordinator.run(job))
    await wait_until(lambda: sum(1 for v in sink.progress.values() if v) == 3)
    job.cancel_token.cancel()
    outcomes = await asyncio.wait_for(running, timeout=5)

    assert [o.state for o in outcomes.values()] == [TransferState.CANCELLED] * 3
    assert not any(o.ok for o in outcomes.values())
    for name in ("a.bin", "b.bin", "c.bin"):
        partial = tmp_path / f"{name}.part"
        assert 0 < partial.stat().st_size <= 100
        assert not (tmp_path / name).exists()
    assert coordinator.stats.files_cancelled == 3


async def test_queued_transfers_cancel_without_requests(config, sink, tmp_path):
    session = StubSession(StubResponse(200, 100, [b"0123456789"], hang=True))
    config.max_workers = 1
    job = make_job(tmp_path, "a.bin", "b.bin", "c.bin")
    coordinator = TransferCoordinator(config, sink, session=session)

    running = asyncio.create_task(coordinator.run(job))
    await wait_until(lambda: sink.progress["a.bin"] > 0)
    job.cancel_token.cancel()
    outcomes = await asyncio.wait_for(running, timeout=5)

    assert all(o.state is TransferState.CANCELLED for o in outcomes.values())
    assert len(session.calls) == 1
    assert not (tmp_path / "b.bin.part").exists()


async def test_directories_and_duplicates_are_dropped(hub, config, tmp_path):
    hub.add("config.json", b"{}")
    job = TransferJob(
        dest_root=tmp_path,
        repo_id=REPO_ID,
        files=[
            FileDescriptor(path="onnx", kind=EntryKind.DIRECTORY),
            FileDescriptor(path="config.json"),
            FileDescriptor(path="config.json"),
        ],
    )

    outcomes = await TransferCoordinator(config).run(job)

    assert list(outcomes) == ["config.json"]
    assert len(hub.download_requests("config.json")) == 1
    assert not (tmp_path / "onnx").exists()


async def test_empty_selection_returns_no_outcomes(config, tmp_path):
    assert await TransferCoordinator(config).run(make_job(tmp_path)) == {}


async def test_partial_suffix_collision_fails_without_request(
    hub, config, sink, tmp_path
):
    model = bytes(range(250)) * 80  # 20000 bytes
    hub.add("model.bin", model)
    hub.add("model.bin.part", b"p" * 300)
    coordinator = TransferCoordinator(config, sink)

    outcomes = await coordinator.run(
        make_job(tmp_path, "model.bin", "model.bin.part")
    )

    assert list(outcomes) == ["model.bin", "model.bin.part"]
    assert outcomes["model.bin"].state is TransferState.COMPLETED
    assert outcomes["model.bin.part"].state is TransferState.FAILED
    assert outcomes["model.bin.part"].error_type == "UnsafePathError"
    assert "collides with 'model.bin'" in outcomes["model.bin.part"].error
    assert (tmp_path / "model.bin").read_bytes() == model
    assert not (tmp_path / "model.bin.part").exists()
    assert hub.download_requests("model.bin") == [None]
    assert hub.download_requests("model.bin.part") == []
    assert sink.finished["model.bin.part"] is outcomes["model.bin.part"]
    assert coordinator.stats.files_completed == 1
    assert coordinator.stats.files_failed == 1


async def test_first_listed_file_keeps_a_contested_local_name(hub, config, tmp_path):
    hub.add("weights.part", b"w" * 10)
    hub.add("weights", b"W" * 10)

    outcomes = await TransferCoordinator(config).run(
        make_job(tmp_path, "weights.part", "weights")
    )

    assert outcomes["weights.part"].state is TransferState.COMPLETED
    assert outcomes["weights"].state is TransferState.FAILED
    assert outcomes["weights"].error_type == "UnsafePathError"
    assert (tmp_path / "weights.part").read_bytes() == b"w" * 10
    assert not (tmp_path / "weights").exists()
    assert hub.download_requests("weights") == []
