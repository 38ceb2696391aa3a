import pytest

from hfmd.exceptions import UnsafePathError
from hfmd.storage.partial_store import PART_SUFFIX, PartialFileStore


def test_resolve_nested_path(tmp_path):
    store = PartialFileStore(tmp_path)
    final, part = store.resolve("onnx/model.onnx")
    assert final == tmp_path / "onnx" / "model.onnx"
    assert part == tmp_path / "onnx" / ("model.onnx" + PART_SUFFIX)


@pytest.mark.parametrize(
    "path",
    ["", "/etc/passwd", "../escape.bin", "a/../../b", "C:/Windows/x", "a\\b"],
)
def test_resolve_rejects_unsafe_paths(tmp_path, path):
    with pytest.raises(UnsafePathError):
        PartialFileStore(tmp_path).resolve(path)


def test_resolve_sanitizes_segments(tmp_path):
    final, part = PartialFileStore(tmp_path).resolve("dir/we\x00ird.txt")
    assert final == tmp_path / "dir" / "weird.txt"
    assert part == tmp_path / "dir" / "weird.txt.part"


async def test_prepare_partial_creates_empty_file(tmp_path):
    store = PartialFileStore(tmp_path)
    _, part = store.resolve("sub/dir/file.bin")
    assert await store.prepare_partial(part) == 0
    assert part.is_file()
    assert part.read_bytes() == b""


async def test_prepare_partial_returns_existing_length(tmp_path):
    store = PartialFileStore(tmp_path)
    _, part = store.resolve("file.bin")
    part.write_bytes(b"12345")
    assert await store.prepare_partial(part) == 5


async def test_append_and_truncate(tmp_path):
    store = PartialFileStore(tmp_path)
    _, part = store.resolve("file.bin")
    part.write_bytes(b"abc")

    async with store.append(part) as handle:
        await store.write_chunk(handle, b"def", durable=True)
    assert part.read_bytes() == b"abcdef"

    async with store.append(part, truncate=True) as handle:
        await store.write_chunk(handle, b"xyz", durable=False)
    assert part.read_bytes() == b"xyz"


async def test_finalize_renames_partial(tmp_path):
    store = PartialFileStore(tmp_path)
    final, part = store.resolve("deep/file.bin")
    await store.prepare_partial(part)
    part.write_bytes(b"payload")

    assert await store.existing_final_size(final) is None
    await store.finalize(part, final)

    assert not part.exists()
    assert final.read_bytes() == b"payload"
    assert await store.existing_final_size(final) == 7
