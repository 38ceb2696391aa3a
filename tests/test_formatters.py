from hfmd.cli.formatters import print_summary_panel
from hfmd.models.entry import TransferOutcome, TransferState
from hfmd.models.stats import TransferStats


def test_failed_files_show_bytes_kept_for_resume(capsys):
    outcome = TransferOutcome(
        path="model.bin",
        state=TransferState.FAILED,
        bytes_transferred=2048,
        total_bytes=10240,
        error="stream ended early",
        error_type="IncompleteTransferError",
        partial_bytes=6144,
    )

    print_summary_panel(TransferStats(files_failed=1), 1.0, {"model.bin": outcome})

    out = capsys.readouterr().out
    assert "Failed Files" in out
    assert "6.0 KB / 10.0 KB" in out
    assert "2.0 KB / 10.0 KB" not in out


def test_failure_without_known_size_shows_a_dash(capsys):
    outcome = TransferOutcome(
        path="../escape.bin",
        state=TransferState.FAILED,
        error="Refusing unsafe remote path",
        error_type="UnsafePathError",
    )

    print_summary_panel(TransferStats(files_failed=1), 1.0, {outcome.path: outcome})

    out = capsys.readouterr().out
    assert "UnsafePathError" in out
    assert " / " not in out.split("Failed Files", 1)[1]
