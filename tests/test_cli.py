"""
End-to-end tests for the boltzmann-sim command line.
"""

import json

import pytest

from boltzmann_sim import cli, utils

CAP = "5000000"


def test_run_appends_report(tmp_path, capsys):
    out = tmp_path / "proj2.out"
    npz = tmp_path / "run.npz"
    argv = ["42", "20", "--out", str(out), "--npz", str(npz), "--max-iterations", CAP]

    assert cli.main(argv) == cli.EXIT_OK
    assert cli.main(argv) == cli.EXIT_OK

    tables = utils.read_report(out)
    assert len(tables) == 2
    # same seed, same histogram
    assert tables[0].as_pairs() == tables[1].as_pairs()
    assert tables[0].total_sites() == 400
    assert tables[0].total_quanta() == 400

    saved = utils.load_histogram_result(npz)
    assert saved.as_pairs() == tables[1].as_pairs()
    assert saved.meta["seed"] == 42
    assert "Equilibrium reached" in capsys.readouterr().out


def test_default_report_name_per_dimension(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert cli.main(["3", "6", "--dim", "3", "--max-iterations", CAP]) == cli.EXIT_OK
    assert (tmp_path / "proj2_ext.out").exists()
    assert not (tmp_path / "proj2.out").exists()


def test_config_file_supplies_defaults(tmp_path):
    config = tmp_path / "run.json"
    config.write_text(json.dumps({"dimension": 3, "side": 99, "max_iterations": int(CAP)}))
    out = tmp_path / "report.out"

    assert cli.main(["5", "6", "--config", str(config), "--out", str(out)]) == cli.EXIT_OK
    (table,) = utils.read_report(out)
    # command-line size wins over the file's side
    assert table.total_sites() == 216


def test_cap_exhausted_writes_nothing(tmp_path, capsys):
    out = tmp_path / "proj2.out"
    code = cli.main(["1", "1", "--out", str(out), "--max-iterations", "100"])
    assert code == cli.EXIT_NOT_CONVERGED
    assert not out.exists()
    assert "No equilibrium" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [["abc", "4"], ["4"], ["1", "2", "3"], ["4", "4.5"]])
def test_malformed_arguments_exit_nonzero(argv):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    assert excinfo.value.code != 0


def test_invalid_values_reported(tmp_path, capsys):
    out = tmp_path / "proj2.out"
    assert cli.main(["-3", "4", "--out", str(out)]) == cli.EXIT_FAILURE
    assert cli.main(["3", "0", "--out", str(out)]) == cli.EXIT_FAILURE
    assert not out.exists()
    assert "Error:" in capsys.readouterr().err


def test_unwritable_report(tmp_path, capsys):
    out = tmp_path / "missing" / "proj2.out"
    assert cli.main(["42", "20", "--out", str(out), "--max-iterations", CAP]) == cli.EXIT_FAILURE
    assert "Couldn't open output file" in capsys.readouterr().err


def test_seeding_out_of_memory_reported(tmp_path, monkeypatch, capsys):
    from boltzmann_sim import CoordinateSampler

    def _exhausted(self, count):
        raise MemoryError("Unable to allocate seeding coordinates")

    monkeypatch.setattr(CoordinateSampler, "peek", _exhausted)
    out = tmp_path / "proj2_ext.out"
    code = cli.main(["1", "20", "--dim", "3", "--max-iterations", "1", "--out", str(out)])

    assert code == cli.EXIT_FAILURE
    assert "Error:" in capsys.readouterr().err
    assert not out.exists()


def test_unwritable_npz_reported(tmp_path, capsys):
    out = tmp_path / "proj2.out"
    npz = tmp_path / "run.npz"
    npz.mkdir()
    argv = ["42", "20", "--out", str(out), "--npz", str(npz), "--max-iterations", CAP]
    assert cli.main(argv) == cli.EXIT_FAILURE
    assert "Couldn't write result file" in capsys.readouterr().err
