"""
Tests for spike log extraction and the trace runner CLI.

Verifies:
  1. Only B-type instructions are classified, taken iff the next PC is not
     pc + 4, and the final instruction is left unclassified.
  2. `--mode ref` prints one oracle line per branch.
  3. An oracle produced by the reference model is matched by the gateware.
  4. A corrupted oracle makes the runner exit with status 1.
  5. Missing input files and bad geometry exit with status 1.
"""

import sys, os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from bench.trace_parser import (parse_commit_log, extract_branches,
                                is_conditional_branch, load_branch_log)
from bench.trace_runner import main


SPIKE_LOG = """\
core   0: 3 0x0000000080000100 (0x00000013) x0  0x00000000
core   0: 3 0x0000000080000104 (0x00b50463)
core   0: 3 0x0000000080000110 (0x00000013) x0  0x00000000
core   0: 3 0x0000000080000114 (0xfe0716e3)
core   0: 3 0x0000000080000118 (0x00000013) x0  0x00000000
core   0: 3 0x000000008000011c (0x00b50463)
"""


def write_log(tmp_path, text=SPIKE_LOG, name="spike.log"):
    path = tmp_path / name
    path.write_text(text)
    return str(path)


def test_extract_branches():
    commits = parse_commit_log(SPIKE_LOG.splitlines())
    assert len(commits) == 6
    assert commits[1] == (0x80000104, 0x00b50463)
    assert is_conditional_branch(0x00b50463)
    assert not is_conditional_branch(0x00000013)
    branches = extract_branches(commits)
    assert branches == [(0x80000104, True), (0x80000114, False)], branches
    print("Test 1 PASSED: Branch extraction.")


def test_reference_mode(tmp_path, capsys):
    main([write_log(tmp_path), "--mode", "ref"])
    out = capsys.readouterr().out
    lines = [l for l in out.splitlines() if l.startswith("Branch address:")]
    assert len(lines) == 2, out
    assert lines[0].startswith("Branch address: 104, Hash index: 1,")
    assert "NUM_PERCEPTRONS: 8" in out
    print("Test 2 PASSED: Reference mode output.")


def test_oracle_against_gateware(tmp_path, capsys):
    main([write_log(tmp_path), "--mode", "ref"])
    oracle = tmp_path / "oracle.txt"
    oracle.write_text(capsys.readouterr().out)
    assert len(load_branch_log(str(oracle))) == 2

    main(["--oracle", str(oracle), "--mode", "hw_sim",
          "--output", str(tmp_path / "out" / "summary.json")])
    out = capsys.readouterr().out
    assert "HW matches expected records." in out, out
    assert (tmp_path / "out" / "summary.json").is_file()
    print("Test 3 PASSED: Gateware matches the oracle.")


def test_corrupted_oracle(tmp_path, capsys):
    main([write_log(tmp_path), "--mode", "ref"])
    text = capsys.readouterr().out.replace("Y: 0,", "Y: 5,", 1)
    oracle = tmp_path / "bad_oracle.txt"
    oracle.write_text(text)

    with pytest.raises(SystemExit) as exc:
        main(["--oracle", str(oracle), "--mode", "hw_sim"])
    assert exc.value.code == 1
    assert "MISMATCH branch 0" in capsys.readouterr().out
    print("Test 4 PASSED: Corrupted oracle is reported.")


def test_bad_inputs(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main([str(tmp_path / "missing.log")])
    assert exc.value.code == 1

    with pytest.raises(SystemExit) as exc:
        main([write_log(tmp_path), "--weight-bits", "3"])
    assert exc.value.code == 1
    print("Test 5 PASSED: Bad inputs rejected.")


if __name__ == "__main__":
    test_extract_branches()
