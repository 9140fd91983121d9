"""
Branch trace extraction from RISC-V spike commit logs and oracle files.

A spike commit log line looks like:

    core   0: 3 0x0000000080000104 (0x00b50463) ...

Conditional branches are B-type instructions (opcode 0b1100011).  A branch
counts as taken when the next committed PC is not pc + 4.  The last
instruction in the log has no successor and is not classified.
"""

import re

from .reference_model import parse_branch_log

B_TYPE_INST_MASK = 0b1111111
B_TYPE_OPCODE = 0b1100011

_COMMIT_RE = re.compile(
    r"core\s+\d+:\s+\d+\s+(0x[0-9a-fA-F]+)\s+\((0x[0-9a-fA-F]+)\)")


def parse_commit_log(lines):
    """Return [(pc, instruction), ...] for every committed instruction."""
    commits = []
    for line in lines:
        match = _COMMIT_RE.search(line)
        if match:
            commits.append((int(match.group(1), 16), int(match.group(2), 16)))
    return commits


def is_conditional_branch(instruction):
    return (instruction & B_TYPE_INST_MASK) == B_TYPE_OPCODE


def extract_branches(commits):
    """Return [(address, taken), ...] for each classified B-type branch."""
    branches = []
    for (pc, insn), (next_pc, _) in zip(commits, commits[1:]):
        if is_conditional_branch(insn):
            branches.append((pc, next_pc != pc + 4))
    return branches


def load_spike_trace(filepath):
    with open(filepath) as f:
        return extract_branches(parse_commit_log(f))


def load_branch_log(filepath):
    """Read an oracle file; lines that are not branch records are skipped."""
    records = []
    with open(filepath) as f:
        for line in f:
            if line.startswith("Branch address:"):
                record = parse_branch_log(line)
                if record is not None:
                    records.append(record)
    return records
