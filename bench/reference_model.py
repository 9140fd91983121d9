"""
Golden reference model of the perceptron branch predictor.

Pure-Python model of the hardware's arithmetic: same hash, same history
alignment, same saturating update and the same address truncation to
`addr_bits`.  Each step produces a BranchRecord carrying everything the
hardware exposes for one sample, and records can be written to / read
from the branch-log oracle format used for trace cross-checking.
"""

import os
import re
import sys
from dataclasses import dataclass, field

# Add hardware source to path
_hw_dir = os.path.join(os.path.dirname(__file__), "..", "src", "hardware")
if _hw_dir not in sys.path:
    sys.path.insert(0, _hw_dir)

from modules.config import PredictorConfig


@dataclass
class BranchRecord:
    address: int
    hash_index: int
    start_addr: int
    taken: bool
    prediction: bool
    y: int
    weights: list = field(default_factory=list)  # post-training, w[0..H]


class ReferencePredictor:
    """Sequential golden model: predict, train, then commit history."""

    def __init__(self, config=None):
        self.config = config or PredictorConfig()
        c = self.config
        self.history = [False] * c.history_length   # oldest first
        self.table = [[0] * c.words_per_perceptron
                      for _ in range(c.num_perceptrons)]

    def reset(self):
        c = self.config
        self.history = [False] * c.history_length
        for weights in self.table:
            weights[:] = [0] * c.words_per_perceptron

    def weighted_sum(self, index):
        weights = self.table[index]
        h = self.config.history_length
        y = weights[h]  # bias
        for i in range(h):
            y += weights[i] if self.history[i] else -weights[i]
        return y

    def predict(self, address):
        """Return (y, prediction) for `address` without training."""
        y = self.weighted_sum(self.config.perceptron_index(address))
        return y, y >= 0

    def train(self, address, taken):
        c = self.config
        weights = self.table[c.perceptron_index(address)]
        h = c.history_length
        for i in range(h + 1):
            step = 1 if (i == h or self.history[i] == taken) else -1
            weights[i] = min(max(weights[i] + step, c.weight_min), c.weight_max)

    def commit(self, taken):
        self.history.pop(0)
        self.history.append(bool(taken))

    def step(self, address, taken):
        """Run one full sample and return its BranchRecord."""
        c = self.config
        address &= c.address_mask
        index = c.perceptron_index(address)
        y, prediction = self.predict(address)
        self.train(address, taken)
        self.commit(taken)
        return BranchRecord(
            address=address,
            hash_index=index,
            start_addr=c.base_address(index),
            taken=bool(taken),
            prediction=prediction,
            y=y,
            weights=list(self.table[index]),
        )

    def run(self, branches):
        """Replay (address, taken) pairs; returns the list of records."""
        return [self.step(address, taken) for address, taken in branches]


# ── Branch-log oracle format ──────────────────────────────────────────────

_BRANCH_LOG_RE = re.compile(r"""
    Branch\saddress:\s*(?P<addr>[0-9a-fA-F]+),\s*
    Hash\sindex:\s*(?P<hash>\d+),\s*
    Starting\saddress:\s*(?P<start_addr>\d+),\s*
    Branch\sTaken:\s*(?P<taken>\d+),\s*
    Prediction:\s*(?P<pred>\d+),\s*
    Y:\s*(?P<y>-?\d+),\s*
    Weights\safter\straining:\s*(?P<weights>[-\d,\s]+)
    """, re.VERBOSE)


def format_branch_log(record):
    weights = ", ".join(str(w) for w in record.weights)
    return (f"Branch address: {record.address:x}, "
            f"Hash index: {record.hash_index}, "
            f"Starting address: {record.start_addr}, "
            f"Branch Taken: {int(record.taken)}, "
            f"Prediction: {int(record.prediction)}, "
            f"Y: {record.y}, "
            f"Weights after training: {weights}")


def parse_branch_log(line):
    """Parse one oracle line into a BranchRecord, or None if it is not one."""
    match = _BRANCH_LOG_RE.search(line)
    if not match:
        return None
    return BranchRecord(
        address=int(match.group("addr"), 16),
        hash_index=int(match.group("hash")),
        start_addr=int(match.group("start_addr")),
        taken=bool(int(match.group("taken"))),
        prediction=bool(int(match.group("pred"))),
        y=int(match.group("y")),
        weights=[int(x) for x in match.group("weights").split(",") if x.strip()],
    )


def compare_records(expected, actual):
    """Return a list of human-readable field mismatches (empty if equal)."""
    errors = []
    for name in ("hash_index", "start_addr", "prediction", "y", "weights"):
        exp = getattr(expected, name)
        act = getattr(actual, name)
        if exp != act:
            errors.append(f"{name}: expected {exp}, got {act}")
    return errors
