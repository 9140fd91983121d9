"""
Global History Register for the Perceptron Branch Predictor.

Fixed-length shift register of the most recent H branch outcomes.  The
engine reads it during accumulation and training and commits the new
outcome exactly once per sample, after training has finished.

Bit layout of `value`: the oldest outcome sits in the MSB and the newest in
bit 0, so `value` reads as the outcome list written oldest-to-newest.
`oldest_first` presents the same entries reindexed so that bit i is the
i-th oldest outcome (the entry paired with weight w[i]).
"""

from amaranth import *


class HistoryRegister(Elaboratable):
    """
    History Register.

    Parameters
    ----------
    history_length : int
        Number of outcomes retained (H).

    Ports
    -----
    value : Signal(H), out
        History, oldest outcome in the MSB.
    oldest_first : Signal(H), out
        History, bit i = i-th oldest outcome.
    commit : Signal(), in
        Pop the oldest outcome and push `outcome` as the newest.
    outcome : Signal(), in
        Outcome to push on commit.
    clear : Signal(), in
        Reset every entry to not-taken (takes priority over commit).
    """

    def __init__(self, history_length=7):
        if history_length < 1:
            raise ValueError(f"history_length must be at least 1, got {history_length}")
        self.history_length = history_length

        self.value = Signal(history_length)
        self.oldest_first = Signal(history_length)
        self.commit = Signal()
        self.outcome = Signal()
        self.clear = Signal()

    def elaborate(self, platform):
        m = Module()

        h = self.history_length

        m.d.comb += self.oldest_first.eq(
            Cat(*(self.value[h - 1 - i] for i in range(h)))
        )

        with m.If(self.clear):
            m.d.sync += self.value.eq(0)
        with m.Elif(self.commit):
            m.d.sync += self.value.eq(Cat(self.outcome, self.value[:-1]))

        return m
