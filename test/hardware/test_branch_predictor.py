"""
Testbench for the top-level PerceptronPredictor.

Verifies:
  1. Strobe link: a random trace replayed through the gateware matches the
     reference model record-for-record.
  2. Serial link: the same for the chip-select framed serial protocol.
  3. Samples arriving faster than the engine drains them queue up to the
     FIFO depth; the next one is dropped and overrun is latched.
  4. Weights preloaded through the host port are used for prediction.
  5. clear re-zeroes weights and history, and clears overrun.
  6. Bad interface names and bad geometry are rejected at construction.
  7. clear issued while a sample is in flight flushes the queue, lets the
     sample finish, then re-zeroes weights and history.
"""

import random
import sys, os

import pytest

_here = os.path.dirname(__file__)
sys.path.insert(0, os.path.join(_here, "..", "..", "src", "hardware"))
sys.path.insert(0, os.path.join(_here, "..", ".."))

from amaranth import *
from amaranth.sim import Simulator

from modules.branch_predictor import PerceptronPredictor
from modules.config import PredictorConfig, ConfigError
from bench.reference_model import ReferencePredictor, compare_records
from bench.hw_predictor_sim import HWPredictorSimulator


def random_trace(seed, count, addresses=16):
    rng = random.Random(seed)
    pcs = [0x80000000 + rng.randrange(0, 1 << 14, 4) for _ in range(addresses)]
    return [(rng.choice(pcs), rng.random() < 0.6) for _ in range(count)]


def replay_and_compare(interface, branches, config=None):
    config = config or PredictorConfig()
    expected = ReferencePredictor(config).run(branches)
    records, counters = HWPredictorSimulator(config, interface=interface).run(branches)

    assert counters.samples == len(branches), (
        f"{interface}: {counters.samples} of {len(branches)} samples processed")
    for n, (exp, act) in enumerate(zip(expected, records)):
        errors = compare_records(exp, act)
        assert not errors, f"{interface}: branch {n}: " + "; ".join(errors)
    return counters


def test_strobe_trace_matches_reference():
    branches = random_trace(42, 120)
    counters = replay_and_compare("strobe", branches)
    print(f"Test 1 PASSED: strobe link, {len(branches)} branches, "
          f"{counters.total_cycles} cycles.")


def test_serial_trace_matches_reference():
    branches = random_trace(43, 40)
    counters = replay_and_compare("serial", branches)
    print(f"Test 2 PASSED: serial link, {len(branches)} branches, "
          f"{counters.total_cycles} cycles.")


def test_small_table_trace_matches_reference():
    config = PredictorConfig(addr_bits=12, history_length=3, weight_bits=4,
                             table_bytes=16, read_latency=1)
    replay_and_compare("strobe", random_trace(44, 80), config)
    print("Small 4-bit table matches the reference model.")


def test_branch_predictor_control():
    config = PredictorConfig()
    h = config.history_length
    dut = PerceptronPredictor(config=config, interface="strobe")
    sim = Simulator(dut)
    sim.add_clock(1e-7)  # 10 MHz

    stats = {"trained": 0}

    async def testbench(ctx):
        src = dut.source

        async def tick(n=1):
            for _ in range(n):
                await ctx.tick()
                stats["trained"] += ctx.get(dut.training_complete)

        async def wait_idle():
            for _ in range(5000):
                if not ctx.get(dut.busy) and not ctx.get(dut.queue.pop_valid):
                    return
                await tick()
            raise AssertionError("predictor never went idle")

        async def strobe(address, taken):
            ctx.set(src.address_in, address)
            ctx.set(src.outcome_in, taken)
            ctx.set(src.sample_valid, 1)
            await tick()
            ctx.set(src.sample_valid, 0)
            await tick()

        async def host_write(addr, value):
            ctx.set(dut.host_addr, addr)
            ctx.set(dut.host_wr_data, value)
            ctx.set(dut.host_wr_en, 1)
            await tick()
            ctx.set(dut.host_wr_en, 0)

        async def host_read(addr):
            ctx.set(dut.host_addr, addr)
            ctx.set(dut.host_rd_en, 1)
            await tick()
            ctx.set(dut.host_rd_en, 0)
            await tick(config.read_latency - 1)
            assert ctx.get(dut.host_rd_valid) == 1, "host read not valid"
            return ctx.get(dut.host_rd_data)

        await wait_idle()

        # ---- Test 3: Overrun ----
        samples = [(0x0004, 1), (0x0008, 0), (0x000C, 1), (0x0010, 1)]
        for address, taken in samples:
            await strobe(address, taken)
        await tick(2)
        assert ctx.get(dut.overrun) == 1, "Test 3 FAIL: overrun not latched"
        await wait_idle()
        assert stats["trained"] == 3, (
            f"Test 3 FAIL: {stats['trained']} samples trained, expected 3")
        assert ctx.get(dut.history) == 0b101, (
            f"Test 3 FAIL: history {ctx.get(dut.history):07b}")
        print("Test 3 PASSED: Queue holds two samples, the next is dropped.")

        # ---- Test 5 (first half): clear ----
        ctx.set(dut.clear, 1)
        await tick()
        ctx.set(dut.clear, 0)
        assert ctx.get(dut.busy) == 1, "Test 5 FAIL: clear not accepted"
        assert ctx.get(dut.overrun) == 0, "Test 5 FAIL: overrun survived clear"
        await wait_idle()
        for addr in range(config.table_depth):
            assert await host_read(addr) == 0, f"Test 5 FAIL: word {addr} not zero"
        assert ctx.get(dut.history) == 0, "Test 5 FAIL: history survived clear"
        print("Test 5 PASSED: clear re-zeroes weights, history and overrun.")

        # ---- Test 4: Host preload ----
        ref = ReferencePredictor(config)
        base = config.base_address(config.perceptron_index(0x0020))
        await host_write(base + h, -5)        # bias
        ref.table[config.perceptron_index(0x0020)][h] = -5
        assert await host_read(base + h) == -5, "Test 4 FAIL: preload not stored"

        await strobe(0x0020, 1)
        await wait_idle()
        expected = ref.step(0x0020, True)
        assert ctx.get(dut.sum) == -5, f"Test 4 FAIL: sum {ctx.get(dut.sum)}"
        assert ctx.get(dut.prediction) == 0, "Test 4 FAIL: should predict not-taken"
        weights = [await host_read(base + i) for i in range(h + 1)]
        assert weights == expected.weights, (
            f"Test 4 FAIL: weights {weights} != {expected.weights}")
        print("Test 4 PASSED: Preloaded weights drive the prediction.")

        print("\nAll tests PASSED.")

    sim.add_testbench(testbench)
    sim.run()


def test_clear_while_busy():
    config = PredictorConfig()
    dut = PerceptronPredictor(config=config, interface="strobe")
    sim = Simulator(dut)
    sim.add_clock(1e-7)  # 10 MHz

    stats = {"trained": 0}

    async def testbench(ctx):
        src = dut.source

        async def tick(n=1):
            for _ in range(n):
                await ctx.tick()
                stats["trained"] += ctx.get(dut.training_complete)

        async def wait_idle():
            for _ in range(5000):
                if not ctx.get(dut.busy) and not ctx.get(dut.queue.pop_valid):
                    return
                await tick()
            raise AssertionError("predictor never went idle")

        async def strobe(address, taken):
            ctx.set(src.address_in, address)
            ctx.set(src.outcome_in, taken)
            ctx.set(src.sample_valid, 1)
            await tick()
            ctx.set(src.sample_valid, 0)
            await tick()

        await wait_idle()

        # One sample in flight, two queued, one dropped
        for address in (0x0004, 0x0008, 0x000C, 0x0010):
            await strobe(address, 1)
        assert ctx.get(dut.overrun) == 1, "Test 7 FAIL: overrun not latched"
        assert ctx.get(dut.busy) == 1, "Test 7 FAIL: engine should be mid-sample"

        ctx.set(dut.clear, 1)
        await tick()
        ctx.set(dut.clear, 0)
        assert ctx.get(dut.overrun) == 0, "Test 7 FAIL: overrun survived clear"
        assert ctx.get(dut.queue.pop_valid) == 0, "Test 7 FAIL: queue not flushed"
        await wait_idle()
        assert stats["trained"] == 1, (
            f"Test 7 FAIL: {stats['trained']} samples trained, expected 1")
        assert ctx.get(dut.history) == 0, "Test 7 FAIL: history survived clear"

        for addr in range(config.table_depth):
            ctx.set(dut.host_addr, addr)
            ctx.set(dut.host_rd_en, 1)
            await tick()
            ctx.set(dut.host_rd_en, 0)
            await tick(config.read_latency - 1)
            assert ctx.get(dut.host_rd_data) == 0, (
                f"Test 7 FAIL: word {addr} survived clear")
        print("Test 7 PASSED: clear while busy leaves a cold predictor.")

    sim.add_testbench(testbench)
    sim.run()


def test_construction_errors():
    with pytest.raises(ValueError):
        PerceptronPredictor(interface="spi")
    with pytest.raises(ConfigError):
        PredictorConfig(weight_bits=3)
    with pytest.raises(ConfigError):
        PredictorConfig(table_bytes=4)          # half a perceptron
    with pytest.raises(ConfigError):
        PredictorConfig(history_length=0)
    with pytest.raises(ConfigError):
        PredictorConfig(read_latency=0)
    assert issubclass(ConfigError, ValueError)
    print("Test 6 PASSED: Invalid construction rejected.")


if __name__ == "__main__":
    test_strobe_trace_matches_reference()
    test_serial_trace_matches_reference()
    test_small_table_trace_matches_reference()
    test_branch_predictor_control()
    test_clear_while_busy()
    test_construction_errors()
